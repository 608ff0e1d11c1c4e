# main.py

import logging
from collections import deque
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from config import get_settings
from constants import VERSION
from engine import SimulationEngine
from events import SimEvent, payload_to_dict
from models import Intervention
from scenarios import get_scenario, list_scenarios

# --- 1. CONFIGURATION & LOGGING ---
settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("clinsim-api")

app = FastAPI(
    title="ClinSim API",
    version=VERSION,
    description="Patient physiology simulation for clinical teaching cases. \n\n"
                "**WARNING**: Educational use only. Synthetic patients, not clinical advice.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

EVENT_LOG_SIZE = 500


class Session:
    """One learner's simulation plus the log of what it has told them."""

    def __init__(self, session_id: str):
        self.id = session_id
        self.engine = SimulationEngine(settings=settings)
        self.events = deque(maxlen=EVENT_LOG_SIZE)
        for event in SimEvent:
            if event is not SimEvent.TICK:  # per-tick state is served by /state
                self.engine.on(event, self._recorder(event))

    def _recorder(self, event: SimEvent):
        def record(payload):
            self.events.append({"event": event.value, "payload": payload_to_dict(payload)})
        return record


SESSIONS: Dict[str, Session] = {}


def _get_session(session_id: str) -> Session:
    session = SESSIONS.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown session '{session_id}'")
    return session


def _loaded_engine(session_id: str) -> SimulationEngine:
    engine = _get_session(session_id).engine
    if engine.scenario is None:
        raise HTTPException(status_code=409, detail="No scenario loaded for this session")
    return engine


def _status(engine: SimulationEngine) -> dict:
    simulated = engine.get_simulated_time()
    return {
        "scenarioId": engine.scenario.id if engine.scenario else None,
        "isRunning": engine.is_running,
        "isPaused": engine.is_paused,
        "timeScale": engine.clock.time_scale,
        "simulatedTime": simulated.isoformat() if simulated else None,
        "elapsedMinutes": engine.get_elapsed_minutes(),
    }


@app.get("/")
def read_root():
    return {"status": "active", "message": "ClinSim API is running successfully!"}


@app.get("/health")
def health_check():
    """Health probe"""
    return {"status": "active", "version": VERSION, "module": "clinsim-physiology-core", "sessions": len(SESSIONS)}


# --- 2. INPUT SCHEMA ---
class TimeScaleRequest(BaseModel):
    scale: float = Field(..., ge=0, le=1440, description="Simulated minutes per real minute")


class InterventionRequest(BaseModel):
    name: str = Field(..., min_length=1, description="Order as written, e.g. 'Furosemide 40mg IV'")
    dose: Optional[float] = Field(None, gt=0, description="Defaults to the standard dose")
    route: str = ""
    category: str = ""
    type: str = ""

    class Config:
        json_schema_extra = {
            "example": {"name": "Furosemide", "dose": 40, "route": "IV", "category": "medication", "type": "diuretic"}
        }


class DecisionRequest(BaseModel):
    decision_id: str = Field(..., min_length=1)
    action: str = Field(..., min_length=1)
    details: Optional[Any] = None


# --- 3. SCENARIO & LIFECYCLE ---
# async endpoints: the clock's timer task lives on the server's event loop

@app.get("/scenarios")
def get_scenarios() -> List[dict]:
    return list_scenarios()


@app.post("/sessions/{session_id}/scenario")
async def load_custom_scenario(session_id: str, scenario: Dict[str, Any] = Body(...)):
    """Loads a scenario supplied as JSON. Creates the session if needed."""
    session = SESSIONS.get(session_id) or Session(session_id)
    SESSIONS[session_id] = session
    state = session.engine.load_scenario(scenario)
    logger.info(f"Session {session_id}: custom scenario {session.engine.scenario.id}")
    return {"status": _status(session.engine), "state": state.to_dict()}


@app.post("/sessions/{session_id}/scenario/{scenario_id}")
async def load_catalog_scenario(session_id: str, scenario_id: str):
    scenario = get_scenario(scenario_id)
    if scenario is None:
        raise HTTPException(status_code=404, detail=f"Unknown scenario '{scenario_id}'")
    session = SESSIONS.get(session_id) or Session(session_id)
    SESSIONS[session_id] = session
    state = session.engine.load_scenario(scenario)
    return {"status": _status(session.engine), "state": state.to_dict()}


@app.post("/sessions/{session_id}/start")
async def start_simulation(session_id: str):
    engine = _loaded_engine(session_id)
    changed = engine.start()
    return {"changed": changed, "status": _status(engine)}


@app.post("/sessions/{session_id}/pause")
async def pause_simulation(session_id: str):
    engine = _loaded_engine(session_id)
    return {"changed": engine.pause(), "status": _status(engine)}


@app.post("/sessions/{session_id}/resume")
async def resume_simulation(session_id: str):
    engine = _loaded_engine(session_id)
    return {"changed": engine.resume(), "status": _status(engine)}


@app.post("/sessions/{session_id}/stop")
async def stop_simulation(session_id: str):
    engine = _loaded_engine(session_id)
    return {"changed": engine.stop(), "status": _status(engine)}


@app.post("/sessions/{session_id}/reset")
async def reset_simulation(session_id: str):
    engine = _loaded_engine(session_id)
    engine.reset()
    return {"status": _status(engine), "state": engine.get_state().to_dict()}


@app.delete("/sessions/{session_id}")
async def end_session(session_id: str):
    """Stops the session's clock and drops it."""
    session = _get_session(session_id)
    session.engine.stop()
    session.engine.bus.clear()
    SESSIONS.pop(session_id, None)
    logger.info(f"Session {session_id} ended")
    return {"ended": session_id, "sessions": len(SESSIONS)}


@app.post("/sessions/{session_id}/tick")
async def manual_tick(session_id: str):
    """Advances one tick by hand (stepping through a case, or tests)."""
    engine = _loaded_engine(session_id)
    payload = engine.tick()
    if payload is None:
        raise HTTPException(status_code=409, detail="Simulation is stopped or paused")
    return {"status": _status(engine), "state": payload.state.to_dict()}


@app.put("/sessions/{session_id}/time-scale")
async def set_time_scale(session_id: str, request: TimeScaleRequest):
    engine = _loaded_engine(session_id)
    engine.set_time_scale(request.scale)
    return _status(engine)


# --- 4. ORDERS & DECISIONS ---

@app.post("/sessions/{session_id}/interventions")
async def apply_intervention(session_id: str, request: InterventionRequest):
    engine = _loaded_engine(session_id)
    order = Intervention(
        name=request.name, dose=request.dose, route=request.route,
        category=request.category, type=request.type,
    )
    active = engine.apply_intervention(order)
    return active.to_dict()


@app.post("/sessions/{session_id}/decisions")
async def record_decision(session_id: str, request: DecisionRequest):
    engine = _loaded_engine(session_id)
    decision = engine.record_decision(request.decision_id, request.action, request.details)
    return {"decisionId": decision.decision_id, "action": decision.action, "atMinutes": decision.at_minutes}


# --- 5. READ SIDE ---

@app.get("/sessions/{session_id}/state")
def get_state(session_id: str):
    engine = _loaded_engine(session_id)
    return {"status": _status(engine), "state": engine.get_state().to_dict()}


@app.get("/sessions/{session_id}/history")
def get_history(session_id: str):
    engine = _loaded_engine(session_id)
    return [
        {
            "timestamp": snap.timestamp.isoformat(),
            "elapsedMinutes": snap.elapsed_minutes,
            "state": snap.state.to_dict(),
        }
        for snap in engine.get_state_history()
    ]


@app.get("/sessions/{session_id}/vitals")
def get_vitals(session_id: str):
    return _loaded_engine(session_id).get_current_vitals()


@app.get("/sessions/{session_id}/symptoms")
def get_symptoms(session_id: str):
    return {"description": _loaded_engine(session_id).get_symptoms_description()}


@app.get("/sessions/{session_id}/interventions")
def get_interventions(session_id: str):
    engine = _loaded_engine(session_id)
    return {
        "active": [i.to_dict() for i in engine.get_active_interventions()],
        "history": [i.to_dict() for i in engine.get_intervention_history()],
    }


@app.get("/sessions/{session_id}/events")
def get_events(session_id: str, limit: int = 100):
    session = _get_session(session_id)
    events = list(session.events)
    return events[-limit:] if limit > 0 else []


@app.get("/sessions/{session_id}/debrief")
def get_debrief(session_id: str):
    """End-of-case summary: decisions scored, orders placed, events fired."""
    engine = _loaded_engine(session_id)
    return {
        "scenario": {"id": engine.scenario.id, "name": engine.scenario.name},
        "elapsedMinutes": engine.get_elapsed_minutes(),
        "decisions": engine.evaluate_decisions(),
        "interventions": [i.to_dict() for i in engine.get_intervention_history()],
        "triggersFired": [{"id": t.id, "name": t.name} for t in engine.triggers.fired],
        "finalState": engine.get_state().to_dict(),
    }
