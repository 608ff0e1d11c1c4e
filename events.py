"""
ClinSim: Event Channel
======================
Typed, synchronous publish/subscribe between a SimulationEngine and the
views that consume it (charts, alert banners, the HTTP session log).

Delivery is in subscription order. A failing subscriber is logged and
skipped; it never interrupts a tick or the remaining subscribers.
"""

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from models import ActiveIntervention, PatientState

logger = logging.getLogger(__name__)


class SimEvent(str, Enum):
    # Lifecycle
    SCENARIO_LOADED = "scenarioLoaded"
    SIMULATION_STARTED = "simulationStarted"
    SIMULATION_PAUSED = "simulationPaused"
    SIMULATION_RESUMED = "simulationResumed"
    SIMULATION_STOPPED = "simulationStopped"
    SIMULATION_RESET = "simulationReset"
    TIME_SCALE_CHANGED = "timeScaleChanged"

    # Per tick
    TICK = "tick"

    # Scripted clinical events
    TRIGGER_ACTIVATED = "triggerActivated"
    NURSE_ALERT = "nurseAlert"
    LAB_RESULT = "labResult"
    PATIENT_ALERT = "patientAlert"

    # Orders
    INTERVENTION_APPLIED = "interventionApplied"


# --- PAYLOADS ---

@dataclass(frozen=True)
class ScenarioLoadedPayload:
    scenario_id: str
    name: str
    start_time: datetime


@dataclass(frozen=True)
class LifecyclePayload:
    simulated_time: Optional[datetime]
    elapsed_minutes: float
    is_new_start: bool = False


@dataclass(frozen=True)
class TimeScalePayload:
    scale: float
    previous: float


@dataclass(frozen=True)
class TickPayload:
    time: datetime
    state: PatientState          # Snapshot; mutating it does not touch the engine
    sim_minutes_elapsed: float   # This tick's delta
    elapsed_minutes: float       # Since scenario start


@dataclass(frozen=True)
class TriggerPayload:
    trigger_id: str
    name: str
    action: Optional[str]
    elapsed_minutes: float
    time: datetime


@dataclass(frozen=True)
class AlertPayload:
    trigger_id: str
    message: str
    priority: str
    time: datetime


@dataclass(frozen=True)
class LabResultPayload:
    trigger_id: str
    labs: Dict[str, Any] = field(default_factory=dict)
    time: Optional[datetime] = None


@dataclass(frozen=True)
class InterventionPayload:
    intervention: ActiveIntervention
    time: datetime


def payload_to_dict(payload: Any) -> Dict[str, Any]:
    """JSON-friendly view of any payload (used by the HTTP event log)."""
    if payload is None:
        return {}
    if isinstance(payload, TickPayload):
        return {
            "time": payload.time.isoformat(),
            "state": payload.state.to_dict(),
            "simMinutesElapsed": payload.sim_minutes_elapsed,
            "elapsedMinutes": payload.elapsed_minutes,
        }
    if isinstance(payload, InterventionPayload):
        return {"intervention": payload.intervention.to_dict(), "time": payload.time.isoformat()}
    out = {}
    for key, value in asdict(payload).items():
        out[key] = value.isoformat() if isinstance(value, datetime) else value
    return out


Callback = Callable[[Any], None]


class EventBus:
    def __init__(self):
        self._subscribers: Dict[SimEvent, List[Callback]] = defaultdict(list)

    def on(self, event: SimEvent, callback: Callback) -> None:
        self._subscribers[SimEvent(event)].append(callback)

    def off(self, event: SimEvent, callback: Callback) -> None:
        listeners = self._subscribers.get(SimEvent(event), [])
        if callback in listeners:
            listeners.remove(callback)

    def emit(self, event: SimEvent, payload: Any = None) -> None:
        # Copy: a callback may unsubscribe itself mid-delivery
        for callback in list(self._subscribers.get(SimEvent(event), [])):
            try:
                callback(payload)
            except Exception:
                logger.exception(f"Subscriber {getattr(callback, '__name__', callback)!r} failed on '{event.value}'")

    def clear(self) -> None:
        self._subscribers.clear()
