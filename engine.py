"""
ClinSim: Simulation Engine
==========================
The orchestrator. One engine = one scenario, one clock, one state store and
one event bus. Run several simulations by creating several engines.

Per tick:
    Clock -> PhysiologyModel -> InterventionEffectEngine -> TriggerEvaluator
          -> timestamp -> history snapshot -> publish `tick`, then trigger events
"""

import logging
import math
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from clock import SimulationClock, scenario_start_today
from config import SimulationSettings, get_settings
from core_physics import NoiseSource, PhysiologyModel, SeededNoise
from events import (
    AlertPayload,
    EventBus,
    InterventionPayload,
    LifecyclePayload,
    ScenarioLoadedPayload,
    SimEvent,
    TickPayload,
    TimeScalePayload,
)
from interventions import InterventionEffectEngine
from models import (
    ActiveDecisionPoint,
    ActiveIntervention,
    HistorySnapshot,
    Intervention,
    PatientState,
    Scenario,
    Trajectory,
    UserDecision,
)
from state_store import PatientStateStore
from triggers import TriggerEvaluator

logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class SimulationEngine:

    def __init__(self,
                 settings: Optional[SimulationSettings] = None,
                 noise: Optional[NoiseSource] = None):
        self.settings = settings or get_settings()
        self.noise = noise if noise is not None else SeededNoise(self.settings.noise_seed)
        # Injected noise belongs to the caller; our own is reseeded on every load
        self._owns_noise = noise is None

        self.bus = EventBus()
        self.clock = SimulationClock(
            on_tick=self.tick,
            tick_period_ms=self.settings.tick_period_ms,
            time_scale=self.settings.default_time_scale,
        )
        self.store = PatientStateStore(
            snapshot_interval_minutes=self.settings.snapshot_interval_minutes,
            history_window_minutes=self.settings.history_window_minutes,
        )
        self.scenario: Optional[Scenario] = None
        self.triggers = TriggerEvaluator()
        self.decision_points: List[ActiveDecisionPoint] = []
        self.user_decisions: List[UserDecision] = []
        # Set by stop(); only a scenario load clears it
        self._needs_reload = False

    # --- EVENTS ---

    def on(self, event: SimEvent, callback: Callable[[Any], None]) -> None:
        self.bus.on(event, callback)

    def off(self, event: SimEvent, callback: Callable[[Any], None]) -> None:
        self.bus.off(event, callback)

    def emit(self, event: SimEvent, payload: Any = None) -> None:
        self.bus.emit(event, payload)

    def _lifecycle_payload(self, is_new_start: bool = False) -> LifecyclePayload:
        return LifecyclePayload(self.clock.simulated_time, self.clock.elapsed_minutes, is_new_start)

    # --- LIFECYCLE ---

    def load_scenario(self, scenario: Union[Scenario, Dict[str, Any]],
                      start_time: Optional[datetime] = None) -> PatientState:
        """
        (Re)initializes everything from the scenario template: state, history,
        interventions, trigger latches and decision records. The clock is
        stopped and rewound to the scenario start (today 14:00 by default).
        """
        if not isinstance(scenario, Scenario):
            scenario = Scenario.from_dict(scenario)

        start = start_time or scenario_start_today()
        self.scenario = scenario
        if self._owns_noise:
            self.noise = SeededNoise(self.settings.noise_seed)
        self.clock.reset(start)
        self.store.reset(scenario.initial_state, start)
        self.triggers = TriggerEvaluator(scenario.triggers)
        self.decision_points = []
        self.user_decisions = []
        self._needs_reload = False

        logger.info(f"Scenario loaded: {scenario.name} ({scenario.id})")
        self.emit(SimEvent.SCENARIO_LOADED, ScenarioLoadedPayload(scenario.id, scenario.name, start))
        return self.get_state()

    def start(self) -> bool:
        if self.scenario is None:
            logger.error("start() ignored: no scenario loaded")
            return False
        if self._needs_reload:
            logger.warning("start() ignored: simulation was stopped; load the scenario again")
            return False

        is_new_start = not self.clock.is_running
        if not self.clock.start():
            return False
        logger.info(f"Simulation started (x{self.clock.time_scale:g})")
        self.emit(SimEvent.SIMULATION_STARTED, self._lifecycle_payload(is_new_start))
        if is_new_start and self.scenario.opening_message:
            self.emit(SimEvent.NURSE_ALERT, AlertPayload(
                "OPENING", self.scenario.opening_message, "routine", self.clock.simulated_time))
        return True

    def pause(self) -> bool:
        if not self.clock.pause():
            return False
        logger.info("Simulation paused")
        self.emit(SimEvent.SIMULATION_PAUSED, self._lifecycle_payload())
        return True

    def resume(self) -> bool:
        if not self.clock.resume():
            return False
        logger.info("Simulation resumed")
        self.emit(SimEvent.SIMULATION_RESUMED, self._lifecycle_payload())
        return True

    def stop(self) -> bool:
        was_running = self.clock.stop()
        if self.scenario is not None:
            self._needs_reload = True
        if was_running:
            logger.info("Simulation stopped")
            self.emit(SimEvent.SIMULATION_STOPPED, self._lifecycle_payload())
        return was_running

    def reset(self) -> bool:
        if self.scenario is None:
            logger.debug("reset() ignored: no scenario loaded")
            return False
        self.stop()
        self.load_scenario(self.scenario)
        logger.info("Simulation reset")
        self.emit(SimEvent.SIMULATION_RESET, self._lifecycle_payload())
        return True

    def set_time_scale(self, scale) -> bool:
        previous = self.clock.time_scale
        if not self.clock.set_time_scale(scale):
            return False
        self.emit(SimEvent.TIME_SCALE_CHANGED, TimeScalePayload(self.clock.time_scale, previous))
        return True

    @property
    def is_running(self) -> bool:
        return self.clock.is_running

    @property
    def is_paused(self) -> bool:
        return self.clock.is_paused

    # --- THE TICK ---

    def tick(self) -> Optional[TickPayload]:
        """
        Advances the simulation by one clock period. Driven by the clock's
        timer, or called directly when no event loop is running.
        A failing stage is logged and skipped; the tick still completes.
        """
        state = self.store.state
        if self.scenario is None or state is None:
            logger.debug("tick() ignored: no scenario loaded")
            return None
        if self._needs_reload or self.clock.is_paused:
            logger.debug("tick() ignored: simulation stopped or paused")
            return None

        delta = self.clock.advance()
        elapsed = self.clock.elapsed_minutes
        now = self.clock.simulated_time

        try:
            PhysiologyModel.update(state, delta, elapsed, self.scenario.natural_progression, self.noise)
        except Exception:
            logger.exception("Physiology update failed; keeping last values")

        try:
            InterventionEffectEngine.apply_active(state, self.store.interventions, elapsed, now)
        except Exception:
            logger.exception("Intervention processing failed")

        firings = []
        try:
            firings = self.triggers.check(state, elapsed, self.store.interventions, now)
        except Exception:
            logger.exception("Trigger evaluation failed")

        for firing in firings:
            point = firing.trigger.decision_point
            if point is not None:
                self.decision_points.append(ActiveDecisionPoint(point, firing.trigger.id, elapsed))
                logger.info(f"Decision point active: {point.name}")

        state.timestamp = now
        self.store.record(now, elapsed)

        payload = TickPayload(time=now, state=state.clone(), sim_minutes_elapsed=delta, elapsed_minutes=elapsed)
        self.emit(SimEvent.TICK, payload)
        for firing in firings:
            for event, event_payload in firing.events:
                self.emit(event, event_payload)
        return payload

    # --- ORDERS ---

    def apply_intervention(self, order: Union[Intervention, Dict[str, Any]]) -> Optional[ActiveIntervention]:
        """Records the order at the current simulated time. Effects start on the next tick."""
        if self.scenario is None:
            logger.warning("apply_intervention() ignored: no scenario loaded")
            return None
        if not isinstance(order, Intervention):
            order = Intervention.from_dict(order)

        active = InterventionEffectEngine.administer(
            order, self.clock.elapsed_minutes, self.clock.simulated_time)
        self.store.add_intervention(active)
        logger.info(f"Intervention applied: {order.name} at {self.clock.elapsed_minutes:.1f} min")
        self.emit(SimEvent.INTERVENTION_APPLIED, InterventionPayload(active, self.clock.simulated_time))
        return active

    def get_active_interventions(self) -> List[ActiveIntervention]:
        return self.store.active_interventions()

    def get_intervention_history(self) -> List[ActiveIntervention]:
        """Every order ever placed this run, active or completed, in order given."""
        return list(self.store.interventions)

    # --- DECISIONS ---

    def record_decision(self, decision_id: str, action: str, details: Any = None) -> UserDecision:
        decision = UserDecision(decision_id, action, details, self.clock.elapsed_minutes)
        self.user_decisions.append(decision)
        logger.info(f"Decision recorded: {decision_id} -> {action}")
        return decision

    def evaluate_decisions(self) -> List[Dict[str, Any]]:
        """Scores the actions taken after each decision point activated."""
        results = []
        for active in self.decision_points:
            point = active.point
            related = [d for d in self.user_decisions if d.at_minutes >= active.activated_at_minutes]

            def matching(candidates):
                wanted = [c.lower() for c in candidates]
                return [d for d in related if any(w in d.action.lower() for w in wanted)]

            correct = matching(point.correct_actions)
            incorrect = matching(point.incorrect_actions)
            results.append({
                "decisionPoint": point.name,
                "triggerId": active.trigger_id,
                "activatedAtMinutes": active.activated_at_minutes,
                "description": point.description,
                "teachingPoint": point.teaching_point,
                "correctActionsTaken": bool(correct),
                "incorrectActionsTaken": bool(incorrect),
                "details": {
                    "correct": [d.action for d in correct],
                    "incorrect": [d.action for d in incorrect],
                },
            })
        return results

    # --- READ SIDE ---

    def get_state(self) -> Optional[PatientState]:
        """A copy; mutating it never affects the simulation."""
        return self.store.state.clone() if self.store.state is not None else None

    def get_state_history(self) -> List[HistorySnapshot]:
        return list(self.store.history)

    def get_simulated_time(self) -> Optional[datetime]:
        return self.clock.simulated_time

    def get_elapsed_minutes(self) -> float:
        return self.clock.elapsed_minutes if self.scenario is not None else 0.0

    def get_current_vitals(self) -> Optional[Dict[str, Any]]:
        """Display-ready vitals for the flowsheet."""
        state = self.store.state
        if state is None:
            return None
        v = state.vitals
        return {
            "date": self.clock.simulated_time.isoformat(),
            "bloodPressure": f"{_round_half_up(v.systolic)}/{_round_half_up(v.diastolic)}",
            "heartRate": _round_half_up(v.heart_rate),
            "respiratoryRate": _round_half_up(v.respiratory_rate),
            "temperature": round(v.temperature, 1),
            "oxygenSaturation": _round_half_up(v.oxygen_saturation),
            "weight": round(v.weight, 1),
        }

    def get_symptoms_description(self) -> str:
        """Plain-language symptom summary used to ground patient dialogue."""
        state = self.store.state
        if state is None:
            return ""
        s = state.symptoms
        phrases = []

        if s.dyspnea >= 7:
            phrases.append("severe shortness of breath, even at rest")
        elif s.dyspnea >= 5:
            phrases.append("moderate shortness of breath with minimal activity")
        elif s.dyspnea >= 3:
            phrases.append("mild shortness of breath with exertion")

        if state.physiology.fluid_overload > 2:
            phrases.append("noticeable leg swelling")
        if s.fatigue >= 5:
            phrases.append("feeling very tired")
        if s.orthopnea:
            phrases.append(f"need to sleep on {s.orthopnea_pillows or 3} pillows")
        if s.chest_discomfort:
            phrases.append("some chest tightness")

        if state.trajectory is Trajectory.IMPROVING:
            phrases.append("feeling somewhat better than before")
        elif state.trajectory is Trajectory.WORSENING:
            phrases.append("feeling worse than before")

        return ", ".join(phrases)
