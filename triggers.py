"""
ClinSim: Trigger Evaluator
==========================
Scripted clinical events. Each trigger moves pending -> fired exactly once;
only a scenario (re)load produces fresh, unlatched copies.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Iterable, List, Tuple

from events import AlertPayload, LabResultPayload, SimEvent, TriggerPayload
from fields import StateField, merge_patch
from interventions import InterventionEffectEngine
from models import ActiveIntervention, PatientState, Trigger, TriggerAction, TriggerType

logger = logging.getLogger(__name__)


@dataclass
class Firing:
    """
    A trigger that fired this tick and the events it owes the subscribers.

    A labResult writes its tracked values into state for the tick it fires on.
    Carried labs (creatinine, BUN, glucose, sodium) keep the reported value and
    drift from there; potassium is recomputed by the physiology model on the
    next tick, so the reported value only lives in this tick's snapshot and
    in the labResult event.
    """
    trigger: Trigger
    events: List[Tuple[SimEvent, Any]] = field(default_factory=list)


class TriggerEvaluator:

    def __init__(self, triggers: Iterable[Trigger] = ()):
        # Private copies: latching must never touch the scenario's templates
        self.triggers: List[Trigger] = [replace(t, triggered=False) for t in triggers]
        for trigger in self.triggers:
            if not self.is_well_formed(trigger):
                logger.warning(f"Trigger {trigger.id} is malformed and will never fire")

    @staticmethod
    def is_well_formed(trigger: Trigger) -> bool:
        if trigger.type is TriggerType.TIME:
            return trigger.at_minutes is not None
        if trigger.type is TriggerType.STATE:
            return trigger.condition is not None
        if trigger.type is TriggerType.INTERVENTION:
            return bool(trigger.intervention_type)
        return False

    @property
    def pending(self) -> List[Trigger]:
        return [t for t in self.triggers if not t.triggered]

    @property
    def fired(self) -> List[Trigger]:
        return [t for t in self.triggers if t.triggered]

    def check(self,
              state: PatientState,
              elapsed_minutes: float,
              interventions: Iterable[ActiveIntervention],
              sim_time: datetime) -> List[Firing]:
        """
        Evaluates pending triggers in declared order, latching and executing
        each one that is satisfied. A later trigger sees the state changes of
        an earlier one within the same tick.
        """
        interventions = list(interventions)
        firings = []
        for trigger in self.triggers:
            if trigger.triggered:
                continue
            if not self._is_satisfied(trigger, state, elapsed_minutes, interventions):
                continue
            trigger.triggered = True
            logger.info(f"Trigger activated: {trigger.name} ({trigger.id}) at {elapsed_minutes:.1f} min")
            firings.append(self._execute(trigger, state, elapsed_minutes, sim_time))
        return firings

    def _is_satisfied(self, trigger: Trigger, state: PatientState,
                      elapsed_minutes: float, interventions: List[ActiveIntervention]) -> bool:
        if not self.is_well_formed(trigger):
            return False

        if trigger.type is TriggerType.TIME:
            return elapsed_minutes >= trigger.at_minutes

        if trigger.type is TriggerType.STATE:
            condition = trigger.condition
            try:
                return condition.operator.holds(condition.target.read(state), condition.value)
            except TypeError:
                logger.warning(f"Trigger {trigger.id}: cannot compare {condition.target.path} "
                               f"with {condition.value!r}")
                return False

        return InterventionEffectEngine.has_active(interventions, trigger.intervention_type)

    def _execute(self, trigger: Trigger, state: PatientState,
                 elapsed_minutes: float, sim_time: datetime) -> Firing:
        firing = Firing(trigger)

        if trigger.state_changes:
            merge_patch(state, trigger.state_changes, source=f"trigger {trigger.id}")

        if trigger.action is TriggerAction.NURSE_ALERT:
            firing.events.append(
                (SimEvent.NURSE_ALERT, AlertPayload(trigger.id, trigger.message, trigger.priority, sim_time)))
        elif trigger.action is TriggerAction.PATIENT_ALERT:
            firing.events.append(
                (SimEvent.PATIENT_ALERT, AlertPayload(trigger.id, trigger.message, trigger.priority, sim_time)))
        elif trigger.action is TriggerAction.LAB_RESULT:
            # Only labs the model tracks are written back; the rest (BNP, troponin) are report-only
            tracked = {k: v for k, v in trigger.labs.items() if StateField.from_path(f"labs.{k}")}
            if tracked:
                merge_patch(state, {"labs": tracked}, source=f"trigger {trigger.id} labs")
            firing.events.append(
                (SimEvent.LAB_RESULT, LabResultPayload(trigger.id, dict(trigger.labs), sim_time)))
        # MODIFY_STATE: the state changes above are the whole action

        firing.events.append((
            SimEvent.TRIGGER_ACTIVATED,
            TriggerPayload(
                trigger_id=trigger.id,
                name=trigger.name,
                action=trigger.action.value if trigger.action else None,
                elapsed_minutes=elapsed_minutes,
                time=sim_time,
            ),
        ))
        return firing
