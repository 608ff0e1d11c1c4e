"""
ClinSim: Intervention Effect Engine
===================================
Turns clinician orders into onset/peak/duration effects on the patient state.

Effect strength ramps linearly from 0 at administration to the dose-scaled
peak, holds until the profile's duration elapses, then drops to zero.
Simultaneous interventions add, in administration order.
"""

import logging
import uuid
from datetime import datetime
from typing import Iterable, List, Optional

from constants import INTERVENTION_LIBRARY, SIMULATION_CONSTANTS, EffectProfile
from fields import StateField, clamp
from models import ActiveIntervention, Intervention, PatientState

logger = logging.getLogger(__name__)


class InterventionEffectEngine:

    @staticmethod
    def lookup(order: Intervention) -> Optional[EffectProfile]:
        """Name first, then the order's type (e.g. a 'diuretic' named only by brand)."""
        return INTERVENTION_LIBRARY.get(order.name) or INTERVENTION_LIBRARY.get(order.type)

    @staticmethod
    def strength(dose: float, profile: EffectProfile, elapsed_minutes: float) -> float:
        """
        strength = (dose / standardDose) * min(elapsed / peak, 1)
        for 0 <= elapsed < duration; 0 otherwise.
        """
        if elapsed_minutes < 0 or elapsed_minutes >= profile.duration_minutes:
            return 0.0
        if profile.standard_dose <= 0:
            return 0.0
        ramp = 1.0 if profile.peak_time_minutes <= 0 else min(elapsed_minutes / profile.peak_time_minutes, 1.0)
        return (dose / profile.standard_dose) * ramp

    @staticmethod
    def administer(order: Intervention, sim_minutes: float, sim_time: datetime) -> ActiveIntervention:
        profile = InterventionEffectEngine.lookup(order)
        if profile is None:
            logger.info(f"No modeled effect for '{order.name}'; tracked for audit only")
        return ActiveIntervention(
            id=f"INT_{uuid.uuid4().hex[:12]}",
            order=order,
            administered_at_minutes=sim_minutes,
            administered_at=sim_time,
            profile=profile,
        )

    @staticmethod
    def apply_active(state: PatientState,
                     interventions: Iterable[ActiveIntervention],
                     sim_minutes: float,
                     sim_time: datetime) -> None:
        """
        Folds every active intervention's current contribution into the state.

        Recomputed fields get the full contribution on top of this tick's fresh
        value. Carried fields only get the change since the last tick, so their
        running total equals change * strength. Once an intervention expires its
        carried effects persist and its recomputed contributions simply stop.
        """
        for intervention in interventions:
            if not intervention.is_active:
                continue
            elapsed = sim_minutes - intervention.administered_at_minutes
            profile = intervention.profile

            if profile is None:
                if elapsed >= SIMULATION_CONSTANTS.UNMODELED_INTERVENTION_MINUTES:
                    InterventionEffectEngine._complete(intervention, sim_time)
                continue

            strength = InterventionEffectEngine.strength(intervention.dose, profile, elapsed)
            if strength > 0:
                InterventionEffectEngine._apply_profile(state, intervention, profile, strength)

            if elapsed >= profile.duration_minutes:
                InterventionEffectEngine._complete(intervention, sim_time)

    @staticmethod
    def _apply_profile(state: PatientState, intervention: ActiveIntervention,
                       profile: EffectProfile, strength: float) -> None:
        for path, effect in profile.parameters.items():
            target = StateField.from_path(path)
            if target is None:
                logger.warning(f"{profile.name}: unknown effect target '{path}' skipped")
                continue

            contribution = effect.change * strength
            if target.carried:
                delta = contribution - intervention.applied.get(target, 0.0)
                intervention.applied[target] = contribution
            else:
                delta = contribution

            current = target.read(state)
            target.write(state, clamp(current + delta, effect.min, effect.max))

    @staticmethod
    def _complete(intervention: ActiveIntervention, sim_time: datetime) -> None:
        intervention.status = "completed"
        intervention.completed_at = sim_time
        logger.debug(f"Intervention {intervention.id} ({intervention.name}) completed")

    @staticmethod
    def has_active(interventions: Iterable[ActiveIntervention], wanted: str) -> bool:
        return any(i.is_active and i.matches(wanted) for i in interventions)

    @staticmethod
    def active(interventions: Iterable[ActiveIntervention]) -> List[ActiveIntervention]:
        return [i for i in interventions if i.is_active]
