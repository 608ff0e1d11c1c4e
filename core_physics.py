"""
ClinSim: Core Physiology Engine
===============================
The mathematical core that advances a patient's vitals, labs and symptoms over
simulated time according to the scenario's natural disease progression.

Systems are processed in a fixed order; later systems read earlier outputs:
Cardiovascular -> Fluid -> Renal -> Respiratory -> Symptoms -> Trajectory.
"""

import math
import random
from typing import Callable, Optional

from constants import EDEMA_DESCRIPTIONS, FORMULA_LIMITS, PHYSIOLOGY_DEFAULTS
from fields import StateField, clamp
from models import NaturalProgression, PatientState, Trajectory

# noise(max_deviation) -> value in [-max_deviation, +max_deviation]
NoiseSource = Callable[[float], float]


class SeededNoise:
    """Uniform bedside jitter. Same seed, same sequence."""

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._rng = random.Random(seed)

    def __call__(self, max_deviation: float) -> float:
        return (self._rng.random() - 0.5) * 2 * max_deviation


class ZeroNoise:
    def __call__(self, max_deviation: float) -> float:
        return 0.0


def _write(state: PatientState, target: StateField, value: float, limits: tuple) -> float:
    # Formula clamp first, then the field's hard envelope
    return target.write(state, clamp(value, *limits))


class PhysiologyModel:
    """
    Pure update functions: (state, minutes, progression) -> updated state.
    Deterministic apart from the injected noise source.
    """

    @staticmethod
    def update(state: PatientState,
               tick_minutes: float,
               scenario_minutes: float,
               progression: Optional[NaturalProgression] = None,
               noise: Optional[NoiseSource] = None) -> PatientState:
        """
        Advances the state in place by one tick.

        `tick_minutes` drives the accumulating terms (overload, creatinine, CO).
        `scenario_minutes` (time since scenario start) drives the linear drift
        terms of heart rate, potassium and the respiratory pair.
        """
        progression = progression or NaturalProgression()
        noise = noise or ZeroNoise()
        hours = tick_minutes / 60.0
        scenario_hours = scenario_minutes / 60.0

        PhysiologyModel._process_cardiovascular(state, hours, scenario_hours, progression, noise)
        PhysiologyModel._process_fluid_balance(state, hours, progression)
        PhysiologyModel._process_renal(state, hours, scenario_hours, progression, noise)
        PhysiologyModel._process_respiratory(state, scenario_hours, progression, noise)
        PhysiologyModel._process_symptoms(state)
        state.trajectory = PhysiologyModel.classify_trajectory(
            state.physiology.fluid_overload, state.labs.creatinine)
        return state

    # --- 1. CARDIOVASCULAR ---
    @staticmethod
    def _process_cardiovascular(state: PatientState, hours: float, scenario_hours: float,
                                progression: NaturalProgression, noise: NoiseSource):
        phys = state.physiology
        overload = phys.fluid_overload

        # Tachycardia from volume and sympathetic drive
        heart_rate = (phys.base_heart_rate
                      + overload * 2
                      + phys.sympathetic_tone * 5
                      + progression.cardiac.rate_per_hour * scenario_hours
                      + noise(3))
        _write(state, StateField.HEART_RATE, heart_rate, FORMULA_LIMITS.HEART_RATE)

        volume_bp_effect = overload * 3
        output_effect = (phys.cardiac_output - PHYSIOLOGY_DEFAULTS.CARDIAC_OUTPUT) * 10
        _write(state, StateField.SYSTOLIC,
               phys.base_systolic + volume_bp_effect + output_effect + noise(5),
               FORMULA_LIMITS.SYSTOLIC)
        _write(state, StateField.DIASTOLIC,
               phys.base_diastolic + volume_bp_effect * 0.5 + noise(3),
               FORMULA_LIMITS.DIASTOLIC)

        output_change = progression.cardiac.output_change_per_hour
        if output_change:
            _write(state, StateField.CARDIAC_OUTPUT,
                   phys.cardiac_output + output_change * hours,
                   FORMULA_LIMITS.CARDIAC_OUTPUT)

    # --- 2. FLUID BALANCE ---
    @staticmethod
    def _process_fluid_balance(state: PatientState, hours: float, progression: NaturalProgression):
        phys = state.physiology

        # Dry weight is fixed from the admission weight, then held (1 L ~ 1 kg)
        if phys.dry_weight is None:
            StateField.DRY_WEIGHT.write(state, state.vitals.weight - phys.fluid_overload)

        overload = _write(state, StateField.FLUID_OVERLOAD,
                          phys.fluid_overload + progression.fluid.overload_rate_per_hour * hours,
                          FORMULA_LIMITS.FLUID_OVERLOAD)
        StateField.WEIGHT.write(state, phys.dry_weight + overload)

        renal_factor = phys.gfr / PHYSIOLOGY_DEFAULTS.REFERENCE_GFR
        overload_factor = 1 + overload * 0.05
        _write(state, StateField.URINE_OUTPUT,
               PHYSIOLOGY_DEFAULTS.BASELINE_URINE_ML_HR * renal_factor * overload_factor,
               FORMULA_LIMITS.URINE_OUTPUT)

    # --- 3. RENAL ---
    @staticmethod
    def _process_renal(state: PatientState, hours: float, scenario_hours: float,
                       progression: NaturalProgression, noise: NoiseSource):
        labs = state.labs
        renal_rate = progression.renal.creatinine_change_per_hour

        creatinine = _write(state, StateField.CREATININE,
                            labs.creatinine + renal_rate * hours,
                            FORMULA_LIMITS.CREATININE)
        _write(state, StateField.BUN,
               labs.bun + renal_rate * 10 * hours,
               FORMULA_LIMITS.BUN)

        egfr = PhysiologyModel.estimate_gfr(
            creatinine, state.demographics.age, state.demographics.is_female)
        _write(state, StateField.GFR, egfr, FORMULA_LIMITS.GFR)

        # Falling clearance retains potassium
        renal_effect = max(0.0, (2.0 - creatinine) * 0.3)
        potassium = (PHYSIOLOGY_DEFAULTS.POTASSIUM
                     - renal_effect
                     + progression.renal.potassium_change_per_hour * scenario_hours
                     + noise(0.1))
        _write(state, StateField.POTASSIUM, potassium, FORMULA_LIMITS.POTASSIUM)

    @staticmethod
    def estimate_gfr(creatinine: float, age: float, is_female: bool) -> float:
        """
        Simplified CKD-EPI 2021 (race-free).
        eGFR = 142 * min(Cr/k,1)^a * max(Cr/k,1)^-1.2 * 0.9938^age * (1.012 if female)
        """
        kappa = 0.7 if is_female else 0.9
        alpha = -0.241 if is_female else -0.302
        ratio = creatinine / kappa
        egfr = (142
                * math.pow(min(ratio, 1.0), alpha)
                * math.pow(max(ratio, 1.0), -1.200)
                * math.pow(0.9938, age))
        if is_female:
            egfr *= 1.012
        return egfr

    # --- 4. RESPIRATORY ---
    @staticmethod
    def _process_respiratory(state: PatientState, scenario_hours: float,
                             progression: NaturalProgression, noise: NoiseSource):
        vitals = state.vitals
        overload = state.physiology.fluid_overload
        resp = progression.respiratory

        # Pulmonary congestion, plus hypoxic drive off last tick's saturation
        congestion_effect = overload * 1.5
        hypoxia_effect = max(0.0, (PHYSIOLOGY_DEFAULTS.HYPOXIA_THRESHOLD_SPO2 - vitals.oxygen_saturation) * 0.5)
        _write(state, StateField.RESPIRATORY_RATE,
               PHYSIOLOGY_DEFAULTS.BASELINE_RR + congestion_effect + hypoxia_effect
               + resp.rate_change_per_hour * scenario_hours + noise(2),
               FORMULA_LIMITS.RESPIRATORY_RATE)

        _write(state, StateField.OXYGEN_SATURATION,
               PHYSIOLOGY_DEFAULTS.BASELINE_SPO2 - congestion_effect
               + resp.saturation_change_per_hour * scenario_hours + noise(1),
               FORMULA_LIMITS.OXYGEN_SATURATION)
        # Temperature is held; there is no infection model.

    # --- 5. SYMPTOMS ---
    @staticmethod
    def _process_symptoms(state: PatientState):
        overload = state.physiology.fluid_overload
        tachypneic = state.vitals.respiratory_rate > PHYSIOLOGY_DEFAULTS.TACHYPNEA_THRESHOLD

        _write(state, StateField.DYSPNEA,
               overload * 1.2 + (2 if tachypneic else 0),
               FORMULA_LIMITS.SYMPTOM_SCORE)

        StateField.ORTHOPNEA.write(state, overload > 2)
        StateField.ORTHOPNEA_PILLOWS.write(state, 4 if overload > 4 else (3 if overload > 2 else 2))

        _write(state, StateField.FATIGUE,
               (5 - state.physiology.cardiac_output) * 2,
               FORMULA_LIMITS.SYMPTOM_SCORE)

        grade = min(FORMULA_LIMITS.EDEMA_GRADE_MAX, math.floor(overload / 2))
        StateField.EDEMA.write(state, grade)
        state.symptoms.edema_description = EDEMA_DESCRIPTIONS.get(grade, EDEMA_DESCRIPTIONS[0])

    # --- 6. TRAJECTORY ---
    @staticmethod
    def classify_trajectory(fluid_overload: float, creatinine: float) -> Trajectory:
        """First matching rule wins."""
        if fluid_overload < 2 and creatinine < 2.2:
            return Trajectory.IMPROVING
        if fluid_overload > 4 or creatinine > 3.0:
            return Trajectory.WORSENING
        return Trajectory.STABLE
