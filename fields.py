"""
ClinSim: Addressable State Fields
=================================
Closed enumeration of every patient-state field that scenarios, triggers and
intervention profiles may address by dotted path ("vitals.heartRate").

Each field maps to a typed accessor/mutator pair plus its hard clamp. All
numeric writes go through StateField.write(), so no value can leave its
physiologic envelope no matter who is writing.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple

from constants import FIELD_LIMITS

if TYPE_CHECKING:
    from models import PatientState

logger = logging.getLogger(__name__)


def clamp(value: float, low: Optional[float] = None, high: Optional[float] = None) -> float:
    if low is not None:
        value = max(low, value)
    if high is not None:
        value = min(high, value)
    return value


class StateField(Enum):
    # Vitals
    HEART_RATE = "vitals.heartRate"
    SYSTOLIC = "vitals.systolic"
    DIASTOLIC = "vitals.diastolic"
    RESPIRATORY_RATE = "vitals.respiratoryRate"
    TEMPERATURE = "vitals.temperature"
    OXYGEN_SATURATION = "vitals.oxygenSaturation"
    WEIGHT = "vitals.weight"

    # Physiology (hidden drivers)
    FLUID_OVERLOAD = "physiology.fluidOverload"
    GFR = "physiology.gfr"
    CARDIAC_OUTPUT = "physiology.cardiacOutput"
    DRY_WEIGHT = "physiology.dryWeight"
    URINE_OUTPUT = "physiology.urineOutput"
    SYMPATHETIC_TONE = "physiology.sympatheticTone"
    BASE_HEART_RATE = "physiology.baseHeartRate"
    BASE_SYSTOLIC = "physiology.baseSystolic"
    BASE_DIASTOLIC = "physiology.baseDiastolic"

    # Labs
    CREATININE = "labs.creatinine"
    BUN = "labs.bun"
    POTASSIUM = "labs.potassium"
    GLUCOSE = "labs.glucose"
    SODIUM = "labs.sodium"

    # Symptoms
    DYSPNEA = "symptoms.dyspnea"
    FATIGUE = "symptoms.fatigue"
    EDEMA = "symptoms.edema"
    ORTHOPNEA = "symptoms.orthopnea"
    ORTHOPNEA_PILLOWS = "symptoms.orthopneaPillows"
    CHEST_DISCOMFORT = "symptoms.chestDiscomfort"
    PAIN = "symptoms.pain"

    @property
    def path(self) -> str:
        return self.value

    @property
    def namespace(self) -> str:
        return self.value.split(".", 1)[0]

    @property
    def key(self) -> str:
        return self.value.split(".", 1)[1]

    @property
    def is_boolean(self) -> bool:
        return self is StateField.ORTHOPNEA

    @property
    def limits(self) -> Tuple[Optional[float], Optional[float]]:
        return FIELD_LIMITS.get(self.value, (None, None))

    @property
    def carried(self) -> bool:
        """True if the physiology model reads this field back tick-to-tick."""
        return FIELD_SPECS[self].carried

    @classmethod
    def from_path(cls, path: str) -> Optional["StateField"]:
        try:
            return cls(path)
        except ValueError:
            return None

    def read(self, state: "PatientState") -> Any:
        return FIELD_SPECS[self].getter(state)

    def write(self, state: "PatientState", value: Any) -> Any:
        """Clamped write. Returns the value actually stored."""
        if self.is_boolean:
            stored = bool(value)
        else:
            low, high = self.limits
            stored = clamp(float(value), low, high)
        FIELD_SPECS[self].setter(state, stored)
        return stored


@dataclass(frozen=True)
class FieldSpec:
    getter: Callable[["PatientState"], Any]
    setter: Callable[["PatientState", Any], None]
    # Carried fields accumulate across ticks (the model starts from the last
    # value); the rest are recomputed from scratch every tick.
    carried: bool = False


FIELD_SPECS: Dict[StateField, FieldSpec] = {
    StateField.HEART_RATE: FieldSpec(
        lambda s: s.vitals.heart_rate, lambda s, v: setattr(s.vitals, "heart_rate", v)),
    StateField.SYSTOLIC: FieldSpec(
        lambda s: s.vitals.systolic, lambda s, v: setattr(s.vitals, "systolic", v)),
    StateField.DIASTOLIC: FieldSpec(
        lambda s: s.vitals.diastolic, lambda s, v: setattr(s.vitals, "diastolic", v)),
    StateField.RESPIRATORY_RATE: FieldSpec(
        lambda s: s.vitals.respiratory_rate, lambda s, v: setattr(s.vitals, "respiratory_rate", v)),
    StateField.TEMPERATURE: FieldSpec(
        lambda s: s.vitals.temperature, lambda s, v: setattr(s.vitals, "temperature", v), carried=True),
    StateField.OXYGEN_SATURATION: FieldSpec(
        lambda s: s.vitals.oxygen_saturation, lambda s, v: setattr(s.vitals, "oxygen_saturation", v)),
    StateField.WEIGHT: FieldSpec(
        lambda s: s.vitals.weight, lambda s, v: setattr(s.vitals, "weight", v)),

    StateField.FLUID_OVERLOAD: FieldSpec(
        lambda s: s.physiology.fluid_overload,
        lambda s, v: setattr(s.physiology, "fluid_overload", v), carried=True),
    StateField.GFR: FieldSpec(
        lambda s: s.physiology.gfr, lambda s, v: setattr(s.physiology, "gfr", v)),
    StateField.CARDIAC_OUTPUT: FieldSpec(
        lambda s: s.physiology.cardiac_output,
        lambda s, v: setattr(s.physiology, "cardiac_output", v), carried=True),
    StateField.DRY_WEIGHT: FieldSpec(
        lambda s: s.physiology.dry_weight,
        lambda s, v: setattr(s.physiology, "dry_weight", v), carried=True),
    StateField.URINE_OUTPUT: FieldSpec(
        lambda s: s.physiology.urine_output, lambda s, v: setattr(s.physiology, "urine_output", v)),
    StateField.SYMPATHETIC_TONE: FieldSpec(
        lambda s: s.physiology.sympathetic_tone,
        lambda s, v: setattr(s.physiology, "sympathetic_tone", v), carried=True),
    StateField.BASE_HEART_RATE: FieldSpec(
        lambda s: s.physiology.base_heart_rate,
        lambda s, v: setattr(s.physiology, "base_heart_rate", v), carried=True),
    StateField.BASE_SYSTOLIC: FieldSpec(
        lambda s: s.physiology.base_systolic,
        lambda s, v: setattr(s.physiology, "base_systolic", v), carried=True),
    StateField.BASE_DIASTOLIC: FieldSpec(
        lambda s: s.physiology.base_diastolic,
        lambda s, v: setattr(s.physiology, "base_diastolic", v), carried=True),

    StateField.CREATININE: FieldSpec(
        lambda s: s.labs.creatinine, lambda s, v: setattr(s.labs, "creatinine", v), carried=True),
    StateField.BUN: FieldSpec(
        lambda s: s.labs.bun, lambda s, v: setattr(s.labs, "bun", v), carried=True),
    StateField.POTASSIUM: FieldSpec(
        lambda s: s.labs.potassium, lambda s, v: setattr(s.labs, "potassium", v)),
    StateField.GLUCOSE: FieldSpec(
        lambda s: s.labs.glucose, lambda s, v: setattr(s.labs, "glucose", v), carried=True),
    StateField.SODIUM: FieldSpec(
        lambda s: s.labs.sodium, lambda s, v: setattr(s.labs, "sodium", v), carried=True),

    StateField.DYSPNEA: FieldSpec(
        lambda s: s.symptoms.dyspnea, lambda s, v: setattr(s.symptoms, "dyspnea", v)),
    StateField.FATIGUE: FieldSpec(
        lambda s: s.symptoms.fatigue, lambda s, v: setattr(s.symptoms, "fatigue", v)),
    StateField.EDEMA: FieldSpec(
        lambda s: s.symptoms.edema, lambda s, v: setattr(s.symptoms, "edema", int(v))),
    StateField.ORTHOPNEA: FieldSpec(
        lambda s: s.symptoms.orthopnea, lambda s, v: setattr(s.symptoms, "orthopnea", v)),
    StateField.ORTHOPNEA_PILLOWS: FieldSpec(
        lambda s: s.symptoms.orthopnea_pillows,
        lambda s, v: setattr(s.symptoms, "orthopnea_pillows", int(v))),
    StateField.CHEST_DISCOMFORT: FieldSpec(
        lambda s: s.symptoms.chest_discomfort,
        lambda s, v: setattr(s.symptoms, "chest_discomfort", v), carried=True),
    StateField.PAIN: FieldSpec(
        lambda s: s.symptoms.pain, lambda s, v: setattr(s.symptoms, "pain", v), carried=True),
}


def merge_patch(state: "PatientState", patch: Dict[str, Any], source: str = "patch") -> int:
    """
    Nested merge of a scenario patch ({"vitals": {"heartRate": 130}}) into state.
    Unknown paths and non-numeric values are skipped with a warning.
    Returns the number of fields written.
    """
    written = 0
    for namespace, values in (patch or {}).items():
        if namespace == "trajectory":
            from models import Trajectory  # local: models imports this module
            try:
                state.trajectory = Trajectory(values)
                written += 1
            except ValueError:
                logger.warning(f"{source}: unknown trajectory '{values}' ignored")
            continue
        if not isinstance(values, dict):
            logger.warning(f"{source}: '{namespace}' is not an object, ignored")
            continue
        for key, value in values.items():
            path = f"{namespace}.{key}"
            if path == "symptoms.edemaDescription":
                state.symptoms.edema_description = str(value)
                written += 1
                continue
            target = StateField.from_path(path)
            if target is None:
                logger.warning(f"{source}: unknown state path '{path}' ignored")
                continue
            try:
                target.write(state, value)
                written += 1
            except (TypeError, ValueError):
                logger.warning(f"{source}: non-numeric value {value!r} for '{path}' ignored")
    return written
