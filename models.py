"""
ClinSim: Data Dictionary
========================
The entire state space of the simulated patient and the scenario that drives it.
Inputs (Scenario, orders), the mutable Patient State, and the records the
engine keeps (history, interventions, decisions).

Parsing from scenario JSON lives here too. A malformed scenario never raises:
missing or garbled values fall back to PHYSIOLOGY_DEFAULTS with a warning.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from constants import EDEMA_DESCRIPTIONS, PHYSIOLOGY_DEFAULTS, EffectProfile
from fields import StateField

logger = logging.getLogger(__name__)


def _as_float(value: Any, default: float, label: str) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        logger.warning(f"Scenario field '{label}' is boolean, using default {default}")
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Scenario field '{label}'={value!r} is not numeric, using default {default}")
        return default


def _as_dict(value: Any, label: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        logger.warning(f"Scenario field '{label}' is not an object, ignored")
        return {}
    return value


# --- 1. ENUMS ---

class Trajectory(Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    WORSENING = "worsening"


class TriggerType(Enum):
    TIME = "time"
    STATE = "state"
    INTERVENTION = "intervention"


class TriggerAction(Enum):
    MODIFY_STATE = "modifyState"
    NURSE_ALERT = "nurseAlert"
    LAB_RESULT = "labResult"
    PATIENT_ALERT = "patientAlert"


class Comparison(Enum):
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    EQ = "=="

    def holds(self, left: Any, right: Any) -> bool:
        if left is None:
            return False
        if self is Comparison.EQ:
            return left == right
        if self is Comparison.LT:
            return left < right
        if self is Comparison.LE:
            return left <= right
        if self is Comparison.GT:
            return left > right
        return left >= right


# --- 2. PATIENT STATE (Mutated once per tick) ---

@dataclass
class Vitals:
    heart_rate: float = PHYSIOLOGY_DEFAULTS.BASE_HEART_RATE
    systolic: float = PHYSIOLOGY_DEFAULTS.BASE_SYSTOLIC
    diastolic: float = PHYSIOLOGY_DEFAULTS.BASE_DIASTOLIC
    respiratory_rate: float = PHYSIOLOGY_DEFAULTS.RESPIRATORY_RATE
    temperature: float = PHYSIOLOGY_DEFAULTS.TEMPERATURE_F   # Fahrenheit
    oxygen_saturation: float = PHYSIOLOGY_DEFAULTS.OXYGEN_SATURATION
    weight: float = PHYSIOLOGY_DEFAULTS.WEIGHT_KG


@dataclass
class Physiology:
    """Hidden drivers. The learner never sees these directly, only their effects."""
    fluid_overload: float = 0.0       # Liters above dry weight
    gfr: float = PHYSIOLOGY_DEFAULTS.GFR
    cardiac_output: float = PHYSIOLOGY_DEFAULTS.CARDIAC_OUTPUT
    dry_weight: Optional[float] = None  # Derived once on the first tick
    urine_output: float = PHYSIOLOGY_DEFAULTS.URINE_OUTPUT
    sympathetic_tone: float = 0.0
    base_heart_rate: float = PHYSIOLOGY_DEFAULTS.BASE_HEART_RATE
    base_systolic: float = PHYSIOLOGY_DEFAULTS.BASE_SYSTOLIC
    base_diastolic: float = PHYSIOLOGY_DEFAULTS.BASE_DIASTOLIC


@dataclass
class Labs:
    creatinine: float = PHYSIOLOGY_DEFAULTS.CREATININE
    bun: float = PHYSIOLOGY_DEFAULTS.BUN
    potassium: float = PHYSIOLOGY_DEFAULTS.POTASSIUM
    glucose: float = PHYSIOLOGY_DEFAULTS.GLUCOSE
    sodium: float = PHYSIOLOGY_DEFAULTS.SODIUM


@dataclass
class Symptoms:
    dyspnea: float = 0.0
    fatigue: float = 0.0
    edema: int = 0
    edema_description: str = EDEMA_DESCRIPTIONS[0]
    orthopnea: bool = False
    orthopnea_pillows: int = 2
    chest_discomfort: float = 0.0
    pain: float = 0.0


@dataclass
class Demographics:
    age: float = PHYSIOLOGY_DEFAULTS.AGE_YEARS
    sex: str = PHYSIOLOGY_DEFAULTS.SEX

    @property
    def is_female(self) -> bool:
        return str(self.sex).strip().lower() in ("female", "f")


@dataclass
class PatientState:
    vitals: Vitals = field(default_factory=Vitals)
    physiology: Physiology = field(default_factory=Physiology)
    labs: Labs = field(default_factory=Labs)
    symptoms: Symptoms = field(default_factory=Symptoms)
    demographics: Demographics = field(default_factory=Demographics)
    trajectory: Trajectory = Trajectory.STABLE
    timestamp: Optional[datetime] = None

    def clone(self) -> "PatientState":
        """Structural copy sharing no mutable parts with this state."""
        return replace(
            self,
            vitals=replace(self.vitals),
            physiology=replace(self.physiology),
            labs=replace(self.labs),
            symptoms=replace(self.symptoms),
            demographics=replace(self.demographics),
        )

    @staticmethod
    def from_dict(data: Optional[Dict[str, Any]]) -> "PatientState":
        """Builds a state from scenario JSON. Every numeric write is clamped."""
        data = _as_dict(data, "initialState")
        state = PatientState()

        sections = {ns: _as_dict(data.get(ns), ns) for ns in ("vitals", "physiology", "labs", "symptoms")}
        for target in StateField:
            section = sections[target.namespace]
            if target.key not in section:
                continue
            raw = section[target.key]
            if target.is_boolean:
                target.write(state, bool(raw))
                continue
            value = _as_float(raw, target.read(state), target.path)
            if value is not None:  # dryWeight may stay underived
                target.write(state, value)

        if "edemaDescription" in sections["symptoms"]:
            state.symptoms.edema_description = str(sections["symptoms"]["edemaDescription"])

        demo = _as_dict(data.get("demographics"), "demographics")
        state.demographics = Demographics(
            age=_as_float(demo.get("age"), PHYSIOLOGY_DEFAULTS.AGE_YEARS, "demographics.age"),
            sex=str(demo.get("sex") or PHYSIOLOGY_DEFAULTS.SEX),
        )

        if "trajectory" in data:
            try:
                state.trajectory = Trajectory(data["trajectory"])
            except ValueError:
                logger.warning(f"Unknown trajectory {data['trajectory']!r}, using 'stable'")
        return state

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"vitals": {}, "physiology": {}, "labs": {}, "symptoms": {}}
        for target in StateField:
            out[target.namespace][target.key] = target.read(self)
        out["symptoms"]["edemaDescription"] = self.symptoms.edema_description
        out["demographics"] = {"age": self.demographics.age, "sex": self.demographics.sex}
        out["trajectory"] = self.trajectory.value
        out["timestamp"] = self.timestamp.isoformat() if self.timestamp else None
        return out


# --- 3. SCENARIO (Immutable, loaded once) ---

@dataclass(frozen=True)
class CardiacProgression:
    rate_per_hour: float = 0.0                      # bpm drift
    output_change_per_hour: Optional[float] = None  # None = CO held


@dataclass(frozen=True)
class FluidProgression:
    overload_rate_per_hour: float = 0.0


@dataclass(frozen=True)
class RenalProgression:
    creatinine_change_per_hour: float = 0.0
    potassium_change_per_hour: float = 0.0


@dataclass(frozen=True)
class RespiratoryProgression:
    rate_change_per_hour: float = 0.0
    saturation_change_per_hour: float = 0.0


@dataclass(frozen=True)
class NaturalProgression:
    cardiac: CardiacProgression = field(default_factory=CardiacProgression)
    fluid: FluidProgression = field(default_factory=FluidProgression)
    renal: RenalProgression = field(default_factory=RenalProgression)
    respiratory: RespiratoryProgression = field(default_factory=RespiratoryProgression)

    @staticmethod
    def from_dict(data: Optional[Dict[str, Any]]) -> "NaturalProgression":
        data = _as_dict(data, "naturalProgression")
        cardiac = _as_dict(data.get("cardiac"), "naturalProgression.cardiac")
        fluid = _as_dict(data.get("fluid"), "naturalProgression.fluid")
        renal = _as_dict(data.get("renal"), "naturalProgression.renal")
        resp = _as_dict(data.get("respiratory"), "naturalProgression.respiratory")

        output_change = cardiac.get("outputChangePerHour")
        return NaturalProgression(
            cardiac=CardiacProgression(
                rate_per_hour=_as_float(cardiac.get("ratePerHour"), 0.0, "cardiac.ratePerHour"),
                output_change_per_hour=(
                    None if output_change is None
                    else _as_float(output_change, 0.0, "cardiac.outputChangePerHour")
                ),
            ),
            fluid=FluidProgression(
                overload_rate_per_hour=_as_float(
                    fluid.get("overloadRatePerHour"), 0.0, "fluid.overloadRatePerHour"),
            ),
            renal=RenalProgression(
                creatinine_change_per_hour=_as_float(
                    renal.get("creatinineChangePerHour"), 0.0, "renal.creatinineChangePerHour"),
                potassium_change_per_hour=_as_float(
                    renal.get("potassiumChangePerHour"), 0.0, "renal.potassiumChangePerHour"),
            ),
            respiratory=RespiratoryProgression(
                rate_change_per_hour=_as_float(
                    resp.get("rateChangePerHour"), 0.0, "respiratory.rateChangePerHour"),
                saturation_change_per_hour=_as_float(
                    resp.get("saturationChangePerHour"), 0.0, "respiratory.saturationChangePerHour"),
            ),
        )


@dataclass(frozen=True)
class TriggerCondition:
    target: StateField
    operator: Comparison
    value: Any


@dataclass(frozen=True)
class DecisionPoint:
    name: str
    description: str = ""
    teaching_point: str = ""
    correct_actions: tuple = ()
    incorrect_actions: tuple = ()


@dataclass
class Trigger:
    """
    A one-shot scripted event. `triggered` is a one-way latch (False -> True);
    only a scenario reload produces a fresh, unlatched copy.
    """
    id: str
    type: Optional[TriggerType]
    action: Optional[TriggerAction] = None
    name: str = ""
    at_minutes: Optional[float] = None
    condition: Optional[TriggerCondition] = None
    intervention_type: Optional[str] = None
    state_changes: Dict[str, Any] = field(default_factory=dict)
    message: str = ""
    priority: str = "routine"
    labs: Dict[str, Any] = field(default_factory=dict)
    decision_point: Optional[DecisionPoint] = None
    triggered: bool = False

    @staticmethod
    def from_dict(data: Dict[str, Any], index: int = 0) -> "Trigger":
        data = _as_dict(data, f"triggers[{index}]")
        trigger_id = str(data.get("id") or f"TRIGGER_{index}")

        try:
            trigger_type = TriggerType(data.get("type"))
        except ValueError:
            logger.warning(f"Trigger {trigger_id}: unknown type {data.get('type')!r}; it will never fire")
            trigger_type = None

        action = None
        if data.get("action") is not None:
            try:
                action = TriggerAction(data["action"])
            except ValueError:
                logger.warning(f"Trigger {trigger_id}: unknown action {data['action']!r} ignored")

        condition = None
        raw_condition = _as_dict(data.get("condition"), f"{trigger_id}.condition")
        if raw_condition:
            target = StateField.from_path(str(raw_condition.get("parameter", "")))
            try:
                operator = Comparison(raw_condition.get("operator"))
            except ValueError:
                operator = None
            if target is None or operator is None:
                logger.warning(f"Trigger {trigger_id}: malformed condition {raw_condition!r}; it will never fire")
            else:
                condition = TriggerCondition(target, operator, raw_condition.get("value"))

        at_minutes = None
        if data.get("atMinutes") is not None:
            at_minutes = _as_float(data["atMinutes"], None, f"{trigger_id}.atMinutes")

        decision_point = None
        raw_dp = _as_dict(data.get("decisionPoint"), f"{trigger_id}.decisionPoint")
        if raw_dp:
            decision_point = DecisionPoint(
                name=str(raw_dp.get("name", trigger_id)),
                description=str(raw_dp.get("description", "")),
                teaching_point=str(raw_dp.get("teachingPoint", "")),
                correct_actions=tuple(raw_dp.get("correctActions") or ()),
                incorrect_actions=tuple(raw_dp.get("incorrectActions") or ()),
            )

        return Trigger(
            id=trigger_id,
            type=trigger_type,
            action=action,
            name=str(data.get("name") or trigger_id),
            at_minutes=at_minutes,
            condition=condition,
            intervention_type=data.get("interventionType"),
            state_changes=_as_dict(data.get("stateChanges"), f"{trigger_id}.stateChanges"),
            message=str(data.get("message", "")),
            priority=str(data.get("priority", "routine")),
            labs=_as_dict(data.get("labs"), f"{trigger_id}.labs"),
            decision_point=decision_point,
        )


@dataclass(frozen=True)
class Scenario:
    id: str
    name: str
    initial_state: PatientState
    natural_progression: NaturalProgression = field(default_factory=NaturalProgression)
    triggers: tuple = ()
    description: str = ""
    # Nurse handoff delivered when the run first starts
    opening_message: str = ""

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Scenario":
        data = _as_dict(data, "scenario")
        raw_triggers = data.get("triggers") or []
        if not isinstance(raw_triggers, list):
            logger.warning("Scenario 'triggers' is not a list, ignored")
            raw_triggers = []
        return Scenario(
            id=str(data.get("id") or "SCENARIO_UNNAMED"),
            name=str(data.get("name") or data.get("id") or "Unnamed scenario"),
            initial_state=PatientState.from_dict(data.get("initialState")),
            natural_progression=NaturalProgression.from_dict(data.get("naturalProgression")),
            triggers=tuple(Trigger.from_dict(t, i) for i, t in enumerate(raw_triggers)),
            description=str(data.get("description") or ""),
            opening_message=str(data.get("openingMessage") or ""),
        )


# --- 4. ORDERS & RECORDS ---

@dataclass(frozen=True)
class Intervention:
    """A clinician order as placed (e.g. from order entry)."""
    name: str
    dose: Optional[float] = None
    route: str = ""
    category: str = ""
    type: str = ""

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Intervention":
        data = _as_dict(data, "intervention")
        dose = data.get("dose")
        return Intervention(
            name=str(data.get("name") or ""),
            dose=None if dose is None else _as_float(dose, None, "intervention.dose"),
            route=str(data.get("route") or ""),
            category=str(data.get("category") or ""),
            type=str(data.get("type") or ""),
        )


@dataclass
class ActiveIntervention:
    id: str
    order: Intervention
    administered_at_minutes: float     # Scenario-relative simulated minutes
    administered_at: datetime
    profile: Optional[EffectProfile] = None
    # Contribution already folded into carried fields, per field
    applied: Dict[StateField, float] = field(default_factory=dict)
    status: str = "active"
    completed_at: Optional[datetime] = None

    @property
    def name(self) -> str:
        return self.order.name

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def dose(self) -> float:
        if self.order.dose is not None:
            return self.order.dose
        return self.profile.standard_dose if self.profile else 0.0

    def matches(self, wanted: str) -> bool:
        """Type/category equality or name substring, case-insensitive."""
        wanted = (wanted or "").strip().lower()
        if not wanted:
            return False
        return (
            self.order.type.lower() == wanted
            or self.order.category.lower() == wanted
            or wanted in self.order.name.lower()
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.order.name,
            "dose": self.dose,
            "route": self.order.route,
            "category": self.order.category,
            "type": self.order.type,
            "administeredAtMinutes": self.administered_at_minutes,
            "administeredAt": self.administered_at.isoformat(),
            "modeled": self.profile is not None,
            "status": self.status,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass(frozen=True)
class HistorySnapshot:
    state: PatientState
    timestamp: datetime
    elapsed_minutes: float


@dataclass(frozen=True)
class ActiveDecisionPoint:
    point: DecisionPoint
    trigger_id: str
    activated_at_minutes: float


@dataclass(frozen=True)
class UserDecision:
    decision_id: str
    action: str
    details: Any
    at_minutes: float
