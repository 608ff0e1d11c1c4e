from dataclasses import dataclass, field
from typing import Dict, Optional

VERSION = "1.0.0"


class SIMULATION_CONSTANTS:
    DEFAULT_TICK_PERIOD_MS = 1000
    DEFAULT_TIME_SCALE = 15.0          # sim minutes per real minute
    SNAPSHOT_INTERVAL_MINUTES = 15.0
    HISTORY_WINDOW_MINUTES = 24 * 60.0
    SCENARIO_START_HOUR = 14           # New admissions start at 2:00 PM "today"
    UNMODELED_INTERVENTION_MINUTES = 60.0


class PHYSIOLOGY_DEFAULTS:
    """
    Baseline constants used whenever a scenario omits (or garbles) a value.
    A malformed scenario must degrade to these, never crash a tick.
    """
    BASE_HEART_RATE = 80.0
    BASE_SYSTOLIC = 130.0
    BASE_DIASTOLIC = 80.0
    CARDIAC_OUTPUT = 3.5         # L/min, also the BP reference point
    GFR = 40.0
    WEIGHT_KG = 95.0
    CREATININE = 2.0
    BUN = 40.0
    POTASSIUM = 4.5
    GLUCOSE = 110.0
    SODIUM = 138.0
    TEMPERATURE_F = 98.4
    OXYGEN_SATURATION = 95.0
    RESPIRATORY_RATE = 16.0
    URINE_OUTPUT = 50.0          # mL/hr
    AGE_YEARS = 72
    SEX = "Male"

    # Formula anchors
    BASELINE_URINE_ML_HR = 50.0
    REFERENCE_GFR = 60.0
    BASELINE_RR = 16.0
    BASELINE_SPO2 = 98.0
    HYPOXIA_THRESHOLD_SPO2 = 92.0
    TACHYPNEA_THRESHOLD = 24.0


class FORMULA_LIMITS:
    """
    Clamp bounds applied by the physiology formulas (natural progression).
    Downstream abnormal-value highlighting depends on these exact numbers.
    """
    HEART_RATE = (50.0, 150.0)
    SYSTOLIC = (80.0, 200.0)
    DIASTOLIC = (50.0, 120.0)
    CARDIAC_OUTPUT = (1.5, 6.0)
    FLUID_OVERLOAD = (0.0, 10.0)
    URINE_OUTPUT = (5.0, 200.0)
    CREATININE = (0.6, 8.0)
    BUN = (10.0, 150.0)
    GFR = (5.0, 120.0)
    POTASSIUM = (3.0, 6.5)
    RESPIRATORY_RATE = (12.0, 35.0)
    OXYGEN_SATURATION = (75.0, 100.0)
    SYMPTOM_SCORE = (0.0, 10.0)
    EDEMA_GRADE_MAX = 4


# Hard physiologic envelope per addressable field (dotted path -> (min, max)).
# Wider than FORMULA_LIMITS where an intervention is allowed to push past the
# natural range (e.g. furosemide drives urine output up to 400 mL/hr).
FIELD_LIMITS: Dict[str, tuple] = {
    "vitals.heartRate": (40.0, 180.0),
    "vitals.systolic": (60.0, 220.0),
    "vitals.diastolic": (30.0, 130.0),
    "vitals.respiratoryRate": (8.0, 40.0),
    "vitals.temperature": (93.0, 106.0),
    "vitals.oxygenSaturation": (70.0, 100.0),
    "vitals.weight": (30.0, 250.0),
    "physiology.fluidOverload": (0.0, 10.0),
    "physiology.gfr": (5.0, 120.0),
    "physiology.cardiacOutput": (1.5, 6.0),
    "physiology.dryWeight": (30.0, 250.0),
    "physiology.urineOutput": (0.0, 600.0),
    "physiology.sympatheticTone": (0.0, 10.0),
    "physiology.baseHeartRate": (40.0, 180.0),
    "physiology.baseSystolic": (60.0, 220.0),
    "physiology.baseDiastolic": (30.0, 130.0),
    "labs.creatinine": (0.6, 8.0),
    "labs.bun": (10.0, 150.0),
    "labs.potassium": (2.5, 7.0),
    "labs.glucose": (40.0, 600.0),
    "labs.sodium": (115.0, 165.0),
    "symptoms.dyspnea": (0.0, 10.0),
    "symptoms.fatigue": (0.0, 10.0),
    "symptoms.edema": (0.0, 4.0),
    "symptoms.orthopneaPillows": (0.0, 6.0),
    "symptoms.chestDiscomfort": (0.0, 10.0),
    "symptoms.pain": (0.0, 10.0),
}

EDEMA_DESCRIPTIONS = {
    0: "No edema",
    1: "Trace edema at ankles",
    2: "1+ pitting edema to ankles",
    3: "2+ pitting edema to mid-shin",
    4: "3+ pitting edema to knees",
}


@dataclass(frozen=True)
class ParameterEffect:
    change: float
    min: Optional[float] = None
    max: Optional[float] = None


@dataclass(frozen=True)
class EffectProfile:
    name: str
    standard_dose: float
    peak_time_minutes: float
    duration_minutes: float
    # dotted state path -> effect at full strength
    parameters: Dict[str, ParameterEffect] = field(default_factory=dict)


class INTERVENTION_LIBRARY:
    """
    The Pharmacopoeia.
    Defines how much each order moves the patient at full (peak) strength.
    """
    PROFILES = {
        "furosemide": EffectProfile(
            name="furosemide", standard_dose=40, peak_time_minutes=60, duration_minutes=360,
            parameters={
                "physiology.fluidOverload": ParameterEffect(change=-0.5, min=0),
                "physiology.urineOutput": ParameterEffect(change=100, max=400),
                "labs.potassium": ParameterEffect(change=-0.2, min=2.5),
                "labs.creatinine": ParameterEffect(change=0.1, max=4),  # Can bump creatinine
            },
        ),
        "bumetanide": EffectProfile(
            name="bumetanide", standard_dose=1, peak_time_minutes=45, duration_minutes=240,
            parameters={
                "physiology.fluidOverload": ParameterEffect(change=-0.6, min=0),
                "physiology.urineOutput": ParameterEffect(change=150, max=600),
                "labs.potassium": ParameterEffect(change=-0.25, min=2.8),
            },
        ),
        "lisinopril": EffectProfile(
            name="lisinopril", standard_dose=10, peak_time_minutes=120, duration_minutes=1440,
            parameters={
                "vitals.systolic": ParameterEffect(change=-10, min=90),
                "vitals.diastolic": ParameterEffect(change=-5, min=60),
                "labs.potassium": ParameterEffect(change=0.2, max=6),
            },
        ),
        "carvedilol": EffectProfile(
            name="carvedilol", standard_dose=12.5, peak_time_minutes=90, duration_minutes=720,
            parameters={
                "vitals.heartRate": ParameterEffect(change=-10, min=50),
                "vitals.systolic": ParameterEffect(change=-8, min=90),
                "physiology.cardiacOutput": ParameterEffect(change=0.1, max=5),
            },
        ),
        "metoprolol": EffectProfile(
            name="metoprolol", standard_dose=25, peak_time_minutes=60, duration_minutes=360,
            parameters={
                "vitals.heartRate": ParameterEffect(change=-15, min=50),
                "vitals.systolic": ParameterEffect(change=-5, min=90),
            },
        ),
        "spironolactone": EffectProfile(
            name="spironolactone", standard_dose=25, peak_time_minutes=240, duration_minutes=1440,
            parameters={
                "physiology.fluidOverload": ParameterEffect(change=-0.2, min=0),
                "labs.potassium": ParameterEffect(change=0.3, max=6),
            },
        ),
        "potassium chloride": EffectProfile(
            name="potassium chloride", standard_dose=20, peak_time_minutes=60, duration_minutes=240,
            parameters={
                "labs.potassium": ParameterEffect(change=0.3, max=6),
            },
        ),
        "insulin": EffectProfile(
            name="insulin", standard_dose=10, peak_time_minutes=30, duration_minutes=120,
            parameters={
                "labs.glucose": ParameterEffect(change=-50, min=70),
                "labs.potassium": ParameterEffect(change=-0.5, min=3),
            },
        ),
        "nitroglycerin": EffectProfile(
            name="nitroglycerin", standard_dose=0.4, peak_time_minutes=5, duration_minutes=30,
            parameters={
                "vitals.systolic": ParameterEffect(change=-15, min=90),
                "symptoms.chestDiscomfort": ParameterEffect(change=-3, min=0),
            },
        ),
        "morphine": EffectProfile(
            name="morphine", standard_dose=4, peak_time_minutes=20, duration_minutes=240,
            parameters={
                "symptoms.dyspnea": ParameterEffect(change=-2, min=0),
                "symptoms.pain": ParameterEffect(change=-3, min=0),
                "vitals.respiratoryRate": ParameterEffect(change=-3, min=8),
            },
        ),
        "oxygen": EffectProfile(
            name="oxygen", standard_dose=2, peak_time_minutes=5, duration_minutes=9999,  # Continuous while on
            parameters={
                "vitals.oxygenSaturation": ParameterEffect(change=3, max=100),
            },
        ),
        "iv fluids": EffectProfile(
            name="iv fluids", standard_dose=1000, peak_time_minutes=30, duration_minutes=120,  # mL
            parameters={
                "physiology.fluidOverload": ParameterEffect(change=0.5, max=10),
                "vitals.systolic": ParameterEffect(change=5, max=160),
            },
        ),
    }

    ALIASES = {
        "lasix": "furosemide",
        "lopressor": "metoprolol",
        "coreg": "carvedilol",
        "aldactone": "spironolactone",
        "kcl": "potassium chloride",
        "ntg": "nitroglycerin",
        "o2": "oxygen",
        "bumex": "bumetanide",
        "saline": "iv fluids",
        "lactated": "iv fluids",
        "fluids": "iv fluids",
    }

    @staticmethod
    def get(name: str) -> Optional[EffectProfile]:
        """
        Resolves an order name to its profile: exact key, brand/abbreviation
        alias, then substring ("Furosemide 40mg IV push" -> furosemide).
        Returns None for anything without a modeled effect.
        """
        if not name:
            return None
        key = name.strip().lower()
        profiles = INTERVENTION_LIBRARY.PROFILES
        if key in profiles:
            return profiles[key]
        if key in INTERVENTION_LIBRARY.ALIASES:
            return profiles[INTERVENTION_LIBRARY.ALIASES[key]]
        for known, profile in profiles.items():
            if known in key:
                return profile
        for alias, target in INTERVENTION_LIBRARY.ALIASES.items():
            if alias in key.split():
                return profiles[target]
        return None
