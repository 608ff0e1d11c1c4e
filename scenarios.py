"""
ClinSim: Scenario Catalog
=========================
Built-in teaching cases plus a loader for scenario JSON files.
Scenarios are authored in the same camelCase JSON shape the front end uses.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from models import Scenario

logger = logging.getLogger(__name__)


# --- 1. BUILT-IN CASES ---

SOB_ADMISSION = {
    "id": "SCENARIO_SOB_001",
    "name": "Shortness of Breath - New Admission",
    "description": (
        "72-year-old man with HFrEF and CKD stage 3b admitted with volume "
        "overload and new atrial fibrillation."
    ),
    "openingMessage": (
        "You have a new patient to admit in room 412 - Mr. Robert Morrison, a "
        "72-year-old male. His wife brought him to the ED with a chief complaint of "
        "\"not feeling well.\" Vitals on arrival: BP 158/92, HR 102 irregular, RR 24, "
        "SpO2 92% on 2L NC. He's on telemetry. No admission orders have been placed yet."
    ),
    "initialState": {
        "vitals": {
            "heartRate": 102, "systolic": 158, "diastolic": 92, "respiratoryRate": 24,
            "temperature": 98.2, "oxygenSaturation": 92, "weight": 101.5,
        },
        "physiology": {
            "fluidOverload": 5.5, "gfr": 38, "cardiacOutput": 3.2, "urineOutput": 35,
            "sympatheticTone": 1.5, "baseHeartRate": 84, "baseSystolic": 145, "baseDiastolic": 88,
        },
        "labs": {"creatinine": 2.1, "bun": 48, "potassium": 4.4, "glucose": 142, "sodium": 134},
        "symptoms": {
            "dyspnea": 6, "fatigue": 5, "edema": 2, "edemaDescription": "1+ pitting edema to ankles",
            "orthopnea": True, "orthopneaPillows": 4,
        },
        "demographics": {"age": 72, "sex": "Male"},
        "trajectory": "worsening",
    },
    "naturalProgression": {
        "cardiac": {"ratePerHour": 0.5, "outputChangePerHour": -0.02},
        "fluid": {"overloadRatePerHour": 0.05},
        "renal": {"creatinineChangePerHour": 0.01, "potassiumChangePerHour": 0.0},
        "respiratory": {"rateChangePerHour": 0.1, "saturationChangePerHour": -0.05},
    },
    "triggers": [
        {
            "id": "TRIG_AFIB",
            "name": "Rapid atrial fibrillation",
            "type": "time",
            "atMinutes": 120,
            "action": "nurseAlert",
            "priority": "urgent",
            "message": (
                "Doctor, the monitor is showing HR in the 140s, irregularly irregular. "
                "He says his heart is racing. BP 142/88."
            ),
            "stateChanges": {"physiology": {"sympatheticTone": 6}},
            "decisionPoint": {
                "name": "AFib with RVR",
                "description": "New rapid atrial fibrillation in a volume-overloaded patient",
                "teachingPoint": "Rate control first; avoid non-dihydropyridine CCBs in HFrEF.",
                "correctActions": ["metoprolol", "ekg", "rate control", "anticoagulation"],
                "incorrectActions": ["diltiazem", "verapamil"],
            },
        },
        {
            "id": "TRIG_HYPOXIA",
            "name": "Worsening hypoxia",
            "type": "state",
            "condition": {"parameter": "vitals.oxygenSaturation", "operator": "<", "value": 88},
            "action": "nurseAlert",
            "priority": "urgent",
            "message": "His sats are down to the mid-80s on 2L and he looks like he's working harder to breathe.",
        },
        {
            "id": "TRIG_DIURESIS",
            "name": "Response to diuretic",
            "type": "intervention",
            "interventionType": "furosemide",
            "action": "patientAlert",
            "priority": "routine",
            "message": "I've been to the bathroom three times already. My breathing feels a little easier.",
        },
        {
            "id": "TRIG_HYPOKALEMIA",
            "name": "Low potassium after diuresis",
            "type": "state",
            "condition": {"parameter": "labs.potassium", "operator": "<=", "value": 3.4},
            "action": "nurseAlert",
            "priority": "routine",
            "message": "Lab called with a potassium of 3.4 on the repeat BMP.",
        },
        {
            "id": "TRIG_AM_LABS",
            "name": "Morning labs",
            "type": "time",
            "atMinutes": 960,
            "action": "labResult",
            "labs": {"creatinine": 2.3, "bun": 52, "potassium": 4.0, "bnp": 1450},
        },
    ],
}

SCENARIO_CATALOG: Dict[str, Dict[str, Any]] = {
    SOB_ADMISSION["id"]: SOB_ADMISSION,
}


# --- 2. LOOKUP & LOADING ---

def list_scenarios() -> List[Dict[str, str]]:
    return [
        {"id": data["id"], "name": data["name"], "description": data.get("description", "")}
        for data in SCENARIO_CATALOG.values()
    ]


def get_scenario(scenario_id: str) -> Optional[Scenario]:
    """Parsed copy of a built-in scenario, or None if the id is unknown."""
    data = SCENARIO_CATALOG.get(scenario_id)
    if data is None:
        return None
    return Scenario.from_dict(data)


def load_scenario_file(path: Union[str, Path]) -> Scenario:
    """
    Reads a scenario JSON file. File and JSON errors propagate; content
    problems degrade to defaults with a warning.
    """
    path = Path(path)
    with path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    logger.info(f"Loaded scenario file {path.name}")
    return Scenario.from_dict(data)
