import unittest
from datetime import datetime, timedelta
from unittest import mock

from config import SimulationSettings
from constants import FIELD_LIMITS
from core_physics import PhysiologyModel, ZeroNoise
from engine import SimulationEngine
from events import SimEvent
from fields import StateField
from models import Trajectory
from scenarios import SOB_ADMISSION

START = datetime(2026, 3, 2, 14, 0)

CHF_SCENARIO = {
    "id": "TEST_CHF",
    "name": "Volume overload",
    "openingMessage": "New admission in 412.",
    "initialState": {
        "vitals": {"heartRate": 101.5, "systolic": 158.4, "diastolic": 91.5, "respiratoryRate": 24,
                   "temperature": 98.24, "oxygenSaturation": 92, "weight": 101.46},
        "physiology": {"fluidOverload": 6, "gfr": 38, "cardiacOutput": 3.2},
        "labs": {"creatinine": 2.1},
        "symptoms": {"dyspnea": 6, "fatigue": 5, "orthopnea": True, "orthopneaPillows": 4},
        "trajectory": "worsening",
    },
    "naturalProgression": {"fluid": {"overloadRatePerHour": 0}},
    "triggers": [
        {
            "id": "TRIG_CALL", "name": "Nurse call", "type": "time", "atMinutes": 15,
            "action": "nurseAlert", "message": "He looks uncomfortable.", "priority": "urgent",
            "decisionPoint": {"name": "Rapid AF", "correctActions": ["metoprolol"],
                              "incorrectActions": ["diltiazem"], "teachingPoint": "Rate control"},
        },
    ],
}


class TestSimulationEngine(unittest.TestCase):

    def setUp(self):
        """x900 at 1 s/tick: every tick is 15 simulated minutes."""
        settings = SimulationSettings(tick_period_ms=1000, default_time_scale=900, noise_seed=1)
        self.engine = SimulationEngine(settings=settings, noise=ZeroNoise())
        self.engine.load_scenario(CHF_SCENARIO, start_time=START)

    def record_events(self):
        seen = []
        for event in SimEvent:
            self.engine.on(event, lambda payload, e=event: seen.append(e.value))
        return seen

    def test_01_load_initializes_from_template(self):
        state = self.engine.get_state()
        self.assertEqual(state.physiology.fluid_overload, 6.0)
        self.assertEqual(state.trajectory, Trajectory.WORSENING)
        self.assertEqual(self.engine.get_elapsed_minutes(), 0.0)
        self.assertEqual(self.engine.get_simulated_time(), START)
        self.assertEqual(len(self.engine.get_state_history()), 1)

    def test_02_tick_advances_time_and_history(self):
        for _ in range(4):
            self.engine.tick()
        self.assertEqual(self.engine.get_elapsed_minutes(), 60.0)
        self.assertEqual(self.engine.get_simulated_time(), START + timedelta(hours=1))
        self.assertEqual(self.engine.get_state().timestamp, START + timedelta(hours=1))
        self.assertEqual(len(self.engine.get_state_history()), 5)

    def test_03_tick_event_precedes_trigger_events(self):
        seen = self.record_events()
        self.engine.tick()
        self.assertEqual(seen, ["tick", "nurseAlert", "triggerActivated"])

        seen.clear()
        self.engine.tick()
        self.assertEqual(seen, ["tick"], "Fired triggers never re-execute")

    def test_04_subscriber_failure_is_isolated(self):
        received = []

        def broken(payload):
            raise ValueError("chart widget crashed")

        self.engine.on(SimEvent.TICK, broken)
        self.engine.on(SimEvent.TICK, received.append)
        with self.assertLogs("events", level="ERROR"):
            payload = self.engine.tick()
        self.assertIsNotNone(payload)
        self.assertEqual(len(received), 1)

        self.engine.off(SimEvent.TICK, broken)
        self.engine.tick()
        self.assertEqual(len(received), 2)

    def test_05_furosemide_end_to_end(self):
        """
        Furosemide 40 mg at t=0: by the 60-minute peak overload is down exactly
        0.5 L and urine output sits 100 mL/hr above the natural value.
        """
        self.engine.apply_intervention({"name": "Furosemide", "dose": 40, "route": "IV"})
        for _ in range(3):
            self.engine.tick()

        natural = self.engine.get_state()
        PhysiologyModel.update(natural, 15, 60, self.engine.scenario.natural_progression, ZeroNoise())

        self.engine.tick()
        state = self.engine.get_state()
        self.assertAlmostEqual(state.physiology.fluid_overload, 5.5)
        self.assertAlmostEqual(state.physiology.urine_output,
                               min(400.0, natural.physiology.urine_output + 100))

    def test_06_stop_requires_reload(self):
        self.assertTrue(self.engine.start())
        self.engine.stop()
        self.assertFalse(self.engine.start())
        self.assertIsNone(self.engine.tick())

        self.engine.load_scenario(CHF_SCENARIO, start_time=START)
        self.assertTrue(self.engine.start())
        self.engine.stop()

    def test_07_pause_blocks_ticks(self):
        self.engine.start()
        self.engine.pause()
        self.assertIsNone(self.engine.tick())
        self.assertEqual(self.engine.get_elapsed_minutes(), 0.0)
        self.engine.resume()
        self.assertIsNotNone(self.engine.tick())
        self.assertEqual(self.engine.get_elapsed_minutes(), 15.0)
        self.engine.stop()

    def test_08_lifecycle_events(self):
        seen = self.record_events()
        self.engine.start()
        self.engine.start()
        self.engine.pause()
        self.engine.resume()
        self.engine.set_time_scale(60)
        self.engine.set_time_scale(-4)
        self.engine.reset()
        self.assertEqual(seen, [
            "simulationStarted", "nurseAlert",  # opening handoff on a new start
            "simulationPaused", "simulationResumed", "timeScaleChanged",
            "simulationStopped", "scenarioLoaded", "simulationReset",
        ])
        self.assertEqual(self.engine.clock.time_scale, 60.0)

    def test_09_reset_reruns_scenario_load(self):
        self.engine.apply_intervention({"name": "Metoprolol"})
        self.engine.tick()
        self.engine.tick()
        self.assertEqual(len(self.engine.triggers.fired), 1)

        self.engine.reset()
        self.assertEqual(self.engine.get_elapsed_minutes(), 0.0)
        self.assertEqual(self.engine.get_intervention_history(), [])
        self.assertEqual(len(self.engine.triggers.pending), 1)
        self.assertEqual(self.engine.get_state().physiology.fluid_overload, 6.0)
        self.assertEqual(self.engine.evaluate_decisions(), [])

    def test_10_decision_scoring(self):
        self.engine.record_decision("afib", "Diltiazem drip")  # before the decision point
        self.engine.tick()
        self.engine.record_decision("afib", "Metoprolol 5mg IV")

        result = self.engine.evaluate_decisions()[0]
        self.assertEqual(result["decisionPoint"], "Rapid AF")
        self.assertTrue(result["correctActionsTaken"])
        self.assertFalse(result["incorrectActionsTaken"])
        self.assertEqual(result["details"]["correct"], ["Metoprolol 5mg IV"])

    def test_11_display_vitals(self):
        vitals = self.engine.get_current_vitals()
        self.assertEqual(vitals["bloodPressure"], "158/92")
        self.assertEqual(vitals["heartRate"], 102)
        self.assertEqual(vitals["temperature"], 98.2)
        self.assertEqual(vitals["weight"], 101.5)
        self.assertEqual(vitals["date"], START.isoformat())

    def test_12_symptom_description(self):
        self.assertEqual(
            self.engine.get_symptoms_description(),
            "moderate shortness of breath with minimal activity, noticeable leg swelling, "
            "feeling very tired, need to sleep on 4 pillows, feeling worse than before",
        )

    def test_13_state_reads_are_copies(self):
        snapshot = self.engine.get_state()
        snapshot.vitals.heart_rate = 20
        self.assertEqual(self.engine.get_state().vitals.heart_rate, 101.5)

    def test_14_failing_stage_still_completes_tick(self):
        with mock.patch("engine.PhysiologyModel.update", side_effect=RuntimeError("bad math")):
            with self.assertLogs("engine", level="ERROR"):
                payload = self.engine.tick()
        self.assertIsNotNone(payload)
        self.assertEqual(self.engine.get_elapsed_minutes(), 15.0)
        self.assertEqual(len(self.engine.triggers.fired), 1)

    def test_15_interventions_before_load_are_ignored(self):
        fresh = SimulationEngine(settings=SimulationSettings(), noise=ZeroNoise())
        self.assertIsNone(fresh.apply_intervention({"name": "Furosemide"}))
        self.assertFalse(fresh.start())
        self.assertIsNone(fresh.tick())
        self.assertIsNone(fresh.get_state())

    def test_16_unmodeled_orders_are_audited(self):
        order = self.engine.apply_intervention({"name": "Chest X-ray", "category": "imaging"})
        self.assertIsNone(order.profile)
        for _ in range(4):
            self.engine.tick()
        self.assertEqual(self.engine.get_active_interventions(), [])
        self.assertEqual(self.engine.get_intervention_history(), [order])

    def test_17_reset_replays_the_seeded_run(self):
        """A fixed seed gives the same run after reset() as on a fresh engine."""
        settings = SimulationSettings(tick_period_ms=1000, default_time_scale=900, noise_seed=42)

        def run(engine):
            for _ in range(8):
                engine.tick()
            state = engine.get_state().to_dict()
            state.pop("timestamp")
            return state

        seeded = SimulationEngine(settings=settings)
        seeded.load_scenario(SOB_ADMISSION, start_time=START)
        first = run(seeded)

        seeded.reset()
        self.assertEqual(run(seeded), first)

        fresh = SimulationEngine(settings=settings)
        fresh.load_scenario(SOB_ADMISSION, start_time=START)
        self.assertEqual(run(fresh), first)

    def test_18_full_tick_path_stays_in_field_limits(self):
        """
        Safety Check: runaway progression, stacked orders and out-of-range
        trigger writes never leave the hard envelope on any tick.
        """
        runaway = {
            "id": "TEST_RUNAWAY",
            "name": "Runaway",
            "initialState": {"physiology": {"fluidOverload": 9}, "labs": {"potassium": 6.4}},
            "naturalProgression": {
                "cardiac": {"ratePerHour": 400, "outputChangePerHour": -20},
                "fluid": {"overloadRatePerHour": 30},
                "renal": {"creatinineChangePerHour": 4, "potassiumChangePerHour": 6},
                "respiratory": {"rateChangePerHour": 25, "saturationChangePerHour": -30},
            },
            "triggers": [
                {"id": "T_SPIKE", "name": "Spike", "type": "time", "atMinutes": 30, "action": "modifyState",
                 "stateChanges": {"vitals": {"heartRate": 999, "oxygenSaturation": -20, "weight": 0},
                                  "labs": {"sodium": 400, "glucose": -5},
                                  "symptoms": {"dyspnea": 50, "pain": -3}}},
                {"id": "T_LABS", "name": "Labs", "type": "time", "atMinutes": 60, "action": "labResult",
                 "labs": {"potassium": 12, "creatinine": 0, "bnp": 4000}},
            ],
        }
        engine = SimulationEngine(
            settings=SimulationSettings(tick_period_ms=1000, default_time_scale=900, noise_seed=3))
        engine.load_scenario(runaway, start_time=START)
        for name, dose in [("Furosemide", 400), ("Bumetanide", 10), ("Normal saline bolus", 5000),
                           ("Insulin", 100), ("Potassium chloride", 200), ("Metoprolol", 250)]:
            engine.apply_intervention({"name": name, "dose": dose})
            engine.apply_intervention({"name": name, "dose": dose})

        for _ in range(40):
            self.assertIsNotNone(engine.tick())
            state = engine.get_state()
            for target in StateField:
                value = target.read(state)
                if target.is_boolean or value is None:
                    continue
                low, high = FIELD_LIMITS[target.path]
                self.assertGreaterEqual(value, low, target.path)
                self.assertLessEqual(value, high, target.path)
        self.assertEqual(len(engine.triggers.fired), 2)

    def test_19_saline_bolus_drives_hypoxia_trigger(self):
        """2 L of saline in an overloaded patient pushes SpO2 under 88%; without it, no alert."""
        volume_case = {
            "id": "TEST_BOLUS",
            "name": "Bolus in CHF",
            "initialState": {"physiology": {"fluidOverload": 6}},
            "triggers": [
                {"id": "TRIG_HYPOXIA", "name": "Hypoxia", "type": "state", "action": "nurseAlert",
                 "condition": {"parameter": "vitals.oxygenSaturation", "operator": "<", "value": 88},
                 "message": "Sats are dropping."},
            ],
        }
        settings = SimulationSettings(tick_period_ms=1000, default_time_scale=900)
        fired = {}
        for bolus in (False, True):
            engine = SimulationEngine(settings=settings, noise=ZeroNoise())
            engine.load_scenario(volume_case, start_time=START)
            if bolus:
                engine.apply_intervention({"name": "Normal saline bolus", "dose": 2000})
            for _ in range(4):
                engine.tick()
            fired[bolus] = [t.id for t in engine.triggers.fired]

        self.assertEqual(fired[False], [])
        self.assertEqual(fired[True], ["TRIG_HYPOXIA"])

    def test_20_reported_labs_persist_only_when_carried(self):
        self.engine.load_scenario({
            "id": "TEST_LABS",
            "name": "Lab draw",
            "initialState": {"labs": {"creatinine": 2.1}},
            "triggers": [{"id": "LABS", "name": "BMP", "type": "time", "atMinutes": 15,
                          "action": "labResult", "labs": {"potassium": 3.2, "creatinine": 2.6}}],
        }, start_time=START)

        drawn = self.engine.tick().state
        self.assertEqual(drawn.labs.potassium, 3.2)
        self.assertEqual(drawn.labs.creatinine, 2.6)

        self.engine.tick()
        state = self.engine.get_state()
        self.assertEqual(state.labs.creatinine, 2.6)
        self.assertEqual(state.labs.potassium, 4.5)


if __name__ == '__main__':
    unittest.main()
