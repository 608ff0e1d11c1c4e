import unittest
from datetime import datetime, timedelta

from constants import INTERVENTION_LIBRARY
from interventions import InterventionEffectEngine
from models import Intervention, PatientState

START = datetime(2026, 3, 2, 14, 0)


def at(minutes):
    return START + timedelta(minutes=minutes)


class TestInterventionEffectEngine(unittest.TestCase):

    def setUp(self):
        self.state = PatientState()
        self.furosemide = INTERVENTION_LIBRARY.get("furosemide")

    def give(self, name, minutes=0.0, **kwargs):
        return InterventionEffectEngine.administer(Intervention(name=name, **kwargs), minutes, at(minutes))

    def test_01_strength_curve(self):
        """Linear ramp to peak, plateau until duration, then nothing."""
        curve = [(0, 0.0), (30, 0.5), (60, 1.0), (200, 1.0), (359.9, 1.0), (360, 0.0), (500, 0.0), (-5, 0.0)]
        for elapsed, expected in curve:
            with self.subTest(elapsed=elapsed):
                self.assertAlmostEqual(InterventionEffectEngine.strength(40, self.furosemide, elapsed), expected)

    def test_02_strength_scales_with_dose(self):
        self.assertAlmostEqual(InterventionEffectEngine.strength(80, self.furosemide, 60), 2.0)
        self.assertAlmostEqual(InterventionEffectEngine.strength(20, self.furosemide, 30), 0.25)

    def test_03_profile_lookup(self):
        cases = {
            "Furosemide 40mg IV push": "furosemide",
            "LASIX": "furosemide",
            "Metoprolol tartrate": "metoprolol",
            "KCl 20 mEq PO": "potassium chloride",
            "Supplemental O2 via NC": "oxygen",
            "Bumex 1mg IV": "bumetanide",
            "Normal saline 1L bolus": "iv fluids",
            "Lactated Ringer's 500 mL": "iv fluids",
            "IV fluids at 100 mL/hr": "iv fluids",
        }
        for name, expected in cases.items():
            with self.subTest(name=name):
                self.assertEqual(INTERVENTION_LIBRARY.get(name).name, expected)

        self.assertIsNone(INTERVENTION_LIBRARY.get("Acetaminophen 650mg"))
        self.assertIsNone(INTERVENTION_LIBRARY.get("Fluid restriction 1.5L"))
        self.assertIsNone(INTERVENTION_LIBRARY.get(""))
        # Falls back to the order's type when the name is unknown
        by_type = Intervention(name="Nasal cannula", type="oxygen")
        self.assertEqual(InterventionEffectEngine.lookup(by_type).name, "oxygen")

    def test_04_unknown_intervention_is_a_no_op(self):
        order = self.give("Acetaminophen")
        self.assertIsNone(order.profile)
        before = self.state.to_dict()

        InterventionEffectEngine.apply_active(self.state, [order], 30, at(30))
        self.assertEqual(self.state.to_dict(), before)
        self.assertTrue(order.is_active)

        InterventionEffectEngine.apply_active(self.state, [order], 60, at(60))
        self.assertFalse(order.is_active, "Unmodeled orders count as active for one hour")
        self.assertEqual(order.completed_at, at(60))

    def test_05_carried_field_receives_total_contribution_once(self):
        """
        Fluid overload is carried tick to tick, so four 15-minute ticks up to
        peak must remove exactly 0.5 L, and the plateau must not remove more.
        """
        self.state.physiology.fluid_overload = 6.0
        order = self.give("Furosemide", dose=40)

        for minute in (15, 30, 45, 60):
            InterventionEffectEngine.apply_active(self.state, [order], minute, at(minute))
        self.assertEqual(self.state.physiology.fluid_overload, 5.5)

        for minute in (120, 240, 359):
            InterventionEffectEngine.apply_active(self.state, [order], minute, at(minute))
        self.assertEqual(self.state.physiology.fluid_overload, 5.5)

        # Expiry: carried effect persists, intervention closes out
        InterventionEffectEngine.apply_active(self.state, [order], 360, at(360))
        self.assertEqual(self.state.physiology.fluid_overload, 5.5)
        self.assertEqual(order.status, "completed")

    def test_06_recomputed_field_gets_full_contribution(self):
        """Urine output is recomputed each tick; the full +100 lands on the fresh value."""
        order = self.give("Furosemide")
        self.state.physiology.urine_output = 40.0
        InterventionEffectEngine.apply_active(self.state, [order], 60, at(60))
        self.assertAlmostEqual(self.state.physiology.urine_output, 140.0)

        # Effect max caps the result
        self.state.physiology.urine_output = 350.0
        InterventionEffectEngine.apply_active(self.state, [order], 75, at(75))
        self.assertEqual(self.state.physiology.urine_output, 400.0)

    def test_07_simultaneous_interventions_add(self):
        self.state.vitals.heart_rate = 100.0
        first, second = self.give("Metoprolol"), self.give("Metoprolol")
        InterventionEffectEngine.apply_active(self.state, [first, second], 60, at(60))
        self.assertAlmostEqual(self.state.vitals.heart_rate, 70.0)

        # Effect floor of 50 bpm holds however many doses are stacked
        self.state.vitals.heart_rate = 70.0
        doses = [self.give("Metoprolol") for _ in range(5)]
        InterventionEffectEngine.apply_active(self.state, doses, 60, at(60))
        self.assertEqual(self.state.vitals.heart_rate, 50.0)

    def test_08_effect_minimum_respected(self):
        self.state.physiology.fluid_overload = 0.2
        order = self.give("Furosemide", dose=80)
        InterventionEffectEngine.apply_active(self.state, [order], 60, at(60))
        self.assertEqual(self.state.physiology.fluid_overload, 0.0)

    def test_09_matching_for_triggers(self):
        diuretic = self.give("Furosemide 40mg IV", category="medication", type="diuretic")
        self.assertTrue(InterventionEffectEngine.has_active([diuretic], "furosemide"))
        self.assertTrue(InterventionEffectEngine.has_active([diuretic], "DIURETIC"))
        self.assertTrue(InterventionEffectEngine.has_active([diuretic], "medication"))
        self.assertFalse(InterventionEffectEngine.has_active([diuretic], "oxygen"))

        diuretic.status = "completed"
        self.assertFalse(InterventionEffectEngine.has_active([diuretic], "furosemide"))

    def test_10_saline_bolus_loads_volume(self):
        """A 1 L bolus adds 0.5 L of overload by its 30-minute peak and props up SBP."""
        self.state.physiology.fluid_overload = 6.0
        bolus = self.give("Normal saline 1L bolus", dose=1000)

        for minute in (15, 30):
            self.state.vitals.systolic = 150.0
            InterventionEffectEngine.apply_active(self.state, [bolus], minute, at(minute))
        self.assertAlmostEqual(self.state.physiology.fluid_overload, 6.5)
        self.assertAlmostEqual(self.state.vitals.systolic, 155.0)

        self.state.vitals.systolic = 158.0
        InterventionEffectEngine.apply_active(self.state, [bolus], 60, at(60))
        self.assertEqual(self.state.vitals.systolic, 160.0)

        InterventionEffectEngine.apply_active(self.state, [bolus], 120, at(120))
        self.assertEqual(bolus.status, "completed")
        self.assertAlmostEqual(self.state.physiology.fluid_overload, 6.5)

    def test_11_bumetanide_outdiureses_furosemide(self):
        loop_doses = {"Furosemide": 40, "Bumetanide": 1}
        removed = {}
        for name, dose in loop_doses.items():
            state = PatientState()
            state.physiology.fluid_overload = 6.0
            order = self.give(name, dose=dose)
            InterventionEffectEngine.apply_active(state, [order], 60, at(60))
            removed[name] = 6.0 - state.physiology.fluid_overload
        self.assertAlmostEqual(removed["Bumetanide"], 0.6)
        self.assertGreater(removed["Bumetanide"], removed["Furosemide"])

    def test_12_morphine_relieves_pain(self):
        self.state.symptoms.pain = 6.0
        order = self.give("Morphine 4mg IV", dose=4)
        for minute in (10, 20, 40):
            InterventionEffectEngine.apply_active(self.state, [order], minute, at(minute))
        self.assertAlmostEqual(self.state.symptoms.pain, 3.0)


if __name__ == '__main__':
    unittest.main()
