import asyncio
import unittest
from datetime import datetime, timedelta

from clock import SimulationClock, scenario_start_today

START = datetime(2026, 3, 2, 14, 0)


class TestSimulationClock(unittest.TestCase):

    def setUp(self):
        self.ticks = 0
        self.clock = SimulationClock(on_tick=self.on_tick, tick_period_ms=1000, time_scale=15)
        self.clock.reset(START)

    def on_tick(self):
        self.ticks += 1
        self.clock.advance()

    def test_01_delta_is_period_times_scale(self):
        """1 s real at x15 is a quarter simulated minute."""
        self.assertEqual(self.clock.delta_minutes(), 0.25)
        self.clock.set_time_scale(900)
        self.assertEqual(self.clock.delta_minutes(), 15.0)

        for _ in range(4):
            self.clock.advance()
        self.assertEqual(self.clock.elapsed_minutes, 60.0)
        self.assertEqual(self.clock.simulated_time, START + timedelta(hours=1))

    def test_02_invalid_time_scales_ignored(self):
        for bad in (-1, "fast", None, float("nan"), float("inf"), True):
            with self.subTest(scale=bad):
                self.assertFalse(self.clock.set_time_scale(bad))
                self.assertEqual(self.clock.time_scale, 15.0)
        self.assertTrue(self.clock.set_time_scale(0))
        self.assertEqual(self.clock.delta_minutes(), 0.0)

    def test_03_lifecycle_transitions(self):
        # No running loop here: state is tracked, ticks are manual
        self.assertTrue(self.clock.start())
        self.assertFalse(self.clock.start(), "start() while running is a no-op")
        self.assertFalse(self.clock.resume())
        self.assertTrue(self.clock.pause())
        self.assertFalse(self.clock.pause())
        self.assertTrue(self.clock.resume())
        self.assertTrue(self.clock.stop())
        self.assertFalse(self.clock.is_running)
        self.assertFalse(self.clock.stop())

    def test_04_scenario_start_is_two_pm_today(self):
        start = scenario_start_today(datetime(2026, 10, 18, 9, 37, 12, 5))
        self.assertEqual(start, datetime(2026, 10, 18, 14, 0))


class TestClockTimer(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.ticks = 0
        self.clock = SimulationClock(on_tick=self.on_tick, tick_period_ms=10, time_scale=600)
        self.clock.reset(START)

    async def asyncTearDown(self):
        self.clock.stop()

    def on_tick(self):
        self.ticks += 1
        self.clock.advance()

    async def test_01_timer_ticks_on_the_loop(self):
        self.clock.start()
        await asyncio.sleep(0.15)
        self.assertGreater(self.ticks, 0)
        # Simulated time is a pure function of tick count
        self.assertAlmostEqual(self.clock.elapsed_minutes, self.ticks * 0.1)

    async def test_02_pause_resume_no_catch_up(self):
        self.clock.start()
        await asyncio.sleep(0.08)
        self.clock.pause()
        paused_ticks, paused_minutes = self.ticks, self.clock.elapsed_minutes

        await asyncio.sleep(0.15)
        self.assertEqual(self.ticks, paused_ticks)
        self.assertEqual(self.clock.elapsed_minutes, paused_minutes)

        self.clock.resume()
        await asyncio.sleep(0)
        self.assertEqual(self.ticks, paused_ticks, "Resume must not replay missed ticks")
        await asyncio.sleep(0.08)
        self.assertGreater(self.ticks, paused_ticks)

    async def test_03_stop_halts_timer(self):
        self.clock.start()
        await asyncio.sleep(0.05)
        self.clock.stop()
        stopped = self.ticks
        await asyncio.sleep(0.08)
        self.assertEqual(self.ticks, stopped)

    async def test_04_failing_tick_does_not_kill_timer(self):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")

        self.clock.on_tick = flaky
        with self.assertLogs("clock", level="ERROR"):
            self.clock.start()
            await asyncio.sleep(0.1)
        self.assertGreater(len(calls), 1)


if __name__ == '__main__':
    unittest.main()
