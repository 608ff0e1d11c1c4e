"""
ClinSim: Simulation Clock
=========================
Fixed wall-clock tick period -> scaled simulated delta.

Simulated time only moves inside a tick, by exactly
period_ms * time_scale / 60000 minutes, so it is immune to scheduler jitter.
Pausing suspends the timer; resuming does not replay missed ticks.
"""

import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import Callable, Optional

from constants import SIMULATION_CONSTANTS

logger = logging.getLogger(__name__)


def scenario_start_today(now: Optional[datetime] = None) -> datetime:
    """New admissions start at 14:00 local time today."""
    now = now or datetime.now()
    return now.replace(hour=SIMULATION_CONSTANTS.SCENARIO_START_HOUR, minute=0, second=0, microsecond=0)


def is_valid_time_scale(scale) -> bool:
    if isinstance(scale, bool) or not isinstance(scale, (int, float)):
        return False
    return math.isfinite(scale) and scale >= 0


class SimulationClock:

    def __init__(self,
                 on_tick: Callable[[], None],
                 tick_period_ms: int = SIMULATION_CONSTANTS.DEFAULT_TICK_PERIOD_MS,
                 time_scale: float = SIMULATION_CONSTANTS.DEFAULT_TIME_SCALE):
        self.on_tick = on_tick
        self.tick_period_ms = tick_period_ms
        self.time_scale = float(time_scale)
        self.is_running = False
        self.is_paused = False
        self.scenario_start_time: Optional[datetime] = None
        self.elapsed_minutes = 0.0
        self._task: Optional[asyncio.Task] = None

    @property
    def simulated_time(self) -> Optional[datetime]:
        if self.scenario_start_time is None:
            return None
        return self.scenario_start_time + timedelta(minutes=self.elapsed_minutes)

    @property
    def is_ticking(self) -> bool:
        return self.is_running and not self.is_paused

    def reset(self, start_time: datetime) -> None:
        self._cancel()
        self.is_running = False
        self.is_paused = False
        self.scenario_start_time = start_time
        self.elapsed_minutes = 0.0

    def delta_minutes(self) -> float:
        return self.tick_period_ms * self.time_scale / 60000.0

    def advance(self) -> float:
        """Moves simulated time forward by one tick. Returns the delta in minutes."""
        delta = self.delta_minutes()
        self.elapsed_minutes += delta
        return delta

    # --- LIFECYCLE ---

    def start(self) -> bool:
        if self.is_ticking:
            return False
        self.is_running = True
        self.is_paused = False
        self._schedule()
        return True

    def pause(self) -> bool:
        if not self.is_ticking:
            logger.debug("pause() ignored: clock not ticking")
            return False
        self.is_paused = True
        self._cancel()
        return True

    def resume(self) -> bool:
        if not (self.is_running and self.is_paused):
            logger.debug("resume() ignored: clock not paused")
            return False
        self.is_paused = False
        self._schedule()
        return True

    def stop(self) -> bool:
        was_running = self.is_running
        self.is_running = False
        self.is_paused = False
        self._cancel()
        return was_running

    def set_time_scale(self, scale) -> bool:
        if not is_valid_time_scale(scale):
            logger.warning(f"Ignoring invalid time scale {scale!r}")
            return False
        self.time_scale = float(scale)
        return True

    # --- TIMER ---

    def _schedule(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; ticks must be driven manually")
            return
        self._cancel()
        self._task = loop.create_task(self._run())

    def _cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        try:
            while self.is_ticking:
                await asyncio.sleep(self.tick_period_ms / 1000.0)
                if not self.is_ticking:
                    break
                try:
                    self.on_tick()
                except Exception:
                    logger.exception("Tick failed")
        except asyncio.CancelledError:
            pass
