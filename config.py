"""
ClinSim Configuration
=====================
Runtime knobs, read from CLINSIM_* environment variables or a .env file.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from constants import SIMULATION_CONSTANTS


class SimulationSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CLINSIM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Clock
    tick_period_ms: int = Field(default=SIMULATION_CONSTANTS.DEFAULT_TICK_PERIOD_MS, gt=0)
    default_time_scale: float = Field(default=SIMULATION_CONSTANTS.DEFAULT_TIME_SCALE, ge=0)

    # History
    snapshot_interval_minutes: float = Field(default=SIMULATION_CONSTANTS.SNAPSHOT_INTERVAL_MINUTES, gt=0)
    history_window_hours: float = Field(default=SIMULATION_CONSTANTS.HISTORY_WINDOW_MINUTES / 60, gt=0)

    # None = fresh jitter every run; set for reproducible replays
    noise_seed: Optional[int] = None

    log_level: str = "INFO"

    @property
    def history_window_minutes(self) -> float:
        return self.history_window_hours * 60


@lru_cache()
def get_settings() -> SimulationSettings:
    """Cached settings instance."""
    return SimulationSettings()
