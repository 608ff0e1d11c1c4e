"""
ClinSim: Patient State Store
============================
Canonical mutable patient state for one simulation, its trend history
(one snapshot per interval, rolling window) and the intervention audit list.
"""

from datetime import datetime
from typing import List, Optional

from constants import SIMULATION_CONSTANTS
from models import ActiveIntervention, HistorySnapshot, PatientState


class PatientStateStore:

    def __init__(self,
                 snapshot_interval_minutes: float = SIMULATION_CONSTANTS.SNAPSHOT_INTERVAL_MINUTES,
                 history_window_minutes: float = SIMULATION_CONSTANTS.HISTORY_WINDOW_MINUTES):
        self.snapshot_interval_minutes = snapshot_interval_minutes
        self.history_window_minutes = history_window_minutes
        self.state: Optional[PatientState] = None
        self.history: List[HistorySnapshot] = []
        self.interventions: List[ActiveIntervention] = []

    def reset(self, initial_state: PatientState, start_time: datetime) -> PatientState:
        """Fresh copy of the template, one baseline snapshot, empty audit list."""
        self.state = initial_state.clone()
        self.state.timestamp = start_time
        self.history = [HistorySnapshot(self.state.clone(), start_time, 0.0)]
        self.interventions = []
        return self.state

    def record(self, sim_time: datetime, elapsed_minutes: float) -> bool:
        """
        Appends a snapshot once a full interval has passed since the last one,
        then prunes anything older than the window behind the newest snapshot.
        Returns True if a snapshot was taken.
        """
        if self.state is None:
            return False
        last = self.history[-1] if self.history else None
        if last is not None and elapsed_minutes - last.elapsed_minutes < self.snapshot_interval_minutes:
            return False

        self.history.append(HistorySnapshot(self.state.clone(), sim_time, elapsed_minutes))
        cutoff = elapsed_minutes - self.history_window_minutes
        self.history = [s for s in self.history if s.elapsed_minutes >= cutoff]
        return True

    def add_intervention(self, intervention: ActiveIntervention) -> None:
        self.interventions.append(intervention)

    def active_interventions(self) -> List[ActiveIntervention]:
        return [i for i in self.interventions if i.is_active]

    def completed_interventions(self) -> List[ActiveIntervention]:
        return [i for i in self.interventions if not i.is_active]
