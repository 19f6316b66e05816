import json
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from timetable_solver.errors import DataLoadError
from timetable_solver.schemas import SolverMode


class ScoringWeights(BaseModel):
    """Weights applied to each soft-constraint component of the quality score."""
    model_config = ConfigDict(frozen=True)

    pt_clustering: float = Field(3.0, ge=0, description="Reward per back-to-back pair of a part-time teacher's lessons.")
    ft_spread: float = Field(2.0, ge=0, description="Reward per extra day a full-time teacher's subject is spread over.")
    time_of_day_fit: float = Field(1.0, ge=0, description="Reward per lesson placed in its preferred band.")
    same_day_repetition: float = Field(4.0, ge=0, description="Penalty per lesson beyond the second of a subject in one day.")
    preferred_slot: float = Field(2.0, ge=0, description="Reward per lesson placed in one of its preferred slots.")


class SolverSettings(BaseModel):
    """Search budget, mode and scoring configuration for a scheduling run."""
    model_config = ConfigDict(frozen=True)

    mode: SolverMode = SolverMode.FIND_FIRST
    node_budget: Optional[int] = Field(50_000, gt=0, description="Maximum number of committed placements per class.")
    timeout_seconds: Optional[float] = Field(None, gt=0, description="Wall-clock limit per class; None disables it.")
    max_solutions: Optional[int] = Field(None, gt=0, description="Stop OPTIMIZE mode after this many feasible schedules.")
    morning_periods: Optional[int] = Field(None, ge=0, description="Periods counted as morning; defaults to half the day rounded up.")
    weights: ScoringWeights = Field(default_factory=ScoringWeights)

    def morning_boundary(self, periods_per_day: int) -> int:
        if self.morning_periods is not None:
            return self.morning_periods
        return (periods_per_day + 1) // 2


def load_settings(file_path: Union[str, Path]) -> SolverSettings:
    """Reads solver settings from a JSON file."""
    try:
        raw = Path(file_path).expanduser().read_text()
        return SolverSettings.model_validate(json.loads(raw))
    except Exception as e:
        raise DataLoadError(f"Failed to load solver settings from {file_path}. Reason: {e}")
