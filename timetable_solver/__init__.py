import logging

from timetable_solver.config import ScoringWeights, SolverSettings, load_settings
from timetable_solver.constraints import validate_schedule, validate_session
from timetable_solver.csp_solver import CSPSolver, SearchOutcome
from timetable_solver.domain import TimetableProblem, normalize_request
from timetable_solver.errors import (
    DataLoadError, InvalidRequestError, QuotaOverflowError, TeacherConflictError, TimetableError
)
from timetable_solver.occupancy import OccupancyTable
from timetable_solver.schemas import (
    Assignment, ConstraintViolation, GeneratedSchedule, ScheduleStatus, Slot, SolverMode,
    TeacherEntry, TimeOfDay, TimetableRequest, UnplacedPair, ValidationReport
)
from timetable_solver.scoring import score_schedule
from timetable_solver.session import (
    SchedulingSession, generate_timetable, generate_timetable_from_payload
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "Assignment", "CSPSolver", "ConstraintViolation", "DataLoadError", "GeneratedSchedule",
    "InvalidRequestError", "OccupancyTable", "QuotaOverflowError", "ScheduleStatus",
    "SchedulingSession", "ScoringWeights", "SearchOutcome", "Slot", "SolverMode", "SolverSettings",
    "TeacherConflictError", "TeacherEntry", "TimeOfDay", "TimetableError", "TimetableProblem",
    "TimetableRequest", "UnplacedPair", "ValidationReport", "generate_timetable",
    "generate_timetable_from_payload", "load_settings", "normalize_request", "score_schedule",
    "validate_schedule", "validate_session",
]
