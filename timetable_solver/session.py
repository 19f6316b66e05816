"""
Scheduling sessions: several classes timetabled one after another against a shared roster.

Classes are solved sequentially. Each search reads an immutable snapshot of the
session's occupancy table; once a class is solved its lessons are appended to the
table so later classes treat those teacher slots as taken.
"""
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from timetable_solver.config import SolverSettings
from timetable_solver.constraints import validate_session
from timetable_solver.csp_solver import CSPSolver
from timetable_solver.domain import normalize_request
from timetable_solver.errors import InvalidRequestError, QuotaOverflowError
from timetable_solver.occupancy import OccupancyTable
from timetable_solver.reporter import build_report, failure_report
from timetable_solver.schemas import (
    Assignment, ConstraintViolation, GeneratedSchedule, ScheduleStatus, TimetableRequest
)

logger = logging.getLogger(__name__)


class SchedulingSession:
    """Owns the teacher occupancy table for one scheduling run over many classes."""

    def __init__(self, settings: Optional[SolverSettings] = None):
        self.settings = settings or SolverSettings()
        self.occupancy = OccupancyTable()
        self.results: Dict[str, GeneratedSchedule] = {}
        self._committed: Dict[str, List[Assignment]] = {}

    def reserve_existing(self, class_name: str, assignments: Iterable[Assignment]) -> None:
        """
        Marks lessons of an already persisted timetable as taken, so classes
        scheduled later in this session avoid those teacher slots.
        """
        kept = self._committed.setdefault(class_name, [])
        for assignment in assignments:
            if assignment.teacher_id is not None:
                self.occupancy.reserve(assignment.teacher_id, assignment.slot, class_name)
            kept.append(assignment)
        logger.info("Reserved %d existing lessons for class '%s'.", len(kept), class_name)

    def schedule(self, request: TimetableRequest) -> GeneratedSchedule:
        """Timetables one class. Failures come back as data, never as exceptions."""
        class_name = request.class_name
        if class_name in self._committed or class_name in self.results:
            error = InvalidRequestError([f"class '{class_name}' is already scheduled in this session"])
            return failure_report(class_name, ScheduleStatus.INVALID_REQUEST, error)

        try:
            problem = normalize_request(request)
        except QuotaOverflowError as e:
            logger.warning("Rejected '%s': %s", class_name, e)
            return failure_report(class_name, ScheduleStatus.QUOTA_OVERFLOW, e)
        except InvalidRequestError as e:
            logger.warning("Rejected '%s': %s", class_name, e)
            return failure_report(class_name, ScheduleStatus.INVALID_REQUEST, e)

        snapshot = self.occupancy.snapshot()
        outcome = CSPSolver(problem, self.settings, snapshot).solve()
        result = build_report(problem, outcome, self.settings, snapshot)

        if result.is_solved:
            self._commit(problem.class_name, outcome.assignments)
        else:
            logger.warning("Class '%s' finished as %s; its lessons are not committed to the session.",
                           problem.class_name, result.status.value)
        self.results[problem.class_name] = result
        return result

    def schedule_all(self, requests: Sequence[TimetableRequest]) -> List[GeneratedSchedule]:
        return [self.schedule(request) for request in requests]

    def validate(self) -> List[ConstraintViolation]:
        """Re-checks every committed class together for cross-class teacher conflicts."""
        return validate_session(self._committed)

    def committed_assignments(self) -> Mapping[str, List[Assignment]]:
        return {name: list(items) for name, items in self._committed.items()}

    def _commit(self, class_name: str, assignments: Sequence[Assignment]):
        for assignment in assignments:
            if assignment.teacher_id is not None:
                self.occupancy.reserve(assignment.teacher_id, assignment.slot, class_name)
        self._committed[class_name] = list(assignments)


def generate_timetable(request: TimetableRequest, settings: Optional[SolverSettings] = None,
                       existing: Optional[Mapping[str, Iterable[Assignment]]] = None) -> GeneratedSchedule:
    """
    Builds the timetable for one class.
    `existing` maps other class names to their persisted lessons, which are treated as fixed.
    """
    session = SchedulingSession(settings)
    for class_name, assignments in (existing or {}).items():
        session.reserve_existing(class_name, assignments)
    return session.schedule(request)


def generate_timetable_from_payload(payload: Mapping, settings: Optional[SolverSettings] = None) -> GeneratedSchedule:
    """Same as generate_timetable but accepts the camelCase request dictionary."""
    try:
        request = TimetableRequest.model_validate(payload)
    except ValidationError as e:
        class_name = payload.get("className") or payload.get("class_name") or ""
        problems = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        return failure_report(str(class_name), ScheduleStatus.INVALID_REQUEST, InvalidRequestError(problems))
    return generate_timetable(request, settings)
