import logging
from typing import Dict, List, Optional, Sequence

from timetable_solver.config import SolverSettings
from timetable_solver.constraints import Occupied, validate_schedule
from timetable_solver.csp_solver import SearchOutcome
from timetable_solver.domain import TimetableProblem
from timetable_solver.errors import QuotaOverflowError, TimetableError
from timetable_solver.schemas import (
    Assignment, ConstraintRule, FREE_LABEL, GeneratedSchedule, ScheduleStatus,
    UNASSIGNED_TEACHER, ValidationReport
)
from timetable_solver.scoring import score_schedule

logger = logging.getLogger(__name__)


def _format_maps(problem: TimetableProblem, assignments: Sequence[Assignment]):
    by_key = {a.slot.key: a for a in assignments}
    schedule: Dict[str, str] = {}
    teacher_map: Dict[str, str] = {}
    for slot in problem.all_slots():
        assignment = by_key.get(slot.key)
        if assignment is None:
            schedule[slot.key] = FREE_LABEL
            continue
        schedule[slot.key] = assignment.subject
        teacher_map[slot.key] = assignment.teacher_name or UNASSIGNED_TEACHER
    return schedule, teacher_map


def build_report(
    problem: TimetableProblem,
    outcome: SearchOutcome,
    settings: Optional[SolverSettings] = None,
    occupied: Optional[Occupied] = None,
) -> GeneratedSchedule:
    """
    Assembles the public result. The validation flags are recomputed from the
    finished schedule by the constraint validator, never taken from the search.
    """
    settings = settings or SolverSettings()
    complete = outcome.status == ScheduleStatus.SOLVED
    violations = validate_schedule(problem, outcome.assignments, occupied, complete=complete)
    if complete and violations:
        logger.error("Schedule for '%s' failed verification with %d violation(s).",
                     problem.class_name, len(violations))

    part_time_ids = {t.id for t in problem.teachers if t.is_part_time}
    rules = {v.rule for v in violations}
    pt_availability_ok = not any(
        v.rule == ConstraintRule.AVAILABILITY and v.teacher_id in part_time_ids for v in violations
    )
    pt_conflict_free = not any(
        v.rule == ConstraintRule.DOUBLE_BOOKING and v.teacher_id in part_time_ids for v in violations
    )
    pt_all_placed = not any(u.teacher_id in part_time_ids for u in outcome.unplaced)
    quota_ok = complete and not outcome.unplaced and not (
        rules & {ConstraintRule.QUOTA_CEILING, ConstraintRule.QUOTA_FLOOR}
    )

    warnings: List[str] = [u.message for u in outcome.unplaced]
    warnings += [v.message for v in violations]
    if outcome.status == ScheduleStatus.SEARCH_TIMED_OUT:
        warnings.append(
            f"Search budget exhausted after {outcome.nodes_explored} nodes; this is the best partial "
            f"timetable found and does not prove that no full timetable exists."
        )

    validation = ValidationReport(
        pt_teachers_scheduled_correctly=pt_availability_ok and pt_conflict_free and pt_all_placed,
        all_pt_on_available_days=pt_availability_ok,
        no_teacher_conflicts=not (rules & {ConstraintRule.DOUBLE_BOOKING, ConstraintRule.DUPLICATE_SLOT}),
        subject_loads_met=quota_ok,
        warnings=warnings,
    )

    schedule, teacher_map = _format_maps(problem, outcome.assignments)
    breakdown = score_schedule(problem, outcome.assignments, settings)
    return GeneratedSchedule(
        class_name=problem.class_name,
        status=outcome.status,
        schedule=schedule,
        assignments=teacher_map,
        validation=validation,
        score=breakdown.total,
        score_breakdown=breakdown,
        unplaced=outcome.unplaced,
        violations=violations,
        notices=list(problem.notices) + outcome.notices,
        nodes_explored=outcome.nodes_explored,
    )


def failure_report(class_name: str, status: ScheduleStatus, error: Exception) -> GeneratedSchedule:
    """A result for requests rejected before any search: no assignments and every flag false."""
    if isinstance(error, TimetableError):
        message = str(error)
    else:
        message = f"Invalid timetable request: {error}"
    offending = error.subjects if isinstance(error, QuotaOverflowError) else []
    return GeneratedSchedule(
        class_name=class_name,
        status=status,
        validation=ValidationReport(warnings=[message]),
        offending_subjects=offending,
    )
