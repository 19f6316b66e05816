from collections import defaultdict
from typing import Dict, List, Sequence, Set, Tuple

from timetable_solver.config import ScoringWeights, SolverSettings
from timetable_solver.constraints import (
    Grid, LESSON_SUBJECT, LESSON_TEACHER, assignments_to_grid
)
from timetable_solver.domain import TimetableProblem
from timetable_solver.schemas import Assignment, ScoreBreakdown, TimeOfDay

# --- Soft Constraint Scoring ---

def score_grid(problem: TimetableProblem, grid: Grid, settings: SolverSettings) -> ScoreBreakdown:
    """
    The main orchestrator for scoring a complete or partial schedule.
    Higher is better; identical input always yields an identical score.
    """
    weights: ScoringWeights = settings.weights
    teachers = {t.id: t for t in problem.teachers}

    teacher_day_periods: Dict[Tuple[str, int], List[int]] = defaultdict(list)
    teacher_subject_days: Dict[Tuple[str, str], Set[int]] = defaultdict(set)
    subject_day_counts: Dict[Tuple[str, int], int] = defaultdict(int)
    for (day, period), lesson in sorted(grid.items()):
        teacher_id = lesson[LESSON_TEACHER]
        subject_day_counts[(lesson[LESSON_SUBJECT], day)] += 1
        if teacher_id is None or teacher_id not in teachers:
            continue
        if teachers[teacher_id].is_part_time:
            teacher_day_periods[(teacher_id, day)].append(period)
        else:
            teacher_subject_days[(teacher_id, lesson[LESSON_SUBJECT])].add(day)

    pt_clustering = weights.pt_clustering * _count_adjacent_pairs(teacher_day_periods)
    ft_spread = weights.ft_spread * sum(len(days) - 1 for days in teacher_subject_days.values())
    time_fit = weights.time_of_day_fit * _count_time_of_day_fits(problem, grid, settings.morning_boundary(problem.periods_per_day))
    repetition = weights.same_day_repetition * -sum(count - 2 for count in subject_day_counts.values() if count >= 3)
    preferred = weights.preferred_slot * _count_preferred_slot_hits(problem, grid)

    return ScoreBreakdown(
        pt_clustering=pt_clustering,
        ft_spread=ft_spread,
        time_of_day_fit=time_fit,
        same_day_repetition=repetition,
        preferred_slot=preferred,
        total=pt_clustering + ft_spread + time_fit + repetition + preferred,
    )

def score_schedule(problem: TimetableProblem, assignments: Sequence[Assignment], settings: SolverSettings) -> ScoreBreakdown:
    return score_grid(problem, assignments_to_grid(problem, assignments), settings)

def _count_adjacent_pairs(teacher_day_periods: Dict[Tuple[str, int], List[int]]) -> int:
    pairs = 0
    for periods in teacher_day_periods.values():
        ordered = sorted(periods)
        pairs += sum(1 for a, b in zip(ordered, ordered[1:]) if b - a == 1)
    return pairs

def _count_time_of_day_fits(problem: TimetableProblem, grid: Grid, boundary: int) -> int:
    bands = {s.name: s.time_of_day for s in problem.subjects}
    fits = 0
    for (_, period), lesson in grid.items():
        band = bands.get(lesson[LESSON_SUBJECT], TimeOfDay.EITHER)
        if band == TimeOfDay.MORNING and period < boundary:
            fits += 1
        elif band == TimeOfDay.AFTERNOON and period >= boundary:
            fits += 1
    return fits

def time_of_day_misfit(band: TimeOfDay, period: int, boundary: int) -> int:
    if band == TimeOfDay.MORNING:
        return 1 if period >= boundary else 0
    if band == TimeOfDay.AFTERNOON:
        return 1 if period < boundary else 0
    return 0

def _count_preferred_slot_hits(problem: TimetableProblem, grid: Grid) -> int:
    preferred = {
        s.name: {(problem.day_index(slot.day), slot.period) for slot in s.preferred_slots}
        for s in problem.subjects
    }
    return sum(1 for slot, lesson in grid.items() if slot in preferred.get(lesson[LESSON_SUBJECT], ()))
