import itertools
from collections import Counter
from types import SimpleNamespace

from timetable_solver import (
    CSPSolver, ScheduleStatus, SolverMode, SolverSettings, generate_timetable, normalize_request
)
from timetable_solver.schemas import BlockReason, FREE_LABEL, Slot, UNASSIGNED_TEACHER
from timetable_solver import csp_solver
from timetable_solver.csp_solver import lessons_fit
from tests.factories import WEEK, make_request, make_teacher


def _subject_counts(result):
    return Counter(s for s in result.schedule.values() if s != FREE_LABEL)


def _days_taught_by(result, teacher_name):
    return {Slot.parse(key).day for key, name in result.assignments.items() if name == teacher_name}


def test_part_time_teacher_only_on_available_days(bayo, mrs_x, settings):
    request = make_request(teachers=[bayo, mrs_x], subject_periods={"Mathematics": 4, "English": 5})
    result = generate_timetable(request, settings)

    assert result.status == ScheduleStatus.SOLVED
    assert result.is_solved
    assert _days_taught_by(result, "Mr. Bayo") <= {"Monday", "Wednesday"}
    assert _subject_counts(result)["Mathematics"] == 4
    assert result.validation.all_pt_on_available_days
    assert result.validation.warnings == []


def test_part_time_lessons_are_clustered_in_consecutive_periods(bayo, settings):
    request = make_request(subjects=["Mathematics"], teachers=[bayo], subject_periods={"Mathematics": 4})
    result = generate_timetable(request, settings)

    maths = sorted(key for key, subject in result.schedule.items() if subject == "Mathematics")
    assert maths == ["Monday-0", "Monday-1", "Wednesday-0", "Wednesday-1"]
    assert result.score_breakdown.pt_clustering > 0


def test_full_time_lessons_are_spread_across_days(mrs_x, settings):
    request = make_request(subjects=["English"], teachers=[mrs_x], subject_periods={"English": 5})
    result = generate_timetable(request, settings)

    assert _days_taught_by(result, "Mrs. X") == set(WEEK)


def test_quotas_are_met_exactly(settings):
    teachers = [
        make_teacher("t1", "Mr. Bayo", ["Mathematics"], part_time=True, days=["Monday", "Wednesday", "Friday"]),
        make_teacher("t2", "Mrs. Okonkwo", ["English", "Literature"]),
        make_teacher("t3", "Mr. Adebayo", ["Basic Science", "Physics"]),
        make_teacher("t4", "Ms. Ade", ["Physics"], part_time=True, days=["Tuesday"]),
    ]
    quotas = {"Mathematics": 6, "English": 6, "Literature": 3, "Basic Science": 5, "Physics": 4}
    request = make_request(subjects=list(quotas), teachers=teachers, subject_periods=quotas)
    result = generate_timetable(request, settings)

    assert result.is_solved
    assert dict(_subject_counts(result)) == quotas
    assert list(result.schedule.values()).count(FREE_LABEL) == 30 - sum(quotas.values())
    assert result.validation.no_teacher_conflicts


def test_pt_subject_with_ft_alternative_uses_available_days_only(settings):
    teachers = [
        make_teacher("t1", "Ms. Ade", ["Physics"], part_time=True, days=["Tuesday"]),
        make_teacher("t2", "Mr. Adebayo", ["Physics"]),
    ]
    request = make_request(subjects=["Physics"], teachers=teachers, subject_periods={"Physics": 3})
    result = generate_timetable(request, settings)

    assert result.is_solved
    assert _days_taught_by(result, "Ms. Ade") == {"Tuesday"}


def test_falls_back_to_full_time_teacher_when_part_time_capacity_is_short(settings):
    teachers = [
        make_teacher("t1", "Ms. Ade", ["Physics"], part_time=True, days=["Tuesday"]),
        make_teacher("t2", "Mr. Adebayo", ["Physics"]),
    ]
    request = make_request(subjects=["Physics"], teachers=teachers, periods_per_day=2,
                           subject_periods={"Physics": 3})
    result = generate_timetable(request, settings)

    assert result.is_solved
    assert set(result.assignments.values()) == {"Mr. Adebayo"}


def test_quota_overflow_is_reported_before_search(settings):
    request = make_request(subject_periods={"Mathematics": 20, "English": 15})
    result = generate_timetable(request, settings)

    assert result.status == ScheduleStatus.QUOTA_OVERFLOW
    assert result.offending_subjects == ["English"]
    assert result.schedule == {}
    assert result.assignments == {}
    assert result.nodes_explored == 0
    assert not result.validation.subject_loads_met


def test_invalid_request_is_reported_as_data(settings):
    result = generate_timetable(make_request(periods_per_day=0), settings)

    assert result.status == ScheduleStatus.INVALID_REQUEST
    assert not result.is_solved
    assert "periodsPerDay" in result.validation.warnings[0]


def test_part_time_capacity_shortfall_is_infeasible(settings):
    chemist = make_teacher("t-c", "Mrs. Eze", ["Chemistry"], part_time=True, days=["Friday"])
    request = make_request(subjects=["Chemistry"], teachers=[chemist], periods_per_day=2,
                           subject_periods={"Chemistry": 3})
    result = generate_timetable(request, settings)

    assert result.status == ScheduleStatus.INFEASIBLE
    assert len(result.unplaced) == 1
    pair = result.unplaced[0]
    assert (pair.teacher_id, pair.subject) == ("t-c", "Chemistry")
    assert pair.reason == BlockReason.INSUFFICIENT_AVAILABLE_DAY_CAPACITY
    assert pair.placed == 2
    assert "Friday" in pair.message
    assert not result.validation.pt_teachers_scheduled_correctly
    assert result.validation.all_pt_on_available_days
    assert not result.validation.subject_loads_met
    assert _days_taught_by(result, "Mrs. Eze") == {"Friday"}


def test_weakening_constraints_keeps_feasible_requests_feasible(settings):
    chemist = make_teacher("t-c", "Mrs. Eze", ["Chemistry"], part_time=True, days=["Friday"])
    tight = make_request(subjects=["Chemistry"], teachers=[chemist], periods_per_day=2,
                         subject_periods={"Chemistry": 3})
    roomier = tight.model_copy(update={"periods_per_day": 3})
    wider = roomier.model_copy(update={"days": WEEK + ["Saturday"]})

    assert generate_timetable(tight, settings).status == ScheduleStatus.INFEASIBLE
    assert generate_timetable(roomier, settings).is_solved
    assert generate_timetable(wider, settings).is_solved


def test_exhausted_search_reports_infeasible_with_partial_schedule(settings):
    teachers = [
        make_teacher("t1", "Mr. Bayo", ["Mathematics"], part_time=True, days=["Monday"]),
        make_teacher("t2", "Ms. Ade", ["Physics"], part_time=True, days=["Monday"]),
    ]
    request = make_request(subjects=["Mathematics", "Physics"], teachers=teachers, periods_per_day=2,
                           subject_periods={"Mathematics": 2, "Physics": 1})
    result = generate_timetable(request, settings)

    assert result.status == ScheduleStatus.INFEASIBLE
    assert [(u.teacher_id, u.subject) for u in result.unplaced] == [("t2", "Physics")]
    assert result.unplaced[0].reason == BlockReason.CONFLICTING_REQUIREMENTS
    assert result.validation.no_teacher_conflicts
    assert not result.validation.subject_loads_met
    assert not result.validation.pt_teachers_scheduled_correctly
    assert _subject_counts(result) == Counter({"Mathematics": 2})


def test_budget_exhaustion_returns_best_partial_flagged_as_timeout(mrs_x):
    request = make_request(subjects=["English"], teachers=[mrs_x], subject_periods={"English": 10})
    result = generate_timetable(request, SolverSettings(node_budget=3))

    assert result.status == ScheduleStatus.SEARCH_TIMED_OUT
    assert _subject_counts(result)["English"] == 3
    assert result.unplaced[0].reason == BlockReason.SEARCH_TIMED_OUT
    assert result.unplaced[0].placed == 3
    assert not result.validation.subject_loads_met
    assert result.validation.no_teacher_conflicts
    assert "does not prove" in result.validation.warnings[-1]


def test_identical_input_gives_identical_output(bayo, mrs_x, settings):
    request = make_request(teachers=[bayo, mrs_x], subject_periods={"Mathematics": 4, "English": 5},
                           subject_time_of_day={"Mathematics": "Morning"})
    first = generate_timetable(request, settings)
    second = generate_timetable(request, settings)

    assert first.model_dump() == second.model_dump()


def test_subject_without_teacher_is_scheduled_as_tbd(bayo, settings):
    request = make_request(subjects=["Mathematics", "Music"], teachers=[bayo],
                           subject_periods={"Mathematics": 2, "Music": 2})
    result = generate_timetable(request, settings)

    assert result.is_solved
    music = [key for key, subject in result.schedule.items() if subject == "Music"]
    assert len(music) == 2
    assert all(result.assignments[key] == UNASSIGNED_TEACHER for key in music)
    assert any("Music" in n for n in result.notices)


def test_morning_subjects_land_in_early_periods(settings):
    teacher = make_teacher("t1", "Mrs. Okonkwo", ["Mathematics"])
    request = make_request(subjects=["Mathematics"], teachers=[teacher], subject_periods={"Mathematics": 5},
                           subject_time_of_day={"Mathematics": "Morning"})
    result = generate_timetable(request, settings)

    periods = [Slot.parse(key).period for key, s in result.schedule.items() if s == "Mathematics"]
    assert all(p < 3 for p in periods)


def test_part_time_subjects_are_ordered_first(bayo, mrs_x):
    problem = normalize_request(make_request(subjects=["English", "Mathematics"], teachers=[mrs_x, bayo],
                                             subject_periods={"English": 8, "Mathematics": 2}))
    solver = CSPSolver(problem)
    assert [u.subject.name for u in solver.units] == ["Mathematics", "English"]


def test_optimize_mode_never_scores_below_find_first(bayo):
    request = make_request(subjects=["Mathematics"], teachers=[bayo], periods_per_day=2,
                           subject_periods={"Mathematics": 2})
    first = generate_timetable(request, SolverSettings(mode=SolverMode.FIND_FIRST))
    best = generate_timetable(request, SolverSettings(mode=SolverMode.OPTIMIZE))

    assert best.is_solved
    assert best.score >= first.score


def test_lessons_fit_needs_a_slot_of_its_own_for_every_lesson():
    monday = [(0, 0), (0, 1)]
    assert lessons_fit([(1, monday), (1, [(0, 0)])])
    assert not lessons_fit([(2, monday), (1, monday)])
    assert lessons_fit([])


def test_assigned_teacher_takes_the_subject_ahead_of_part_time_staff(bayo, settings):
    adebayo = make_teacher("t-a", "Mr. Adebayo", ["Mathematics"])
    request = make_request(subjects=["Mathematics"], teachers=[bayo, adebayo], subject_periods={"Mathematics": 4},
                           subject_teachers={"Mathematics": "t-a"})
    result = generate_timetable(request, settings)

    assert result.is_solved
    assert set(result.assignments.values()) == {"Mr. Adebayo"}


def test_assigned_teacher_without_capacity_falls_back_with_notice(settings):
    teachers = [
        make_teacher("t1", "Ms. Ade", ["Physics"], part_time=True, days=["Tuesday"]),
        make_teacher("t2", "Mr. Adebayo", ["Physics"]),
    ]
    request = make_request(subjects=["Physics"], teachers=teachers, periods_per_day=2,
                           subject_periods={"Physics": 3}, subject_teachers={"Physics": "Ms. Ade"})
    result = generate_timetable(request, settings)

    assert result.is_solved
    assert set(result.assignments.values()) == {"Mr. Adebayo"}
    assert any("Ms. Ade" in n for n in result.notices)


def test_wall_clock_timeout_ends_the_search(mrs_x, monkeypatch):
    ticks = itertools.count(0.0, 1.0)
    monkeypatch.setattr(csp_solver, "time", SimpleNamespace(monotonic=lambda: next(ticks)))
    request = make_request(subjects=["English"], teachers=[mrs_x], subject_periods={"English": 10})
    result = generate_timetable(request, SolverSettings(node_budget=None, timeout_seconds=2.5))

    assert result.status == ScheduleStatus.SEARCH_TIMED_OUT
    assert _subject_counts(result)["English"] == 2
    assert result.unplaced[0].reason == BlockReason.SEARCH_TIMED_OUT
