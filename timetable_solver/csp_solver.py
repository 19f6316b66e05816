import logging
import time
from collections import Counter, defaultdict
from typing import DefaultDict, Dict, FrozenSet, Iterable, List, NamedTuple, Optional, Sequence, Set, Tuple

from pydantic import BaseModel, Field

from timetable_solver.config import SolverSettings
from timetable_solver.constraints import (
    Grid, LESSON_SUBJECT, Occupied, SlotKey, grid_to_assignments, is_consistent
)
from timetable_solver.domain import TimetableProblem
from timetable_solver.schemas import (
    Assignment, BlockReason, ScheduleStatus, SolverMode, Subject, Teacher,
    UNASSIGNED_TEACHER, UnplacedPair
)
from timetable_solver.scoring import score_grid, time_of_day_misfit

logger = logging.getLogger(__name__)

NO_SLOT: SlotKey = (-1, -1)


class SchedulingUnit(NamedTuple):
    """One subject of the class together with the teachers that may take it."""
    subject: Subject
    candidates: Tuple[Optional[Teacher], ...]
    position: int
    preferred: FrozenSet[SlotKey]


class SearchOutcome(BaseModel):
    """What the search hands to the reporter: the chosen schedule and what is missing from it."""
    status: ScheduleStatus
    assignments: List[Assignment] = Field(default_factory=list)
    unplaced: List[UnplacedPair] = Field(default_factory=list)
    notices: List[str] = Field(default_factory=list)
    nodes_explored: int = 0
    solutions_found: int = 0


def lessons_fit(demands: Sequence[Tuple[int, Sequence[SlotKey]]]) -> bool:
    """
    True if every demand (lessons needed, slots it may use) can be met at once
    with no slot used twice. Grows a matching one lesson at a time along augmenting paths.
    """
    owner: Dict[SlotKey, int] = {}

    def augment(index: int, seen: Set[SlotKey]) -> bool:
        options = demands[index][1]
        for slot in options:
            if slot not in owner:
                owner[slot] = index
                return True
        for slot in options:
            if slot in seen or owner[slot] == index:
                continue
            seen.add(slot)
            if augment(owner[slot], seen):
                owner[slot] = index
                return True
        return False

    for index, (needed, _) in enumerate(demands):
        for _ in range(needed):
            if not augment(index, set()):
                return False
    return True


class CSPSolver:
    """
    The main engine for solving one class's timetable Constraint Satisfaction Problem.
    Part-time subjects are placed first, every step is checked against the hard
    constraints, and the search undoes its own placements when a branch fails.
    """

    def __init__(self, problem: TimetableProblem, settings: Optional[SolverSettings] = None,
                 occupied: Optional[Occupied] = None):
        """
        Initializes the solver with all necessary data and prepares
        internal data structures for efficient lookups.
        `occupied` is a read-only snapshot of teacher slots held by other classes.
        """
        self.problem = problem
        self.settings = settings or SolverSettings()
        self.occupied = occupied or {}

        self._boundary = self.settings.morning_boundary(problem.periods_per_day)
        self._teachers: Dict[str, Teacher] = {}
        self._teacher_days: Dict[str, Tuple[int, ...]] = {}
        self._external: Dict[str, Set[SlotKey]] = {}

        self.units: List[SchedulingUnit] = []
        self.blocked_units: List[SchedulingUnit] = []
        self.notices: List[str] = []

        self._grid: Grid = {}
        self._teacher_slots: Dict[str, Set[SlotKey]] = {}
        self._placed: DefaultDict[str, int] = defaultdict(int)
        self._lesson_slots: DefaultDict[str, List[SlotKey]] = defaultdict(list)
        self._subject_day_counts: DefaultDict[Tuple[str, int], int] = defaultdict(int)
        self._binding: Dict[str, Optional[Teacher]] = {}

        self.best_assignment: Optional[Grid] = None
        self.best_score: float = float('-inf')
        self.search_terminated: bool = False
        self.budget_exhausted: bool = False
        self.nodes_explored: int = 0
        self.solutions_found: int = 0
        self._best_partial: Optional[Grid] = None
        self._best_partial_rank: Tuple[int, float] = (-1, float('-inf'))
        self._start_time: float = 0.0

        self._initialize_internal_lookups()

    def solve(self) -> SearchOutcome:
        """
        The main public entry point to start the solving process.
        """
        lessons = sum(u.subject.quota for u in self.units)
        logger.info("Starting solver for class '%s' in '%s' mode (%d lessons to place, %d subjects blocked).",
                    self.problem.class_name, self.settings.mode.value, lessons, len(self.blocked_units))
        self._start_time = time.monotonic()
        self._load_state({})
        self._backtrack(0)
        return self._build_outcome()

    # --- Setup ---

    def _initialize_internal_lookups(self):
        problem = self.problem
        day_lookup = {day: i for i, day in enumerate(problem.days)}
        folded_days = {day.casefold(): i for i, day in enumerate(problem.days)}

        for teacher in problem.teachers:
            self._teachers[teacher.id] = teacher
            self._teacher_days[teacher.id] = tuple(day_lookup[d] for d in teacher.available_days)
            self._external[teacher.id] = set()

        for teacher_id, day, period in self.occupied:
            day_index = folded_days.get(day.casefold())
            if teacher_id in self._external and day_index is not None and period < problem.periods_per_day:
                self._external[teacher_id].add((day_index, period))

        for position, subject in enumerate(problem.subjects):
            if subject.quota == 0:
                continue
            preferred = frozenset((day_lookup[s.day], s.period) for s in subject.preferred_slots)
            qualified = problem.qualified_teachers(subject.name)
            if not qualified:
                self.notices.append(
                    f"No qualified teacher for '{subject.name}'; its lessons are marked {UNASSIGNED_TEACHER}.")
                self.units.append(SchedulingUnit(subject, (None,), position, preferred))
                continue

            ordered = sorted(qualified, key=lambda t: (t.id != subject.teacher_id, not t.is_part_time))
            viable = [t for t in ordered if self._initial_capacity(t) >= subject.quota]
            if subject.teacher_id is not None and ordered[0] not in viable:
                self.notices.append(
                    f"{ordered[0].name} cannot take all {subject.quota} '{subject.name}' periods; "
                    f"another qualified teacher is used where possible.")
            if viable:
                self.units.append(SchedulingUnit(subject, tuple(viable), position, preferred))
            else:
                logger.info("'%s' cannot meet its quota of %d with any qualified teacher.", subject.name, subject.quota)
                self.blocked_units.append(SchedulingUnit(subject, tuple(ordered), position, preferred))

        self.units.sort(key=self._unit_order)

    def _raw_capacity(self, teacher: Teacher) -> int:
        return len(self._teacher_days[teacher.id]) * self.problem.periods_per_day

    def _initial_capacity(self, teacher: Teacher) -> int:
        return self._raw_capacity(teacher) - len(self._external[teacher.id])

    def _unit_order(self, unit: SchedulingUnit) -> Tuple[int, int, int, int]:
        """Most constrained first: part-time subjects by tightest capacity, then by larger quota."""
        lead = unit.candidates[0]
        if lead is None:
            return (2, 0, -unit.subject.quota, unit.position)
        if lead.is_part_time:
            return (0, self._initial_capacity(lead), -unit.subject.quota, unit.position)
        return (1, 0, -unit.subject.quota, unit.position)

    # --- Search State ---

    def _load_state(self, grid: Grid):
        self._grid = {}
        self._teacher_slots = {tid: set(slots) for tid, slots in self._external.items()}
        self._placed = defaultdict(int)
        self._lesson_slots = defaultdict(list)
        self._subject_day_counts = defaultdict(int)
        self._binding = {}
        for slot, (subject_name, teacher_id) in sorted(grid.items()):
            teacher = self._teachers.get(teacher_id) if teacher_id else None
            self._binding.setdefault(subject_name, teacher)
            self._commit(subject_name, teacher, slot)

    def _commit(self, subject_name: str, teacher: Optional[Teacher], slot: SlotKey):
        self._grid[slot] = (subject_name, teacher.id if teacher else None)
        if teacher is not None:
            self._teacher_slots[teacher.id].add(slot)
        self._placed[subject_name] += 1
        self._lesson_slots[subject_name].append(slot)
        self._subject_day_counts[(subject_name, slot[0])] += 1

    def _undo(self, subject_name: str, teacher: Optional[Teacher], slot: SlotKey):
        del self._grid[slot]
        if teacher is not None:
            self._teacher_slots[teacher.id].discard(slot)
        self._placed[subject_name] -= 1
        self._lesson_slots[subject_name].pop()
        self._subject_day_counts[(subject_name, slot[0])] -= 1

    # --- Candidate Generation ---

    def _candidate_slots(self, unit: SchedulingUnit, teacher: Optional[Teacher], ordered: bool = True) -> List[SlotKey]:
        """
        Free slots for the next lesson of a unit, best first.
        Lessons of one subject are interchangeable, so with `ordered` each one
        must come after the previous lesson of that subject.
        """
        lessons = self._lesson_slots[unit.subject.name]
        after = lessons[-1] if (ordered and lessons) else NO_SLOT
        candidates = self._open_slots(teacher, after)
        candidates.sort(key=lambda slot: self._slot_preference(unit, teacher, slot))
        return candidates

    def _open_slots(self, teacher: Optional[Teacher], after: SlotKey) -> List[SlotKey]:
        """Slots after `after` that are free in this class and, if given, for the teacher too."""
        days: Iterable[int] = self._teacher_days[teacher.id] if teacher else range(len(self.problem.days))
        busy = self._teacher_slots[teacher.id] if teacher else ()
        return [
            (d, p) for d in days for p in range(self.problem.periods_per_day)
            if (d, p) > after and (d, p) not in self._grid and (d, p) not in busy
        ]

    def _slot_preference(self, unit: SchedulingUnit, teacher: Optional[Teacher], slot: SlotKey) -> Tuple[int, ...]:
        day, period = slot
        name = unit.subject.name
        preferred = 0 if slot in unit.preferred else 1
        same_day = self._subject_day_counts[(name, day)]
        overload = 1 if same_day >= 2 else 0
        misfit = time_of_day_misfit(unit.subject.time_of_day, period, self._boundary)

        if teacher is not None and teacher.is_part_time:
            busy = self._teacher_slots[teacher.id]
            adjacent = 0 if ((day, period - 1) in busy or (day, period + 1) in busy) else 1
            new_day = 0 if any((day, p) in busy for p in range(self.problem.periods_per_day)) else 1
            return (preferred, overload, adjacent, new_day, misfit, day, period)

        repeat_day = 1 if same_day else 0
        return (preferred, overload, repeat_day, misfit, day, period)

    def _forward_check(self, unit_pos: int) -> bool:
        """
        Prunes a branch as soon as the remaining lessons can no longer share out the
        class's free slots. Every lesson still to place needs a slot of its own where
        its teacher is free as well; a bipartite matching between the two decides it.
        Subjects without a bound teacher may use a slot open to any of their candidates.
        """
        demands: List[Tuple[int, List[SlotKey]]] = []
        for unit in self.units[unit_pos:]:
            name = unit.subject.name
            remaining = unit.subject.quota - self._placed[name]
            if remaining <= 0:
                continue
            lessons = self._lesson_slots[name]
            after = lessons[-1] if lessons else NO_SLOT
            teachers = (self._binding[name],) if name in self._binding else unit.candidates
            options = sorted({slot for t in teachers for slot in self._open_slots(t, after)})
            if len(options) < remaining:
                return False
            demands.append((remaining, options))
        return lessons_fit(demands)

    # --- Backtracking ---

    def _budget_spent(self) -> bool:
        if self.settings.node_budget is not None and self.nodes_explored >= self.settings.node_budget:
            return True
        if self.settings.timeout_seconds is not None:
            return time.monotonic() - self._start_time > self.settings.timeout_seconds
        return False

    def _backtrack(self, unit_pos: int) -> bool:
        """
        The core recursive backtracking algorithm, supporting both solver modes.
        """
        if self.search_terminated:
            return False
        if unit_pos == len(self.units):
            return self._record_solution()

        unit = self.units[unit_pos]
        name = unit.subject.name
        if self._placed[name] >= unit.subject.quota:
            return self._backtrack(unit_pos + 1)

        if self._budget_spent():
            logger.info("--- Search budget reached after %d nodes! Terminating search. ---", self.nodes_explored)
            self.search_terminated = True
            self.budget_exhausted = True
            self._consider_partial()
            return False

        fresh = name not in self._binding
        teachers = unit.candidates if fresh else (self._binding[name],)
        expanded = False

        for teacher in teachers:
            if fresh:
                self._binding[name] = teacher
            for slot in self._candidate_slots(unit, teacher):
                is_valid, rule = is_consistent(self.problem, slot, unit.subject, teacher,
                                               self._grid, self._teacher_slots, self._placed)
                if not is_valid:
                    logger.debug("Rejected %s at %s: %s", name, slot, rule.value)
                    continue

                self._commit(name, teacher, slot)
                self.nodes_explored += 1
                if self._forward_check(unit_pos):
                    expanded = True
                    if self._backtrack(unit_pos):
                        return True
                self._undo(name, teacher, slot)
                if self.search_terminated:
                    break
            if fresh:
                del self._binding[name]
            if self.search_terminated:
                break

        if not expanded:
            self._consider_partial()
        return False

    def _record_solution(self) -> bool:
        self.solutions_found += 1
        score = score_grid(self.problem, self._grid, self.settings).total
        if self.best_assignment is None or score > self.best_score:
            self.best_assignment = dict(self._grid)
            self.best_score = score
            if self.settings.mode == SolverMode.OPTIMIZE:
                logger.info("Found a new best solution with score: %.2f (Elapsed time: %.2fs)",
                            score, time.monotonic() - self._start_time)

        if self.settings.mode == SolverMode.FIND_FIRST:
            return True
        if self.settings.max_solutions is not None and self.solutions_found >= self.settings.max_solutions:
            self.search_terminated = True
        return False

    def _consider_partial(self):
        """Keeps the deepest dead end seen so far, ranked by lessons placed and then by score."""
        placed = len(self._grid)
        if placed < self._best_partial_rank[0]:
            return
        rank = (placed, score_grid(self.problem, self._grid, self.settings).total)
        if rank > self._best_partial_rank:
            self._best_partial_rank = rank
            self._best_partial = dict(self._grid)

    # --- Outcome ---

    def _build_outcome(self) -> SearchOutcome:
        notices = list(self.notices)
        if self.best_assignment is not None:
            grid = dict(self.best_assignment)
            status = ScheduleStatus.INFEASIBLE if self.blocked_units else ScheduleStatus.SOLVED
            if self.budget_exhausted:
                notices.append(f"Optimization stopped after {self.nodes_explored} nodes; "
                               f"the best of {self.solutions_found} schedules found is returned.")
        else:
            grid = dict(self._best_partial or {})
            if self.budget_exhausted and not self.blocked_units:
                status = ScheduleStatus.SEARCH_TIMED_OUT
            else:
                status = ScheduleStatus.INFEASIBLE

        if status == ScheduleStatus.INFEASIBLE:
            grid = self._fill_greedily(grid)
        else:
            self._load_state(grid)

        logger.info("Solver finished for class '%s': %s after %d nodes.",
                    self.problem.class_name, status.value, self.nodes_explored)
        return SearchOutcome(
            status=status,
            assignments=grid_to_assignments(self.problem, grid),
            unplaced=self._collect_unplaced(status),
            notices=notices,
            nodes_explored=self.nodes_explored,
            solutions_found=self.solutions_found,
        )

    def _fill_greedily(self, grid: Grid) -> Grid:
        """Tops up a partial schedule with whatever lessons still fit, without backtracking."""
        self._load_state(grid)
        for unit in sorted(self.units + self.blocked_units, key=self._unit_order):
            name = unit.subject.name
            quota = unit.subject.quota
            if self._placed[name] >= quota:
                continue
            if name in self._binding:
                teacher = self._binding[name]
            else:
                teacher = max(unit.candidates, key=lambda t: min(len(self._open_slots(t, NO_SLOT)), quota))
            for slot in self._candidate_slots(unit, teacher, ordered=False):
                if self._placed[name] >= quota:
                    break
                is_valid, _ = is_consistent(self.problem, slot, unit.subject, teacher,
                                            self._grid, self._teacher_slots, self._placed)
                if is_valid:
                    self._binding.setdefault(name, teacher)
                    self._commit(name, teacher, slot)
        return dict(self._grid)

    def _collect_unplaced(self, status: ScheduleStatus) -> List[UnplacedPair]:
        counts = Counter(lesson[LESSON_SUBJECT] for lesson in self._grid.values())
        unplaced = []
        for unit in sorted(self.units + self.blocked_units, key=lambda u: u.position):
            placed = counts[unit.subject.name]
            if placed >= unit.subject.quota:
                continue
            if unit.subject.name in self._binding:
                teacher = self._binding[unit.subject.name]
            else:
                teacher = max(unit.candidates, key=lambda t: self._raw_capacity(t) if t else 0)
            reason, message = self._diagnose(unit, teacher, placed, status)
            unplaced.append(UnplacedPair(
                teacher_id=teacher.id if teacher else None,
                teacher_name=teacher.name if teacher else None,
                subject=unit.subject.name,
                required=unit.subject.quota,
                placed=placed,
                reason=reason,
                message=message,
            ))
        return unplaced

    def _diagnose(self, unit: SchedulingUnit, teacher: Optional[Teacher], placed: int,
                  status: ScheduleStatus) -> Tuple[BlockReason, str]:
        subject = unit.subject
        missing = subject.quota - placed
        if teacher is None:
            return (BlockReason.CONFLICTING_REQUIREMENTS,
                    f"Could not place {missing} of {subject.quota} {subject.name} periods: no free class slot remained.")

        days = "/".join(teacher.available_days)
        raw = self._raw_capacity(teacher)
        kind = "PT" if teacher.is_part_time else "FT"
        if raw < subject.quota:
            return (BlockReason.INSUFFICIENT_AVAILABLE_DAY_CAPACITY,
                    f"Could not place {teacher.name} ({kind}) for {subject.name}: {subject.quota} periods are "
                    f"required but only {raw} exist on {days} ({len(teacher.available_days)} day(s) x "
                    f"{self.problem.periods_per_day} periods).")
        external = len(self._external[teacher.id])
        if raw - external < subject.quota:
            return (BlockReason.TEACHER_FULLY_BOOKED,
                    f"Could not place {teacher.name} ({kind}) for {subject.name}: other classes already use "
                    f"{external} of their {raw} periods on {days}, leaving fewer than {subject.quota}.")
        if status == ScheduleStatus.SEARCH_TIMED_OUT:
            return (BlockReason.SEARCH_TIMED_OUT,
                    f"Search budget ran out before {missing} of {subject.quota} {subject.name} periods with "
                    f"{teacher.name} could be placed.")
        return (BlockReason.CONFLICTING_REQUIREMENTS,
                f"Could not place {missing} of {subject.quota} {subject.name} periods with {teacher.name} ({kind}): "
                f"every remaining slot on {days} is taken by other lessons of this class or by the teacher's "
                f"other classes.")
