from collections import Counter, defaultdict
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from timetable_solver.domain import TimetableProblem
from timetable_solver.occupancy import occupancy_key
from timetable_solver.schemas import (
    Assignment, ConstraintRule, ConstraintViolation, Slot, Subject, Teacher
)

# --- Type Aliases ---
SlotKey = Tuple[int, int]                 # (day index, period)
Lesson = Tuple[str, Optional[str]]        # (subject name, teacher id)
Grid = Dict[SlotKey, Lesson]
TeacherSlots = Mapping[str, Set[SlotKey]]
Occupied = Mapping[Tuple[str, str, int], str]   # (teacher id, day, period) -> class name

# --- Index Constants for Tuple Access ---
SLOT_DAY = 0
SLOT_PERIOD = 1
LESSON_SUBJECT = 0
LESSON_TEACHER = 1

# --- Incremental Check Used By The Search ---

def is_consistent(
    problem: TimetableProblem,
    slot: SlotKey,
    subject: Subject,
    teacher: Optional[Teacher],
    grid: Grid,
    teacher_slots: TeacherSlots,
    placed: Mapping[str, int],
) -> Tuple[bool, Optional[ConstraintRule]]:
    """
    Checks only the constraints touched by placing one more lesson.
    Returns (True, None) if consistent, (False, rule) otherwise.
    """
    if slot in grid:
        return (False, ConstraintRule.DUPLICATE_SLOT)
    if teacher is not None:
        if problem.days[slot[SLOT_DAY]] not in teacher.available_days:
            return (False, ConstraintRule.AVAILABILITY)
        if slot in teacher_slots.get(teacher.id, ()):
            return (False, ConstraintRule.DOUBLE_BOOKING)
    if placed.get(subject.name, 0) >= subject.quota:
        return (False, ConstraintRule.QUOTA_CEILING)
    return (True, None)

# --- Full Validation ---

def check_availability(problem: TimetableProblem, assignments: Sequence[Assignment]) -> List[ConstraintViolation]:
    violations = []
    for a in assignments:
        if a.teacher_id is None:
            continue
        teacher = problem.teacher(a.teacher_id)
        if teacher is None:
            violations.append(ConstraintViolation(
                rule=ConstraintRule.AVAILABILITY,
                message=f"{a.teacher_name or a.teacher_id} at {a.slot.key} is not on the roster for {a.subject}.",
                slots=[a.slot.key], teacher_id=a.teacher_id, subject=a.subject, class_name=a.class_name,
            ))
        elif a.slot.day not in teacher.available_days:
            kind = "PT" if teacher.is_part_time else "FT"
            violations.append(ConstraintViolation(
                rule=ConstraintRule.AVAILABILITY,
                message=(f"{teacher.name} ({kind}) was scheduled on {a.slot.day} but is only available "
                         f"{'/'.join(teacher.available_days)}."),
                slots=[a.slot.key], teacher_id=teacher.id, subject=a.subject, class_name=a.class_name,
            ))
    return violations

def check_double_booking(assignments: Sequence[Assignment], occupied: Optional[Occupied] = None) -> List[ConstraintViolation]:
    """
    Reports every teacher found in two places at once, both among the given
    assignments (any number of classes) and against slots already held by other classes.
    Day names are compared without regard to case.
    """
    violations = []
    held = {occupancy_key(*key): holder for key, holder in (occupied or {}).items()}
    by_teacher_slot: Dict[Tuple[str, str, int], List[Assignment]] = defaultdict(list)
    for a in assignments:
        if a.teacher_id is not None:
            by_teacher_slot[occupancy_key(a.teacher_id, a.slot.day, a.slot.period)].append(a)

    for key, group in by_teacher_slot.items():
        teacher_id = key[0]
        slot_key = group[0].slot.key
        if len(group) > 1:
            classes = sorted({a.class_name for a in group})
            violations.append(ConstraintViolation(
                rule=ConstraintRule.DOUBLE_BOOKING,
                message=(f"{group[0].teacher_name or teacher_id} is double-booked at {slot_key} "
                         f"({', '.join(a.class_name + ': ' + a.subject for a in group)})."),
                slots=[slot_key], teacher_id=teacher_id, subject=group[0].subject,
                class_name=", ".join(classes),
            ))
        holder = held.get(key)
        if holder is None:
            continue
        for a in group:
            if holder != a.class_name:
                violations.append(ConstraintViolation(
                    rule=ConstraintRule.DOUBLE_BOOKING,
                    message=f"{a.teacher_name or teacher_id} at {a.slot.key} is already teaching class {holder}.",
                    slots=[a.slot.key], teacher_id=teacher_id, subject=a.subject,
                    class_name=a.class_name,
                ))
    return violations

def check_duplicate_slots(assignments: Sequence[Assignment]) -> List[ConstraintViolation]:
    violations = []
    counts = Counter((a.class_name, a.slot) for a in assignments)
    for (class_name, slot), count in counts.items():
        if count > 1:
            subjects = [a.subject for a in assignments if a.class_name == class_name and a.slot == slot]
            violations.append(ConstraintViolation(
                rule=ConstraintRule.DUPLICATE_SLOT,
                message=f"{class_name} has {count} lessons at {slot.key} ({', '.join(subjects)}).",
                slots=[slot.key], class_name=class_name,
            ))
    return violations

def _subject_counts(assignments: Sequence[Assignment]) -> Counter:
    return Counter(a.subject for a in assignments)

def check_quota_ceiling(problem: TimetableProblem, assignments: Sequence[Assignment]) -> List[ConstraintViolation]:
    violations = []
    counts = _subject_counts(assignments)
    for name, count in counts.items():
        subject = problem.subject(name)
        quota = subject.quota if subject is not None else 0
        if count > quota:
            violations.append(ConstraintViolation(
                rule=ConstraintRule.QUOTA_CEILING,
                message=f"{name} has {count} periods but its quota is {quota}.",
                subject=name, class_name=problem.class_name,
            ))
    return violations

def check_quota_floor(problem: TimetableProblem, assignments: Sequence[Assignment]) -> List[ConstraintViolation]:
    violations = []
    counts = _subject_counts(assignments)
    for subject in problem.subjects:
        if counts[subject.name] < subject.quota:
            violations.append(ConstraintViolation(
                rule=ConstraintRule.QUOTA_FLOOR,
                message=f"{subject.name} has {counts[subject.name]} of its required {subject.quota} periods.",
                subject=subject.name, class_name=problem.class_name,
            ))
    return violations

def validate_schedule(
    problem: TimetableProblem,
    assignments: Sequence[Assignment],
    occupied: Optional[Occupied] = None,
    complete: bool = True,
) -> List[ConstraintViolation]:
    """
    Runs every hard-constraint check independently and returns all violations.
    The quota floor is only enforced once the schedule is declared complete.
    """
    violations: List[ConstraintViolation] = []
    violations += check_availability(problem, assignments)
    violations += check_double_booking(assignments, occupied)
    violations += check_duplicate_slots(assignments)
    violations += check_quota_ceiling(problem, assignments)
    if complete:
        violations += check_quota_floor(problem, assignments)
    return violations

def validate_session(schedules: Mapping[str, Sequence[Assignment]]) -> List[ConstraintViolation]:
    """Cross-class check: no teacher may hold the same day and period in two classes."""
    combined = [a for class_name in sorted(schedules) for a in schedules[class_name]]
    return check_double_booking(combined) + check_duplicate_slots(combined)

# --- Conversions Between The Search Grid And Public Assignments ---

def grid_to_assignments(problem: TimetableProblem, grid: Grid) -> List[Assignment]:
    names = {t.id: t.name for t in problem.teachers}
    return [
        Assignment(
            class_name=problem.class_name,
            slot=Slot(day=problem.days[day], period=period),
            subject=lesson[LESSON_SUBJECT],
            teacher_id=lesson[LESSON_TEACHER],
            teacher_name=names.get(lesson[LESSON_TEACHER]) if lesson[LESSON_TEACHER] else None,
        )
        for (day, period), lesson in sorted(grid.items())
    ]

def assignments_to_grid(problem: TimetableProblem, assignments: Sequence[Assignment]) -> Grid:
    grid: Grid = {}
    for a in assignments:
        if a.slot.day in problem.days:
            grid[(problem.day_index(a.slot.day), a.slot.period)] = (a.subject, a.teacher_id)
    return grid
