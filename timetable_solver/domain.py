"""
Normalization of a raw TimetableRequest into the immutable values the search runs on.

Malformed requests are rejected here, before any search begins. Recoverable
oddities in the roster (unknown days, teachers with nothing to teach) are
dropped and recorded as notices instead.
"""
import logging
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from timetable_solver.errors import InvalidRequestError, QuotaOverflowError
from timetable_solver.schemas import (
    EmploymentType, Slot, Subject, Teacher, TeacherEntry, TimeOfDay, TimetableRequest
)

logger = logging.getLogger(__name__)


class TimetableProblem(BaseModel):
    """A validated request: ordered days, subjects with quotas and the usable roster."""
    model_config = ConfigDict(frozen=True)

    class_name: str
    days: Tuple[str, ...]
    periods_per_day: int
    subjects: Tuple[Subject, ...]
    teachers: Tuple[Teacher, ...]
    quotas_supplied: bool = False
    notices: Tuple[str, ...] = ()

    @property
    def capacity(self) -> int:
        return len(self.days) * self.periods_per_day

    def day_index(self, day: str) -> int:
        return self.days.index(day)

    def subject(self, name: str) -> Optional[Subject]:
        return next((s for s in self.subjects if s.name == name), None)

    def teacher(self, teacher_id: str) -> Optional[Teacher]:
        return next((t for t in self.teachers if t.id == teacher_id), None)

    def qualified_teachers(self, subject_name: str) -> List[Teacher]:
        return [t for t in self.teachers if subject_name in t.specializations]

    def all_slots(self) -> List[Slot]:
        return [Slot(day=day, period=p) for day in self.days for p in range(self.periods_per_day)]


def _casefold_lookup(names: List[str]) -> Dict[str, str]:
    return {name.casefold(): name for name in names}


def _normalize_days(days: List[str]) -> Tuple[str, ...]:
    cleaned = [d.strip() for d in days]
    if not cleaned:
        raise InvalidRequestError(["days must not be empty"])
    if any(not d for d in cleaned):
        raise InvalidRequestError(["day names must not be blank"])
    folded = [d.casefold() for d in cleaned]
    duplicates = sorted({d for d in cleaned if folded.count(d.casefold()) > 1})
    if duplicates:
        raise InvalidRequestError([f"days must be unique, duplicated: {', '.join(duplicates)}"])
    return tuple(cleaned)


def _normalize_subjects(subjects: List[str], notices: List[str]) -> List[str]:
    ordered: List[str] = []
    seen = set()
    for raw in subjects:
        name = raw.strip()
        if not name:
            raise InvalidRequestError(["subject names must not be blank"])
        if name.casefold() in seen:
            notices.append(f"Duplicate subject '{name}' was ignored.")
            continue
        seen.add(name.casefold())
        ordered.append(name)
    if not ordered:
        raise InvalidRequestError(["subjects must not be empty"])
    return ordered


def default_quotas(subjects: List[str], capacity: int) -> Dict[str, int]:
    """Splits the week evenly; leftover periods go to the first subjects in request order."""
    base, leftover = divmod(capacity, len(subjects))
    return {name: base + (1 if i < leftover else 0) for i, name in enumerate(subjects)}


def _resolve_quotas(request: TimetableRequest, subjects: List[str], capacity: int,
                    notices: List[str]) -> Dict[str, int]:
    if request.subject_periods is None:
        return default_quotas(subjects, capacity)

    lookup = _casefold_lookup(subjects)
    quotas: Dict[str, int] = {}
    negative: List[str] = []
    for raw_name, count in request.subject_periods.items():
        name = lookup.get(raw_name.strip().casefold())
        if name is None:
            notices.append(f"Quota for unrequested subject '{raw_name}' was ignored.")
            continue
        if count < 0:
            negative.append(name)
        quotas[name] = count
    if negative:
        raise InvalidRequestError([f"quotas must be >= 0, negative for: {', '.join(negative)}"])

    for name in subjects:
        if name not in quotas:
            notices.append(f"No period quota given for '{name}'; it will not be scheduled.")
            quotas[name] = 0

    requested = sum(quotas.values())
    if requested > capacity:
        running = 0
        offending: List[str] = []
        for name in subjects:
            running += quotas[name]
            if running > capacity and quotas[name] > 0:
                offending.append(name)
        raise QuotaOverflowError(offending, requested, capacity)
    return quotas


def _normalize_teacher(entry: TeacherEntry, subjects: List[str], days: Tuple[str, ...],
                       notices: List[str]) -> Optional[Teacher]:
    subject_lookup = _casefold_lookup(subjects)
    specializations = []
    for raw in entry.subject_specialization or []:
        name = subject_lookup.get(raw.strip().casefold())
        if name is not None and name not in specializations:
            specializations.append(name)
    if not specializations:
        notices.append(f"Teacher '{entry.name}' teaches none of the requested subjects and was excluded.")
        return None

    if entry.employment_type == EmploymentType.PART_TIME:
        day_lookup = _casefold_lookup(list(days))
        requested_days = set()
        for raw in entry.available_days or []:
            day = day_lookup.get(raw.strip().casefold())
            if day is None:
                notices.append(f"Unknown day '{raw}' for part-time teacher '{entry.name}' was ignored.")
            else:
                requested_days.add(day)
        available = tuple(d for d in days if d in requested_days)
        if not available:
            notices.append(f"Part-time teacher '{entry.name}' has no available school days and was excluded.")
            return None
    else:
        available = days

    return Teacher(
        id=entry.id,
        name=entry.name,
        employment=entry.employment_type,
        specializations=tuple(specializations),
        available_days=available,
    )


def _resolve_preferred_slots(request: TimetableRequest, name: str, days: Tuple[str, ...],
                             periods_per_day: int, notices: List[str]) -> Tuple[Slot, ...]:
    raw_keys = next((keys for subject, keys in (request.preferred_slots or {}).items()
                     if subject.strip().casefold() == name.casefold()), [])
    day_lookup = _casefold_lookup(list(days))
    slots: List[Slot] = []
    for key in raw_keys:
        try:
            slot = Slot.parse(key.strip())
        except ValueError:
            notices.append(f"Preferred slot '{key}' for '{name}' is not a 'Day-Index' key and was ignored.")
            continue
        day = day_lookup.get(slot.day.casefold())
        if day is None or slot.period >= periods_per_day:
            notices.append(f"Preferred slot '{key}' for '{name}' is outside the school week and was ignored.")
            continue
        slot = Slot(day=day, period=slot.period)
        if slot not in slots:
            slots.append(slot)
    return tuple(slots)


def _resolve_assigned_teacher(request: TimetableRequest, name: str, teachers: List[Teacher],
                              notices: List[str]) -> Optional[str]:
    wanted = next((value.strip() for subject, value in (request.subject_teachers or {}).items()
                   if subject.strip().casefold() == name.casefold()), None)
    if not wanted:
        return None
    teacher = next((t for t in teachers if t.id == wanted), None) or next(
        (t for t in teachers if t.name == wanted), None)
    if teacher is not None and name in teacher.specializations:
        return teacher.id
    if teacher is not None or any(wanted in (e.id, e.name) for e in request.teachers):
        notices.append(f"Assigned teacher '{wanted}' does not teach '{name}'; any qualified teacher may take it.")
    else:
        notices.append(f"Assigned teacher '{wanted}' for '{name}' is not on the roster and was ignored.")
    return None


def normalize_request(request: TimetableRequest) -> TimetableProblem:
    """
    Validates a request and converts it into a TimetableProblem.
    Raises InvalidRequestError or QuotaOverflowError before any search is attempted.
    """
    if request.periods_per_day <= 0:
        raise InvalidRequestError([f"periodsPerDay must be > 0, got {request.periods_per_day}"])
    if not request.class_name.strip():
        raise InvalidRequestError(["className must not be blank"])

    notices: List[str] = []
    days = _normalize_days(request.days)
    subject_names = _normalize_subjects(request.subjects, notices)
    capacity = len(days) * request.periods_per_day
    quotas = _resolve_quotas(request, subject_names, capacity, notices)

    seen_ids = set()
    duplicate_ids = []
    for entry in request.teachers:
        if entry.id in seen_ids:
            duplicate_ids.append(entry.id)
        seen_ids.add(entry.id)
    if duplicate_ids:
        raise InvalidRequestError([f"teacher ids must be unique, duplicated: {', '.join(duplicate_ids)}"])

    teachers = [t for t in (_normalize_teacher(e, subject_names, days, notices) for e in request.teachers) if t]

    bands = {k.strip().casefold(): v for k, v in (request.subject_time_of_day or {}).items()}
    unknown_bands = set(bands) - {n.casefold() for n in subject_names}
    for name in sorted(unknown_bands):
        notices.append(f"Time-of-day preference for unrequested subject '{name}' was ignored.")
    folded_subjects = {n.casefold() for n in subject_names}
    for name in sorted(request.subject_teachers or {}):
        if name.strip().casefold() not in folded_subjects:
            notices.append(f"Teacher assignment for unrequested subject '{name}' was ignored.")

    subjects = tuple(
        Subject(
            name=name,
            quota=quotas[name],
            time_of_day=bands.get(name.casefold(), TimeOfDay.EITHER),
            preferred_slots=_resolve_preferred_slots(request, name, days, request.periods_per_day, notices),
            teacher_id=_resolve_assigned_teacher(request, name, teachers, notices),
        )
        for name in subject_names
    )

    for note in notices:
        logger.info("%s: %s", request.class_name, note)

    return TimetableProblem(
        class_name=request.class_name.strip(),
        days=days,
        periods_per_day=request.periods_per_day,
        subjects=subjects,
        teachers=tuple(teachers),
        quotas_supplied=request.subject_periods is not None,
        notices=tuple(notices),
    )
