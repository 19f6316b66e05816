from typing import List, Optional


class TimetableError(ValueError):
    """Base class for every error raised by the timetable solver."""


class InvalidRequestError(TimetableError):
    """The request is malformed and no search is attempted."""

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__("Invalid timetable request: " + "; ".join(self.problems))


class QuotaOverflowError(TimetableError):
    """The requested subject quotas need more slots than the week has."""

    def __init__(self, subjects: List[str], requested: int, capacity: int):
        self.subjects = list(subjects)
        self.requested = requested
        self.capacity = capacity
        super().__init__(
            f"Requested {requested} periods exceed the {capacity} available slots; "
            f"overflow begins at: {', '.join(self.subjects)}"
        )


class TeacherConflictError(TimetableError):
    """A teacher slot is already held by another class."""

    def __init__(self, teacher_id: str, slot_key: str, holder: str, class_name: Optional[str] = None):
        self.teacher_id = teacher_id
        self.slot_key = slot_key
        self.holder = holder
        self.class_name = class_name
        super().__init__(
            f"Teacher '{teacher_id}' is already booked at {slot_key} by class '{holder}'."
        )


class DataLoadError(TimetableError):
    """Input data could not be read or parsed."""
