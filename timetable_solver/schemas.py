from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from enum import Enum
from typing import Dict, List, Optional, Tuple

FREE_LABEL = "Free"
UNASSIGNED_TEACHER = "TBD"

# Using Python's standard Enum for controlled vocabularies
class EmploymentType(str, Enum):
    """Enumeration for a teacher's employment kind."""
    FULL_TIME = "FT"
    PART_TIME = "PT"

class TimeOfDay(str, Enum):
    """Enumeration for the preferred time-of-day band of a subject."""
    MORNING = "Morning"
    AFTERNOON = "Afternoon"
    EITHER = "Either"

class SolverMode(str, Enum):
    """Enumeration for how long the search keeps going."""
    FIND_FIRST = "Find First"
    OPTIMIZE = "Optimize"

class ScheduleStatus(str, Enum):
    """Enumeration for the outcome of a scheduling run."""
    SOLVED = "Solved"
    INFEASIBLE = "Infeasible"
    SEARCH_TIMED_OUT = "SearchTimedOut"
    INVALID_REQUEST = "InvalidRequest"
    QUOTA_OVERFLOW = "QuotaOverflow"

class ConstraintRule(str, Enum):
    """Enumeration for the hard constraints a schedule must satisfy."""
    AVAILABILITY = "availability"
    DOUBLE_BOOKING = "double_booking"
    DUPLICATE_SLOT = "duplicate_slot"
    QUOTA_CEILING = "quota_ceiling"
    QUOTA_FLOOR = "quota_floor"

class BlockReason(str, Enum):
    """Enumeration for why a (teacher, subject) pair could not be fully placed."""
    INSUFFICIENT_AVAILABLE_DAY_CAPACITY = "insufficient_available_day_capacity"
    TEACHER_FULLY_BOOKED = "teacher_fully_booked"
    CONFLICTING_REQUIREMENTS = "conflicting_requirements"
    SEARCH_TIMED_OUT = "search_timed_out"


class CamelModel(BaseModel):
    """Base model that reads and writes the camelCase keys used on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Request Models ---

class TeacherEntry(CamelModel):
    """A teacher as supplied by the caller's roster."""
    id: str = Field(description="Unique identifier of the teacher.")
    name: str = Field(description="Display name used in the assignments map.")
    employment_type: EmploymentType = Field(EmploymentType.FULL_TIME, description="FT or PT.")
    available_days: Optional[List[str]] = Field(None, description="Days a part-time teacher can attend.")
    subject_specialization: Optional[List[str]] = Field(None, description="Subjects the teacher can teach.")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        return value if isinstance(value, str) else str(value)

class TimetableRequest(CamelModel):
    """Everything needed to build the weekly timetable of one class."""
    class_name: str = Field(description="The class being scheduled (e.g. 'JSS1').")
    subjects: List[str] = Field(description="Subjects taught to the class, in priority order.")
    teachers: List[TeacherEntry] = Field(default_factory=list)
    periods_per_day: int = Field(description="Number of periods in each school day.")
    days: List[str] = Field(description="Ordered school days, e.g. Monday to Friday.")
    subject_periods: Optional[Dict[str, int]] = Field(None, description="Required weekly periods per subject.")
    subject_time_of_day: Optional[Dict[str, TimeOfDay]] = Field(None, description="Preferred band per subject.")
    preferred_slots: Optional[Dict[str, List[str]]] = Field(None, description="Preferred 'Day-Index' slots per subject.")
    subject_teachers: Optional[Dict[str, str]] = Field(
        None, description="Teacher assigned to a subject for this class, by id or by name.")


# --- Domain Models ---

class Slot(BaseModel):
    """A (day, period) pair, the atomic unit of placement."""
    model_config = ConfigDict(frozen=True)

    day: str
    period: int = Field(ge=0)

    @property
    def key(self) -> str:
        return f"{self.day}-{self.period}"

    @classmethod
    def parse(cls, key: str) -> "Slot":
        day, _, period = key.rpartition("-")
        if not day or not period.isdigit():
            raise ValueError(f"'{key}' is not a 'Day-PeriodIndex' slot key.")
        return cls(day=day, period=int(period))

class Teacher(BaseModel):
    """A normalized teacher whose specializations all belong to the request."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    employment: EmploymentType
    specializations: Tuple[str, ...]
    available_days: Tuple[str, ...] = Field(description="Available days in school-week order.")

    @property
    def is_part_time(self) -> bool:
        return self.employment == EmploymentType.PART_TIME

class Subject(BaseModel):
    """A subject with its weekly quota and placement preferences."""
    model_config = ConfigDict(frozen=True)

    name: str
    quota: int = Field(ge=0)
    time_of_day: TimeOfDay = TimeOfDay.EITHER
    preferred_slots: Tuple[Slot, ...] = ()
    teacher_id: Optional[str] = Field(None, description="Teacher assigned to this subject by the request.")

class Assignment(BaseModel):
    """Binds one slot of one class to a subject and (optionally) a teacher."""
    model_config = ConfigDict(frozen=True)

    class_name: str
    slot: Slot
    subject: str
    teacher_id: Optional[str] = None
    teacher_name: Optional[str] = None


# --- Models for the Solver's Output ---

class ConstraintViolation(CamelModel):
    """A single violated hard constraint."""
    rule: ConstraintRule
    message: str
    slots: List[str] = Field(default_factory=list)
    teacher_id: Optional[str] = None
    subject: Optional[str] = None
    class_name: Optional[str] = None

class UnplacedPair(CamelModel):
    """A (teacher, subject) pair whose quota could not be met."""
    teacher_id: Optional[str] = None
    teacher_name: Optional[str] = None
    subject: str
    required: int
    placed: int
    reason: BlockReason
    message: str

class ScoreBreakdown(CamelModel):
    """The weighted soft-constraint components of a schedule's quality score."""
    pt_clustering: float = 0.0
    ft_spread: float = 0.0
    time_of_day_fit: float = 0.0
    same_day_repetition: float = 0.0
    preferred_slot: float = 0.0
    total: float = 0.0

class ValidationReport(CamelModel):
    """Flags derived by the validator from the finished schedule."""
    pt_teachers_scheduled_correctly: bool = False
    all_pt_on_available_days: bool = False
    no_teacher_conflicts: bool = False
    subject_loads_met: bool = False
    warnings: List[str] = Field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        return (self.pt_teachers_scheduled_correctly and self.all_pt_on_available_days
                and self.no_teacher_conflicts and self.subject_loads_met)

class GeneratedSchedule(CamelModel):
    """The public result: schedule and assignment maps plus a validation report."""
    class_name: str
    status: ScheduleStatus
    schedule: Dict[str, str] = Field(default_factory=dict, description="'Day-Index' -> subject name or 'Free'.")
    assignments: Dict[str, str] = Field(default_factory=dict, description="'Day-Index' -> teacher name or 'TBD'.")
    validation: ValidationReport = Field(default_factory=ValidationReport)
    score: Optional[float] = None
    score_breakdown: Optional[ScoreBreakdown] = None
    unplaced: List[UnplacedPair] = Field(default_factory=list)
    violations: List[ConstraintViolation] = Field(default_factory=list)
    offending_subjects: List[str] = Field(default_factory=list)
    notices: List[str] = Field(default_factory=list)
    nodes_explored: int = 0

    @property
    def is_solved(self) -> bool:
        return self.status == ScheduleStatus.SOLVED and self.validation.all_passed
