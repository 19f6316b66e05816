import json
import logging
import pandas as pd
from pathlib import Path
from typing import Any, Dict, List, Union
from timetable_solver.errors import DataLoadError
from timetable_solver.schemas import EmploymentType, TeacherEntry, TimeOfDay, TimetableRequest

logger = logging.getLogger(__name__)

REQUIRED_SHEETS = ('Classes', 'Teachers')
OPTIONAL_SHEETS = ('SubjectPeriods', 'SubjectTimeOfDay', 'SubjectTeachers')

def _parse_comma_separated_field(value: Any) -> List[str]:
    """
    Safely parses a string that may contain comma-separated values into a list of strings.
    Handles empty, NaN, or non-string values gracefully.
    """
    if value is None or (not isinstance(value, (list, tuple)) and pd.isna(value)):
        return []
    s_value = str(value)
    if not s_value.strip():
        return []
    items = [item.strip() for item in s_value.split(',')]
    return [item for item in items if item]

def _cell_text(value: Any) -> str:
    if pd.isna(value):
        return ''
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()

def _parse_teachers(df: pd.DataFrame) -> List[TeacherEntry]:
    """
    Parses the teachers DataFrame, handling the comma-separated day and subject columns.
    """
    teachers: List[TeacherEntry] = []
    for _, row in df.iterrows():
        teacher_id = _cell_text(row['id'])
        if not teacher_id:
            logger.warning("Skipping teacher row without an id: %s", row.to_dict())
            continue
        kind = _cell_text(row.get('employment_type')).upper() or EmploymentType.FULL_TIME.value
        teachers.append(TeacherEntry(
            id=teacher_id,
            name=_cell_text(row['name']),
            employment_type=EmploymentType(kind),
            available_days=_parse_comma_separated_field(row.get('available_days')) or None,
            subject_specialization=_parse_comma_separated_field(row.get('subject_specialization')),
        ))
    return teachers

def _parse_subject_periods(df: pd.DataFrame) -> Dict[str, Dict[str, int]]:
    """Parses per-class quotas into {class_name: {subject: periods}}."""
    quotas: Dict[str, Dict[str, int]] = {}
    for _, row in df.iterrows():
        quotas.setdefault(_cell_text(row['class_name']), {})[_cell_text(row['subject'])] = int(row['periods'])
    return quotas

def _parse_time_of_day(df: pd.DataFrame) -> Dict[str, TimeOfDay]:
    bands: Dict[str, TimeOfDay] = {}
    for _, row in df.iterrows():
        bands[_cell_text(row['subject'])] = TimeOfDay(_cell_text(row['time_of_day']).capitalize())
    return bands

def _parse_subject_teachers(df: pd.DataFrame) -> Dict[str, Dict[str, str]]:
    """Parses per-class teacher assignments into {class_name: {subject: teacher id or name}}."""
    assigned: Dict[str, Dict[str, str]] = {}
    for _, row in df.iterrows():
        assigned.setdefault(_cell_text(row['class_name']), {})[_cell_text(row['subject'])] = _cell_text(row['teacher'])
    return assigned

def _parse_classes(df: pd.DataFrame, teachers: List[TeacherEntry], quotas: Dict[str, Dict[str, int]],
                   bands: Dict[str, TimeOfDay], assigned: Dict[str, Dict[str, str]]) -> List[TimetableRequest]:
    """Builds one request per class row; every class shares the same teacher roster."""
    requests: List[TimetableRequest] = []
    for _, row in df.iterrows():
        class_name = _cell_text(row['class_name'])
        subjects = _parse_comma_separated_field(row['subjects'])
        requests.append(TimetableRequest(
            class_name=class_name,
            subjects=subjects,
            teachers=teachers,
            periods_per_day=int(row['periods_per_day']),
            days=_parse_comma_separated_field(row['days']),
            subject_periods=quotas.get(class_name),
            subject_time_of_day={s: b for s, b in bands.items() if s in subjects} or None,
            subject_teachers=assigned.get(class_name),
        ))
    return requests

def load_requests_from_excel(file_path: Union[str, Path]) -> List[TimetableRequest]:
    """
    Main public function to read all classes from an Excel workbook,
    parse and validate them, and return one TimetableRequest per class.
    """
    try:
        file_path_obj = Path(file_path).expanduser()
        if not file_path_obj.exists():
            raise FileNotFoundError(f'Fatal Error: provided file path {file_path_obj} does not exist.')

        sheets = pd.read_excel(file_path_obj, sheet_name=None)

        for required_sheet in REQUIRED_SHEETS:
            if required_sheet not in sheets:
                raise ValueError(f"Required sheet '{required_sheet}' not found in the Excel file.")
        for optional_sheet in OPTIONAL_SHEETS:
            if optional_sheet not in sheets:
                logger.debug("Optional sheet '%s' not present; using defaults.", optional_sheet)

        teachers = _parse_teachers(sheets['Teachers'])
        quotas = _parse_subject_periods(sheets['SubjectPeriods']) if 'SubjectPeriods' in sheets else {}
        bands = _parse_time_of_day(sheets['SubjectTimeOfDay']) if 'SubjectTimeOfDay' in sheets else {}
        assigned = _parse_subject_teachers(sheets['SubjectTeachers']) if 'SubjectTeachers' in sheets else {}
        requests = _parse_classes(sheets['Classes'], teachers, quotas, bands, assigned)
        logger.info("Loaded %d class request(s) and %d teacher(s) from %s.", len(requests), len(teachers), file_path_obj)
        return requests

    except Exception as e:
        raise DataLoadError(f"Failed to load or parse the timetable data. Reason: {e}")

def load_requests_from_json(file_path: Union[str, Path]) -> List[TimetableRequest]:
    """Reads a single camelCase request object, or a list of them, from a JSON file."""
    try:
        raw = json.loads(Path(file_path).expanduser().read_text())
        items = raw if isinstance(raw, list) else [raw]
        return [TimetableRequest.model_validate(item) for item in items]
    except Exception as e:
        raise DataLoadError(f"Failed to load or parse the timetable data. Reason: {e}")
