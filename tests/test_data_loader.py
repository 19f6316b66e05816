import json

import pandas as pd
import pytest

from timetable_solver import DataLoadError
from timetable_solver.data_loader import load_requests_from_excel, load_requests_from_json
from timetable_solver.schemas import EmploymentType, TimeOfDay
from tests.factories import WEEK


@pytest.fixture
def workbook(tmp_path):
    path = tmp_path / "school.xlsx"
    classes = pd.DataFrame([
        {"class_name": "JSS1", "subjects": "Mathematics, English", "periods_per_day": 6, "days": ", ".join(WEEK)},
        {"class_name": "JSS2", "subjects": "English", "periods_per_day": 5, "days": ", ".join(WEEK)},
    ])
    teachers = pd.DataFrame([
        {"id": 1, "name": "Mr. Bayo", "employment_type": "PT", "available_days": "Monday, Wednesday",
         "subject_specialization": "Mathematics"},
        {"id": 2, "name": "Mrs. X", "employment_type": "FT", "available_days": None,
         "subject_specialization": "English"},
    ])
    quotas = pd.DataFrame([
        {"class_name": "JSS1", "subject": "Mathematics", "periods": 4},
        {"class_name": "JSS1", "subject": "English", "periods": 5},
    ])
    bands = pd.DataFrame([{"subject": "Mathematics", "time_of_day": "morning"}])
    assigned = pd.DataFrame([{"class_name": "JSS1", "subject": "English", "teacher": "Mrs. X"}])
    with pd.ExcelWriter(path) as writer:
        classes.to_excel(writer, sheet_name="Classes", index=False)
        teachers.to_excel(writer, sheet_name="Teachers", index=False)
        quotas.to_excel(writer, sheet_name="SubjectPeriods", index=False)
        bands.to_excel(writer, sheet_name="SubjectTimeOfDay", index=False)
        assigned.to_excel(writer, sheet_name="SubjectTeachers", index=False)
    return path


def test_excel_workbook_yields_one_request_per_class(workbook):
    jss1, jss2 = load_requests_from_excel(workbook)

    assert jss1.class_name == "JSS1"
    assert jss1.subjects == ["Mathematics", "English"]
    assert jss1.days == WEEK
    assert jss1.subject_periods == {"Mathematics": 4, "English": 5}
    assert jss1.subject_time_of_day == {"Mathematics": TimeOfDay.MORNING}
    assert jss1.subject_teachers == {"English": "Mrs. X"}
    assert jss2.periods_per_day == 5
    assert jss2.subject_periods is None
    assert jss2.subject_time_of_day is None
    assert jss2.subject_teachers is None


def test_excel_teachers_are_shared_by_every_class(workbook):
    jss1, jss2 = load_requests_from_excel(workbook)
    bayo, mrs_x = jss1.teachers

    assert bayo.id == "1"
    assert bayo.employment_type == EmploymentType.PART_TIME
    assert bayo.available_days == ["Monday", "Wednesday"]
    assert mrs_x.available_days is None
    assert mrs_x.subject_specialization == ["English"]
    assert jss2.teachers == jss1.teachers


def test_missing_required_sheet_is_a_load_error(tmp_path):
    path = tmp_path / "partial.xlsx"
    with pd.ExcelWriter(path) as writer:
        pd.DataFrame([{"class_name": "JSS1"}]).to_excel(writer, sheet_name="Classes", index=False)

    with pytest.raises(DataLoadError, match="Teachers"):
        load_requests_from_excel(path)


def test_missing_file_is_a_load_error(tmp_path):
    with pytest.raises(DataLoadError):
        load_requests_from_excel(tmp_path / "nowhere.xlsx")


def test_json_file_with_a_list_of_requests(tmp_path):
    path = tmp_path / "requests.json"
    path.write_text(json.dumps([
        {"className": "JSS1", "subjects": ["Mathematics"], "periodsPerDay": 6, "days": WEEK,
         "teachers": [{"id": 3, "name": "Mr. Bayo", "employmentType": "PT", "availableDays": ["Monday"],
                       "subjectSpecialization": ["Mathematics"]}]},
        {"className": "JSS2", "subjects": ["English"], "periodsPerDay": 6, "days": WEEK},
    ]))
    requests = load_requests_from_json(path)

    assert [r.class_name for r in requests] == ["JSS1", "JSS2"]
    assert requests[0].teachers[0].id == "3"


def test_json_with_schema_errors_is_a_load_error(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"className": "JSS1"}))

    with pytest.raises(DataLoadError, match="Failed to load or parse"):
        load_requests_from_json(path)
