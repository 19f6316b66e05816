import pandas as pd
from typing import Dict, Iterable, List, Sequence
from timetable_solver.schemas import FREE_LABEL, GeneratedSchedule, Slot, UNASSIGNED_TEACHER

def _period_labels(periods_per_day: int) -> List[str]:
    return [f"Period {p + 1}" for p in range(periods_per_day)]

def format_schedule_for_display(result: GeneratedSchedule, days: Sequence[str], periods_per_day: int) -> pd.DataFrame:
    """
    Transforms a class's schedule and assignment maps into a grid:
    one row per period, one column per day, cells reading 'Subject (Teacher)'.
    """
    grid = pd.DataFrame('', index=_period_labels(periods_per_day), columns=list(days))
    for key, subject in result.schedule.items():
        slot = Slot.parse(key)
        if slot.day not in grid.columns or slot.period >= periods_per_day or subject == FREE_LABEL:
            continue
        teacher = result.assignments.get(key, UNASSIGNED_TEACHER)
        grid.loc[f"Period {slot.period + 1}", slot.day] = f"{subject} ({teacher})"
    return grid

def format_teacher_timetables(results: Iterable[GeneratedSchedule], days: Sequence[str],
                              periods_per_day: int) -> Dict[str, pd.DataFrame]:
    """
    Pivots the assignments of several classes into one grid per teacher,
    cells reading 'Class: Subject'.
    """
    processed_data = []
    for result in results:
        for key, teacher in result.assignments.items():
            if teacher == UNASSIGNED_TEACHER:
                continue
            slot = Slot.parse(key)
            processed_data.append({
                "teacher": teacher,
                "day": slot.day,
                "period": f"Period {slot.period + 1}",
                "content": f"{result.class_name}: {result.schedule.get(key, '')}",
            })

    if not processed_data:
        return {}

    df = pd.DataFrame(processed_data).drop_duplicates()
    period_order = _period_labels(periods_per_day)

    teacher_timetables = {}
    for teacher, teacher_df in df.groupby('teacher'):
        pivot_table = teacher_df.pivot_table(
            index='period',
            columns='day',
            values='content',
            aggfunc='first'
        )
        pivot_table = pivot_table.reindex(index=period_order, columns=list(days)).fillna('')
        teacher_timetables[teacher] = pivot_table
    return teacher_timetables
