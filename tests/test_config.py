import json

import pytest
from pydantic import ValidationError

from timetable_solver import DataLoadError, SolverMode, SolverSettings, load_settings


def test_settings_are_read_from_json(tmp_path):
    path = tmp_path / "solver.json"
    path.write_text(json.dumps({"mode": "Optimize", "node_budget": 500, "weights": {"pt_clustering": 5}}))
    settings = load_settings(path)

    assert settings.mode == SolverMode.OPTIMIZE
    assert settings.node_budget == 500
    assert settings.weights.pt_clustering == 5
    assert settings.weights.ft_spread == 2


def test_unreadable_settings_are_a_load_error(tmp_path):
    path = tmp_path / "solver.json"
    path.write_text("{not json")

    with pytest.raises(DataLoadError, match="solver settings"):
        load_settings(path)


def test_morning_boundary_defaults_to_half_the_day_rounded_up():
    assert SolverSettings().morning_boundary(6) == 3
    assert SolverSettings().morning_boundary(7) == 4
    assert SolverSettings(morning_periods=2).morning_boundary(7) == 2


def test_settings_reject_non_positive_budgets():
    with pytest.raises(ValidationError):
        SolverSettings(node_budget=0)
