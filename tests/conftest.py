import pytest

from timetable_solver import SolverSettings
from tests.factories import make_teacher


@pytest.fixture
def bayo():
    return make_teacher("t-bayo", "Mr. Bayo", ["Mathematics"], part_time=True, days=["Monday", "Wednesday"])


@pytest.fixture
def mrs_x():
    return make_teacher("t-x", "Mrs. X", ["English"])


@pytest.fixture
def settings():
    return SolverSettings(node_budget=20_000)
