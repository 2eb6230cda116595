import json
from pathlib import Path

import pytest

from timetable_schema import TimetableInput

SAMPLE_PATH = Path(__file__).resolve().parent / "timetable_input.sample.json"


@pytest.fixture
def sample_input():
    return TimetableInput.model_validate(json.loads(SAMPLE_PATH.read_text(encoding="utf-8")))


@pytest.fixture
def sample_problem(sample_input):
    return sample_input.to_problem()


@pytest.fixture
def make_problem():
    """Build a ProblemInstance from plain dicts through the input schema."""

    def _make(*, days, periods, rooms, lecturers, courses):
        ti = TimetableInput.model_validate(
            {
                "calendar": {"days": days, "periods": periods},
                "rooms": rooms,
                "lecturers": lecturers,
                "courses": courses,
            }
        )
        return ti.to_problem()

    return _make
