import pytest
from pydantic import ValidationError

from timetable_schema import MAX_SLOTS, TimetableInput


def _base(**overrides):
    data = {
        "calendar": {"days": ["Mon", "Tue"], "periods": ["P1", {"name": "P2", "start": "11:00", "end": "12:30"}]},
        "rooms": [{"name": "A", "capacity": 50}],
        "lecturers": [{"name": "L", "archetype": "morning"}],
        "courses": [{"name": "C1", "size": 30, "lecturer": "L"}],
    }
    data.update(overrides)
    return data


def test_period_names_are_shorthand():
    ti = TimetableInput.model_validate(_base())

    assert [p.name for p in ti.calendar.periods] == ["P1", "P2"]
    assert ti.calendar.periods[0].start is None
    assert ti.calendar.periods[1].end == "12:30"


def test_to_problem_enumerates_slots_day_major():
    problem = TimetableInput.model_validate(_base()).to_problem()

    assert [s.slot_id for s in problem.slots] == ["Mon-P1", "Mon-P2", "Tue-P1", "Tue-P2"]
    assert [s.ordinal for s in problem.slots] == [0, 1, 2, 3]
    assert problem.slot("Tue-P2").time_range == "11:00-12:30"
    assert problem.slot("Mon-P1").time_range == "P1"


def test_missing_preferences_are_derived_from_archetype():
    problem = TimetableInput.model_validate(_base()).to_problem()

    prefs = problem.lecturers["L"].preferences
    assert len(prefs) == 4
    assert prefs[0] > prefs[1]


def test_explicit_preferences_must_match_slot_count():
    ti = TimetableInput.model_validate(_base(lecturers=[{"name": "L", "preferences": [1, 2, 3]}]))

    with pytest.raises(ValueError, match="preferences has 3 values"):
        ti.validate_references()


def test_course_must_reference_known_lecturer():
    ti = TimetableInput.model_validate(_base(courses=[{"name": "C1", "size": 30, "lecturer": "ghost"}]))

    with pytest.raises(ValueError, match="ghost"):
        ti.to_problem()


def test_calendar_size_is_bounded():
    days = [f"D{i}" for i in range(MAX_SLOTS)]
    ti = TimetableInput.model_validate(_base(calendar={"days": days, "periods": ["P1", "P2"]}))

    with pytest.raises(ValueError, match="at most"):
        ti.validate_references()


@pytest.mark.parametrize(
    "overrides",
    [
        {"rooms": [{"name": "A", "capacity": 0}]},
        {"courses": [{"name": "C1", "size": 0, "lecturer": "L"}]},
        {"lecturers": [{"name": "L", "archetype": "nocturnal"}]},
        {"rooms": [{"name": "A", "capacity": 50}, {"name": "A", "capacity": 60}]},
        {"settings": {"num_workers": 0}},
        {"settings": {"unknown": 1}},
    ],
)
def test_invalid_documents_are_rejected(overrides):
    with pytest.raises(ValidationError):
        TimetableInput.model_validate(_base(**overrides))


def test_settings_map_to_pipeline_settings():
    ti = TimetableInput.model_validate(
        _base(settings={"deviation_penalty": 7, "max_alternative_slots": 2, "time_limit_s": 3})
    )

    settings = ti.settings.to_pipeline_settings()

    assert settings.deviation_penalty == 7
    assert settings.max_alternative_slots == 2
    assert settings.time_limit_s == 3.0
    assert settings.spread_fraction == 0.5


def test_load_file_round_trip(tmp_path):
    ti = TimetableInput.model_validate(_base())
    path = tmp_path / "input.json"
    ti.save_file(path)

    loaded = TimetableInput.load_file(path)

    assert loaded == ti


def test_load_file_cleans_validation_errors(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text('{"rooms": [], "lecturers": [], "courses": []}', encoding="utf-8")

    with pytest.raises(ValueError):
        TimetableInput.load_file(path)
