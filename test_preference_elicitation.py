import pytest

import preference_elicitation
from preference_elicitation import elicit_all, elicit_lecturer_preferences, spread_weight, vcg_payments
from timetable_exceptions import ConfigurationError, InfeasibleElicitationError
from timetable_models import Course, Lecturer, PipelineSettings, build_slots


def _two_day_problem(make_problem, prefs, num_courses=2):
    return make_problem(
        days=["Mon", "Tue"],
        periods=["P1", "P2"],
        rooms=[{"name": "R", "capacity": 100}],
        lecturers=[{"name": "L", "preferences": prefs}],
        courses=[{"name": f"C{i}", "size": 10, "lecturer": "L"} for i in range(num_courses)],
    )


def test_spread_weight_is_fraction_of_range():
    assert spread_weight([1.0, 5.0, 3.0], 0.5) == 2.0
    assert spread_weight([4.0, 4.0], 0.5) == 0.0
    assert spread_weight([], 0.5) == 0.0


def test_picks_top_slots_on_one_day(sample_problem):
    declared = elicit_all(sample_problem, PipelineSettings())

    assert declared["C1"].slot_id == "Mon-P1"
    assert declared["C2"].slot_id == "Mon-P2"
    assert declared["C3"].slot_id == "Tue-P1"
    assert declared["C4"].slot_id == "Tue-P2"
    assert {declared["C5"].slot_id, declared["C6"].slot_id} == {"Mon-P1", "Mon-P2"}


def test_day_spread_penalty_clusters_courses(make_problem):
    # Mon-P1, Mon-P2, Tue-P1, Tue-P2
    problem = _two_day_problem(make_problem, [10, 6, 9, 0])
    lecturer = problem.lecturers["L"]
    courses = list(problem.courses)

    clustered = elicit_lecturer_preferences(
        lecturer=lecturer, courses=courses, slots=problem.slots, spread_fraction=0.5
    )
    spread = elicit_lecturer_preferences(
        lecturer=lecturer, courses=courses, slots=problem.slots, spread_fraction=0.0
    )

    assert {p.slot_id for p in clustered} == {"Mon-P1", "Mon-P2"}
    assert {p.slot_id for p in spread} == {"Mon-P1", "Tue-P1"}


def test_no_two_own_courses_share_a_slot(make_problem):
    problem = _two_day_problem(make_problem, [5, 5, 5, 5], num_courses=4)
    declared = elicit_all(problem, PipelineSettings())

    assert sorted(p.slot_id for p in declared.values()) == ["Mon-P1", "Mon-P2", "Tue-P1", "Tue-P2"]


def test_declared_utility_matches_slot(make_problem):
    problem = _two_day_problem(make_problem, [1, 7, 3, 2], num_courses=1)
    declared = elicit_all(problem, PipelineSettings())

    assert declared["C0"].slot_id == "Mon-P2"
    assert declared["C0"].utility == 7.0


def test_more_courses_than_slots_names_lecturer(make_problem):
    problem = _two_day_problem(make_problem, [1, 2, 3, 4], num_courses=5)

    with pytest.raises(InfeasibleElicitationError) as exc:
        elicit_all(problem, PipelineSettings())

    assert exc.value.lecturer_id == "L"
    assert "'L'" in str(exc.value)


def test_preconditions_checked_before_any_solve(make_problem, monkeypatch):
    problem = make_problem(
        days=["Mon"],
        periods=["P1", "P2"],
        rooms=[{"name": "R", "capacity": 100}],
        lecturers=[{"name": "A"}, {"name": "B"}],
        courses=[
            {"name": "A1", "size": 10, "lecturer": "A"},
            {"name": "B1", "size": 10, "lecturer": "B"},
            {"name": "B2", "size": 10, "lecturer": "B"},
            {"name": "B3", "size": 10, "lecturer": "B"},
        ],
    )

    def _boom(**kwargs):
        raise AssertionError("solver should not run")

    monkeypatch.setattr(preference_elicitation, "elicit_lecturer_preferences", _boom)

    with pytest.raises(InfeasibleElicitationError) as exc:
        elicit_all(problem, PipelineSettings())
    assert exc.value.lecturer_id == "B"


def test_preference_length_mismatch_is_configuration_error():
    lecturer = Lecturer(lecturer_id="L", archetype="flexible", preferences=(1.0, 2.0))
    course = Course(course_id="C", size=10, lecturer_id="L")

    slots = build_slots(["Mon"], [("P1", None, None), ("P2", None, None), ("P3", None, None)])
    with pytest.raises(ConfigurationError):
        elicit_lecturer_preferences(lecturer=lecturer, courses=[course], slots=slots, spread_fraction=0.5)


def test_lecturer_result_independent_of_other_lecturers(sample_problem):
    lecturer = sample_problem.lecturers["grace"]
    own = [c for c in sample_problem.courses if c.lecturer_id == "grace"]

    alone = elicit_lecturer_preferences(
        lecturer=lecturer, courses=own, slots=sample_problem.slots, spread_fraction=0.5
    )
    together = elicit_all(sample_problem, PipelineSettings())

    assert {p.course_id: p.slot_id for p in alone} == {
        cid: p.slot_id for cid, p in together.items() if p.lecturer_id == "grace"
    }


def test_parallel_elicitation_matches_sequential(sample_problem):
    sequential = elicit_all(sample_problem, PipelineSettings(elicitation_workers=1))
    parallel = elicit_all(sample_problem, PipelineSettings(elicitation_workers=3))

    assert sequential == parallel


def test_payments_are_zero(sample_problem):
    assert vcg_payments(sample_problem) == {"ada": 0.0, "alan": 0.0, "grace": 0.0}
