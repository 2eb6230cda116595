import pytest

from candidate_builder import alternative_slots, build_candidates, check_data_feasibility
from timetable_exceptions import DataInfeasibilityError
from timetable_models import Assignment, DeclaredPreference, OccupancyState


def _declare(problem, slots_by_course):
    return {
        cid: DeclaredPreference(
            course_id=cid,
            lecturer_id=problem.course(cid).lecturer_id,
            slot_id=slot_id,
            utility=0.0,
        )
        for cid, slot_id in slots_by_course.items()
    }


@pytest.fixture
def small_problem(make_problem):
    return make_problem(
        days=["Mon", "Tue"],
        periods=["P1", "P2", "P3"],
        rooms=[
            {"name": "big", "capacity": 100},
            {"name": "mid", "capacity": 60},
            {"name": "lab", "capacity": 30, "type": "lab"},
        ],
        lecturers=[{"name": "L"}],
        courses=[
            {"name": "C1", "size": 50, "lecturer": "L"},
            {"name": "C2", "size": 20, "lecturer": "L", "room_type": "lab"},
        ],
    )


def test_capacity_is_a_hard_filter(small_problem):
    pool = build_candidates(small_problem, _declare(small_problem, {"C1": "Mon-P1", "C2": "Mon-P2"}), deviation_penalty=100)

    c1_rooms = {c.room_id for c in pool.by_course()["C1"]}
    assert c1_rooms == {"big", "mid"}
    for cand in pool.candidates:
        assert small_problem.room(cand.room_id).capacity >= small_problem.course(cand.course_id).size


def test_room_type_requirement_is_respected(small_problem):
    pool = build_candidates(small_problem, _declare(small_problem, {"C1": "Mon-P1", "C2": "Mon-P2"}), deviation_penalty=100)

    assert {c.room_id for c in pool.by_course()["C2"]} == {"lab"}


def test_cost_is_waste_plus_deviation_penalty(small_problem):
    pool = build_candidates(small_problem, _declare(small_problem, {"C1": "Mon-P1", "C2": "Mon-P2"}), deviation_penalty=100)

    by_key = {(c.course_id, c.slot_id, c.room_id): c for c in pool.candidates}
    kept = by_key[("C1", "Mon-P1", "mid")]
    moved = by_key[("C1", "Tue-P3", "big")]
    assert (kept.waste, kept.deviates, kept.cost) == (10, False, 10)
    assert (moved.waste, moved.deviates, moved.cost) == (50, True, 150)


def test_all_slots_are_alternatives_by_default(small_problem):
    pool = build_candidates(small_problem, _declare(small_problem, {"C1": "Mon-P1", "C2": "Mon-P2"}), deviation_penalty=100)

    assert len(pool.by_course()["C1"]) == 6 * 2
    assert len(pool.by_course()["C2"]) == 6


def test_alternative_slots_cap_prefers_nearest(small_problem):
    declared = small_problem.slot("Mon-P2")
    nearest = alternative_slots(declared, small_problem.slots, small_problem.periods_per_day, limit=2)

    assert [s.slot_id for s in nearest] == ["Mon-P1", "Mon-P3"]

    pool = build_candidates(
        small_problem,
        _declare(small_problem, {"C1": "Mon-P2", "C2": "Mon-P2"}),
        deviation_penalty=100,
        max_alternative_slots=0,
    )
    assert {c.slot_id for c in pool.candidates} == {"Mon-P2"}


def test_occupied_pairs_are_skipped(small_problem):
    occupancy = OccupancyState()
    occupancy.occupy(Assignment(course_id="X", lecturer_id="other", slot_id="Mon-P1", room_id="big"))

    pool = build_candidates(
        small_problem,
        _declare(small_problem, {"C1": "Mon-P1", "C2": "Mon-P2"}),
        deviation_penalty=100,
        occupancy=occupancy,
    )

    assert ("Mon-P1", "big") not in {(c.slot_id, c.room_id) for c in pool.candidates}


def test_course_larger_than_every_room_is_data_infeasible(make_problem):
    problem = make_problem(
        days=["Mon"],
        periods=["P1", "P2"],
        rooms=[{"name": "A", "capacity": 100}, {"name": "B", "capacity": 80}],
        lecturers=[{"name": "L"}],
        courses=[
            {"name": "ok", "size": 90, "lecturer": "L"},
            {"name": "huge", "size": 120, "lecturer": "L"},
        ],
    )

    with pytest.raises(DataInfeasibilityError) as exc:
        check_data_feasibility(problem)

    assert exc.value.course_id == "huge"
    assert exc.value.details["max_capacity"] == 100
