import logging
from typing import List, Mapping, Optional, Sequence, Tuple

from timetable_exceptions import RepairExhaustedError
from timetable_models import (
    STAGE_REPAIR,
    Assignment,
    Course,
    DeclaredPreference,
    OccupancyState,
    ProblemInstance,
    room_fits,
    slot_distance,
)

logger = logging.getLogger(__name__)


def best_repair_option(
    problem: ProblemInstance,
    course: Course,
    declared: DeclaredPreference,
    occupancy: OccupancyState,
) -> Optional[Tuple[str, str]]:
    """Scan the whole (slot, room) grid for the free option closest to the declared slot.

    Ranked by slot distance, then room waste, then slot ordinal, then room id.
    """
    target = problem.slot(declared.slot_id)
    periods_per_day = problem.periods_per_day
    best_key = None
    best: Optional[Tuple[str, str]] = None
    for slot in problem.slots:
        if not occupancy.lecturer_free(course.lecturer_id, slot.slot_id):
            continue
        distance = slot_distance(target, slot, periods_per_day)
        for room in problem.rooms:
            if not room_fits(course, room) or not occupancy.room_free(slot.slot_id, room.room_id):
                continue
            key = (distance, room.capacity - course.size, slot.ordinal, room.room_id)
            if best_key is None or key < best_key:
                best_key = key
                best = (slot.slot_id, room.room_id)
    return best


def repair_unscheduled(
    problem: ProblemInstance,
    declared: Mapping[str, DeclaredPreference],
    unscheduled: Sequence[str],
    occupancy: OccupancyState,
) -> List[Assignment]:
    """Stage C: place every leftover course greedily, in ascending course id.

    Each choice is committed to ``occupancy`` before the next course is
    considered. Nothing already placed is moved or removed.
    """
    repaired: List[Assignment] = []
    for course_id in sorted(unscheduled):
        course = problem.course(course_id)
        option = best_repair_option(problem, course, declared[course_id], occupancy)
        if option is None:
            raise RepairExhaustedError(course_id)
        slot_id, room_id = option
        assignment = Assignment(
            course_id=course_id,
            lecturer_id=course.lecturer_id,
            slot_id=slot_id,
            room_id=room_id,
            stage=STAGE_REPAIR,
        )
        occupancy.occupy(assignment)
        repaired.append(assignment)
        logger.debug(
            "repair: %s -> %s / %s (declared %s)", course_id, slot_id, room_id, declared[course_id].slot_id
        )
    if repaired:
        logger.info("Stage C: repaired %d course(s)", len(repaired))
    return repaired
