import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from timetable_exceptions import ConfigurationError, DataInfeasibilityError
from timetable_models import (
    Candidate,
    Course,
    DeclaredPreference,
    OccupancyState,
    ProblemInstance,
    TimeSlot,
    room_fits,
    slot_distance,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidatePool:
    candidates: Tuple[Candidate, ...]

    def by_course(self) -> Dict[str, List[Candidate]]:
        out: Dict[str, List[Candidate]] = {}
        for cand in self.candidates:
            out.setdefault(cand.course_id, []).append(cand)
        return out

    def __len__(self) -> int:
        return len(self.candidates)


def check_data_feasibility(problem: ProblemInstance) -> None:
    """Fail on the first course (by id) that no room can host in any slot."""
    for course in sorted(problem.courses, key=lambda c: c.course_id):
        if any(room_fits(course, room) for room in problem.rooms):
            continue
        matching = [r.capacity for r in problem.rooms if course.room_type is None or r.room_type == course.room_type]
        raise DataInfeasibilityError(
            course.course_id,
            course.size,
            max(matching, default=0),
            room_type=course.room_type,
        )


def alternative_slots(
    declared: TimeSlot,
    slots: Tuple[TimeSlot, ...],
    periods_per_day: int,
    limit: Optional[int] = None,
) -> List[TimeSlot]:
    others = [s for s in slots if s.slot_id != declared.slot_id]
    if limit is None or limit >= len(others):
        return others
    nearest = sorted(others, key=lambda s: (slot_distance(declared, s, periods_per_day), s.ordinal))
    return sorted(nearest[: max(0, limit)], key=lambda s: s.ordinal)


def _expand(
    course: Course,
    slot: TimeSlot,
    problem: ProblemInstance,
    *,
    deviates: bool,
    deviation_penalty: int,
    occupancy: Optional[OccupancyState],
) -> List[Candidate]:
    out: List[Candidate] = []
    for room in sorted(problem.rooms, key=lambda r: r.room_id):
        if not room_fits(course, room):
            continue
        if occupancy is not None and not occupancy.is_free(course.lecturer_id, slot.slot_id, room.room_id):
            continue
        waste = room.capacity - course.size
        out.append(
            Candidate(
                course_id=course.course_id,
                lecturer_id=course.lecturer_id,
                slot_id=slot.slot_id,
                room_id=room.room_id,
                waste=waste,
                deviates=deviates,
                cost=waste + (deviation_penalty if deviates else 0),
            )
        )
    return out


def build_candidates(
    problem: ProblemInstance,
    declared: Mapping[str, DeclaredPreference],
    *,
    deviation_penalty: int,
    max_alternative_slots: Optional[int] = None,
    occupancy: Optional[OccupancyState] = None,
) -> CandidatePool:
    """Expand every declared preference into costed (course, slot, room) candidates.

    The declared slot is expanded by every room that can hold the course, then
    the alternative slots (all other slots, or the ``max_alternative_slots``
    nearest ones) the same way. ``cost`` is the room waste plus
    ``deviation_penalty`` when the slot is not the declared one; it is the exact
    quantity the global assignment minimises.
    """
    check_data_feasibility(problem)
    if deviation_penalty < 0:
        raise ConfigurationError("deviation_penalty must be a non-negative integer")

    periods_per_day = problem.periods_per_day
    candidates: List[Candidate] = []
    for course in sorted(problem.courses, key=lambda c: c.course_id):
        pref = declared.get(course.course_id)
        if pref is None:
            raise ConfigurationError(
                f"course '{course.course_id}' has no declared preference",
                details={"course": course.course_id},
            )
        declared_slot = problem.slot(pref.slot_id)
        slots = [declared_slot] + alternative_slots(
            declared_slot, problem.slots, periods_per_day, max_alternative_slots
        )
        for slot in sorted(slots, key=lambda s: s.ordinal):
            candidates.extend(
                _expand(
                    course,
                    slot,
                    problem,
                    deviates=slot.slot_id != declared_slot.slot_id,
                    deviation_penalty=deviation_penalty,
                    occupancy=occupancy,
                )
            )

    logger.info("Candidate pool: %d candidates for %d courses", len(candidates), len(problem.courses))
    return CandidatePool(candidates=tuple(candidates))
