from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

STAGE_GLOBAL = "global"
STAGE_REPAIR = "repair"


@dataclass(frozen=True)
class TimeSlot:
    slot_id: str
    day: str
    period: str
    day_index: int
    period_index: int
    ordinal: int
    start: Optional[str] = None
    end: Optional[str] = None

    @property
    def time_range(self) -> str:
        if self.start and self.end:
            return f"{self.start}-{self.end}"
        return self.period


@dataclass(frozen=True)
class Course:
    course_id: str
    size: int
    lecturer_id: str
    room_type: Optional[str] = None


@dataclass(frozen=True)
class Lecturer:
    lecturer_id: str
    archetype: str
    # one utility per slot, in slot enumeration order
    preferences: Tuple[float, ...]
    noise_sd: float = 0.0


@dataclass(frozen=True)
class Room:
    room_id: str
    capacity: int
    room_type: str = "lecture"


@dataclass(frozen=True)
class DeclaredPreference:
    course_id: str
    lecturer_id: str
    slot_id: str
    utility: float


@dataclass(frozen=True)
class Candidate:
    course_id: str
    lecturer_id: str
    slot_id: str
    room_id: str
    waste: int
    deviates: bool
    cost: int


@dataclass(frozen=True)
class Assignment:
    course_id: str
    lecturer_id: str
    slot_id: str
    room_id: str
    stage: str = STAGE_GLOBAL


def room_fits(course: Course, room: Room) -> bool:
    if room.capacity < course.size:
        return False
    if course.room_type is not None and room.room_type != course.room_type:
        return False
    return True


def slot_distance(a: TimeSlot, b: TimeSlot, periods_per_day: int) -> int:
    """Ordinal distance between two slots.

    Within a day this is the number of periods apart. Crossing a day boundary
    costs ``periods_per_day`` per day, which is larger than any within-day gap.
    """
    within = abs(a.period_index - b.period_index)
    if a.day_index == b.day_index:
        return within
    return abs(a.day_index - b.day_index) * periods_per_day + within


@dataclass
class OccupancyState:
    room_slots: Dict[Tuple[str, str], str] = field(default_factory=dict)
    lecturer_slots: Dict[Tuple[str, str], str] = field(default_factory=dict)
    placed: Dict[str, Assignment] = field(default_factory=dict)

    def room_free(self, slot_id: str, room_id: str) -> bool:
        return (slot_id, room_id) not in self.room_slots

    def lecturer_free(self, lecturer_id: str, slot_id: str) -> bool:
        return (lecturer_id, slot_id) not in self.lecturer_slots

    def is_free(self, lecturer_id: str, slot_id: str, room_id: str) -> bool:
        return self.room_free(slot_id, room_id) and self.lecturer_free(lecturer_id, slot_id)

    def occupy(self, assignment: Assignment) -> None:
        a = assignment
        if a.course_id in self.placed:
            raise ValueError(f"course '{a.course_id}' is already placed")
        if not self.room_free(a.slot_id, a.room_id):
            raise ValueError(
                f"room '{a.room_id}' at slot '{a.slot_id}' is already taken by "
                f"'{self.room_slots[(a.slot_id, a.room_id)]}'"
            )
        if not self.lecturer_free(a.lecturer_id, a.slot_id):
            raise ValueError(
                f"lecturer '{a.lecturer_id}' already teaches "
                f"'{self.lecturer_slots[(a.lecturer_id, a.slot_id)]}' at slot '{a.slot_id}'"
            )
        self.room_slots[(a.slot_id, a.room_id)] = a.course_id
        self.lecturer_slots[(a.lecturer_id, a.slot_id)] = a.course_id
        self.placed[a.course_id] = a

    def assignments(self) -> List[Assignment]:
        return [self.placed[cid] for cid in sorted(self.placed)]


@dataclass(frozen=True)
class ProblemInstance:
    courses: Tuple[Course, ...]
    lecturers: Dict[str, Lecturer]
    rooms: Tuple[Room, ...]
    slots: Tuple[TimeSlot, ...]

    def __post_init__(self) -> None:
        # lookup tables; object.__setattr__ because the dataclass is frozen
        object.__setattr__(self, "_course_by_id", {c.course_id: c for c in self.courses})
        object.__setattr__(self, "_room_by_id", {r.room_id: r for r in self.rooms})
        object.__setattr__(self, "_slot_by_id", {s.slot_id: s for s in self.slots})

    def course(self, course_id: str) -> Course:
        return self._course_by_id[course_id]  # type: ignore[attr-defined]

    def room(self, room_id: str) -> Room:
        return self._room_by_id[room_id]  # type: ignore[attr-defined]

    def slot(self, slot_id: str) -> TimeSlot:
        return self._slot_by_id[slot_id]  # type: ignore[attr-defined]

    @property
    def periods_per_day(self) -> int:
        if not self.slots:
            return 1
        return max(s.period_index for s in self.slots) + 1

    def courses_by_lecturer(self) -> Dict[str, List[Course]]:
        out: Dict[str, List[Course]] = {lid: [] for lid in sorted(self.lecturers)}
        for c in sorted(self.courses, key=lambda c: c.course_id):
            out.setdefault(c.lecturer_id, []).append(c)
        return out


def build_slots(days: List[str], periods: List[Tuple[str, Optional[str], Optional[str]]]) -> Tuple[TimeSlot, ...]:
    """Day-major enumeration of the (day, period) grid."""
    slots: List[TimeSlot] = []
    for d, day in enumerate(days):
        for p, (period, start, end) in enumerate(periods):
            slots.append(
                TimeSlot(
                    slot_id=f"{day}-{period}",
                    day=day,
                    period=period,
                    day_index=d,
                    period_index=p,
                    ordinal=len(slots),
                    start=start,
                    end=end,
                )
            )
    return tuple(slots)


@dataclass(frozen=True)
class PipelineSettings:
    spread_fraction: float = 0.5
    deviation_penalty: int = 100
    # None means every non-declared slot is an alternative
    max_alternative_slots: Optional[int] = None
    time_limit_s: float = 10.0
    # CP-SAT work units; unlike the wall-clock limit this does not depend on machine load
    deterministic_time_limit: Optional[float] = None
    num_workers: int = 1
    random_seed: int = 0
    elicitation_workers: int = 1
    log_search_progress: bool = False
