from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from preference_model import ARCHETYPES, build_preference_vector
from timetable_models import Course, Lecturer, PipelineSettings, ProblemInstance, Room, build_slots

MAX_SLOTS = 100


def _clean_name(v: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError("must be a non-empty string")
    return v


class PeriodSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    start: Optional[str] = None
    end: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        return _clean_name(v)

    @field_validator("start", "end")
    @classmethod
    def _time_clean(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v and v.strip() else None


class Calendar(BaseModel):
    model_config = ConfigDict(extra="forbid")

    days: List[str] = Field(default_factory=lambda: ["Mon", "Tue", "Wed", "Thu", "Fri"])
    periods: List[PeriodSpec] = Field(
        default_factory=lambda: [
            PeriodSpec(name="P1", start="09:00", end="10:30"),
            PeriodSpec(name="P2", start="11:00", end="12:30"),
            PeriodSpec(name="P3", start="14:00", end="15:30"),
            PeriodSpec(name="P4", start="16:00", end="17:30"),
        ]
    )

    @field_validator("days")
    @classmethod
    def _days_clean(cls, v: List[str]) -> List[str]:
        if not isinstance(v, list) or not v:
            raise ValueError("must be a non-empty array of strings")
        out = [_clean_name(x) for x in v]
        if len(set(out)) != len(out):
            raise ValueError("day names must be unique")
        return out

    @field_validator("periods", mode="before")
    @classmethod
    def _periods_from_names(cls, v: Any) -> Any:
        # Plain period names are accepted as shorthand for {"name": ...}
        if isinstance(v, list):
            return [{"name": p} if isinstance(p, str) else p for p in v]
        return v

    @model_validator(mode="after")
    def _periods_non_empty(self) -> "Calendar":
        if not self.periods:
            raise ValueError("periods must be a non-empty array")
        names = [p.name for p in self.periods]
        if len(set(names)) != len(names):
            raise ValueError("period names must be unique")
        return self

    @property
    def num_slots(self) -> int:
        return len(self.days) * len(self.periods)


class RoomConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    capacity: int
    type: str = "lecture"

    @field_validator("name", "type")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        return _clean_name(v)

    @field_validator("capacity")
    @classmethod
    def _capacity_positive(cls, v: int) -> int:
        if not isinstance(v, int) or v < 1:
            raise ValueError("must be a positive integer")
        return v


class LecturerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    archetype: str = "flexible"
    # Explicit utility per slot (day-major order). Derived from the archetype when omitted.
    preferences: Optional[List[float]] = None
    noise_sd: float = 0.0

    @field_validator("name")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        return _clean_name(v)

    @field_validator("archetype")
    @classmethod
    def _known_archetype(cls, v: str) -> str:
        v = _clean_name(v)
        if v not in ARCHETYPES:
            raise ValueError(f"must be one of {', '.join(sorted(ARCHETYPES))}")
        return v

    @field_validator("noise_sd")
    @classmethod
    def _noise_nonneg(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must be non-negative")
        return float(v)


class CourseConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    size: int
    lecturer: str
    room_type: Optional[str] = None

    @field_validator("name", "lecturer")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        return _clean_name(v)

    @field_validator("size")
    @classmethod
    def _size_positive(cls, v: int) -> int:
        if not isinstance(v, int) or v < 1:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("room_type")
    @classmethod
    def _room_type_clean(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v and v.strip() else None


class SolverSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # day-spread weight as a fraction of each lecturer's utility range
    spread_fraction: float = 0.5
    # added to a candidate's cost when its slot is not the declared one
    deviation_penalty: int = 100
    max_alternative_slots: Optional[int] = None
    time_limit_s: float = 10.0
    # CP-SAT work units; unlike the wall-clock limit this does not depend on machine load
    deterministic_time_limit: Optional[float] = None
    num_workers: int = 1
    random_seed: int = 0
    elicitation_workers: int = 1
    preference_seed: int = 0
    log_search_progress: bool = False

    @field_validator("spread_fraction", "time_limit_s")
    @classmethod
    def _nonneg_float(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must be non-negative")
        return float(v)

    @field_validator("deviation_penalty")
    @classmethod
    def _nonneg_int(cls, v: int) -> int:
        if not isinstance(v, int) or v < 0:
            raise ValueError("must be a non-negative integer")
        return v

    @field_validator("deterministic_time_limit")
    @classmethod
    def _det_time_positive(cls, v: Optional[float]) -> Optional[float]:
        if v is None:
            return None
        if v <= 0:
            raise ValueError("must be positive if provided")
        return float(v)

    @field_validator("max_alternative_slots")
    @classmethod
    def _alt_nonneg(cls, v: Optional[int]) -> Optional[int]:
        if v is None:
            return None
        if not isinstance(v, int) or v < 0:
            raise ValueError("must be a non-negative integer if provided")
        return v

    @field_validator("num_workers", "elicitation_workers")
    @classmethod
    def _workers_positive(cls, v: int) -> int:
        if not isinstance(v, int) or v < 1:
            raise ValueError("must be a positive integer")
        return v

    def to_pipeline_settings(self) -> PipelineSettings:
        return PipelineSettings(
            spread_fraction=self.spread_fraction,
            deviation_penalty=self.deviation_penalty,
            max_alternative_slots=self.max_alternative_slots,
            time_limit_s=self.time_limit_s,
            deterministic_time_limit=self.deterministic_time_limit,
            num_workers=self.num_workers,
            random_seed=self.random_seed,
            elicitation_workers=self.elicitation_workers,
            log_search_progress=self.log_search_progress,
        )


class TimetableInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    settings: SolverSettings = Field(default_factory=SolverSettings)
    calendar: Calendar = Field(default_factory=Calendar)
    rooms: List[RoomConfig]
    lecturers: List[LecturerConfig]
    courses: List[CourseConfig]

    @model_validator(mode="after")
    def _unique_names(self) -> "TimetableInput":
        for label, names in (
            ("room", [r.name for r in self.rooms]),
            ("lecturer", [t.name for t in self.lecturers]),
            ("course", [c.name for c in self.courses]),
        ):
            if len(set(names)) != len(names):
                raise ValueError(f"{label} names must be unique")
        if not self.rooms:
            raise ValueError("must define at least one room")
        return self

    def validate_references(self) -> None:
        """
        Cross-field validation that depends on the calendar and the lecturer list.
        Raises ValueError with a message naming the offending entry.
        """
        num_slots = self.calendar.num_slots
        if num_slots > MAX_SLOTS:
            raise ValueError(f"calendar has {num_slots} slots; at most {MAX_SLOTS} are supported")

        lecturer_names = {t.name for t in self.lecturers}
        for t in self.lecturers:
            if t.preferences is not None and len(t.preferences) != num_slots:
                raise ValueError(
                    f"lecturer '{t.name}': preferences has {len(t.preferences)} values but the calendar has {num_slots} slots"
                )
        for c in self.courses:
            if c.lecturer not in lecturer_names:
                raise ValueError(f"course '{c.name}': lecturer '{c.lecturer}' is not in lecturers")

    def to_problem(self) -> ProblemInstance:
        self.validate_references()
        slots = build_slots(self.calendar.days, [(p.name, p.start, p.end) for p in self.calendar.periods])
        lecturers: Dict[str, Lecturer] = {}
        for t in self.lecturers:
            if t.preferences is not None:
                prefs = tuple(float(u) for u in t.preferences)
            else:
                prefs = build_preference_vector(
                    lecturer_id=t.name,
                    archetype=t.archetype,
                    slots=slots,
                    noise_sd=t.noise_sd,
                    seed=self.settings.preference_seed,
                )
            lecturers[t.name] = Lecturer(lecturer_id=t.name, archetype=t.archetype, preferences=prefs, noise_sd=t.noise_sd)
        return ProblemInstance(
            courses=tuple(Course(course_id=c.name, size=c.size, lecturer_id=c.lecturer, room_type=c.room_type) for c in self.courses),
            lecturers=lecturers,
            rooms=tuple(Room(room_id=r.name, capacity=r.capacity, room_type=r.type) for r in self.rooms),
            slots=slots,
        )

    @classmethod
    def load_file(cls, path: Union[str, Path]) -> "TimetableInput":
        p = Path(path)
        data = json.loads(p.read_text(encoding="utf-8"))
        try:
            obj = cls.model_validate(data)
        except ValidationError as e:
            # Re-raise with a cleaner message for CLI usage
            raise ValueError(str(e)) from e
        obj.validate_references()
        return obj

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)

    def save_file(self, path: Union[str, Path]) -> None:
        p = Path(path)
        p.write_text(json.dumps(self.to_json_dict(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
