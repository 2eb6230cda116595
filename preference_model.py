"""
Lecturer time-preference shapes.

Each archetype maps the (day, period) grid to a base utility on a 0..10 scale.
A lecturer's preference vector is the archetype shape plus independent
Gaussian noise drawn from a generator seeded by the lecturer id, so the same
input always yields the same vector regardless of which lecturers are present.
"""

import hashlib
import random
from typing import Callable, Dict, Sequence, Tuple

from timetable_exceptions import ConfigurationError
from timetable_models import TimeSlot

MAX_UTILITY = 10.0


def _position(index: int, count: int) -> float:
    # 0.0 for the first item, 1.0 for the last
    if count <= 1:
        return 0.0
    return index / (count - 1)


def _morning(slot: TimeSlot, num_days: int, num_periods: int) -> float:
    return MAX_UTILITY * (1.0 - _position(slot.period_index, num_periods))


def _evening(slot: TimeSlot, num_days: int, num_periods: int) -> float:
    return MAX_UTILITY * _position(slot.period_index, num_periods)


def _midday(slot: TimeSlot, num_days: int, num_periods: int) -> float:
    return MAX_UTILITY * (1.0 - 2.0 * abs(_position(slot.period_index, num_periods) - 0.5))


def _clustered(slot: TimeSlot, num_days: int, num_periods: int) -> float:
    # strong pull towards the first half of the week
    return MAX_UTILITY if slot.day_index < (num_days + 1) // 2 else 0.2 * MAX_UTILITY


def _spread(slot: TimeSlot, num_days: int, num_periods: int) -> float:
    # every day equally good, mild preference for the middle of the day
    return 0.5 * MAX_UTILITY + 0.2 * _midday(slot, num_days, num_periods)


def _flexible(slot: TimeSlot, num_days: int, num_periods: int) -> float:
    return 0.5 * MAX_UTILITY


ARCHETYPES: Dict[str, Callable[[TimeSlot, int, int], float]] = {
    "morning": _morning,
    "evening": _evening,
    "midday": _midday,
    "clustered": _clustered,
    "spread": _spread,
    "flexible": _flexible,
}


def archetype_base_utilities(archetype: str, slots: Sequence[TimeSlot]) -> Tuple[float, ...]:
    shape = ARCHETYPES.get(archetype)
    if shape is None:
        raise ConfigurationError(
            f"unknown lecturer archetype '{archetype}' (expected one of {', '.join(sorted(ARCHETYPES))})",
            details={"archetype": archetype},
        )
    num_days = len({s.day_index for s in slots})
    num_periods = len({s.period_index for s in slots})
    return tuple(shape(s, num_days, num_periods) for s in slots)


def lecturer_rng(lecturer_id: str, seed: int) -> random.Random:
    digest = hashlib.sha256(f"{seed}:{lecturer_id}".encode("utf-8")).digest()
    return random.Random(int.from_bytes(digest[:8], "big"))


def build_preference_vector(
    *,
    lecturer_id: str,
    archetype: str,
    slots: Sequence[TimeSlot],
    noise_sd: float,
    seed: int = 0,
) -> Tuple[float, ...]:
    base = archetype_base_utilities(archetype, slots)
    if noise_sd <= 0:
        return base
    rng = lecturer_rng(lecturer_id, seed)
    return tuple(round(u + rng.gauss(0.0, noise_sd), 3) for u in base)
