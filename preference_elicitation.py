"""
Stage A: per-lecturer preference elicitation.

Every lecturer is solved on their own: the model only sees that lecturer's
courses and preference vector, so a lecturer's optimal report does not depend
on anyone else's and the VCG payment in this game is zero. Solves share no
mutable state and can run concurrently.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Sequence, Tuple

from ortools.sat.python import cp_model

from timetable_exceptions import ConfigurationError, InfeasibleElicitationError, ModelingError
from timetable_models import Course, DeclaredPreference, Lecturer, PipelineSettings, ProblemInstance, TimeSlot

logger = logging.getLogger(__name__)

# CP-SAT needs integer coefficients; utilities are kept to three decimals.
UTILITY_SCALE = 1000


def spread_weight(preferences: Sequence[float], spread_fraction: float) -> float:
    """Day-spread weight, normalised to the lecturer's own utility range."""
    if not preferences:
        return 0.0
    return spread_fraction * (max(preferences) - min(preferences))


def check_elicitation_inputs(lecturer: Lecturer, courses: Sequence[Course], slots: Sequence[TimeSlot]) -> None:
    if len(lecturer.preferences) != len(slots):
        raise ConfigurationError(
            f"lecturer '{lecturer.lecturer_id}' has {len(lecturer.preferences)} preference values "
            f"but the calendar has {len(slots)} slots",
            details={"lecturer": lecturer.lecturer_id},
        )
    if len(courses) > len(slots):
        raise InfeasibleElicitationError(lecturer.lecturer_id, len(courses), len(slots))


def elicit_lecturer_preferences(
    *,
    lecturer: Lecturer,
    courses: Sequence[Course],
    slots: Sequence[TimeSlot],
    spread_fraction: float,
) -> List[DeclaredPreference]:
    check_elicitation_inputs(lecturer, courses, slots)
    ordered = sorted(courses, key=lambda c: c.course_id)
    if not ordered:
        return []

    utility = [int(round(u * UTILITY_SCALE)) for u in lecturer.preferences]
    lam = int(round(spread_weight(lecturer.preferences, spread_fraction) * UTILITY_SCALE))

    model = cp_model.CpModel()

    # x[(course_id, slot_ordinal)] = 1 if the course is declared at that slot
    x: Dict[Tuple[str, int], cp_model.IntVar] = {}
    for c in ordered:
        for s in slots:
            x[(c.course_id, s.ordinal)] = model.NewBoolVar(f"x__{c.course_id}__{s.slot_id}")

    # used[d] = 1 if any of this lecturer's courses lands on day d
    days = sorted({s.day_index for s in slots})
    used: Dict[int, cp_model.IntVar] = {d: model.NewBoolVar(f"used__{lecturer.lecturer_id}__{d}") for d in days}

    for c in ordered:
        model.Add(sum(x[(c.course_id, s.ordinal)] for s in slots) == 1)

    # no two of the lecturer's own courses at the same slot
    for s in slots:
        model.Add(sum(x[(c.course_id, s.ordinal)] for c in ordered) <= 1)

    for c in ordered:
        for s in slots:
            model.Add(x[(c.course_id, s.ordinal)] <= used[s.day_index])

    model.Maximize(
        sum(utility[i] * x[(c.course_id, s.ordinal)] for c in ordered for i, s in enumerate(slots))
        - lam * sum(used.values())
    )

    solver = cp_model.CpSolver()
    solver.parameters.num_workers = 1
    solver.parameters.random_seed = 0
    status = solver.Solve(model)
    if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
        raise ModelingError(
            f"preference elicitation for lecturer '{lecturer.lecturer_id}' ended with status {solver.StatusName(status)}"
        )

    chosen = sorted(
        i for i, s in enumerate(slots) for c in ordered if solver.Value(x[(c.course_id, s.ordinal)]) == 1
    )
    # Courses of one lecturer are interchangeable in this objective; hand the chosen
    # slots out in enumeration order to courses in id order so the result is canonical.
    out = [
        DeclaredPreference(
            course_id=c.course_id,
            lecturer_id=lecturer.lecturer_id,
            slot_id=slots[i].slot_id,
            utility=lecturer.preferences[i],
        )
        for c, i in zip(ordered, chosen)
    ]
    logger.debug(
        "lecturer %s: %d courses declared on %d day(s), lambda=%.3f",
        lecturer.lecturer_id,
        len(out),
        len({slots[i].day_index for i in chosen}),
        lam / UTILITY_SCALE,
    )
    return out


def elicit_all(problem: ProblemInstance, settings: PipelineSettings) -> Dict[str, DeclaredPreference]:
    """Run Stage A for every lecturer and join the results."""
    by_lecturer = problem.courses_by_lecturer()
    slots = problem.slots

    # every precondition is checked before the first solve
    for lecturer_id, courses in by_lecturer.items():
        lecturer = problem.lecturers.get(lecturer_id)
        if lecturer is None:
            raise ConfigurationError(
                f"course '{courses[0].course_id}' refers to unknown lecturer '{lecturer_id}'",
                details={"lecturer": lecturer_id, "course": courses[0].course_id},
            )
        check_elicitation_inputs(lecturer, courses, slots)

    jobs = [(problem.lecturers[lid], tuple(courses)) for lid, courses in by_lecturer.items()]

    def _solve(job: Tuple[Lecturer, Tuple[Course, ...]]) -> List[DeclaredPreference]:
        lecturer, courses = job
        return elicit_lecturer_preferences(
            lecturer=lecturer,
            courses=courses,
            slots=slots,
            spread_fraction=settings.spread_fraction,
        )

    workers = max(1, int(settings.elicitation_workers))
    if workers == 1 or len(jobs) <= 1:
        results = [_solve(job) for job in jobs]
    else:
        with ThreadPoolExecutor(max_workers=min(workers, len(jobs))) as executor:
            results = list(executor.map(_solve, jobs))

    declared: Dict[str, DeclaredPreference] = {}
    for prefs in results:
        for p in prefs:
            declared[p.course_id] = p
    logger.info("Stage A: declared preferences for %d courses across %d lecturers", len(declared), len(jobs))
    return declared


def vcg_payments(problem: ProblemInstance) -> Dict[str, float]:
    # No lecturer's report changes any other lecturer's outcome in Stage A, so
    # every externality (and hence every VCG payment) is zero.
    return {lecturer_id: 0.0 for lecturer_id in sorted(problem.lecturers)}
