"""
Stage B: one global constrained-selection solve over the candidate pool.

Each candidate gets a boolean. A course may take at most one candidate, each
(slot, room) and each (lecturer, slot) may host at most one chosen candidate.
Leaving a course unchosen is always legal; it costs ``unscheduled_penalty``,
which exceeds any achievable placement cost, so the solver first maximises
the number of placed courses and then minimises waste plus deviation.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ortools.sat.python import cp_model

from candidate_builder import CandidatePool
from timetable_exceptions import ModelingError
from timetable_models import STAGE_GLOBAL, Assignment, Candidate, OccupancyState, ProblemInstance

logger = logging.getLogger(__name__)


@dataclass
class GlobalAssignmentResult:
    assignments: List[Assignment]
    unscheduled: List[str]
    status: str
    # total candidate cost of the chosen placements
    objective_value: Optional[int]
    best_known_incomplete: bool
    occupancy: OccupancyState = field(default_factory=OccupancyState)
    wall_time_s: float = 0.0


def unscheduled_penalty(pool: CandidatePool) -> int:
    """Larger than the cost of any selection the pool allows."""
    return sum(max(c.cost for c in cands) for cands in pool.by_course().values()) + 1


def solve_global_assignment(
    problem: ProblemInstance,
    pool: CandidatePool,
    *,
    time_limit_s: float,
    deterministic_time_limit: Optional[float] = None,
    num_workers: int = 1,
    random_seed: int = 0,
    log_search_progress: bool = False,
) -> GlobalAssignmentResult:
    started = time.perf_counter()
    model = cp_model.CpModel()

    cands: Tuple[Candidate, ...] = pool.candidates
    x: List[cp_model.IntVar] = [
        model.NewBoolVar(f"x__{c.course_id}__{c.slot_id}__{c.room_id}") for c in cands
    ]

    by_course: Dict[str, List[int]] = {}
    by_room_slot: Dict[Tuple[str, str], List[int]] = {}
    by_lecturer_slot: Dict[Tuple[str, str], List[int]] = {}
    for i, c in enumerate(cands):
        by_course.setdefault(c.course_id, []).append(i)
        by_room_slot.setdefault((c.slot_id, c.room_id), []).append(i)
        by_lecturer_slot.setdefault((c.lecturer_id, c.slot_id), []).append(i)

    # at most one candidate per course; unchosen is allowed
    for idxs in by_course.values():
        model.Add(sum(x[i] for i in idxs) <= 1)

    # room exclusivity
    for idxs in by_room_slot.values():
        if len(idxs) > 1:
            model.Add(sum(x[i] for i in idxs) <= 1)

    # lecturer non-overlap
    for idxs in by_lecturer_slot.values():
        if len(idxs) > 1:
            model.Add(sum(x[i] for i in idxs) <= 1)

    big_m = unscheduled_penalty(pool)
    num_courses = len(problem.courses)
    model.Minimize(
        sum(c.cost * x[i] for i, c in enumerate(cands))
        + big_m * num_courses
        - big_m * sum(x)
    )

    # the empty selection is always feasible
    for var in x:
        model.AddHint(var, 0)

    solver = cp_model.CpSolver()
    solver.parameters.max_time_in_seconds = float(time_limit_s)
    if deterministic_time_limit is not None:
        solver.parameters.max_deterministic_time = float(deterministic_time_limit)
    solver.parameters.num_workers = max(1, int(num_workers))
    solver.parameters.random_seed = int(random_seed)
    solver.parameters.log_search_progress = bool(log_search_progress)
    status = solver.Solve(model)
    status_name = solver.StatusName(status)

    if status in (cp_model.INFEASIBLE, cp_model.MODEL_INVALID):
        # leaving every course unchosen is legal, so this is a bug in the model
        raise ModelingError(f"global assignment model returned {status_name}; the model is inconsistent")

    occupancy = OccupancyState()
    chosen: List[Candidate] = []
    if status in (cp_model.OPTIMAL, cp_model.FEASIBLE):
        chosen = [c for i, c in enumerate(cands) if solver.Value(x[i]) == 1]

    for c in chosen:
        occupancy.occupy(
            Assignment(
                course_id=c.course_id,
                lecturer_id=c.lecturer_id,
                slot_id=c.slot_id,
                room_id=c.room_id,
                stage=STAGE_GLOBAL,
            )
        )

    placed = {c.course_id for c in chosen}
    unscheduled = sorted(c.course_id for c in problem.courses if c.course_id not in placed)
    incomplete = status != cp_model.OPTIMAL
    objective = sum(c.cost for c in chosen) if status in (cp_model.OPTIMAL, cp_model.FEASIBLE) else None
    if incomplete:
        logger.warning(
            "Stage B stopped at the %.1fs limit with status %s; keeping best-known incumbent (%d placed, %d left)",
            time_limit_s,
            status_name,
            len(chosen),
            len(unscheduled),
        )

    elapsed = time.perf_counter() - started
    logger.info(
        "Stage B: status=%s placed=%d unscheduled=%d cost=%s (%.3fs)",
        status_name,
        len(chosen),
        len(unscheduled),
        objective,
        elapsed,
    )
    return GlobalAssignmentResult(
        assignments=occupancy.assignments(),
        unscheduled=unscheduled,
        status=status_name,
        objective_value=objective,
        best_known_incomplete=incomplete,
        occupancy=occupancy,
        wall_time_s=elapsed,
    )
