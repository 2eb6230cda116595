import argparse
import json
import logging
import sys
import time
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from candidate_builder import build_candidates
from global_assignment import GlobalAssignmentResult, solve_global_assignment
from preference_elicitation import elicit_all, vcg_payments
from repair_pass import repair_unscheduled
from timetable_exceptions import SchedulingError
from timetable_models import Assignment, DeclaredPreference, OccupancyState, PipelineSettings, ProblemInstance
from timetable_schema import SolverSettings, TimetableInput

logger = logging.getLogger(__name__)


@dataclass
class PipelineSummary:
    total_courses: int
    placed_by_global: int
    kept_after_global: int
    kept_preference: int
    repaired: int
    global_status: str
    global_objective: Optional[int]
    best_known_incomplete: bool
    stage_seconds: Dict[str, float] = field(default_factory=dict)


@dataclass
class PipelineResult:
    declared: Dict[str, DeclaredPreference]
    assignments: List[Assignment]
    stage_b: GlobalAssignmentResult
    summary: PipelineSummary
    payments: Dict[str, float] = field(default_factory=dict)


def count_kept(assignments: List[Assignment], declared: Dict[str, DeclaredPreference]) -> int:
    return sum(1 for a in assignments if declared[a.course_id].slot_id == a.slot_id)


def validate_assignments(problem: ProblemInstance, assignments: List[Assignment]) -> List[str]:
    """Return a list of violated invariants (empty when the timetable is valid)."""
    problems: List[str] = []
    seen_courses: Dict[str, int] = {}
    room_slots: Dict[tuple, str] = {}
    lecturer_slots: Dict[tuple, str] = {}
    for a in assignments:
        seen_courses[a.course_id] = seen_courses.get(a.course_id, 0) + 1
        key = (a.slot_id, a.room_id)
        if key in room_slots:
            problems.append(f"room '{a.room_id}' at '{a.slot_id}' hosts both '{room_slots[key]}' and '{a.course_id}'")
        room_slots[key] = a.course_id
        lkey = (a.lecturer_id, a.slot_id)
        if lkey in lecturer_slots:
            problems.append(
                f"lecturer '{a.lecturer_id}' teaches both '{lecturer_slots[lkey]}' and '{a.course_id}' at '{a.slot_id}'"
            )
        lecturer_slots[lkey] = a.course_id
        course = problem.course(a.course_id)
        room = problem.room(a.room_id)
        if room.capacity < course.size:
            problems.append(f"course '{a.course_id}' ({course.size}) does not fit room '{a.room_id}' ({room.capacity})")
    for c in problem.courses:
        n = seen_courses.get(c.course_id, 0)
        if n != 1:
            problems.append(f"course '{c.course_id}' is assigned {n} times")
    return problems


def run_pipeline(problem: ProblemInstance, settings: Optional[PipelineSettings] = None) -> PipelineResult:
    settings = settings or PipelineSettings()
    timings: Dict[str, float] = {}

    t0 = time.perf_counter()
    declared = elicit_all(problem, settings)
    timings["elicitation"] = time.perf_counter() - t0

    t0 = time.perf_counter()
    pool = build_candidates(
        problem,
        declared,
        deviation_penalty=settings.deviation_penalty,
        max_alternative_slots=settings.max_alternative_slots,
    )
    timings["candidates"] = time.perf_counter() - t0

    t0 = time.perf_counter()
    stage_b = solve_global_assignment(
        problem,
        pool,
        time_limit_s=settings.time_limit_s,
        deterministic_time_limit=settings.deterministic_time_limit,
        num_workers=settings.num_workers,
        random_seed=settings.random_seed,
        log_search_progress=settings.log_search_progress,
    )
    timings["global"] = time.perf_counter() - t0
    kept_after_global = count_kept(stage_b.assignments, declared)

    t0 = time.perf_counter()
    # Stage C extends the occupancy Stage B started; B's result keeps its own snapshot
    occupancy = OccupancyState(
        room_slots=dict(stage_b.occupancy.room_slots),
        lecturer_slots=dict(stage_b.occupancy.lecturer_slots),
        placed=dict(stage_b.occupancy.placed),
    )
    repaired = repair_unscheduled(problem, declared, stage_b.unscheduled, occupancy)
    timings["repair"] = time.perf_counter() - t0

    assignments = occupancy.assignments()
    violations = validate_assignments(problem, assignments)
    if violations:
        raise AssertionError("final timetable violates invariants: " + "; ".join(violations))

    summary = PipelineSummary(
        total_courses=len(problem.courses),
        placed_by_global=len(stage_b.assignments),
        kept_after_global=kept_after_global,
        kept_preference=count_kept(assignments, declared),
        repaired=len(repaired),
        global_status=stage_b.status,
        global_objective=stage_b.objective_value,
        best_known_incomplete=stage_b.best_known_incomplete,
        stage_seconds=timings,
    )
    logger.info(
        "Pipeline done: %d courses, %d kept at declared slot, %d repaired",
        summary.total_courses,
        summary.kept_preference,
        summary.repaired,
    )
    return PipelineResult(
        declared=declared,
        assignments=assignments,
        stage_b=stage_b,
        summary=summary,
        payments=vcg_payments(problem),
    )


def assignment_table(problem: ProblemInstance, result: PipelineResult) -> List[Dict[str, object]]:
    rows: List[Dict[str, object]] = []
    for a in result.assignments:
        slot = problem.slot(a.slot_id)
        rows.append(
            {
                "course": a.course_id,
                "lecturer": a.lecturer_id,
                "day": slot.day,
                "time_range": slot.time_range,
                "room": a.room_id,
                "slot": a.slot_id,
                "kept_preference": result.declared[a.course_id].slot_id == a.slot_id,
                "stage": a.stage,
            }
        )
    return rows


def summary_dict(summary: PipelineSummary) -> Dict[str, object]:
    return asdict(summary)


def _format_grid(*, title: str, problem: ProblemInstance, cells: Dict[str, List[str]]) -> str:
    days: List[str] = []
    for s in problem.slots:
        if s.day not in days:
            days.append(s.day)
    periods: List[str] = []
    for s in problem.slots:
        if s.period not in periods:
            periods.append(s.period)

    grid: List[List[str]] = []
    for day in days:
        row: List[str] = []
        for period in periods:
            entries = cells.get(f"{day}-{period}", [])
            row.append(", ".join(entries) if entries else "-")
        grid.append(row)

    col_widths = [max(len(periods[i]), max(len(grid[r][i]) for r in range(len(days)))) for i in range(len(periods))]
    day_width = max(len("Day"), max(len(d) for d in days))

    lines: List[str] = [title]
    header = " " * (day_width + 2) + "  ".join(periods[i].ljust(col_widths[i]) for i in range(len(periods)))
    lines.append(header)
    for d, day in enumerate(days):
        lines.append(day.ljust(day_width) + "  " + "  ".join(grid[d][i].ljust(col_widths[i]) for i in range(len(periods))))
    return "\n".join(lines)


def format_room_timetable(problem: ProblemInstance, result: PipelineResult) -> str:
    cells: Dict[str, List[str]] = {}
    for a in result.assignments:
        cells.setdefault(a.slot_id, []).append(f"{a.course_id}@{a.room_id}")
    return _format_grid(title="Timetable", problem=problem, cells=cells)


def format_lecturer_timetable(problem: ProblemInstance, result: PipelineResult, lecturer_id: str) -> str:
    cells: Dict[str, List[str]] = {}
    for a in result.assignments:
        if a.lecturer_id != lecturer_id:
            continue
        marker = "" if result.declared[a.course_id].slot_id == a.slot_id else "*"
        cells.setdefault(a.slot_id, []).append(f"{a.course_id}{marker}({a.room_id})")
    return _format_grid(title=f"Lecturer: {lecturer_id}", problem=problem, cells=cells)


def format_summary(summary: PipelineSummary) -> str:
    timing = "  ".join(f"{k}={v:.3f}s" for k, v in summary.stage_seconds.items())
    lines = [
        f"Courses: {summary.total_courses}",
        f"Global assignment: status={summary.global_status} objective={summary.global_objective} "
        f"placed={summary.placed_by_global}",
        f"Kept at declared slot: {summary.kept_preference}/{summary.total_courses} "
        f"(after global stage: {summary.kept_after_global})",
        f"Repaired: {summary.repaired}",
        f"Stage times: {timing}",
    ]
    if summary.best_known_incomplete:
        lines.append("Note: global stage hit its time limit; best-known incumbent was used.")
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Lecture timetable planner: preference elicitation, global assignment and repair (OR-Tools CP-SAT)."
    )
    parser.add_argument("--input", required=True, help="Path to input JSON file.")
    parser.add_argument("--time_limit_s", type=float, default=None, help="CP-SAT time limit for the global stage.")
    parser.add_argument(
        "--deterministic_time", type=float, default=None, help="CP-SAT deterministic time budget for the global stage."
    )
    parser.add_argument("--deviation_penalty", type=int, default=None, help="Cost of moving a course off its declared slot.")
    parser.add_argument("--spread_fraction", type=float, default=None, help="Day-spread weight as a fraction of utility range.")
    parser.add_argument("--max_alternative_slots", type=int, default=None, help="Cap on alternative slots per course.")
    parser.add_argument("--workers", type=int, default=None, help="CP-SAT workers for the global stage.")
    parser.add_argument("--output", default=None, help="Write the assignment table and summary as JSON.")
    parser.add_argument("--save_input", default=None, help="Write the validated input, with CLI overrides applied, as JSON.")
    parser.add_argument("--print_lecturers", action="store_true", help="Also print timetable per lecturer.")
    parser.add_argument("--verbose", action="store_true", help="Debug logging.")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        ti = TimetableInput.load_file(args.input)
        overrides = {
            "time_limit_s": args.time_limit_s,
            "deterministic_time_limit": args.deterministic_time,
            "deviation_penalty": args.deviation_penalty,
            "spread_fraction": args.spread_fraction,
            "max_alternative_slots": args.max_alternative_slots,
            "num_workers": args.workers,
        }
        checked = SolverSettings.model_validate(
            {**ti.settings.model_dump(), **{k: v for k, v in overrides.items() if v is not None}}
        )
        settings = checked.to_pipeline_settings()
        if args.save_input:
            ti.model_copy(update={"settings": checked}).save_file(args.save_input)
        problem = ti.to_problem()
        result = run_pipeline(problem, settings)
    except SchedulingError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        return 2

    print(format_summary(result.summary))
    print()
    print(format_room_timetable(problem, result))
    print()
    if args.print_lecturers:
        for lecturer_id in sorted(problem.lecturers):
            print(format_lecturer_timetable(problem, result, lecturer_id))
            print()

    if args.output:
        payload = {
            "summary": summary_dict(result.summary),
            "assignments": assignment_table(problem, result),
            "payments": result.payments,
        }
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
            f.write("\n")
        print(f"Saved: {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
