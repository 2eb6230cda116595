import json
import logging
from pathlib import Path

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from timetable_exceptions import SchedulingError
from timetable_schema import TimetableInput
from timetable_solver import assignment_table, run_pipeline, summary_dict

logger = logging.getLogger(__name__)

SAMPLE_INPUT_PATH = Path(__file__).resolve().parent.parent / "timetable_input.sample.json"

app = FastAPI()

# Allow requests from the Next.js development server
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/app_initial_data")
async def get_app_initial_data():
    """Returns the sample planning input bundled with the project."""
    if not SAMPLE_INPUT_PATH.is_file():
        raise HTTPException(status_code=404, detail=f"sample input not found at {SAMPLE_INPUT_PATH}")
    with SAMPLE_INPUT_PATH.open(encoding="utf-8") as f:
        return json.load(f)


@app.post("/solve")
def solve_timetable_endpoint(request: TimetableInput):
    try:
        problem = request.to_problem()
        result = run_pipeline(problem, request.settings.to_pipeline_settings())
    except SchedulingError as e:
        logger.info("solve rejected: %s", e.message)
        raise HTTPException(
            status_code=400,
            detail={"message": e.message, "error": type(e).__name__, "details": e.details},
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"message": str(e), "error": "InvalidInput", "details": {}})

    return {
        "status": result.summary.global_status,
        "objective_value": result.summary.global_objective,
        "summary": summary_dict(result.summary),
        "assignments": assignment_table(problem, result),
        "payments": result.payments,
    }
