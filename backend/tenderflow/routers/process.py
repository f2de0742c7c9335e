import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from tenderflow.config import settings
from tenderflow.database import get_db
from tenderflow.dependencies import get_analyzer, get_storage, require_service
from tenderflow.schemas.job import ProcessJobRequest
from tenderflow.services.job_runner import JobRunner
from tenderflow.services.job_store import get_job, oldest_queued_job_ids

logger = logging.getLogger("tenderflow.process")

router = APIRouter(
    prefix="/process-job",
    tags=["processing"],
    dependencies=[Depends(require_service)],
)


async def body_job_id(request: Request) -> str:
    """Read ``job_id`` from the body; any malformed body is a 400 rather than a 422."""
    raw = await request.body()
    try:
        req = ProcessJobRequest.model_validate_json(raw or b"{}")
    except ValidationError:
        raise HTTPException(status_code=400, detail="Malformed body, expected {\"job_id\": \"...\"}")
    job_id = (req.job_id or "").strip()
    if not job_id:
        raise HTTPException(status_code=400, detail="Missing job_id")
    return job_id


def _runner(db: Session, storage, analyzer) -> JobRunner:
    return JobRunner(
        db,
        storage,
        analyzer,
        max_input_chars=settings.max_input_chars,
        mock_extract=settings.mock_extract,
    )


# Sync handlers: the runner blocks on storage, extraction and the analysis call.
@router.post("")
def process_job(
    job_id: str = Depends(body_job_id),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
    analyzer=Depends(get_analyzer),
):
    job = get_job(db, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    outcome = _runner(db, storage, analyzer).run(job)
    if not outcome.ok:
        return JSONResponse(
            status_code=500,
            content={"ok": False, "status": outcome.status, "stage": outcome.stage, "error": outcome.error},
        )
    return {"ok": True, "status": outcome.status}


@router.post("/kick")
def kick_queued_jobs(
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
    analyzer=Depends(get_analyzer),
):
    """Process the oldest queued jobs, one after another."""
    runner = _runner(db, storage, analyzer)
    results = []
    for job_id in oldest_queued_job_ids(db, settings.kick_batch_size):
        job = get_job(db, job_id)
        if not job:
            continue
        outcome = runner.run(job)
        results.append({"job_id": job_id, **asdict(outcome)})
    logger.info("Kick processed %d job(s)", len(results))
    return {"ok": True, "processed": len(results), "results": results}
