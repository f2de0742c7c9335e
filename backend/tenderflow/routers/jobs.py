import uuid

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from tenderflow.config import settings
from tenderflow.database import get_db
from tenderflow.dependencies import get_storage, require_user
from tenderflow.models.job import Job
from tenderflow.models.user import User
from tenderflow.schemas.event import EventResponse
from tenderflow.schemas.job import JobListResponse, JobResponse
from tenderflow.services.job_store import (
    JOB_STATUSES,
    JobStateError,
    create_job,
    get_owned_job,
    list_events,
    list_jobs,
    request_retry,
    source_type_from_filename,
)
from tenderflow.services.storage import LocalObjectStore
from tenderflow.services.trigger import trigger_processing

router = APIRouter(prefix="/jobs", tags=["jobs"])


def _job_to_response(job: Job) -> JobResponse:
    return JobResponse(
        id=job.id,
        file_name=job.file_name,
        source_type=job.source_type,
        status=job.status,
        error_message=job.error_message,
        created_at=job.created_at,
        updated_at=job.updated_at,
        has_result=job.result is not None and job.result.requirements is not None,
    )


def owned_job_or_404(db: Session, job_id: str, user: User) -> Job:
    job = get_owned_job(db, job_id, user.id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.post("", response_model=JobResponse, status_code=201)
async def upload_job(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    extracted_text: str | None = Form(None),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
    storage: LocalObjectStore = Depends(get_storage),
):
    source_type = source_type_from_filename(file.filename)
    if source_type is None:
        raise HTTPException(status_code=400, detail="Unsupported file type. Must be one of: pdf, docx, txt")

    max_bytes = settings.max_upload_bytes
    size = 0
    chunks: list[bytes] = []
    while True:
        chunk = await file.read(1024 * 1024)
        if not chunk:
            break
        size += len(chunk)
        if size > max_bytes:
            raise HTTPException(status_code=413, detail=f"File too large (max {max_bytes} bytes)")
        chunks.append(chunk)

    content = b"".join(chunks)
    if not content:
        raise HTTPException(status_code=400, detail="Empty file")

    job_id = str(uuid.uuid4())
    file_path = storage.put(user.id, job_id, file.filename, content)
    job = create_job(
        db,
        user_id=user.id,
        file_name=file.filename,
        source_type=source_type,
        file_path=file_path,
        extracted_text=extracted_text,
        job_id=job_id,
    )
    # Runs after the response is sent; the job stays queued if the nudge fails.
    background_tasks.add_task(trigger_processing, job.id)
    return _job_to_response(job)


@router.get("", response_model=JobListResponse)
async def list_user_jobs(
    status: str | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    if status and status not in JOB_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {list(JOB_STATUSES)}")
    jobs, total = list_jobs(db, user.id, status=status, page=page, per_page=per_page)
    return JobListResponse(
        jobs=[_job_to_response(j) for j in jobs],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, user: User = Depends(require_user), db: Session = Depends(get_db)):
    return _job_to_response(owned_job_or_404(db, job_id, user))


@router.get("/{job_id}/events", response_model=list[EventResponse])
async def get_job_events(job_id: str, user: User = Depends(require_user), db: Session = Depends(get_db)):
    job = owned_job_or_404(db, job_id, user)
    return [
        EventResponse(
            id=ev.id,
            job_id=ev.job_id,
            level=ev.level,
            message=ev.message,
            meta=ev.meta,
            created_at=ev.created_at,
        )
        for ev in list_events(db, job.id)
    ]


@router.post("/{job_id}/retry")
async def retry_job(
    job_id: str,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    job = owned_job_or_404(db, job_id, user)
    try:
        request_retry(db, job)
    except JobStateError as exc:
        return JSONResponse(status_code=409, content={"error": "job_not_failed", "status": exc.status})

    background_tasks.add_task(trigger_processing, job.id)
    return {"ok": True}
