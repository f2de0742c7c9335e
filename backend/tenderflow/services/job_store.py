"""
Job persistence and the claim protocol.

Status moves queued -> processing -> done | failed, and failed -> queued only
through ``request_retry``. Every transition is a conditional UPDATE whose
WHERE clause names the expected current status, so two callers racing on the
same job cannot both win. ``claim_job`` is the only place that decides who
processes a job.
"""
import logging
import uuid
from pathlib import Path

from sqlalchemy import literal_column, update
from sqlalchemy.orm import Session

from tenderflow.models.event import JobEvent
from tenderflow.models.job import Job
from tenderflow.models.result import JobResult
from tenderflow.utils.best_effort import attempt
from tenderflow.utils.clock import utc_now

logger = logging.getLogger("tenderflow.jobs")

JOB_STATUSES = ("queued", "processing", "done", "failed")
TERMINAL_STATUSES = ("done", "failed")
SOURCE_TYPES = ("pdf", "docx", "txt")
EVENT_LEVELS = ("info", "warn", "error")


class JobStateError(Exception):
    """A transition was requested from a status that does not allow it."""

    def __init__(self, status: str, message: str | None = None):
        super().__init__(message or f"Job is {status}")
        self.status = status


def source_type_from_filename(filename: str | None) -> str | None:
    suffix = Path(filename or "").suffix.lower().lstrip(".")
    return suffix if suffix in SOURCE_TYPES else None


def create_job(
    db: Session,
    user_id: str,
    file_name: str,
    source_type: str,
    file_path: str | None = None,
    extracted_text: str | None = None,
    job_id: str | None = None,
) -> Job:
    if source_type not in SOURCE_TYPES:
        raise ValueError(f"Unsupported source type: {source_type}")

    now = utc_now()
    job = Job(
        id=job_id or str(uuid.uuid4()),
        user_id=user_id,
        file_name=file_name,
        file_path=file_path,
        source_type=source_type,
        status="queued",
        created_at=now,
        updated_at=now,
    )
    db.add(job)

    fast_path = bool(extracted_text and extracted_text.strip())
    if fast_path:
        db.add(JobResult(job_id=job.id, user_id=user_id, extracted_text=extracted_text, updated_at=now))

    db.add(JobEvent(
        id=str(uuid.uuid4()),
        job_id=job.id,
        user_id=user_id,
        level="info",
        message="Job created",
        meta={"file_name": file_name, "source_type": source_type, "fast_path": fast_path},
        created_at=now,
    ))
    db.commit()
    db.refresh(job)
    logger.info("Created job %s (%s)", job.id, source_type)
    return job


def get_job(db: Session, job_id: str) -> Job | None:
    return db.query(Job).filter(Job.id == job_id).first()


def get_owned_job(db: Session, job_id: str, user_id: str) -> Job | None:
    """Look up a job visible to ``user_id``; other users' jobs read as missing."""
    return db.query(Job).filter(Job.id == job_id, Job.user_id == user_id).first()


def list_jobs(
    db: Session,
    user_id: str,
    status: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Job], int]:
    query = db.query(Job).filter(Job.user_id == user_id)
    if status:
        query = query.filter(Job.status == status)
    total = query.count()
    jobs = (
        query.order_by(Job.created_at.desc(), literal_column("jobs.rowid").desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return jobs, total


def oldest_queued_job_ids(db: Session, limit: int) -> list[str]:
    rows = (
        db.query(Job.id)
        .filter(Job.status == "queued")
        .order_by(Job.created_at.asc(), literal_column("jobs.rowid").asc())
        .limit(limit)
        .all()
    )
    return [row[0] for row in rows]


def claim_job(db: Session, job_id: str) -> bool:
    """Atomically move a queued job to processing. True iff this caller won."""
    result = db.execute(
        update(Job)
        .where(Job.id == job_id, Job.status == "queued")
        .values(status="processing", error_message=None, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def finish_job(db: Session, job: Job, status: str, error_message: str | None = None) -> None:
    """
    Move a processing job to done or failed and commit.

    Pending changes in the session (persisted findings) are committed in the
    same transaction, so a job never reads as done without its results.
    """
    if status not in TERMINAL_STATUSES:
        raise ValueError(f"Not a terminal status: {status}")
    job_id = job.id
    result = db.execute(
        update(Job)
        .where(Job.id == job_id, Job.status == "processing")
        .values(status=status, error_message=error_message, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        current = get_job(db, job_id)
        raise JobStateError(current.status if current else "missing",
                            f"Job {job_id} is no longer processing")
    db.commit()


def request_retry(db: Session, job: Job) -> None:
    if job.status != "failed":
        raise JobStateError(job.status)
    job_id = job.id
    result = db.execute(
        update(Job)
        .where(Job.id == job_id, Job.status == "failed")
        .values(status="queued", error_message=None, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        db.refresh(job)
        raise JobStateError(job.status)
    db.add(JobEvent(
        id=str(uuid.uuid4()),
        job_id=job_id,
        user_id=job.user_id,
        level="info",
        message="Retry requested",
        created_at=utc_now(),
    ))
    db.commit()
    db.refresh(job)


def append_event(
    db: Session,
    job_id: str,
    level: str,
    message: str,
    meta: dict | None = None,
    user_id: str | None = None,
) -> JobEvent | None:
    """Record a job event. Failures are logged and swallowed."""
    if level not in EVENT_LEVELS:
        raise ValueError(f"Invalid event level: {level}")

    def _insert() -> JobEvent:
        event = JobEvent(
            id=str(uuid.uuid4()),
            job_id=job_id,
            user_id=user_id,
            level=level,
            message=message,
            meta=meta,
            created_at=utc_now(),
        )
        db.add(event)
        db.commit()
        return event

    event = attempt(f"event {message!r} for job {job_id}", _insert)
    if event is None:
        db.rollback()
    return event


def list_events(db: Session, job_id: str) -> list[JobEvent]:
    return (
        db.query(JobEvent)
        .filter(JobEvent.job_id == job_id)
        .order_by(JobEvent.created_at.asc(), literal_column("job_events.rowid").asc())
        .all()
    )
