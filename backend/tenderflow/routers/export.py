from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from tenderflow.database import get_db
from tenderflow.dependencies import require_user
from tenderflow.models.user import User
from tenderflow.routers.jobs import owned_job_or_404
from tenderflow.services.export_service import (
    CSV_MEDIA_TYPE,
    EXPORT_TYPES,
    XLSX_MEDIA_TYPE,
    bid_pack_filename,
    build_bid_pack,
    export_csv,
    export_filename,
)
from tenderflow.services.findings import evidence_from_result, findings_from_result
from tenderflow.services.overlay import list_work_items

router = APIRouter(prefix="/jobs/{job_id}/export", tags=["export"])


def _attachment(content, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": "no-store",
        },
    )


def _load(db: Session, job_id: str, user: User):
    job = owned_job_or_404(db, job_id, user)
    if job.result is None:
        raise HTTPException(status_code=404, detail="Result not found")
    findings = findings_from_result(job.result)
    evidence = evidence_from_result(job.result)
    return job, findings, evidence, list_work_items(db, job.id)


@router.get("")
async def export_table(
    job_id: str,
    type: str = Query(""),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    kind = type.strip().lower()
    if kind not in EXPORT_TYPES:
        return JSONResponse(status_code=400, content={"error": "invalid_type", "allowed": list(EXPORT_TYPES)})

    job, findings, evidence, work_items = _load(db, job_id, user)
    csv_text = export_csv(kind, job, findings, evidence, work_items)
    return _attachment(csv_text, CSV_MEDIA_TYPE, export_filename(kind, job))


@router.get("/bid-pack")
async def export_bid_pack(job_id: str, user: User = Depends(require_user), db: Session = Depends(get_db)):
    job, findings, evidence, work_items = _load(db, job_id, user)
    content = build_bid_pack(job, findings, evidence, work_items)
    return _attachment(content, XLSX_MEDIA_TYPE, bid_pack_filename(job))
