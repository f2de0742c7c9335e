from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from tenderflow.database import get_db
from tenderflow.dependencies import require_user
from tenderflow.models.user import User
from tenderflow.models.work_item import WorkItem
from tenderflow.routers.jobs import owned_job_or_404
from tenderflow.schemas.work_item import ComplianceRow, ComplianceUpdate, WorkItemResponse, WorkItemUpsert
from tenderflow.services.findings import findings_from_result
from tenderflow.services.overlay import (
    WORK_ITEM_TYPES,
    compliance_rows,
    list_work_items,
    set_compliance,
    upsert_work_item,
)
from tenderflow.services.ref_keys import COMPLIANCE_PREFIX

router = APIRouter(prefix="/jobs/{job_id}", tags=["work-items"])


def _item_to_response(item: WorkItem) -> WorkItemResponse:
    return WorkItemResponse(
        id=item.id,
        job_id=item.job_id,
        type=item.type,
        ref_key=item.ref_key,
        title=item.title,
        status=item.status,
        owner_label=item.owner_label,
        due_at=item.due_at,
        notes=item.notes,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


@router.get("/work-items", response_model=list[WorkItemResponse])
async def get_work_items(
    job_id: str,
    type: str | None = None,
    prefix: str | None = None,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    if type and type not in WORK_ITEM_TYPES:
        raise HTTPException(status_code=400, detail=f"Invalid type. Must be one of: {list(WORK_ITEM_TYPES)}")
    job = owned_job_or_404(db, job_id, user)
    return [_item_to_response(i) for i in list_work_items(db, job.id, item_type=type, ref_prefix=prefix)]


@router.put("/work-items", response_model=WorkItemResponse)
async def put_work_item(
    job_id: str,
    req: WorkItemUpsert,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    job = owned_job_or_404(db, job_id, user)
    fields = req.model_dump(exclude={"type", "ref_key"})
    try:
        item = upsert_work_item(db, job.id, user.id, req.type, req.ref_key, fields)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _item_to_response(item)


@router.get("/compliance", response_model=list[ComplianceRow])
async def get_compliance(job_id: str, user: User = Depends(require_user), db: Session = Depends(get_db)):
    job = owned_job_or_404(db, job_id, user)
    if job.result is None:
        raise HTTPException(status_code=404, detail="Result not found")
    items = list_work_items(db, job.id, item_type="requirement", ref_prefix=COMPLIANCE_PREFIX)
    return compliance_rows(job.id, findings_from_result(job.result), items)


@router.put("/compliance/{ref_key}", response_model=ComplianceRow)
async def put_compliance(
    job_id: str,
    ref_key: str,
    req: ComplianceUpdate,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    job = owned_job_or_404(db, job_id, user)
    if job.result is None:
        raise HTTPException(status_code=404, detail="Result not found")
    findings = findings_from_result(job.result)
    rows = {row["ref_key"]: row for row in compliance_rows(job.id, findings, [])}
    if ref_key not in rows:
        raise HTTPException(status_code=404, detail="Requirement not found")

    try:
        set_compliance(db, job.id, user.id, ref_key, req.status, req.section, req.note,
                       title=rows[ref_key]["requirement"])
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    items = list_work_items(db, job.id, item_type="requirement", ref_prefix=COMPLIANCE_PREFIX)
    updated = {row["ref_key"]: row for row in compliance_rows(job.id, findings, items)}
    return updated[ref_key]
