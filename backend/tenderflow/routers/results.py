from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from tenderflow.database import get_db
from tenderflow.dependencies import require_user
from tenderflow.models.user import User
from tenderflow.routers.jobs import owned_job_or_404
from tenderflow.services.evidence import locate_excerpt
from tenderflow.services.extraction import has_text
from tenderflow.services.findings import annotate_findings, evidence_from_result, findings_from_result

router = APIRouter(prefix="/jobs/{job_id}", tags=["results"])


@router.get("/result")
async def get_result(job_id: str, user: User = Depends(require_user), db: Session = Depends(get_db)):
    job = owned_job_or_404(db, job_id, user)
    result = job.result
    if result is None:
        raise HTTPException(status_code=404, detail="Result not found")

    findings = findings_from_result(result)
    return {
        "job_id": job.id,
        "status": job.status,
        "has_text": has_text(result.extracted_text),
        "findings": annotate_findings(job.id, findings, result.extracted_text),
        "evidence": [c.model_dump() for c in evidence_from_result(result)],
        "updated_at": result.updated_at,
    }


@router.get("/evidence/locate")
async def locate_evidence(
    job_id: str,
    q: str = Query(..., min_length=1),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Find the excerpt of the extracted text that best matches ``q``."""
    job = owned_job_or_404(db, job_id, user)
    if job.result is None or not job.result.extracted_text:
        raise HTTPException(status_code=404, detail="No extracted text for this job")
    return {"query": q, "excerpt": locate_excerpt(job.result.extracted_text, q)}
