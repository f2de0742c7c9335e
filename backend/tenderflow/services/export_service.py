"""
Consolidated exports of a job's findings joined with the human overlay.

Each finding's ref key is recomputed exactly as overlay clients compute it,
so owner/status/notes line up with the finding they were written for.
"""
import csv
import io

from openpyxl import Workbook
from openpyxl.styles import Font

from tenderflow.models.job import Job
from tenderflow.models.work_item import WorkItem
from tenderflow.schemas.findings import EvidenceCandidate, Findings
from tenderflow.services.overlay import work_items_by_key
from tenderflow.services.ref_keys import clarification_key, outline_key, requirement_key, risk_key
from tenderflow.utils.filesystem import sanitize_filename

EXPORT_TYPES = ("overview", "requirements", "risks", "clarifications", "outline")

HEADERS = {
    "overview": ["field", "value"],
    "requirements": ["ref_key", "type", "requirement", "owner", "status", "due_at", "notes", "evidence_ids", "pages"],
    "risks": ["ref_key", "severity", "risk", "detail", "owner", "status", "due_at", "notes", "evidence_ids", "pages"],
    "clarifications": ["ref_key", "question", "owner", "status", "due_at", "notes"],
    "outline": ["ref_key", "section", "bullets", "owner", "status", "due_at", "notes"],
}

BLOCKER_HEADERS = ["ref_key", "requirement", "owner", "status", "due_at", "notes", "evidence_ids", "pages"]
EVIDENCE_HEADERS = ["evidence_id", "page", "anchor", "kind", "excerpt"]

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
MAX_NAME_CHARS = 60


def _join(values) -> str:
    return ", ".join(str(v).strip() for v in values or [] if str(v if v is not None else "").strip())


def _overlay_columns(item: WorkItem | None) -> dict:
    return {
        "owner": (item.owner_label or "") if item else "",
        "status": (item.status or "") if item else "",
        "due_at": (item.due_at or "")[:10] if item else "",
        "notes": (item.notes or "") if item else "",
    }


def _pages(evidence_ids: list[str], evidence_by_id: dict[str, EvidenceCandidate]) -> str:
    pages = []
    for eid in evidence_ids:
        candidate = evidence_by_id.get(eid)
        if candidate is not None and candidate.page is not None:
            pages.append(str(candidate.page))
    return _join(pages)


def _overview_rows(job: Job, findings: Findings) -> list[dict]:
    summary = findings.executive_summary
    return [
        {"field": "Tender", "value": job.file_name or ""},
        {"field": "Decision", "value": summary.decision_badge},
        {"field": "Why", "value": summary.decision_line},
        {"field": "Submission deadline", "value": summary.submission_deadline},
    ]


def _requirement_rows(job: Job, findings: Findings, evidence_by_id, work) -> list[dict]:
    rows = []
    for req in findings.requirements:
        text = req.text.strip()
        if not text:
            continue
        ref = requirement_key(job.id, req.type, text)
        rows.append({
            "ref_key": ref,
            "type": req.type,
            "requirement": text,
            **_overlay_columns(work.get(ref)),
            "evidence_ids": _join(req.evidence_ids),
            "pages": _pages(req.evidence_ids, evidence_by_id),
        })
    return rows


def _risk_rows(job: Job, findings: Findings, evidence_by_id, work) -> list[dict]:
    rows = []
    for risk in findings.risks:
        title, detail = risk.title.strip(), risk.detail.strip()
        if not title and not detail:
            continue
        ref = risk_key(job.id, risk.severity, title, detail)
        rows.append({
            "ref_key": ref,
            "severity": risk.severity,
            "risk": title,
            "detail": detail,
            **_overlay_columns(work.get(ref)),
            "evidence_ids": _join(risk.evidence_ids),
            "pages": _pages(risk.evidence_ids, evidence_by_id),
        })
    return rows


def _clarification_rows(job: Job, findings: Findings, work) -> list[dict]:
    rows = []
    for question in findings.clarifications:
        text = question.strip()
        if not text:
            continue
        ref = clarification_key(job.id, text)
        rows.append({"ref_key": ref, "question": text, **_overlay_columns(work.get(ref))})
    return rows


def _outline_rows(job: Job, findings: Findings, work) -> list[dict]:
    rows = []
    for section in findings.outline:
        title = section.title.strip()
        if not title:
            continue
        ref = outline_key(job.id, title)
        rows.append({
            "ref_key": ref,
            "section": title,
            "bullets": " | ".join(section.bullets),
            **_overlay_columns(work.get(ref)),
        })
    return rows


def build_rows(
    kind: str,
    job: Job,
    findings: Findings,
    evidence: list[EvidenceCandidate],
    work_items: list[WorkItem],
) -> list[dict]:
    if kind not in EXPORT_TYPES:
        raise ValueError(f"Invalid export type: {kind}")
    evidence_by_id = {c.id: c for c in evidence}
    if kind == "overview":
        return _overview_rows(job, findings)
    if kind == "requirements":
        return _requirement_rows(job, findings, evidence_by_id, work_items_by_key(work_items, "requirement"))
    if kind == "risks":
        return _risk_rows(job, findings, evidence_by_id, work_items_by_key(work_items, "risk"))
    if kind == "clarifications":
        return _clarification_rows(job, findings, work_items_by_key(work_items, "clarification"))
    return _outline_rows(job, findings, work_items_by_key(work_items, "outline"))


def rows_to_csv(rows: list[dict], headers: list[str]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=headers, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


def export_csv(kind, job, findings, evidence, work_items) -> str:
    return rows_to_csv(build_rows(kind, job, findings, evidence, work_items), HEADERS[kind])


def _base_name(job: Job) -> str:
    return sanitize_filename(job.file_name or "tender")[:MAX_NAME_CHARS]


def export_filename(kind: str, job: Job, extension: str = "csv") -> str:
    return f"TenderFlow_{kind}_{_base_name(job)}_{job.id}.{extension}"


def bid_pack_filename(job: Job) -> str:
    return f"TenderFlow_BidPack_{_base_name(job)}_{job.id}.xlsx"


def _write_sheet(workbook: Workbook, title: str, headers: list[str], rows: list[dict]):
    sheet = workbook.create_sheet(title)
    sheet.append(headers)
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for row in rows:
        sheet.append([row.get(h, "") for h in headers])
    sheet.freeze_panes = "A2"


def build_bid_pack(job: Job, findings: Findings, evidence: list[EvidenceCandidate], work_items: list[WorkItem]) -> bytes:
    """All export tables as sheets of one workbook, plus blockers and an evidence index."""
    workbook = Workbook()
    workbook.remove(workbook.active)

    overview = _overview_rows(job, findings)
    overview[1:1] = [
        {"field": "Created", "value": job.created_at or ""},
        {"field": "Status", "value": job.status or ""},
    ]
    _write_sheet(workbook, "00_Overview", HEADERS["overview"], overview)

    requirements = build_rows("requirements", job, findings, evidence, work_items)
    blockers = [row for row in requirements if row["type"] == "MUST"]
    _write_sheet(workbook, "01_Blockers", BLOCKER_HEADERS, blockers)
    _write_sheet(workbook, "02_Requirements", HEADERS["requirements"], requirements)
    _write_sheet(workbook, "03_Risks", HEADERS["risks"], build_rows("risks", job, findings, evidence, work_items))
    _write_sheet(workbook, "04_Clarifications", HEADERS["clarifications"],
                 build_rows("clarifications", job, findings, evidence, work_items))
    _write_sheet(workbook, "05_Outline", HEADERS["outline"], build_rows("outline", job, findings, evidence, work_items))

    evidence_rows = [
        {"evidence_id": c.id, "page": c.page if c.page is not None else "", "anchor": c.anchor or "",
         "kind": c.kind, "excerpt": c.excerpt}
        for c in evidence
    ]
    _write_sheet(workbook, "99_EvidenceIndex", EVIDENCE_HEADERS, evidence_rows)

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
