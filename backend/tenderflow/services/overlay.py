"""
Human overlay on findings: owner, status, due date and notes per finding.

Rows are keyed by ``(job_id, type, ref_key)`` where ``ref_key`` comes from
``tenderflow.services.ref_keys``. Every write carries the full field set and
the last write wins; fields left out are reset to their defaults.
"""
import json
import uuid

from sqlalchemy import func, literal_column, text
from sqlalchemy.orm import Session

from tenderflow.models.work_item import WorkItem
from tenderflow.schemas.findings import Findings
from tenderflow.services.ref_keys import COMPLIANCE_PREFIX, ITEM_TYPES, compliance_ref_key, requirement_key
from tenderflow.utils.clock import utc_now

WORK_ITEM_TYPES = ITEM_TYPES
WORK_STATUSES = ("todo", "doing", "blocked", "done")
OVERLAY_FIELDS = ("title", "status", "owner_label", "due_at", "notes")

COMPLIANCE_STATUSES = ("tbd", "compliant", "partial", "noncompliant", "na")


def get_work_item(db: Session, job_id: str, item_type: str, ref_key: str) -> WorkItem | None:
    return (
        db.query(WorkItem)
        .filter(WorkItem.job_id == job_id, WorkItem.type == item_type, WorkItem.ref_key == ref_key)
        .first()
    )


def upsert_work_item(
    db: Session,
    job_id: str,
    user_id: str | None,
    item_type: str,
    ref_key: str,
    fields: dict,
) -> WorkItem:
    if item_type not in WORK_ITEM_TYPES:
        raise ValueError(f"Invalid type. Must be one of: {list(WORK_ITEM_TYPES)}")
    if not ref_key or not ref_key.strip():
        raise ValueError("ref_key is required")

    values = {"title": None, "status": "todo", "owner_label": None, "due_at": None, "notes": None}
    values.update({k: v for k, v in fields.items() if k in OVERLAY_FIELDS and v is not None})
    if values["status"] not in WORK_STATUSES:
        raise ValueError(f"Invalid status. Must be one of: {list(WORK_STATUSES)}")

    db.execute(
        text(
            """
            INSERT INTO job_work_items
                (id, job_id, user_id, type, ref_key, title, status, owner_label, due_at, notes,
                 created_at, updated_at)
            VALUES
                (:id, :job_id, :user_id, :type, :ref_key, :title, :status, :owner_label, :due_at, :notes,
                 :now, :now)
            ON CONFLICT(job_id, type, ref_key) DO UPDATE SET
                user_id = excluded.user_id,
                title = excluded.title,
                status = excluded.status,
                owner_label = excluded.owner_label,
                due_at = excluded.due_at,
                notes = excluded.notes,
                updated_at = excluded.updated_at
            """
        ),
        {
            "id": str(uuid.uuid4()),
            "job_id": job_id,
            "user_id": user_id,
            "type": item_type,
            "ref_key": ref_key,
            "now": utc_now(),
            **values,
        },
    )
    db.commit()
    return get_work_item(db, job_id, item_type, ref_key)


def list_work_items(
    db: Session,
    job_id: str,
    item_type: str | None = None,
    ref_prefix: str | None = None,
) -> list[WorkItem]:
    query = db.query(WorkItem).filter(WorkItem.job_id == job_id)
    if item_type:
        query = query.filter(WorkItem.type == item_type)
    if ref_prefix:
        # Exact-case prefix; SQLite LIKE folds ASCII case.
        query = query.filter(func.substr(WorkItem.ref_key, 1, len(ref_prefix)) == ref_prefix)
    return query.order_by(WorkItem.created_at.asc(), literal_column("job_work_items.rowid").asc()).all()


def work_items_by_key(items: list[WorkItem], item_type: str) -> dict[str, WorkItem]:
    return {item.ref_key: item for item in items if item.type == item_type}


# ---------------------------------------------------------------------------
# Compliance matrix: requirement rows under the cm__ key namespace, with the
# compliance status, proposal section and note packed as JSON into ``notes``.
# ---------------------------------------------------------------------------

def parse_compliance_notes(notes: str | None) -> dict:
    data = {}
    if notes:
        try:
            data = json.loads(notes)
        except ValueError:
            # Hand-written overlay notes are kept as the note text.
            data = {"note": notes}
    if not isinstance(data, dict):
        data = {}
    status = data.get("status")
    return {
        "status": status if status in COMPLIANCE_STATUSES else "tbd",
        "section": str(data.get("section") or ""),
        "note": str(data.get("note") or ""),
    }


def set_compliance(
    db: Session,
    job_id: str,
    user_id: str | None,
    requirement_ref_key: str,
    status: str,
    section: str = "",
    note: str = "",
    title: str | None = None,
) -> WorkItem:
    if status not in COMPLIANCE_STATUSES:
        raise ValueError(f"Invalid compliance status. Must be one of: {list(COMPLIANCE_STATUSES)}")
    if requirement_ref_key.startswith(COMPLIANCE_PREFIX):
        raise ValueError("Pass the requirement ref_key, not the compliance key")
    notes = json.dumps({"status": status, "section": section, "note": note})
    return upsert_work_item(
        db, job_id, user_id, "requirement", compliance_ref_key(requirement_ref_key),
        {"title": title, "notes": notes},
    )


def compliance_rows(job_id: str, findings: Findings, items: list[WorkItem]) -> list[dict]:
    by_key = work_items_by_key(items, "requirement")
    rows = []
    for req in findings.requirements:
        key = requirement_key(job_id, req.type, req.text)
        item = by_key.get(compliance_ref_key(key))
        rows.append({
            "ref_key": key,
            "type": req.type,
            "requirement": req.text,
            "source": req.source,
            **parse_compliance_notes(item.notes if item else None),
            "updated_at": item.updated_at if item else None,
        })
    return rows
