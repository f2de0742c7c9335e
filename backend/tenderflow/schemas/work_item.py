from pydantic import BaseModel


class WorkItemUpsert(BaseModel):
    type: str
    ref_key: str
    title: str | None = None
    status: str | None = None
    owner_label: str | None = None
    due_at: str | None = None
    notes: str | None = None


class WorkItemResponse(BaseModel):
    id: str
    job_id: str
    type: str
    ref_key: str
    title: str | None
    status: str
    owner_label: str | None
    due_at: str | None
    notes: str | None
    created_at: str
    updated_at: str


class ComplianceUpdate(BaseModel):
    status: str
    section: str = ""
    note: str = ""


class ComplianceRow(BaseModel):
    ref_key: str
    type: str
    requirement: str
    source: str | None
    status: str
    section: str
    note: str
    updated_at: str | None
