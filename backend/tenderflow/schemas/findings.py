from typing import Literal

from pydantic import BaseModel, Field

RequirementLevel = Literal["MUST", "SHOULD", "INFO"]
Severity = Literal["high", "medium", "low"]
EvidenceKind = Literal["clause", "bullet", "table_row", "other"]


class EvidenceCandidate(BaseModel):
    id: str
    excerpt: str
    page: int | None = None
    anchor: str | None = None
    kind: EvidenceKind = "other"
    score: int = 0


class Requirement(BaseModel):
    type: RequirementLevel
    text: str
    evidence_ids: list[str] = Field(default_factory=list)
    source: str | None = None


class Risk(BaseModel):
    severity: Severity
    title: str
    detail: str = ""
    evidence_ids: list[str] = Field(default_factory=list)
    source: str | None = None


class OutlineSection(BaseModel):
    title: str
    bullets: list[str] = Field(default_factory=list)


class ExecutiveSummary(BaseModel):
    decision_badge: str = ""
    decision_line: str = ""
    key_findings: list[str] = Field(default_factory=list)
    next_actions: list[str] = Field(default_factory=list)
    submission_deadline: str = ""


class Findings(BaseModel):
    executive_summary: ExecutiveSummary = Field(default_factory=ExecutiveSummary)
    requirements: list[Requirement] = Field(default_factory=list)
    risks: list[Risk] = Field(default_factory=list)
    clarifications: list[str] = Field(default_factory=list)
    outline: list[OutlineSection] = Field(default_factory=list)
