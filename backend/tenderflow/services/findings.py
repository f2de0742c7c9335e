"""
Boundary normalization for analysis output.

The analysis step returns loosely structured JSON whose keys drift between
model versions (``checklist`` vs ``requirements``, ``level`` vs ``type`` ...).
Everything past this module works with the tagged variants in
``tenderflow.schemas.findings`` only.
"""
from typing import Any

from tenderflow.models.result import JobResult
from tenderflow.schemas.findings import (
    EvidenceCandidate,
    ExecutiveSummary,
    Findings,
    OutlineSection,
    Requirement,
    Risk,
)
from tenderflow.services.evidence import NOT_FOUND, locate_excerpt
from tenderflow.services.ref_keys import clarification_key, outline_key, requirement_key, risk_key


def _pick_str(obj: Any, keys: tuple[str, ...]) -> str:
    if not isinstance(obj, dict):
        return ""
    for key in keys:
        value = obj.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _as_list(raw: Any, *container_keys: str) -> list:
    if raw is None:
        return []
    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict):
        for key in ("items", *container_keys):
            if isinstance(raw.get(key), list):
                return raw[key]
    return []


def _str_list(raw: Any, *container_keys: str) -> list[str]:
    out = []
    for item in _as_list(raw, *container_keys):
        text = str(item if item is not None else "").strip()
        if text:
            out.append(text)
    return out


def _evidence_ids(item: dict) -> list[str]:
    raw = item.get("evidence_ids") or item.get("evidenceIds") or item.get("evidence")
    if not isinstance(raw, list):
        return []
    return [str(x).strip() for x in raw if str(x if x is not None else "").strip()]


def normalize_level(raw: Any) -> str:
    v = str(raw or "").lower()
    if any(word in v for word in ("must", "mandatory", "shall", "required")):
        return "MUST"
    if any(word in v for word in ("should", "recommended", "nice")):
        return "SHOULD"
    return "INFO"


def normalize_severity(raw: Any) -> str:
    v = str(raw or "").strip().lower()
    if v in ("high", "critical", "severe"):
        return "high"
    if v in ("low", "minor"):
        return "low"
    return "medium"


def normalize_requirements(raw: Any) -> list[Requirement]:
    out = []
    for item in _as_list(raw, "requirements", "checklist"):
        if isinstance(item, str):
            item = {"text": item}
        if not isinstance(item, dict):
            continue
        text = _pick_str(item, ("text", "statement", "requirement", "item", "title", "summary", "description"))
        if not text:
            continue
        level = _pick_str(item, ("type", "level", "priority", "classification", "category"))
        out.append(Requirement(
            type=normalize_level(level),
            text=text,
            evidence_ids=_evidence_ids(item),
            source=_pick_str(item, ("source",)) or None,
        ))
    return out


def normalize_risks(raw: Any) -> list[Risk]:
    out = []
    for item in _as_list(raw, "risks"):
        if not isinstance(item, dict):
            continue
        title = _pick_str(item, ("title", "text", "risk"))
        detail = _pick_str(item, ("detail", "description", "why", "impact"))
        if not title and not detail:
            continue
        out.append(Risk(
            severity=normalize_severity(item.get("severity") or item.get("level")),
            title=title,
            detail=detail,
            evidence_ids=_evidence_ids(item),
            source=_pick_str(item, ("source",)) or None,
        ))
    return out


def normalize_outline(raw: Any) -> list[OutlineSection]:
    if isinstance(raw, dict) and "sections" in raw:
        raw = raw["sections"]
    sections = []
    for item in _as_list(raw, "sections", "outline"):
        if not isinstance(item, dict):
            continue
        title = _pick_str(item, ("title", "heading", "name"))
        if not title:
            continue
        sections.append(OutlineSection(title=title, bullets=_str_list(item.get("bullets"))))
    return sections


def normalize_summary(raw: Any) -> ExecutiveSummary:
    if not isinstance(raw, dict):
        return ExecutiveSummary()
    return ExecutiveSummary(
        decision_badge=_pick_str(raw, ("decision_badge", "decisionBadge")),
        decision_line=_pick_str(raw, ("decision_line", "decisionLine")),
        key_findings=_str_list(raw.get("key_findings") or raw.get("keyFindings")),
        next_actions=_str_list(raw.get("next_actions") or raw.get("nextActions")),
        submission_deadline=_pick_str(raw, ("submission_deadline", "submissionDeadline")),
    )


def normalize_findings(raw: Any) -> Findings:
    """Turn a raw analysis payload into ``Findings``; unknown shapes become empty lists."""
    if not isinstance(raw, dict):
        raw = {}
    requirements_raw = raw.get("requirements")
    if requirements_raw is None:
        requirements_raw = raw.get("checklist")
    clarifications_raw = raw.get("clarifications")
    if clarifications_raw is None:
        clarifications_raw = raw.get("buyer_questions")
    outline_raw = raw.get("outline")
    if outline_raw is None:
        outline_raw = raw.get("proposal_draft")
    return Findings(
        executive_summary=normalize_summary(raw.get("executive_summary")),
        requirements=normalize_requirements(requirements_raw),
        risks=normalize_risks(raw.get("risks")),
        clarifications=_str_list(clarifications_raw, "questions"),
        outline=normalize_outline(outline_raw),
    )


def findings_from_result(result: JobResult | None) -> Findings:
    if result is None:
        return Findings()
    return Findings(
        executive_summary=normalize_summary(result.executive_summary),
        requirements=[Requirement.model_validate(r) for r in result.requirements or []],
        risks=[Risk.model_validate(r) for r in result.risks or []],
        clarifications=list(result.clarifications or []),
        outline=[OutlineSection.model_validate(s) for s in result.outline or []],
    )


def evidence_from_result(result: JobResult | None) -> list[EvidenceCandidate]:
    if result is None:
        return []
    return [EvidenceCandidate.model_validate(e) for e in result.evidence or []]


def annotate_findings(job_id: str, findings: Findings, extracted_text: str | None) -> dict:
    """
    Findings as served to clients: each item carries its ref key, and items
    without a cited excerpt get one located in the extracted text.
    """
    def _source(item_source: str | None, phrase: str) -> str:
        if item_source and item_source != NOT_FOUND:
            return item_source
        return locate_excerpt(extracted_text, phrase) or NOT_FOUND

    requirements = []
    for req in findings.requirements:
        requirements.append({
            **req.model_dump(),
            "ref_key": requirement_key(job_id, req.type, req.text),
            "source": _source(req.source, req.text),
        })
    risks = []
    for risk in findings.risks:
        risks.append({
            **risk.model_dump(),
            "ref_key": risk_key(job_id, risk.severity, risk.title, risk.detail),
            "source": _source(risk.source, risk.title or risk.detail),
        })
    return {
        "executive_summary": findings.executive_summary.model_dump(),
        "requirements": requirements,
        "risks": risks,
        "clarifications": [
            {"ref_key": clarification_key(job_id, q), "text": q} for q in findings.clarifications
        ],
        "outline": [
            {**s.model_dump(), "ref_key": outline_key(job_id, s.title)} for s in findings.outline
        ],
    }
