from tenderflow.schemas.findings import Findings, Requirement, Risk
from tenderflow.services.evidence import NOT_FOUND
from tenderflow.services.findings import (
    annotate_findings,
    normalize_findings,
    normalize_level,
    normalize_severity,
)
from tenderflow.services.ref_keys import requirement_key, risk_key


class TestNormalizeFindings:
    def test_legacy_keys(self):
        raw = {
            "checklist": [
                {"type": "MUST", "text": "Sign the form", "evidence_ids": ["E001"]},
                {"level": "Recommended", "requirement": "Add references"},
                "Plain string item",
            ],
            "risks": [{"severity": "CRITICAL", "title": "Bond", "detail": "High bond"}],
            "buyer_questions": ["Who signs?", "  "],
            "proposal_draft": {"sections": [{"title": "Approach", "bullets": ["One", ""]}]},
            "executive_summary": {"decisionBadge": "Go", "submissionDeadline": "1 May"},
        }
        findings = normalize_findings(raw)

        assert [(r.type, r.text) for r in findings.requirements] == [
            ("MUST", "Sign the form"),
            ("SHOULD", "Add references"),
            ("INFO", "Plain string item"),
        ]
        assert findings.requirements[0].evidence_ids == ["E001"]
        assert findings.risks[0].severity == "high"
        assert findings.clarifications == ["Who signs?"]
        assert findings.outline[0].title == "Approach"
        assert findings.outline[0].bullets == ["One"]
        assert findings.executive_summary.decision_badge == "Go"
        assert findings.executive_summary.submission_deadline == "1 May"

    def test_current_keys_win(self):
        raw = {
            "requirements": [{"type": "SHOULD", "text": "A"}],
            "checklist": [{"type": "MUST", "text": "B"}],
            "clarifications": {"questions": ["Q1"]},
        }
        findings = normalize_findings(raw)
        assert [r.text for r in findings.requirements] == ["A"]
        assert findings.clarifications == ["Q1"]

    def test_garbage_becomes_empty(self):
        assert normalize_findings(None) == Findings()
        findings = normalize_findings({"requirements": "nope", "risks": [1, None, {}], "outline": 5})
        assert findings.requirements == []
        assert findings.risks == []
        assert findings.outline == []

    def test_levels_and_severities(self):
        assert normalize_level("Mandatory") == "MUST"
        assert normalize_level("shall") == "MUST"
        assert normalize_level("nice to have") == "SHOULD"
        assert normalize_level(None) == "INFO"
        assert normalize_severity("Severe") == "high"
        assert normalize_severity("minor") == "low"
        assert normalize_severity("whatever") == "medium"


class TestAnnotateFindings:
    def test_ref_keys_and_located_source(self):
        findings = Findings(
            requirements=[Requirement(type="SHOULD", text="Provide a project plan", source=NOT_FOUND)],
            risks=[Risk(severity="high", title="Penalties", detail="Late delivery", source="clause 9")],
            clarifications=["Who signs?"],
        )
        text = "The tenderer should provide a project plan with milestones."
        out = annotate_findings("job-1", findings, text)

        req = out["requirements"][0]
        assert req["ref_key"] == requirement_key("job-1", "SHOULD", "Provide a project plan")
        assert "provide a project plan" in req["source"]
        risk = out["risks"][0]
        assert risk["ref_key"] == risk_key("job-1", "high", "Penalties", "Late delivery")
        assert risk["source"] == "clause 9"
        assert out["clarifications"][0]["text"] == "Who signs?"
        assert out["clarifications"][0]["ref_key"].startswith("clarification_")

    def test_unlocatable_source(self):
        findings = Findings(requirements=[Requirement(type="INFO", text="Something else entirely")])
        out = annotate_findings("job-1", findings, "Unrelated tender text.")
        assert out["requirements"][0]["source"] == NOT_FOUND
