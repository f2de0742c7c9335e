"""
Client for the analysis service that turns extracted tender text into findings.

The service is a black box: it receives the (clamped) text plus the evidence
candidates it may cite and answers with loosely structured JSON, which
``tenderflow.services.findings.normalize_findings`` brings into shape.
"""
import copy
import json
import logging

import httpx

from tenderflow.config import Settings
from tenderflow.schemas.findings import EvidenceCandidate
from tenderflow.services.evidence import locate_excerpt

logger = logging.getLogger("tenderflow.analysis")

HEAD_SHARE = 0.7
ERROR_BODY_CHARS = 900


class AnalysisError(RuntimeError):
    pass


def clamp_text(text: str, max_chars: int) -> tuple[str, bool]:
    """Keep the head and tail of over-long text. Returns (text, truncated)."""
    if len(text) <= max_chars:
        return text, False
    head = int(max_chars * HEAD_SHARE)
    tail = max_chars - head
    skipped = len(text) - head - tail
    marker = f"\n\n[... {skipped} characters omitted ...]\n\n"
    return text[:head] + marker + text[-tail:], True


def _json_object_from_text(content: str) -> dict:
    start = content.find("{")
    end = content.rfind("}")
    if start < 0 or end <= start:
        raise AnalysisError("Analysis response contains no JSON object")
    try:
        return json.loads(content[start:end + 1])
    except ValueError as exc:
        raise AnalysisError(f"Analysis response is not valid JSON: {exc}") from exc


def _unwrap(body) -> dict:
    if isinstance(body, dict) and isinstance(body.get("choices"), list) and body["choices"]:
        # Chat-completion envelope: findings are a JSON string in the message content.
        content = ((body["choices"][0] or {}).get("message") or {}).get("content") or ""
        return _json_object_from_text(str(content))
    if isinstance(body, dict) and isinstance(body.get("findings"), dict):
        return body["findings"]
    if isinstance(body, dict):
        return body
    raise AnalysisError("Analysis response is not a JSON object")


class HttpAnalyzer:
    def __init__(
        self,
        url: str | None,
        api_key: str | None = None,
        timeout: float = 90.0,
        http_client: httpx.Client | None = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._client = http_client

    def _post(self, client: httpx.Client, payload: dict) -> httpx.Response:
        headers = {"content-type": "application/json"}
        if self.api_key:
            headers["authorization"] = f"Bearer {self.api_key}"
        return client.post(self.url, json=payload, headers=headers, timeout=self.timeout)

    def analyze(self, extracted_text: str, evidence: list[EvidenceCandidate]) -> dict:
        if not self.url:
            raise AnalysisError("Analysis service URL is not configured")

        payload = {
            "extracted_text": extracted_text,
            "evidence_candidates": [c.model_dump() for c in evidence],
        }
        try:
            if self._client is not None:
                response = self._post(self._client, payload)
            else:
                with httpx.Client() as client:
                    response = self._post(client, payload)
        except httpx.HTTPError as exc:
            raise AnalysisError(f"Analysis request failed: {exc}") from exc

        if response.status_code >= 400:
            raise AnalysisError(
                f"Analysis service error {response.status_code}: {response.text[:ERROR_BODY_CHARS]}"
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise AnalysisError(f"Analysis response is not valid JSON: {exc}") from exc
        return _unwrap(body)


MOCK_FINDINGS = {
    "executive_summary": {
        "decisionBadge": "Go with conditions",
        "decisionLine": "Bid is feasible if warranty and ISO 27001 evidence are secured early.",
        "keyFindings": [
            "Fixed-price quote in EUR is required.",
            "Delivery is to Graz, Austria.",
            "ISO 27001 certification evidence must accompany the tender.",
            "A 12 month warranty is the minimum accepted.",
        ],
        "nextActions": [
            "Confirm ISO 27001 certificate validity.",
            "Draft and sign the cover letter.",
            "Prepare the implementation timeline.",
        ],
        "submissionDeadline": "2026-02-01 12:00 CET",
    },
    "checklist": [
        {"type": "MUST", "text": "Submit the tender on or before 2026-02-01 12:00 CET"},
        {"type": "MUST", "text": "Include a signed cover letter"},
        {"type": "MUST", "text": "Include 12 months warranty minimum"},
        {"type": "MUST", "text": "Provide ISO 27001 certification evidence"},
        {"type": "SHOULD", "text": "Provide implementation plan and timeline"},
        {"type": "INFO", "text": "Payment terms preferred Net 30"},
    ],
    "risks": [
        {
            "severity": "high",
            "title": "Warranty minimum is mandatory",
            "detail": "Missing the 12 months warranty minimum may disqualify the bid.",
        },
        {
            "severity": "medium",
            "title": "Strict submission deadline",
            "detail": "The tender must arrive on or before the stated closing time.",
        },
    ],
    "buyer_questions": [
        "Is a scanned signature acceptable on the cover letter?",
        "Can ISO 27001 evidence be provided by a subcontractor?",
    ],
    "proposal_draft": {
        "sections": [
            {"title": "Executive Summary", "bullets": ["Compliant, fixed-price offer in EUR."]},
            {"title": "Delivery and Warranty", "bullets": ["Delivery to Graz", "12 month warranty"]},
            {"title": "Security and Compliance", "bullets": ["GDPR handling", "ISO 27001 certificate"]},
        ],
    },
}


def _cite(text: str, evidence: list[EvidenceCandidate]) -> list[str]:
    for candidate in evidence:
        if locate_excerpt(candidate.excerpt, text):
            return [candidate.id]
    return []


class MockAnalyzer:
    """Offline analyzer returning canned findings that cite matching candidates."""

    def analyze(self, extracted_text: str, evidence: list[EvidenceCandidate]) -> dict:
        findings = copy.deepcopy(MOCK_FINDINGS)
        for item in findings["checklist"]:
            item["evidence_ids"] = _cite(item["text"], evidence)
        for risk in findings["risks"]:
            risk["evidence_ids"] = _cite(f"{risk['title']} {risk['detail']}", evidence)
        return findings


def get_analyzer(config: Settings):
    if config.mock_ai:
        logger.info("Using mock analyzer")
        return MockAnalyzer()
    return HttpAnalyzer(
        url=config.analysis_url,
        api_key=config.analysis_api_key,
        timeout=config.analysis_timeout_seconds,
    )
