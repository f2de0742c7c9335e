import json

import httpx
import pytest

from tenderflow.config import Settings, settings
from tenderflow.schemas.findings import EvidenceCandidate
from tenderflow.services.analysis import (
    AnalysisError,
    HttpAnalyzer,
    MockAnalyzer,
    clamp_text,
    get_analyzer,
)
from tenderflow.services.trigger import trigger_processing

CANDIDATES = [EvidenceCandidate(id="E001", excerpt="Bids must be sealed.", score=8, kind="clause")]


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestClampText:
    def test_short_text_untouched(self):
        assert clamp_text("short", 100) == ("short", False)

    def test_keeps_head_and_tail(self):
        text = "H" * 700 + "M" * 1000 + "T" * 300
        clamped, truncated = clamp_text(text, 1000)
        assert truncated is True
        assert clamped.startswith("H" * 700)
        assert clamped.endswith("T" * 300)
        assert "[... 1000 characters omitted ...]" in clamped
        assert "M" not in clamped


class TestHttpAnalyzer:
    def test_posts_text_and_candidates(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"requirements": [{"type": "MUST", "text": "Seal bids"}]})

        analyzer = HttpAnalyzer("https://analysis.test/run", api_key="k-1", http_client=_client(handler))
        out = analyzer.analyze("Bids must be sealed.", CANDIDATES)

        assert out["requirements"][0]["text"] == "Seal bids"
        assert seen["auth"] == "Bearer k-1"
        assert seen["body"]["extracted_text"] == "Bids must be sealed."
        assert seen["body"]["evidence_candidates"][0]["id"] == "E001"

    def test_chat_envelope(self):
        content = 'Here you go:\n```json\n{"risks": [{"title": "Bond"}]}\n```'

        def handler(request):
            return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

        out = HttpAnalyzer("https://analysis.test/run", http_client=_client(handler)).analyze("t", [])
        assert out == {"risks": [{"title": "Bond"}]}

    def test_findings_envelope(self):
        def handler(request):
            return httpx.Response(200, json={"findings": {"clarifications": ["Q1"]}})

        out = HttpAnalyzer("https://analysis.test/run", http_client=_client(handler)).analyze("t", [])
        assert out == {"clarifications": ["Q1"]}

    def test_error_status(self):
        def handler(request):
            return httpx.Response(502, text="upstream exploded " * 200)

        analyzer = HttpAnalyzer("https://analysis.test/run", http_client=_client(handler))
        with pytest.raises(AnalysisError) as exc_info:
            analyzer.analyze("t", [])
        assert "502" in str(exc_info.value)
        assert len(str(exc_info.value)) < 1000

    def test_transport_error_and_bad_json(self):
        def broken(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(AnalysisError):
            HttpAnalyzer("https://analysis.test/run", http_client=_client(broken)).analyze("t", [])

        def not_json(request):
            return httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(AnalysisError):
            HttpAnalyzer("https://analysis.test/run", http_client=_client(not_json)).analyze("t", [])

    def test_missing_url(self):
        with pytest.raises(AnalysisError):
            HttpAnalyzer(None).analyze("t", [])

    def test_get_analyzer(self):
        assert isinstance(get_analyzer(Settings(mock_ai=True)), MockAnalyzer)
        analyzer = get_analyzer(Settings(mock_ai=False, analysis_url="https://analysis.test/run"))
        assert isinstance(analyzer, HttpAnalyzer)
        assert analyzer.url == "https://analysis.test/run"


class TestTrigger:
    def test_posts_job_id_with_service_token(self, monkeypatch):
        monkeypatch.setattr(settings, "process_job_url", "https://tenderflow.test/api/v1/process-job")
        monkeypatch.setattr(settings, "service_token", "svc")
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(202)

        assert trigger_processing("job-1", http_client=_client(handler)) == 202
        assert seen == {
            "url": "https://tenderflow.test/api/v1/process-job",
            "auth": "Bearer svc",
            "body": {"job_id": "job-1"},
        }

    def test_failure_is_swallowed(self, monkeypatch, caplog):
        monkeypatch.setattr(settings, "process_job_url", "https://tenderflow.test/api/v1/process-job")

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert trigger_processing("job-1", http_client=_client(handler)) is None
        assert "trigger job job-1" in caplog.text

    def test_no_url_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "process_job_url", None)
        assert trigger_processing("job-1") is None
