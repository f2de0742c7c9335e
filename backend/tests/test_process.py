import pytest

from tenderflow.config import settings
from tenderflow.services.analysis import AnalysisError


class TestProcessJob:
    def test_requires_service_token(self, client, upload, auth):
        job = upload()
        r = client.post("/api/v1/process-job", json={"job_id": job["id"]})
        assert r.status_code == 401
        r = client.post("/api/v1/process-job", json={"job_id": job["id"]}, headers=auth)
        assert r.status_code == 401

    def test_missing_job_id(self, client, service_headers):
        r = client.post("/api/v1/process-job", json={}, headers=service_headers)
        assert r.status_code == 400

    @pytest.mark.parametrize("body", [
        b"",
        b"not json",
        b"[1, 2]",
        b"\"job-1\"",
        b"{\"job_id\": 5}",
        b"{\"job_id\": \"  \"}",
    ])
    def test_malformed_body(self, client, service_headers, body):
        headers = {**service_headers, "Content-Type": "application/json"}
        r = client.post("/api/v1/process-job", content=body, headers=headers)
        assert r.status_code == 400

    def test_unknown_job(self, process):
        assert process("no-such-job").status_code == 404

    def test_processes_then_noop(self, client, upload, process, auth):
        job = upload()
        r = process(job["id"])
        assert r.status_code == 200
        assert r.json() == {"ok": True, "status": "done"}

        r = process(job["id"])
        assert r.status_code == 200
        assert r.json()["status"] == "already_done"

        detail = client.get(f"/api/v1/jobs/{job['id']}", headers=auth).json()
        assert detail["status"] == "done"
        assert detail["has_result"] is True

    def test_analysis_failure(self, client, upload, process, analyzer, auth):
        analyzer.error = AnalysisError("model unavailable")
        job = upload()

        r = process(job["id"])
        assert r.status_code == 500
        body = r.json()
        assert body["ok"] is False
        assert body["status"] == "failed"
        assert body["stage"] == "analysis"
        assert body["error"] == "model unavailable"

        detail = client.get(f"/api/v1/jobs/{job['id']}", headers=auth).json()
        assert detail["status"] == "failed"
        assert detail["error_message"] == "model unavailable"

        r = process(job["id"])
        assert r.status_code == 200
        assert r.json()["status"] == "already_failed"

    def test_fast_path_text_is_used(self, client, upload, process, analyzer, tender_text):
        job = upload(text="%PDF-not-parsed", name="tender.pdf", extracted_text=tender_text)
        assert process(job["id"]).json()["status"] == "done"
        sent, _ = analyzer.calls[0]
        assert "ISO 27001" in sent


class TestKick:
    def test_processes_queued_jobs(self, client, upload, service_headers, auth):
        first = upload()
        second = upload(name="second.txt")

        r = client.post("/api/v1/process-job/kick", headers=service_headers)
        assert r.status_code == 200
        body = r.json()
        assert body["processed"] == 2
        assert [res["job_id"] for res in body["results"]] == [first["id"], second["id"]]
        assert {res["status"] for res in body["results"]} == {"done"}

        r = client.post("/api/v1/process-job/kick", headers=service_headers)
        assert r.json()["processed"] == 0

    def test_batch_size(self, client, upload, service_headers, monkeypatch):
        monkeypatch.setattr(settings, "kick_batch_size", 1)
        upload()
        upload(name="second.txt")
        r = client.post("/api/v1/process-job/kick", headers=service_headers)
        assert r.json()["processed"] == 1

    def test_requires_service_token(self, client, auth):
        assert client.post("/api/v1/process-job/kick", headers=auth).status_code == 401
