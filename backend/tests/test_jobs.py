import pytest

from tenderflow.config import settings
from tenderflow.models.job import Job


def _set_status(test_db, job_id, status):
    session = test_db()
    try:
        session.query(Job).filter(Job.id == job_id).update({"status": status})
        session.commit()
    finally:
        session.close()


class TestUsers:
    def test_create_user_returns_token(self, client, service_headers):
        r = client.post("/api/v1/users", json={"email": " Buyer@Example.com "}, headers=service_headers)
        assert r.status_code == 201
        data = r.json()
        assert data["email"] == "buyer@example.com"
        assert data["token"]

        r = client.get("/api/v1/jobs", headers={"Authorization": f"Bearer {data['token']}"})
        assert r.status_code == 200

    def test_requires_service_token(self, client):
        r = client.post("/api/v1/users", json={"email": "a@example.com"})
        assert r.status_code == 401
        r = client.post("/api/v1/users", json={"email": "a@example.com"}, headers={"Authorization": "Bearer nope"})
        assert r.status_code == 401

    def test_duplicate_and_invalid_email(self, client, service_headers, make_user):
        make_user("dup@example.com")
        r = client.post("/api/v1/users", json={"email": "dup@example.com"}, headers=service_headers)
        assert r.status_code == 409
        r = client.post("/api/v1/users", json={"email": "not-an-email"}, headers=service_headers)
        assert r.status_code == 400


class TestUpload:
    def test_upload_creates_queued_job(self, client, upload, auth):
        job = upload()
        assert job["status"] == "queued"
        assert job["source_type"] == "txt"
        assert job["file_name"] == "tender.txt"
        assert job["has_result"] is False

        events = client.get(f"/api/v1/jobs/{job['id']}/events", headers=auth).json()
        assert [e["message"] for e in events] == ["Job created"]
        assert events[0]["meta"]["source_type"] == "txt"

    def test_rejects_unsupported_type(self, client, auth):
        r = client.post(
            "/api/v1/jobs",
            files={"file": ("tender.rtf", b"{\\rtf1}", "application/rtf")},
            headers=auth,
        )
        assert r.status_code == 400

    def test_rejects_empty_file(self, client, auth):
        r = client.post("/api/v1/jobs", files={"file": ("tender.txt", b"", "text/plain")}, headers=auth)
        assert r.status_code == 400

    def test_rejects_oversized_file(self, client, auth, monkeypatch):
        monkeypatch.setattr(settings, "max_upload_bytes", 10)
        r = client.post("/api/v1/jobs", files={"file": ("tender.txt", b"x" * 11, "text/plain")}, headers=auth)
        assert r.status_code == 413

    def test_requires_auth(self, client):
        r = client.post("/api/v1/jobs", files={"file": ("tender.txt", b"text", "text/plain")})
        assert r.status_code == 401
        r = client.get("/api/v1/jobs", headers={"Authorization": "Bearer wrong"})
        assert r.status_code == 401


class TestJobsRead:
    def test_list_and_filter(self, client, upload, process, auth):
        first = upload()
        upload(name="second.txt")
        process(first["id"])

        r = client.get("/api/v1/jobs", headers=auth)
        assert r.status_code == 200
        data = r.json()
        assert data["total"] == 2
        # Newest first
        assert data["jobs"][0]["file_name"] == "second.txt"

        r = client.get("/api/v1/jobs?status=done", headers=auth)
        assert [j["id"] for j in r.json()["jobs"]] == [first["id"]]

        assert client.get("/api/v1/jobs?status=archived", headers=auth).status_code == 400

    def test_pagination(self, client, upload, auth):
        for i in range(3):
            upload(name=f"tender-{i}.txt")
        data = client.get("/api/v1/jobs?page=2&per_page=2", headers=auth).json()
        assert data["total"] == 3
        assert len(data["jobs"]) == 1

    def test_other_users_jobs_are_hidden(self, client, upload, make_user):
        job = upload()
        intruder = make_user("intruder@example.com")
        assert client.get(f"/api/v1/jobs/{job['id']}", headers=intruder).status_code == 404
        assert client.get(f"/api/v1/jobs/{job['id']}/events", headers=intruder).status_code == 404
        assert client.post(f"/api/v1/jobs/{job['id']}/retry", headers=intruder).status_code == 404
        assert client.get("/api/v1/jobs", headers=intruder).json()["total"] == 0

    def test_events_follow_processing(self, client, upload, process, auth):
        job = upload()
        process(job["id"])
        events = client.get(f"/api/v1/jobs/{job['id']}/events", headers=auth).json()
        messages = [e["message"] for e in events]
        assert messages[0] == "Job created"
        assert messages[-1] == "Job done"
        assert all(e["level"] in ("info", "warn", "error") for e in events)


class TestRetry:
    @pytest.mark.parametrize("status", ["queued", "processing", "done"])
    def test_refused_unless_failed(self, client, upload, auth, test_db, status):
        job = upload()
        _set_status(test_db, job["id"], status)
        r = client.post(f"/api/v1/jobs/{job['id']}/retry", headers=auth)
        assert r.status_code == 409
        assert r.json() == {"error": "job_not_failed", "status": status}

    def test_failed_job_is_requeued(self, client, upload, process, analyzer, auth):
        analyzer.error = RuntimeError("analysis down")
        job = upload()
        assert process(job["id"]).status_code == 500

        r = client.post(f"/api/v1/jobs/{job['id']}/retry", headers=auth)
        assert r.status_code == 200
        assert r.json() == {"ok": True}

        detail = client.get(f"/api/v1/jobs/{job['id']}", headers=auth).json()
        assert detail["status"] == "queued"
        assert detail["error_message"] is None
        events = client.get(f"/api/v1/jobs/{job['id']}/events", headers=auth).json()
        assert events[-1]["message"] == "Retry requested"

        analyzer.error = None
        assert process(job["id"]).json()["status"] == "done"

    def test_retry_nudges_processor(self, client, upload, process, analyzer, auth, monkeypatch):
        calls = []
        monkeypatch.setattr("tenderflow.routers.jobs.trigger_processing", calls.append)
        analyzer.error = RuntimeError("analysis down")
        job = upload()
        process(job["id"])
        calls.clear()

        client.post(f"/api/v1/jobs/{job['id']}/retry", headers=auth)
        assert calls == [job["id"]]
