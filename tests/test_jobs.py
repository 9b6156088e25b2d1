import json

import pytest


def _fake_listing_model(monkeypatch, response_text: str | Exception):
    import backend.jobhound.services.job_extraction as job_extraction
    from backend.jobhound.services.ai_client import GeminiMeta

    calls = []

    async def _generate(**kwargs):
        calls.append(kwargs)
        if isinstance(response_text, Exception):
            raise response_text
        return response_text, GeminiMeta(model=kwargs["model"], latency_ms=3, status_code=200, retries=0)

    monkeypatch.setattr(job_extraction, "gemini_generate_content", _generate)
    return calls


def test_create_job_normalizes_lists(client, signup):
    headers, _ = signup()
    r = client.post(
        "/api/jobs",
        json={
            "company": "  Acme  ",
            "title": "Backend Engineer",
            "requirements": "- Python\n- SQL\n- python",
            "benefits": '["Remote", "Equity"]',
            "hard_skills": ["Docker", "", "Docker"],
            "salary_range_min": 90000,
        },
        headers=headers,
    )
    assert r.status_code == 201, r.text
    job = r.json()["job"]
    assert job["company"] == "Acme"
    assert job["status"] == "saved"
    assert job["requirements"] == ["Python", "SQL"]
    assert job["benefits"] == ["Remote", "Equity"]
    assert job["hard_skills"] == ["Docker"]
    assert job["soft_skills"] == []
    assert job["salary_range_min"] == 90000


@pytest.mark.parametrize("body", [{"title": "Engineer"}, {"company": "Acme"}, {"company": "  ", "title": "Engineer"}])
def test_create_job_requires_company_and_title(client, signup, body):
    headers, _ = signup()
    r = client.post("/api/jobs", json=body, headers=headers)
    assert r.status_code == 400, r.text
    assert r.json()["success"] is False


def test_list_and_update_jobs_are_owner_scoped(client, signup, db_session):
    from backend.jobhound.models.job import Job

    headers, _ = signup()
    other_headers, _ = signup(email="other@example.com")
    job_id = client.post("/api/jobs", json={"company": "Acme", "title": "Engineer"}, headers=headers).json()["job"]["id"]
    client.post("/api/jobs", json={"company": "Globex", "title": "Analyst"}, headers=other_headers)

    jobs = client.get("/api/jobs", headers=headers).json()["jobs"]
    assert [j["company"] for j in jobs] == ["Acme"]
    assert "latest_scan" not in jobs[0]

    r = client.patch(f"/api/jobs/{job_id}", json={"status": "applied", "benefits": "Remote; Gym"}, headers=headers)
    assert r.status_code == 200, r.text
    updated = r.json()["job"]
    assert updated["status"] == "applied"
    assert updated["benefits"] == ["Remote", "Gym"]
    assert updated["title"] == "Engineer"
    assert json.loads(db_session.get(Job, job_id).benefits) == ["Remote", "Gym"]

    r = client.patch(f"/api/jobs/{job_id}", json={"title": "  "}, headers=headers)
    assert r.status_code == 400
    assert r.json()["error"] == "Title cannot be empty"

    r = client.patch(f"/api/jobs/{job_id}", json={"status": "rejected"}, headers=other_headers)
    assert r.status_code == 404
    assert client.get(f"/api/jobs/{job_id}", headers=other_headers).status_code == 404


def test_legacy_free_text_lists_are_read_as_lists(client, signup, db_session):
    from backend.jobhound.models.job import Job

    headers, user_id = signup()
    job = Job(user_id=user_id, company="Acme", title="Engineer", requirements="Python, SQL", status="saved")
    db_session.add(job)
    db_session.commit()

    fetched = client.get(f"/api/jobs/{job.id}", headers=headers).json()["job"]
    assert fetched["requirements"] == ["Python", "SQL"]


def test_process_job_listing_extracts_fields(client, signup, enable_ai, monkeypatch):
    model_output = json.dumps(
        {
            "company": "Acme",
            "title": "Backend Engineer",
            "location": "Remote",
            "salary_range_min": "$120k",
            "salary_range_max": 150000,
            "hard_skills": "Python, PostgreSQL",
            "requirements": ["5+ years", "5+ years"],
            "unexpected": "ignored",
        }
    )
    calls = _fake_listing_model(monkeypatch, f"```json\n{model_output}\n```")
    headers, _ = signup()

    r = client.post("/api/process-job-listing", json={"text": "  Acme is hiring a Backend Engineer...  "}, headers=headers)
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["company"] == "Acme"
    assert data["salary_range_min"] == 120000
    assert data["hard_skills"] == ["Python", "PostgreSQL"]
    assert data["requirements"] == ["5+ years"]
    assert data["benefits"] == []
    assert data["job_type"] is None
    assert data["raw_job_text"] == "Acme is hiring a Backend Engineer..."
    assert data["ai_confidence"]["company"] == 0.95
    assert data["ai_confidence"]["benefits"] == 0.1
    assert data["ai_version"]
    assert data["ai_processed_at"]
    assert "unexpected" not in data
    assert "Acme is hiring" in calls[0]["user_text"]


def test_process_job_listing_unparseable_response(client, signup, enable_ai, monkeypatch):
    _fake_listing_model(monkeypatch, "Sorry, I can't help with that.")
    headers, _ = signup()
    r = client.post("/api/process-job-listing", json={"text": "Some listing"}, headers=headers)
    assert r.status_code == 500
    assert r.json()["error"] == "Failed to parse AI response"


def test_process_job_listing_ai_outage(client, signup, enable_ai, monkeypatch):
    from backend.jobhound.services.ai_client import AIClientTimeout

    _fake_listing_model(monkeypatch, AIClientTimeout("timed out"))
    headers, _ = signup()
    r = client.post("/api/process-job-listing", json={"text": "Some listing"}, headers=headers)
    assert r.status_code == 503


def test_process_job_listing_rejects_empty_text(client, signup, enable_ai, monkeypatch):
    calls = _fake_listing_model(monkeypatch, "{}")
    headers, _ = signup()
    r = client.post("/api/process-job-listing", json={"text": "   "}, headers=headers)
    assert r.status_code == 400
    assert calls == []


def test_process_job_listing_without_key(client, signup):
    headers, _ = signup()
    r = client.post("/api/process-job-listing", json={"text": "Some listing"}, headers=headers)
    assert r.status_code == 500
    assert r.json()["error"] == "Server configuration error: Missing AI API key"


def test_process_job_listing_is_rate_limited_per_ip(client, signup, enable_ai, monkeypatch):
    from backend.jobhound.services.rate_limit import job_listing_limiter

    _fake_listing_model(monkeypatch, "{}")
    headers, _ = signup()
    limit = job_listing_limiter.limit

    for _ in range(limit):
        r = client.post("/api/process-job-listing", json={"text": "x"}, headers=headers)
        assert r.status_code == 200, r.text

    r = client.post("/api/process-job-listing", json={"text": "x"}, headers=headers)
    assert r.status_code == 429

    # A different client address has its own window.
    r = client.post(
        "/api/process-job-listing",
        json={"text": "x"},
        headers={**headers, "X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
    )
    assert r.status_code == 200


def test_fixed_window_limiter_resets_after_window():
    from backend.jobhound.services.rate_limit import FixedWindowRateLimiter, client_ip

    limiter = FixedWindowRateLimiter(limit=2, window_s=60)
    assert limiter.check("a", now=0.0)
    assert limiter.check("a", now=1.0)
    assert not limiter.check("a", now=2.0)
    assert limiter.check("b", now=2.0)
    assert limiter.check("a", now=61.0)

    assert client_ip("198.51.100.1, 10.0.0.2", "127.0.0.1") == "198.51.100.1"
    assert client_ip(None, "127.0.0.1") == "127.0.0.1"
    assert client_ip("", None) == "unknown"
