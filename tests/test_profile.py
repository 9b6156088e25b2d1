import json


def test_profile_defaults(client, signup):
    headers, user_id = signup()
    r = client.get("/api/profile", headers=headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["user"]["id"] == user_id
    assert body["default_resume"] is None
    assert body["credits"] == 0
    assert body["scans_this_week"] == 0
    assert body["job_search_goal"] == 5
    assert body["goal_met"] is False


def test_profile_counts_this_weeks_scans(client, seed_scan_inputs, enable_ai, monkeypatch, scan_result):
    import backend.jobhound.services.scan_runner as scan_runner

    async def _stream(inp):
        yield json.dumps(scan_result)

    monkeypatch.setattr(scan_runner, "stream_resume_analysis", _stream)
    seeded = seed_scan_inputs(credits=3)
    client.patch("/api/profile", json={"job_search_goal": 1}, headers=seeded.headers)
    client.post("/api/create-scan", json={"jobId": seeded.job_id, "resumeId": seeded.resume_id}, headers=seeded.headers)

    body = client.get("/api/profile", headers=seeded.headers).json()
    assert body["scans_this_week"] == 1
    assert body["credits"] == 2
    assert body["goal_met"] is True
    assert body["default_resume"] is None


def test_update_profile(client, seed_scan_inputs):
    seeded = seed_scan_inputs()
    r = client.patch(
        "/api/profile",
        json={"name": "  Sam  ", "job_search_goal": 10, "default_resume_id": seeded.resume_id},
        headers=seeded.headers,
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["user"]["name"] == "Sam"
    assert body["user"]["default_resume_id"] == seeded.resume_id
    assert body["default_resume"]["id"] == seeded.resume_id
    assert body["job_search_goal"] == 10

    r = client.patch("/api/profile", json={"default_resume_id": None}, headers=seeded.headers)
    assert r.json()["default_resume"] is None


def test_update_profile_rejects_bad_input(client, seed_scan_inputs):
    owner = seed_scan_inputs(email="owner@example.com")
    other = seed_scan_inputs(email="other@example.com")

    r = client.patch("/api/profile", json={"default_resume_id": owner.resume_id}, headers=other.headers)
    assert r.status_code == 404

    r = client.patch("/api/profile", json={"job_search_goal": 0}, headers=other.headers)
    assert r.status_code == 400

    assert client.get("/api/profile").status_code == 401
