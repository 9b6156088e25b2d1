def _signup(client, *, email: str, password: str, name: str = "Test User"):
    return client.post(
        "/auth/signup",
        json={"email": email, "password": password, "name": name},
    )


def _login(client, *, email: str, password: str):
    return client.post("/auth/login", json={"email": email, "password": password})


def _auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def test_signup_success(client):
    r = _signup(client, email="seeker@example.com", password="Testpass123!", name="Seeker")
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["user"]["email"] == "seeker@example.com"
    assert data["user"]["job_search_goal"] == 5
    assert data["user"]["default_resume_id"] is None
    assert isinstance(data.get("access_token"), str) and len(data["access_token"]) > 10


def test_signup_duplicate_email_fails(client):
    _signup(client, email="dup@example.com", password="Testpass123!")
    r = _signup(client, email="DUP@example.com", password="Testpass123!")
    assert r.status_code == 400, r.text
    body = r.json()
    assert body["success"] is False
    assert "already exists" in body["error"]


def test_signup_weak_password_fails(client):
    r = _signup(client, email="weak@example.com", password="123")
    assert r.status_code == 400, r.text


def test_login_invalid_credentials_fails(client):
    _signup(client, email="user2@example.com", password="Testpass123!")
    r = _login(client, email="user2@example.com", password="wrong-password")
    assert r.status_code == 401, r.text
    assert r.json()["success"] is False


def test_login_returns_token_that_authenticates(client):
    _signup(client, email="user3@example.com", password="Testpass123!", name="Three")
    r = _login(client, email="user3@example.com", password="Testpass123!")
    assert r.status_code == 200, r.text
    token = r.json()["access_token"]

    me = client.get("/auth/me", headers=_auth_headers(token))
    assert me.status_code == 200, me.text
    assert me.json()["user"]["name"] == "Three"


def test_protected_route_requires_token(client):
    r = client.get("/api/jobs")
    assert r.status_code == 401, r.text
    assert r.json() == {"success": False, "error": "Unauthorized: Invalid token"}


def test_garbage_token_rejected(client):
    r = client.get("/api/jobs", headers=_auth_headers("not-a-jwt"))
    assert r.status_code == 401, r.text


def test_token_for_deleted_user_rejected(client):
    from backend.jobhound.utils.jwt import create_access_token

    token = create_access_token({"sub": "999999"})
    r = client.get("/api/profile", headers=_auth_headers(token))
    assert r.status_code == 401, r.text


def test_logout_endpoint_exists(client):
    r = client.post("/auth/logout")
    assert r.status_code == 200, r.text
    assert "message" in r.json()
