import os
import sys
import tempfile
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


# Ensure `import backend.jobhound...` works regardless of where pytest is run from.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Config is read at import time, so everything is set before any test module is
# collected (some import backend.jobhound at module level).
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="jobhound-tests-"))
os.environ["DISABLE_DOTENV"] = "1"
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{(_TEST_ROOT / 'test.sqlite3').as_posix()}"
os.environ["STORAGE_DIR"] = str(_TEST_ROOT / "storage")
os.environ["SITE_URL"] = "http://testserver"
# Ensure tests never call external providers even if the developer machine has keys set.
os.environ["GEMINI_API_KEY"] = ""
os.environ["GOOGLE_GENERATIVE_AI_API_KEY"] = ""
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = ""
os.environ["STRIPE_PRICE_ID"] = ""
os.environ["RECOVER_TASKS_ON_STARTUP"] = "0"


@pytest.fixture()
def app() -> FastAPI:
    """
    Create a FastAPI app wired to a temporary SQLite DB.

    We intentionally do NOT import `backend.jobhound.main` so startup task recovery
    never runs against the test DB.
    """
    from backend.jobhound import database as db

    engine = create_engine(
        os.environ["DATABASE_URL"],
        connect_args={"check_same_thread": False},
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    # Patch the shared database module so router dependencies and background work use the test DB.
    db.engine = engine
    db.SessionLocal = TestingSessionLocal

    # Import models so Base metadata is populated, then create tables.
    from backend.jobhound import models  # noqa: F401

    db.Base.metadata.drop_all(bind=engine)
    db.Base.metadata.create_all(bind=engine)

    from backend.jobhound.api import auth as auth_api
    from backend.jobhound.api import credits as credits_api
    from backend.jobhound.api import jobs as jobs_api
    from backend.jobhound.api import profile as profile_api
    from backend.jobhound.api import resumes as resumes_api
    from backend.jobhound.api import scans as scans_api
    from backend.jobhound.api import storage as storage_api
    from backend.jobhound.services.rate_limit import job_listing_limiter
    from backend.jobhound.utils.error_handlers import register_exception_handlers

    job_listing_limiter.reset()

    fastapi_app = FastAPI()
    fastapi_app.include_router(auth_api.router)
    fastapi_app.include_router(jobs_api.router)
    fastapi_app.include_router(resumes_api.router)
    fastapi_app.include_router(scans_api.router)
    fastapi_app.include_router(credits_api.router)
    fastapi_app.include_router(profile_api.router)
    fastapi_app.include_router(storage_api.router)
    register_exception_handlers(fastapi_app)

    return fastapi_app


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture()
def db_session(app: FastAPI):
    """
    Direct SQLAlchemy session bound to the same temporary SQLite DB used by the test app.
    """
    from backend.jobhound.database import SessionLocal

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def signup(client: TestClient):
    """Create a user and return (auth headers, user id)."""

    def _signup(email: str = "seeker@example.com", password: str = "Testpass123!", name: str = "Seeker"):
        r = client.post("/auth/signup", json={"email": email, "password": password, "name": name})
        assert r.status_code == 200, r.text
        data = r.json()
        return {"Authorization": f"Bearer {data['access_token']}"}, data["user"]["id"]

    return _signup


@pytest.fixture()
def enable_ai(monkeypatch):
    """Pretend a Gemini key is configured."""
    import backend.jobhound.services.ai_common as ai_common

    monkeypatch.setattr(ai_common, "GEMINI_API_KEY", "test-key")


@pytest.fixture()
def scan_result() -> dict:
    """A model response that passes strict scan validation."""
    item = {"issue": "Looks fine", "status": "pass", "tip": "Keep it"}
    return {
        "overallMatch": "Strong backend match.",
        "hardSkills": "Python and SQL match.",
        "softSkills": "Communication is evident.",
        "experienceMatch": "Five years, role asks for four.",
        "qualifications": "Degree requirement met.",
        "missingKeywords": "Kubernetes",
        "matchScore": 82,
        "categoryScores": {
            "searchability": 90,
            "hardSkills": 80,
            "softSkills": 70,
            "recruiterTips": 60,
            "formatting": 100,
        },
        "categoryFeedback": {
            "searchability": [item],
            "contactInfo": [{"issue": "No phone number", "status": "fail"}],
            "summary": [item],
            "sectionHeadings": [{"issue": "Nonstandard heading", "status": "warning", "tip": "Use 'Work History'"}],
            "jobTitleMatch": [item],
            "dateFormatting": [item],
        },
    }


@pytest.fixture()
def seed_scan_inputs(client: TestClient, db_session, signup):
    """
    A user with one job, one stored PDF resume and ``credits`` credits.

    The resume row is inserted directly so no enrichment task is queued.
    """
    from types import SimpleNamespace

    from backend.jobhound.models.resume import Resume
    from backend.jobhound.services.credits import grant_credits
    from backend.jobhound.services.storage import put_object

    def _seed(*, credits: int = 1, email: str = "scanner@example.com"):
        headers, user_id = signup(email=email)
        r = client.post(
            "/api/jobs",
            json={"company": "Acme", "title": "Backend Engineer", "description": "Python, SQL, APIs."},
            headers=headers,
        )
        assert r.status_code == 201, r.text
        job_id = r.json()["job"]["id"]

        key = put_object(f"resumes/{user_id}/seed-resume.pdf", b"%PDF-1.4 seed resume")
        resume = Resume(
            user_id=user_id,
            filename="resume.pdf",
            name="Main resume",
            file_path=key,
            file_size=20,
            mime_type="application/pdf",
            is_default=True,
            raw_text="Python developer",
        )
        db_session.add(resume)
        db_session.commit()
        db_session.refresh(resume)

        if credits:
            grant_credits(db_session, user_id=user_id, amount=credits)
        return SimpleNamespace(headers=headers, user_id=user_id, job_id=job_id, resume_id=resume.id)

    return _seed
