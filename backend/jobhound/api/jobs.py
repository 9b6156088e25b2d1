from datetime import datetime, timezone
import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.job import Job
from ..models.job_scan import JobScan
from ..models.user import User
from ..services.ai_common import require_ai_key
from ..services.job_extraction import extract_job_listing
from ..services.rate_limit import client_ip, job_listing_limiter
from ..utils.dependencies import get_current_user, get_owned_job
from ..utils.error_handlers import (
    RateLimitError,
    ValidationError,
    handle_database_error,
)
from ..utils.validation import normalize_string_list, validate_integer_field, validate_string_field
from .scans import scan_to_public

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Jobs"])

LIST_FIELDS = ("requirements", "benefits", "hard_skills", "soft_skills")


def load_string_list(raw: str | None) -> list[str]:
    """Stored list columns -> canonical list (older rows may hold free text)."""
    return normalize_string_list(raw) if raw else []


def dump_string_list(values: list[str] | None) -> str | None:
    return json.dumps(values, ensure_ascii=False) if values else None


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if isinstance(dt, datetime) else dt


def _job_to_public(job: Job, *, latest_scan: JobScan | None = None) -> dict:
    ai_confidence = None
    if job.ai_confidence:
        try:
            ai_confidence = json.loads(job.ai_confidence)
        except ValueError:
            ai_confidence = None
    payload = {
        "id": job.id,
        "company": job.company,
        "title": job.title,
        "location": job.location,
        "description": job.description,
        "job_type": job.job_type,
        "salary_range_min": job.salary_range_min,
        "salary_range_max": job.salary_range_max,
        "salary_currency": job.salary_currency,
        "salary_period": job.salary_period,
        "raw_job_text": job.raw_job_text,
        "ai_confidence": ai_confidence,
        "ai_version": job.ai_version,
        "ai_processed_at": _iso(job.ai_processed_at),
        "status": job.status,
        "applied_date": _iso(job.applied_date),
        "created_at": _iso(job.created_at),
        "updated_at": _iso(job.updated_at),
    }
    for field in LIST_FIELDS:
        payload[field] = load_string_list(getattr(job, field))
    if latest_scan is not None:
        payload["latest_scan"] = scan_to_public(latest_scan, include_results=False)
    return payload


class _JobFields(BaseModel):
    location: str | None = Field(default=None, max_length=255)
    description: str | None = None
    job_type: str | None = Field(default=None, max_length=50)
    salary_range_min: int | None = Field(default=None, ge=0)
    salary_range_max: int | None = Field(default=None, ge=0)
    salary_currency: str | None = Field(default=None, max_length=10)
    salary_period: str | None = Field(default=None, max_length=20)
    requirements: list[str] | None = None
    benefits: list[str] | None = None
    hard_skills: list[str] | None = None
    soft_skills: list[str] | None = None
    raw_job_text: str | None = None
    ai_confidence: dict[str, float] | None = None
    ai_version: str | None = Field(default=None, max_length=120)
    ai_processed_at: datetime | None = None
    status: str | None = Field(default=None, max_length=30)
    applied_date: datetime | None = None

    @field_validator(*LIST_FIELDS, mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[str] | None:
        return None if v is None else normalize_string_list(v)


class JobCreate(_JobFields):
    company: str | None = Field(default=None, max_length=255)
    title: str | None = Field(default=None, max_length=255)


class JobUpdate(_JobFields):
    company: str | None = Field(default=None, max_length=255)
    title: str | None = Field(default=None, max_length=255)


class JobListingRequest(BaseModel):
    text: str | None = None


def _apply_fields(job: Job, payload: _JobFields, *, fields: set[str]) -> None:
    for name in fields:
        value = getattr(payload, name)
        if name == "status" and not (value or "").strip():
            continue
        if name in LIST_FIELDS:
            setattr(job, name, dump_string_list(value))
        elif name == "ai_confidence":
            job.ai_confidence = json.dumps(value) if value else None
        elif isinstance(value, str):
            setattr(job, name, value.strip() or None)
        else:
            setattr(job, name, value)


@router.post("/process-job-listing")
async def process_job_listing(
    payload: JobListingRequest,
    request: Request,
    user: User = Depends(get_current_user),
):
    ip = client_ip(request.headers.get("x-forwarded-for"), request.client.host if request.client else None)
    if not job_listing_limiter.check(ip):
        raise RateLimitError()
    require_ai_key()

    text = (payload.text or "").strip()
    if not text:
        raise ValidationError("Job listing text is required")

    data = await extract_job_listing(text)
    logger.info("job listing processed user_id=%s chars=%s", user.id, len(text))
    return {"success": True, "data": data}


@router.post("/jobs", status_code=201)
def create_job(
    payload: JobCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    company = validate_string_field(payload.company, "Company", min_length=1, max_length=255)
    title = validate_string_field(payload.title, "Title", min_length=1, max_length=255)

    job = Job(user_id=user.id, company=company, title=title)
    _apply_fields(job, payload, fields=set(_JobFields.model_fields) & payload.model_fields_set)
    if not job.status:
        job.status = "saved"
    try:
        db.add(job)
        db.commit()
        db.refresh(job)
    except SQLAlchemyError as e:
        db.rollback()
        raise handle_database_error(e, "creating job")

    logger.info("job created job_id=%s user_id=%s", job.id, user.id)
    return {"success": True, "job": _job_to_public(job)}


@router.get("/jobs")
def list_jobs(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    jobs = db.query(Job).filter(Job.user_id == user.id).order_by(Job.created_at.desc(), Job.id.desc()).all()
    items = [_job_to_public(j, latest_scan=(j.scans[0] if j.scans else None)) for j in jobs]
    return {"success": True, "jobs": items}


@router.get("/jobs/{job_id:int}")
def get_job(
    job_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    job_id = validate_integer_field(job_id, "Job ID", min_value=1)
    job = get_owned_job(db, job_id, user.id)
    return {"success": True, "job": _job_to_public(job, latest_scan=(job.scans[0] if job.scans else None))}


@router.patch("/jobs/{job_id:int}")
def update_job(
    job_id: int,
    payload: JobUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    job = get_owned_job(db, job_id, user.id)

    fields = set(payload.model_fields_set)
    for required in ("company", "title"):
        if required in fields:
            value = getattr(payload, required)
            if value is None or not value.strip():
                raise HTTPException(status_code=400, detail=f"{required.capitalize()} cannot be empty")
    _apply_fields(job, payload, fields=fields)
    job.updated_at = datetime.now(timezone.utc)

    try:
        db.commit()
        db.refresh(job)
    except SQLAlchemyError as e:
        db.rollback()
        raise handle_database_error(e, "updating job")
    return {"success": True, "job": _job_to_public(job)}
