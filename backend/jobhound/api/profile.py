from datetime import datetime, timedelta, timezone
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.job_scan import JobScan
from ..models.resume import Resume
from ..models.user import User
from ..services.credits import get_available_credits
from ..utils.dependencies import get_current_user
from ..utils.error_handlers import NotFoundError, get_error_message
from .auth import user_to_public
from .resumes import resume_to_public, set_default_resume

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Profile"])


class ProfileUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    job_search_goal: int | None = Field(default=None, ge=1, le=100)
    default_resume_id: int | None = Field(default=None, ge=1)


def _week_start(now: datetime) -> datetime:
    # Weeks start Monday 00:00 UTC.
    day = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return day - timedelta(days=day.weekday())


def _profile_payload(db: Session, user: User) -> dict:
    default_resume = None
    if user.default_resume_id:
        default_resume = (
            db.query(Resume)
            .filter(Resume.id == user.default_resume_id, Resume.user_id == user.id)
            .first()
        )
    week_start = _week_start(datetime.now(timezone.utc))
    scans_this_week = (
        db.query(JobScan)
        .filter(JobScan.user_id == user.id, JobScan.created_at >= week_start)
        .count()
    )
    return {
        "success": True,
        "user": user_to_public(user),
        "default_resume": resume_to_public(default_resume) if default_resume else None,
        "credits": get_available_credits(db, user.id),
        "scans_this_week": scans_this_week,
        "job_search_goal": user.job_search_goal,
        "goal_met": scans_this_week >= (user.job_search_goal or 0),
    }


@router.get("/profile")
def get_profile(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return _profile_payload(db, user)


@router.patch("/profile")
def update_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    fields = payload.model_fields_set
    if "name" in fields:
        user.name = (payload.name or "").strip() or None
    if "job_search_goal" in fields and payload.job_search_goal is not None:
        user.job_search_goal = payload.job_search_goal
    if "default_resume_id" in fields:
        resume = None
        if payload.default_resume_id is not None:
            resume = (
                db.query(Resume)
                .filter(Resume.id == payload.default_resume_id, Resume.user_id == user.id)
                .first()
            )
            if not resume:
                raise NotFoundError(get_error_message("resume_not_found"))
        set_default_resume(db, user, resume)

    user.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(user)
    logger.info("profile updated user_id=%s fields=%s", user.id, sorted(fields))
    return _profile_payload(db, user)
