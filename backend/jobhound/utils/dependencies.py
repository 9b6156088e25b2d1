from fastapi import Depends, Header
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.job import Job
from ..models.resume import Resume
from ..models.user import User
from .error_handlers import NotFoundError, UnauthorizedError, get_error_message
from .jwt import decode_access_token


def _bearer_token(authorization: str | None) -> str:
    raw = (authorization or "").strip()
    if raw.lower().startswith("bearer "):
        return raw[7:].strip()
    return ""


def get_current_user(
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token to a User row; rejects before any handler side effect."""
    token = _bearer_token(authorization)
    if not token:
        raise UnauthorizedError(get_error_message("invalid_token"))

    claims = decode_access_token(token)
    if not claims or not claims.get("sub"):
        raise UnauthorizedError(get_error_message("invalid_token"))

    try:
        user_id = int(claims["sub"])
    except (TypeError, ValueError):
        raise UnauthorizedError(get_error_message("invalid_token")) from None

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise UnauthorizedError(get_error_message("invalid_token"))
    return user


def get_owned_job(db: Session, job_id: int, user_id: int) -> Job:
    job = db.query(Job).filter(Job.id == int(job_id), Job.user_id == int(user_id)).first()
    if not job:
        raise NotFoundError(get_error_message("job_not_found"))
    return job


def get_owned_resume(db: Session, resume_id: int, user_id: int) -> Resume:
    resume = db.query(Resume).filter(Resume.id == int(resume_id), Resume.user_id == int(user_id)).first()
    if not resume:
        raise NotFoundError(get_error_message("resume_not_found"))
    return resume
