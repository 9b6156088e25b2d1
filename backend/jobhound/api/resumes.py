from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import MAX_RESUME_BYTES
from ..database import get_db
from ..models.resume import EXTRACTING_TEXT_PLACEHOLDER, Resume
from ..models.user import User
from ..services.resume_enrichment import ENRICHMENT_TASK_KIND, decode_inline_file
from ..services.resume_text import mime_type_for
from ..services.storage import (
    StorageError,
    create_signed_url,
    delete_object,
    key_owner_id,
    normalize_key,
    put_object,
)
from ..services.task_queue import enqueue_task, run_task
from ..utils.dependencies import get_current_user, get_owned_resume
from ..utils.error_handlers import NotFoundError, get_error_message, handle_database_error
from ..utils.validation import sanitize_filename, validate_string_field

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Resumes"])

ALLOWED_EXTENSIONS = {".pdf", ".docx"}
ALLOWED_CONTENT_TYPES = {
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/msword",  # sometimes used incorrectly for docx by browsers
    "application/octet-stream",  # allow when extension is trusted
}


class CreateResumeRequest(BaseModel):
    filename: str | None = None
    name: str | None = None
    filePath: str | None = None
    fileSize: int | None = Field(default=None, ge=0)
    fileUrl: str | None = None
    setAsDefault: bool = False
    fileBase64: str | None = None


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if isinstance(dt, datetime) else dt


def _signed_or_none(key: str | None) -> str | None:
    if not key:
        return None
    try:
        return create_signed_url(key)
    except StorageError:
        return None


def resume_to_public(r: Resume, *, fresh_urls: bool = False) -> dict:
    return {
        "id": r.id,
        "filename": r.filename,
        "name": r.name,
        "file_path": r.file_path,
        "file_url": _signed_or_none(r.file_path) if fresh_urls else r.file_url,
        "file_size": r.file_size,
        "mime_type": r.mime_type,
        "is_default": bool(r.is_default),
        "raw_text": r.raw_text,
        "thumbnail_path": r.thumbnail_path,
        "thumbnail_url": _signed_or_none(r.thumbnail_path) if fresh_urls else r.thumbnail_url,
        "created_at": _iso(r.created_at),
        "updated_at": _iso(r.updated_at),
    }


def set_default_resume(db: Session, user: User, resume: Resume | None) -> None:
    """Make ``resume`` the user's only default (None clears it). Caller commits."""
    db.query(Resume).filter(Resume.user_id == user.id, Resume.is_default.is_(True)).update(
        {Resume.is_default: False}, synchronize_session="fetch"
    )
    if resume is not None:
        resume.is_default = True
    user.default_resume_id = resume.id if resume is not None else None


@router.post("/resumes/upload", status_code=201)
async def upload_resume_file(
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
):
    """Store the file only; the resume row is created by /api/create-resume."""
    if not file or not file.filename:
        raise HTTPException(status_code=400, detail=get_error_message("invalid_file_type"))

    original_filename = sanitize_filename(Path(file.filename).name)
    ext = Path(original_filename).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(status_code=400, detail=get_error_message("invalid_file_type"))
    if file.content_type and file.content_type not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(status_code=400, detail=get_error_message("invalid_file_type"))

    chunks: list[bytes] = []
    size = 0
    try:
        while True:
            chunk = await file.read(1024 * 1024)  # 1MB
            if not chunk:
                break
            size += len(chunk)
            if size > MAX_RESUME_BYTES:
                raise HTTPException(status_code=413, detail=get_error_message("file_too_large"))
            chunks.append(chunk)
    finally:
        await file.close()

    if size == 0:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    key = put_object(f"resumes/{user.id}/{uuid4().hex}{ext}", b"".join(chunks))
    return {
        "success": True,
        "filePath": key,
        "fileUrl": create_signed_url(key),
        "fileSize": size,
        "filename": original_filename,
        "mimeType": mime_type_for(original_filename, file.content_type),
    }


@router.post("/create-resume")
def create_resume(
    payload: CreateResumeRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Create the resume row right away with placeholder text; thumbnail and text
    extraction continue in a queued enrichment task.
    """
    filename = validate_string_field(payload.filename, "filename", max_length=255)
    name = validate_string_field(payload.name, "name", max_length=255)
    raw_path = validate_string_field(payload.filePath, "filePath", max_length=500)

    try:
        file_path = normalize_key(raw_path)
    except StorageError:
        raise NotFoundError("File not found or access denied")
    if key_owner_id(file_path) != user.id:
        raise NotFoundError("File not found or access denied")
    if payload.fileBase64:
        try:
            inline_size = len(decode_inline_file(payload.fileBase64))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Invalid fileBase64: {e}")
        if inline_size > MAX_RESUME_BYTES:
            raise HTTPException(status_code=413, detail=get_error_message("file_too_large"))

    is_first = db.query(Resume.id).filter(Resume.user_id == user.id).first() is None
    resume = Resume(
        user_id=user.id,
        filename=sanitize_filename(filename),
        name=name,
        file_path=file_path,
        file_url=(payload.fileUrl or "").strip() or None,
        file_size=int(payload.fileSize or 0),
        mime_type=mime_type_for(filename),
        is_default=False,
        raw_text=EXTRACTING_TEXT_PLACEHOLDER,
    )
    try:
        db.add(resume)
        db.flush()
        if payload.setAsDefault or is_first:
            set_default_resume(db, user, resume)
        task_payload = {"resume_id": resume.id}
        if payload.fileBase64:
            task_payload["file_base64"] = payload.fileBase64
        task = enqueue_task(db, kind=ENRICHMENT_TASK_KIND, payload=task_payload, commit=False)
        db.commit()
        db.refresh(resume)
    except SQLAlchemyError as e:
        db.rollback()
        raise handle_database_error(e, "creating resume")

    background_tasks.add_task(run_task, task.id)
    logger.info("resume created resume_id=%s user_id=%s default=%s", resume.id, user.id, resume.is_default)
    return {
        "success": True,
        "resume_id": resume.id,
        "resume": resume_to_public(resume),
        "message": "Resume created. Text extraction is running in the background.",
    }


@router.get("/resumes")
def list_resumes(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    rows = (
        db.query(Resume)
        .filter(Resume.user_id == user.id)
        .order_by(Resume.is_default.desc(), Resume.created_at.desc(), Resume.id.desc())
        .all()
    )
    return {"success": True, "resumes": [resume_to_public(r) for r in rows]}


@router.get("/resumes/{resume_id:int}")
def get_resume(
    resume_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    resume = get_owned_resume(db, resume_id, user.id)
    return {"success": True, "resume": resume_to_public(resume, fresh_urls=True)}


@router.post("/resumes/{resume_id:int}/default")
def make_default_resume(
    resume_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    resume = get_owned_resume(db, resume_id, user.id)
    set_default_resume(db, user, resume)
    db.commit()
    db.refresh(resume)
    return {"success": True, "resume": resume_to_public(resume)}


@router.delete("/resumes/{resume_id:int}")
def delete_resume(
    resume_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    resume = get_owned_resume(db, resume_id, user.id)
    keys = [k for k in (resume.file_path, resume.thumbnail_path) if k]

    if user.default_resume_id == resume.id:
        user.default_resume_id = None
    user.updated_at = datetime.now(timezone.utc)
    try:
        db.delete(resume)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise handle_database_error(e, "deleting resume")

    for key in keys:
        delete_object(key)
    logger.info("resume deleted resume_id=%s user_id=%s", resume_id, user.id)
    return {"success": True, "deleted_resume_id": resume_id}
