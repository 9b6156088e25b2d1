from datetime import datetime
import json
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.job_scan import JobScan
from ..models.user import User
from ..services.ai_common import require_ai_key
from ..services.credits import admit_scan
from ..services.scan_runner import SCAN_TASK_KIND, ScanInputError, build_scan_input, stream_scan
from ..services.task_queue import enqueue_task, run_task
from ..utils.dependencies import get_current_user, get_owned_job, get_owned_resume
from ..utils.error_handlers import NotFoundError, create_error_response, get_error_message

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Scans"])

SCAN_MODES = {"stream", "background"}


class CreateScanRequest(BaseModel):
    jobId: int = Field(ge=1)
    resumeId: int = Field(ge=1)


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if isinstance(dt, datetime) else dt


def scan_to_public(scan: JobScan, *, include_results: bool = True) -> dict:
    payload = {
        "id": scan.id,
        "job_id": scan.job_id,
        "resume_id": scan.resume_id,
        "resume_filename": scan.resume_filename,
        "status": scan.status,
        "match_score": scan.match_score,
        "error_message": scan.error_message,
        "created_at": _iso(scan.created_at),
        "completed_at": _iso(scan.completed_at),
    }
    if include_results:
        payload["results"] = json.loads(scan.results) if scan.results else None
    return payload


@router.post("/create-scan")
async def create_scan(
    payload: CreateScanRequest,
    background_tasks: BackgroundTasks,
    mode: str = Query(default="stream"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Debit one credit, create the scan in ``processing`` and run the AI analysis.

    Nothing is written until auth, configuration, input and ownership checks pass
    and the resume file has been loaded. After admission, failures land on the scan
    row (status ``error``) instead of the response; the credit is not returned.
    """
    require_ai_key()
    mode = (mode or "stream").strip().lower()
    if mode not in SCAN_MODES:
        raise HTTPException(status_code=400, detail="mode must be 'stream' or 'background'")

    job = get_owned_job(db, payload.jobId, user.id)
    resume = get_owned_resume(db, payload.resumeId, user.id)
    try:
        inp = build_scan_input(job, resume)
    except ScanInputError as e:
        logger.warning("scan rejected before admission resume_id=%s: %s", resume.id, e)
        return create_error_response(500, "Failed to load resume file", {"reason": str(e)})

    request_payload = {"jobId": job.id, "resumeId": resume.id, "mode": mode}

    if mode == "background":
        # The task reloads the file itself; only the scan id is persisted.
        scan, _usage = admit_scan(
            db, user_id=user.id, job=job, resume=resume, request_payload=request_payload, commit=False
        )
        task = enqueue_task(db, kind=SCAN_TASK_KIND, payload={"scan_id": scan.id}, commit=False)
        db.commit()
        scan_id, task_id = scan.id, task.id
        background_tasks.add_task(run_task, task_id)
        return JSONResponse(
            content={"success": True, "scanId": scan_id, "status": "processing"},
            headers={"x-scan-id": str(scan_id)},
        )

    scan, _usage = admit_scan(db, user_id=user.id, job=job, resume=resume, request_payload=request_payload)
    scan_id = scan.id
    return StreamingResponse(
        stream_scan(scan_id, inp),
        media_type="text/plain; charset=utf-8",
        headers={"x-scan-id": str(scan_id)},
    )


@router.get("/scans/{scan_id:int}")
def get_scan(
    scan_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    scan = db.query(JobScan).filter(JobScan.id == scan_id, JobScan.user_id == user.id).first()
    if not scan:
        raise NotFoundError(get_error_message("scan_not_found"))
    return {"success": True, "scan": scan_to_public(scan)}


@router.get("/scans")
def list_scans(
    job_id: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    q = db.query(JobScan).filter(JobScan.user_id == user.id)
    if job_id is not None:
        q = q.filter(JobScan.job_id == job_id)
    scans = q.order_by(JobScan.created_at.desc(), JobScan.id.desc()).all()
    return {"success": True, "scans": [scan_to_public(s, include_results=False) for s in scans]}


@router.get("/jobs/{job_id:int}/scans")
def list_job_scans(
    job_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    job = get_owned_job(db, job_id, user.id)
    scans = (
        db.query(JobScan)
        .filter(JobScan.job_id == job.id, JobScan.user_id == user.id)
        .order_by(JobScan.created_at.desc(), JobScan.id.desc())
        .all()
    )
    return {"success": True, "job_id": job.id, "scans": [scan_to_public(s) for s in scans]}
