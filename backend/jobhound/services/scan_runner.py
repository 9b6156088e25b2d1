"""
Runs the AI half of a scan once admission has created the ``processing`` row.

Every path ends in exactly one terminal write through scan_reconciliation: the
streamed response is reconciled after its final chunk, the background task reconciles
the single-shot response, and any failure along the way marks the scan ``error``.
"""
import logging
from typing import AsyncIterator

from sqlalchemy.orm import Session

from ..database import session_scope
from ..models.job import Job
from ..models.job_scan import JobScan
from ..models.resume import Resume
from .ai_client import AIClientError, AIClientHTTPError, AIClientTimeout
from .ai_scan_analysis import ScanInput, analyze_resume_against_job, stream_resume_analysis
from .resume_text import mime_type_for
from .scan_reconciliation import fail_scan, reconcile_scan
from .storage import StorageError, get_object
from .task_queue import register_task_handler

logger = logging.getLogger(__name__)

SCAN_TASK_KIND = "scan_analysis"


class ScanInputError(RuntimeError):
    pass


def ai_error_message(e: Exception) -> str:
    if isinstance(e, AIClientTimeout):
        return "AI analysis timed out"
    if isinstance(e, AIClientHTTPError):
        return f"AI service error (HTTP {e.status_code})"
    if isinstance(e, AIClientError):
        return f"AI service error: {e}"
    return f"AI processing error: {type(e).__name__}: {e}"


def load_resume_bytes(resume: Resume) -> tuple[bytes, str]:
    """Returns (data, mime_type) for a stored resume."""
    if not resume.file_path:
        raise ScanInputError("Resume has no stored file")
    try:
        data = get_object(resume.file_path)
    except StorageError as e:
        raise ScanInputError(f"Failed to load resume file: {e}") from e
    if not data:
        raise ScanInputError("Resume file is empty")
    return data, mime_type_for(resume.filename, resume.mime_type)


def build_scan_input(job: Job, resume: Resume) -> ScanInput:
    data, mime_type = load_resume_bytes(resume)
    return ScanInput(
        job_title=job.title,
        company=job.company,
        job_description=job.description or job.raw_job_text,
        resume_bytes=data,
        resume_mime_type=mime_type,
    )


def scan_input_for(db: Session, scan: JobScan) -> ScanInput:
    job = db.get(Job, scan.job_id)
    resume = db.get(Resume, scan.resume_id) if scan.resume_id else None
    if job is None:
        raise ScanInputError("Job no longer exists")
    if resume is None:
        raise ScanInputError("Resume no longer exists")
    return build_scan_input(job, resume)


def _fail(scan_id: int, message: str) -> None:
    with session_scope() as db:
        fail_scan(db, scan_id, message)


async def run_scan_analysis(scan_id: int) -> None:
    with session_scope() as db:
        scan = db.get(JobScan, int(scan_id))
        if scan is None:
            logger.warning("scan_id=%s vanished before analysis", scan_id)
            return
        if scan.is_terminal:
            logger.info("scan_id=%s already %s; skipping analysis", scan_id, scan.status)
            return
        try:
            inp = scan_input_for(db, scan)
        except ScanInputError as e:
            fail_scan(db, scan_id, str(e))
            return

    try:
        raw_text, _meta = await analyze_resume_against_job(inp)
    except Exception as e:
        logger.exception("scan analysis call failed scan_id=%s", scan_id)
        _fail(scan_id, ai_error_message(e))
        return

    with session_scope() as db:
        reconcile_scan(db, scan_id, raw_text)


@register_task_handler(SCAN_TASK_KIND)
async def _scan_analysis_task(payload: dict) -> None:
    scan_id = int(payload["scan_id"])
    try:
        await run_scan_analysis(scan_id)
    except Exception as e:
        # Never leave a debited scan in processing.
        _fail(scan_id, f"Scan processing failed: {type(e).__name__}: {e}")
        raise


async def stream_scan(scan_id: int, inp: ScanInput) -> AsyncIterator[str]:
    """
    Forward model chunks to the HTTP response, then reconcile the whole text.

    If the client goes away mid-stream the scan is marked error; the partial
    output is never reconciled.
    """
    parts: list[str] = []
    try:
        async for chunk in stream_resume_analysis(inp):
            parts.append(chunk)
            yield chunk
    except Exception as e:
        logger.exception("scan stream failed scan_id=%s", scan_id)
        _fail(scan_id, ai_error_message(e))
        return
    except BaseException:
        # GeneratorExit / CancelledError: the client disconnected.
        logger.warning("scan stream interrupted scan_id=%s chunks=%s", scan_id, len(parts))
        _fail(scan_id, "Scan stream was interrupted before completion")
        raise

    with session_scope() as db:
        reconcile_scan(db, scan_id, "".join(parts))
