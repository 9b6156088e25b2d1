import json
import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import update
from sqlalchemy.orm import Session

from ..models.credit import CreditUsage
from ..models.job_scan import SCAN_COMPLETED, SCAN_ERROR, SCAN_PROCESSING, JobScan
from ..schemas.scan_result import ScanResult
from .ai_common import parse_json_object


logger = logging.getLogger(__name__)


class ScanResultError(ValueError):
    """The AI response could not be parsed or did not match the scan schema."""


def _summarize_validation(e: PydanticValidationError, limit: int = 3) -> str:
    parts = []
    for err in e.errors()[:limit]:
        loc = ".".join(str(x) for x in err.get("loc") or ()) or "response"
        parts.append(f"{loc}: {err.get('msg')}")
    more = e.error_count() - limit
    if more > 0:
        parts.append(f"(+{more} more)")
    return "; ".join(parts)


def parse_scan_result(raw_text: str) -> dict[str, Any]:
    """
    Raw model text -> validated result dict.

    Fenced and bare JSON are both accepted. Anything that does not validate in full
    raises ScanResultError; there is no partial acceptance.
    """
    try:
        obj = parse_json_object(raw_text)
    except ValueError as e:
        # json.JSONDecodeError is a ValueError too.
        raise ScanResultError(f"Failed to parse AI response: {e}") from e

    try:
        validated = ScanResult.model_validate(obj)
    except PydanticValidationError as e:
        raise ScanResultError(f"Invalid AI response format: {_summarize_validation(e)}") from e
    return validated.model_dump(exclude_none=True)


def _transition(db: Session, scan_id: int, values: dict[str, Any]) -> bool:
    """Apply a terminal write only if the scan is still processing."""
    now = datetime.now(timezone.utc)
    changed = db.execute(
        update(JobScan)
        .where(JobScan.id == int(scan_id), JobScan.status == SCAN_PROCESSING)
        .values(updated_at=now, completed_at=now, **values)
        .execution_options(synchronize_session=False)
    ).rowcount
    return bool(changed)


def _patch_usage(db: Session, scan_id: int, *, payload: dict[str, Any], http_status: int) -> None:
    usage = db.query(CreditUsage).filter(CreditUsage.scan_id == int(scan_id)).first()
    if not usage:
        return
    usage.response_payload = json.dumps(payload, ensure_ascii=False)
    usage.http_status = int(http_status)
    usage.updated_at = datetime.now(timezone.utc)


def _reload(db: Session, scan_id: int) -> JobScan | None:
    db.expire_all()
    return db.get(JobScan, int(scan_id))


def complete_scan(db: Session, scan_id: int, result: dict[str, Any]) -> JobScan | None:
    if not _transition(
        db,
        scan_id,
        {
            "status": SCAN_COMPLETED,
            "results": json.dumps(result, ensure_ascii=False),
            "match_score": int(result["matchScore"]),
            "error_message": None,
        },
    ):
        db.rollback()
        logger.warning("scan_id=%s already terminal; dropping completed result", scan_id)
        return _reload(db, scan_id)

    _patch_usage(db, scan_id, payload=result, http_status=200)
    db.commit()
    logger.info("scan completed scan_id=%s match_score=%s", scan_id, result.get("matchScore"))
    return _reload(db, scan_id)


def fail_scan(db: Session, scan_id: int, message: str) -> JobScan | None:
    """
    Mark a processing scan as error. The debited credit is intentionally not
    refunded; the usage row records the failure instead.
    """
    message = (message or "").strip() or "AI processing error"
    if not _transition(db, scan_id, {"status": SCAN_ERROR, "error_message": message[:2000]}):
        db.rollback()
        logger.warning("scan_id=%s already terminal; not recording error %r", scan_id, message)
        return _reload(db, scan_id)

    _patch_usage(db, scan_id, payload={"error": message}, http_status=500)
    db.commit()
    logger.warning("scan failed scan_id=%s error=%s", scan_id, message)
    return _reload(db, scan_id)


def reconcile_scan(db: Session, scan_id: int, raw_text: str) -> JobScan | None:
    """Validate a raw AI response and write the scan's single terminal state."""
    try:
        result = parse_scan_result(raw_text)
    except ScanResultError as e:
        logger.warning("scan_id=%s response rejected: %s", scan_id, e)
        return fail_scan(db, scan_id, str(e))
    return complete_scan(db, scan_id, result)
