"""
Credit ledger: purchased/granted lots and per-scan debits.

The ledger is the one shared mutable resource with a hard invariant (a lot's
remaining_credits never goes below zero). Every debit is a conditional
``UPDATE ... SET remaining_credits = remaining_credits - 1 WHERE remaining_credits > 0``
so two concurrent scan requests can never both take the last credit of a lot,
and the debit, the scan row and the usage row commit together or not at all.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.credit import CreditPurchase, CreditUsage
from ..models.job import Job
from ..models.job_scan import SCAN_PROCESSING, JobScan
from ..models.resume import Resume
from ..utils.error_handlers import InsufficientCreditsError, ValidationError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(dt: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if dt is None:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _active_lots(db: Session, user_id: int, now: datetime):
    return db.query(CreditPurchase).filter(
        CreditPurchase.user_id == int(user_id),
        CreditPurchase.remaining_credits > 0,
        or_(CreditPurchase.expires_at.is_(None), CreditPurchase.expires_at > now),
    )


def get_available_credits(db: Session, user_id: int, *, now: datetime | None = None) -> int:
    now = now or _utcnow()
    total = (
        _active_lots(db, user_id, now)
        .with_entities(func.coalesce(func.sum(CreditPurchase.remaining_credits), 0))
        .scalar()
    )
    return int(total or 0)


def list_lots(db: Session, user_id: int) -> list[CreditPurchase]:
    return (
        db.query(CreditPurchase)
        .filter(CreditPurchase.user_id == int(user_id))
        .order_by(CreditPurchase.purchase_date.desc(), CreditPurchase.id.desc())
        .all()
    )


def lot_to_public(lot: CreditPurchase, *, now: datetime | None = None) -> dict[str, Any]:
    now = now or _utcnow()
    expires_at = _as_utc(lot.expires_at)
    return {
        "id": lot.id,
        "credit_amount": lot.credit_amount,
        "remaining_credits": lot.remaining_credits,
        "purchase_date": lot.purchase_date.isoformat() if lot.purchase_date else None,
        "expires_at": expires_at.isoformat() if expires_at else None,
        "expired": bool(expires_at and expires_at <= now),
        "stripe_session_id": lot.stripe_session_id,
    }


def grant_credits(
    db: Session,
    *,
    user_id: int,
    amount: int,
    expires_at: datetime | None = None,
    stripe_session_id: str | None = None,
) -> tuple[CreditPurchase, bool]:
    """
    Add a lot of ``amount`` credits. Returns (lot, created).

    With a stripe_session_id the grant is idempotent: a replayed checkout returns the
    existing lot and created=False.
    """
    if int(amount) <= 0:
        raise ValidationError("Credit amount must be positive")

    if stripe_session_id:
        existing = db.query(CreditPurchase).filter(CreditPurchase.stripe_session_id == stripe_session_id).first()
        if existing:
            logger.info("credits already granted for session=%s lot=%s", stripe_session_id, existing.id)
            return existing, False

    lot = CreditPurchase(
        user_id=int(user_id),
        credit_amount=int(amount),
        remaining_credits=int(amount),
        stripe_session_id=stripe_session_id,
        purchase_date=_utcnow(),
        expires_at=expires_at,
    )
    db.add(lot)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent delivery of the same webhook.
        db.rollback()
        existing = db.query(CreditPurchase).filter(CreditPurchase.stripe_session_id == stripe_session_id).first()
        if existing:
            return existing, False
        raise
    db.refresh(lot)
    logger.info("credits granted user_id=%s amount=%s lot=%s", user_id, amount, lot.id)
    return lot, True


def _debit_one(db: Session, user_id: int, now: datetime) -> int | None:
    """Take one credit from the soonest-expiring usable lot; returns the lot id."""
    candidate_ids = [
        row[0]
        for row in _active_lots(db, user_id, now)
        .with_entities(CreditPurchase.id)
        .order_by(
            CreditPurchase.expires_at.is_(None),
            CreditPurchase.expires_at.asc(),
            CreditPurchase.id.asc(),
        )
        .all()
    ]
    for lot_id in candidate_ids:
        result = db.execute(
            update(CreditPurchase)
            .where(CreditPurchase.id == lot_id, CreditPurchase.remaining_credits > 0)
            .values(remaining_credits=CreditPurchase.remaining_credits - 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return lot_id
        # Another request emptied this lot between the read and the update.
    return None


def admit_scan(
    db: Session,
    *,
    user_id: int,
    job: Job,
    resume: Resume,
    request_payload: dict[str, Any] | None = None,
    commit: bool = True,
) -> tuple[JobScan, CreditUsage]:
    """
    Debit one credit, insert the scan (processing) and its usage record as one unit.

    Raises InsufficientCreditsError, with nothing written, when no lot has credit left.
    With commit=False the caller owns the transaction (e.g. to enqueue a task in it).
    """
    now = _utcnow()
    try:
        lot_id = _debit_one(db, user_id, now)
        if lot_id is None:
            db.rollback()
            logger.info("scan rejected: no credits user_id=%s job_id=%s", user_id, job.id)
            raise InsufficientCreditsError()

        scan = JobScan(
            user_id=int(user_id),
            job_id=int(job.id),
            resume_id=int(resume.id),
            credit_purchase_id=lot_id,
            resume_filename=resume.filename,
            job_posting=job.description,
            status=SCAN_PROCESSING,
        )
        db.add(scan)
        db.flush()

        usage = CreditUsage(
            purchase_id=lot_id,
            user_id=int(user_id),
            scan_id=scan.id,
            request_payload=json.dumps(request_payload or {}, ensure_ascii=False),
        )
        db.add(usage)
        db.flush()
        if commit:
            db.commit()
            db.refresh(scan)
            db.refresh(usage)
    except InsufficientCreditsError:
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.exception("scan admission failed user_id=%s job_id=%s", user_id, job.id)
        raise

    logger.info("scan admitted scan_id=%s user_id=%s lot=%s", scan.id, user_id, lot_id)
    return scan, usage
