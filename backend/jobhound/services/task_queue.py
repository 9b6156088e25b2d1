"""
Persisted background tasks.

Work that must happen after the HTTP response (scan scoring, resume enrichment) is
written to ``background_tasks`` in the same transaction as the record it belongs to,
then dispatched through FastAPI BackgroundTasks. A task is claimed with a conditional
update so it runs at most once per dispatch; failures are recorded on the row and
never retried automatically. At startup, rows a dead process left queued or running
are dispatched again.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..database import session_scope
from ..models.background_task import (
    TASK_DONE,
    TASK_FAILED,
    TASK_QUEUED,
    TASK_RUNNING,
    BackgroundTask,
)

logger = logging.getLogger(__name__)

TaskHandler = Callable[[dict[str, Any]], Awaitable[None]]

_HANDLERS: dict[str, TaskHandler] = {}

# Payload keys holding inline file bodies; dropped once a task has finished.
TRANSIENT_PAYLOAD_KEYS = ("file_base64",)


def register_task_handler(kind: str) -> Callable[[TaskHandler], TaskHandler]:
    def decorator(fn: TaskHandler) -> TaskHandler:
        _HANDLERS[kind] = fn
        return fn
    return decorator


def _ensure_handlers_loaded() -> None:
    # Handler modules register themselves on import.
    from . import resume_enrichment, scan_runner  # noqa: F401


def enqueue_task(db: Session, *, kind: str, payload: dict[str, Any], commit: bool = True) -> BackgroundTask:
    task = BackgroundTask(kind=kind, payload=json.dumps(payload, ensure_ascii=False), status=TASK_QUEUED)
    db.add(task)
    db.flush()
    if commit:
        db.commit()
        db.refresh(task)
    logger.info("task queued id=%s kind=%s", task.id, kind)
    return task


def _finish(task_id: int, *, status: str, error: str | None = None) -> None:
    with session_scope() as db:
        task = db.get(BackgroundTask, int(task_id))
        if not task:
            return
        task.status = status
        task.last_error = error
        payload = json.loads(task.payload or "{}")
        if any(k in payload for k in TRANSIENT_PAYLOAD_KEYS):
            kept = {k: v for k, v in payload.items() if k not in TRANSIENT_PAYLOAD_KEYS}
            task.payload = json.dumps(kept, ensure_ascii=False)
        task.finished_at = datetime.now(timezone.utc)
        db.commit()


async def run_task(task_id: int) -> str | None:
    """
    Claim and execute one task. Returns the final status, or None when the task
    was missing or already claimed by someone else.
    """
    _ensure_handlers_loaded()

    with session_scope() as db:
        claimed = db.execute(
            update(BackgroundTask)
            .where(BackgroundTask.id == int(task_id), BackgroundTask.status == TASK_QUEUED)
            .values(
                status=TASK_RUNNING,
                attempts=BackgroundTask.attempts + 1,
                started_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        db.commit()
        if not claimed:
            logger.info("task id=%s not claimable; skipping", task_id)
            return None
        task = db.get(BackgroundTask, int(task_id))
        kind = task.kind
        payload = json.loads(task.payload or "{}")

    handler = _HANDLERS.get(kind)
    if handler is None:
        logger.error("task id=%s has unknown kind=%s", task_id, kind)
        _finish(task_id, status=TASK_FAILED, error=f"No handler registered for kind '{kind}'")
        return TASK_FAILED

    logger.info("task start id=%s kind=%s", task_id, kind)
    try:
        await handler(payload)
    except Exception as e:
        logger.exception("task failed id=%s kind=%s", task_id, kind)
        _finish(task_id, status=TASK_FAILED, error=f"{type(e).__name__}: {e}")
        return TASK_FAILED

    _finish(task_id, status=TASK_DONE)
    logger.info("task done id=%s kind=%s", task_id, kind)
    return TASK_DONE


def recover_pending_tasks() -> list[int]:
    """
    Requeue tasks a previous process was running when it died and return the ids of
    everything waiting, oldest first.
    """
    with session_scope() as db:
        reset = db.execute(
            update(BackgroundTask)
            .where(BackgroundTask.status == TASK_RUNNING)
            .values(status=TASK_QUEUED)
            .execution_options(synchronize_session=False)
        ).rowcount
        db.commit()
        if reset:
            logger.warning("requeued %s interrupted background task(s)", reset)
        rows = (
            db.query(BackgroundTask.id)
            .filter(BackgroundTask.status == TASK_QUEUED)
            .order_by(BackgroundTask.id.asc())
            .all()
        )
        return [int(r[0]) for r in rows]


async def run_pending_tasks() -> dict[int, str | None]:
    results: dict[int, str | None] = {}
    for task_id in recover_pending_tasks():
        results[task_id] = await run_task(task_id)
    return results
