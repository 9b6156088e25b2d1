import asyncio
import logging
import os

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from .api import auth as auth_api
from .api import credits as credits_api
from .api import jobs as jobs_api
from .api import profile as profile_api
from .api import resumes as resumes_api
from .api import scans as scans_api
from .api import storage as storage_api
from .config import LOG_LEVEL, RECOVER_TASKS_ON_STARTUP
from .database import engine, init_db
from .services.task_queue import recover_pending_tasks, run_task
from .utils.error_handlers import register_exception_handlers

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="JobHound")

app.include_router(auth_api.router)
app.include_router(jobs_api.router)
app.include_router(resumes_api.router)
app.include_router(scans_api.router)
app.include_router(credits_api.router)
app.include_router(profile_api.router)
app.include_router(storage_api.router)

register_exception_handlers(app)

logger = logging.getLogger(__name__)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {
        "status": "Backend running",
        "service": "JobHound"
    }


_default_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
_extra_origins = [
    origin.strip()
    for origin in os.getenv("FRONTEND_ORIGINS", "").split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=[*_default_origins, *_extra_origins],
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["x-scan-id"],
)


async def _resume_background_tasks(task_ids: list[int]) -> None:
    for task_id in task_ids:
        try:
            await run_task(task_id)
        except Exception:
            logger.exception("recovered task id=%s crashed", task_id)


@app.on_event("startup")
async def on_startup() -> None:
    try:
        init_db()
        app.state.db_init_error = None
    except Exception as e:
        logger.exception("DB init failed")
        app.state.db_init_error = str(e)
        return

    if RECOVER_TASKS_ON_STARTUP:
        task_ids = recover_pending_tasks()
        if task_ids:
            logger.info("re-dispatching %s background task(s) left by a previous process", len(task_ids))
            app.state.recovery_task = asyncio.create_task(_resume_background_tasks(task_ids))


@app.get("/db/health")
def db_health():
    if getattr(app.state, "db_init_error", None):
        raise HTTPException(
            status_code=503,
            detail=f"DB init failed: {app.state.db_init_error}",
        )

    try:
        with engine.connect() as conn:
            value = conn.execute(text("SELECT 1")).scalar()
    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail=f"DB connection failed: {e}",
        )

    return {"status": "ok", "result": value}
