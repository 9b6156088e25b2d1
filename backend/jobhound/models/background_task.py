from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from ..database import Base

TASK_QUEUED = "queued"
TASK_RUNNING = "running"
TASK_DONE = "done"
TASK_FAILED = "failed"


class BackgroundTask(Base):
    """
    Persisted unit of deferred work (scan scoring, resume enrichment).
    Rows left queued/running by a dead process are picked up again at startup.
    """
    __tablename__ = "background_tasks"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(50), nullable=False, index=True)
    payload = Column(Text, nullable=False, default="{}")  # JSON object
    status = Column(String(20), nullable=False, default=TASK_QUEUED, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<BackgroundTask(id={self.id}, kind={self.kind}, status={self.status})>"
