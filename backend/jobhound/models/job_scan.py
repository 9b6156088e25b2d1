from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base

SCAN_PROCESSING = "processing"
SCAN_COMPLETED = "completed"
SCAN_ERROR = "error"
TERMINAL_SCAN_STATUSES = {SCAN_COMPLETED, SCAN_ERROR}


class JobScan(Base):
    """
    One resume-vs-job analysis attempt.

    Lifecycle: processing -> completed | error. Rows are written once more by
    reconciliation and never again after reaching a terminal status.
    """
    __tablename__ = "job_scans"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    resume_id = Column(Integer, nullable=True, index=True)  # resume may be deleted later
    credit_purchase_id = Column(Integer, ForeignKey("credit_purchases.id"), nullable=True)
    resume_filename = Column(String(255), nullable=True)
    job_posting = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=SCAN_PROCESSING, index=True)
    results = Column(Text, nullable=True)  # validated ScanResult as JSON
    match_score = Column(Integer, nullable=True)  # 0-100
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    job = relationship("Job", back_populates="scans")
    usage = relationship("CreditUsage", back_populates="scan", uselist=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SCAN_STATUSES
