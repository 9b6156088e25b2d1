from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    company = Column(String(255), nullable=False)
    title = Column(String(255), nullable=False)
    location = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    job_type = Column(String(50), nullable=True)  # Full-time, Part-time, Contract, ...
    salary_range_min = Column(Integer, nullable=True)
    salary_range_max = Column(Integer, nullable=True)
    salary_currency = Column(String(10), nullable=True)
    salary_period = Column(String(20), nullable=True)  # yearly, monthly, hourly
    requirements = Column(Text, nullable=True)  # JSON string list
    benefits = Column(Text, nullable=True)  # JSON string list
    hard_skills = Column(Text, nullable=True)  # JSON string list
    soft_skills = Column(Text, nullable=True)  # JSON string list
    # AI extraction metadata
    raw_job_text = Column(Text, nullable=True)
    ai_confidence = Column(Text, nullable=True)  # JSON object of field -> 0..1
    ai_version = Column(String(120), nullable=True)
    ai_processed_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(30), nullable=False, default="saved")
    applied_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="jobs")
    scans = relationship("JobScan", back_populates="job", order_by="JobScan.id.desc()")
