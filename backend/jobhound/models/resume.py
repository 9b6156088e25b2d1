from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base

# Placeholder stored until the background enrichment task fills in raw_text.
EXTRACTING_TEXT_PLACEHOLDER = "Extracting text..."


class Resume(Base):
    __tablename__ = "resumes"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    filename = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    # Object key inside the storage bucket, e.g. resumes/3/ab12.pdf
    file_path = Column(String(500), nullable=False)
    file_url = Column(String(1000), nullable=True)
    file_size = Column(Integer, nullable=False, default=0)
    mime_type = Column(String(120), nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    raw_text = Column(Text, nullable=True)
    thumbnail_path = Column(String(500), nullable=True)
    thumbnail_url = Column(String(1000), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="resumes")
