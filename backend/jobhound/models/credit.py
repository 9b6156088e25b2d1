from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class CreditPurchase(Base):
    """A purchased or granted lot of scan credits."""
    __tablename__ = "credit_purchases"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    credit_amount = Column(Integer, nullable=False)
    remaining_credits = Column(Integer, nullable=False)
    # Set for Stripe checkouts; unique so a replayed webhook never credits twice.
    stripe_session_id = Column(String(255), unique=True, nullable=True)
    purchase_date = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    usages = relationship("CreditUsage", back_populates="purchase")


class CreditUsage(Base):
    """One debit from a lot, tied to the scan it paid for."""
    __tablename__ = "credit_usage"

    id = Column(Integer, primary_key=True, index=True)
    purchase_id = Column(Integer, ForeignKey("credit_purchases.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    scan_id = Column(Integer, ForeignKey("job_scans.id"), nullable=False, unique=True)
    request_payload = Column(Text, nullable=True)  # JSON
    response_payload = Column(Text, nullable=True)  # JSON
    http_status = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    purchase = relationship("CreditPurchase", back_populates="usages")
    scan = relationship("JobScan", back_populates="usage")
