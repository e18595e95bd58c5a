import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..platform.database import Base


class UsageKind(str, enum.Enum):
    CALL = "call"
    MINUTE = "minute"


class UsageRecord(Base):
    __tablename__ = "usage_records"

    id = Column(Integer, primary_key=True, index=True)
    billing_account_id = Column(Integer, ForeignKey("billing_accounts.id"), index=True, nullable=False)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), index=True, nullable=True)
    kind = Column(
        Enum(UsageKind, values_callable=lambda enum_cls: [m.value for m in enum_cls]),
        nullable=False,
    )
    quantity = Column(Integer, nullable=False)
    reported_to_stripe = Column(Boolean, default=False, nullable=False, index=True)
    stripe_usage_record_id = Column(String, nullable=True)
    billing_period = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    billing_account = relationship("BillingAccount", back_populates="usage_records")
