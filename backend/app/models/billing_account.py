from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..platform.database import Base
from .subscription_price import PlanId


class BillingAccount(Base):
    """Account responsible for a restaurant's subscription and metered usage.

    ``monthly_calls_used`` / ``monthly_minutes_used`` are owned by the usage
    ledger service and only change through its SQL-side increments and resets.
    """

    __tablename__ = "billing_accounts"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    stripe_customer_id = Column(String, unique=True, index=True, nullable=True)
    stripe_subscription_id = Column(String, unique=True, nullable=True)
    subscription_plan = Column(
        Enum(PlanId, values_callable=lambda enum_cls: [m.value for m in enum_cls]),
        default=PlanId.STARTER,
        nullable=True,
    )
    subscription_status = Column(String, nullable=True)
    billing_cycle_start = Column(DateTime(timezone=True), nullable=True)
    billing_cycle_end = Column(DateTime(timezone=True), nullable=True)
    monthly_calls_used = Column(Integer, default=0, nullable=False)
    monthly_minutes_used = Column(Integer, default=0, nullable=False)
    # Stripe invoice id of the last billing-period-start event applied.
    usage_reset_ref = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    usage_records = relationship("UsageRecord", back_populates="billing_account")
    invoices = relationship("Invoice", back_populates="billing_account", cascade="all, delete-orphan")
