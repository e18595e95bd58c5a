import enum

from sqlalchemy import Column, Integer, String, DateTime, Enum, JSON
from sqlalchemy.sql import func

from ..platform.database import Base


class PlanId(str, enum.Enum):
    STARTER = "starter"
    GROWTH = "growth"
    PRO = "pro"
    UNLIMITED = "unlimited"


class SubscriptionPrice(Base):
    __tablename__ = "subscription_prices"

    id = Column(Integer, primary_key=True, index=True)
    plan = Column(
        Enum(PlanId, values_callable=lambda enum_cls: [m.value for m in enum_cls]),
        unique=True,
        nullable=False,
    )
    stripe_price_id = Column(String, nullable=False)
    # Metered price used for overage billing; plans without one never report.
    stripe_metered_price_id = Column(String, nullable=True)
    monthly_price_cents = Column(Integer, nullable=False, default=0)
    included_calls = Column(Integer, nullable=True)
    included_minutes = Column(Integer, nullable=True)
    per_call_overage_cents = Column(Integer, nullable=True)
    per_minute_overage_cents = Column(Integer, nullable=True)
    features = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
