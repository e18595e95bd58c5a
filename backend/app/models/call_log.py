import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..platform.database import Base
from ..shared.states import UsageClaim, usage_claim_from


class CallStatus(str, enum.Enum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


class CallLog(Base):
    __tablename__ = "call_logs"

    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), index=True, nullable=False)
    customer_phone = Column(String, nullable=False)
    twilio_call_sid = Column(String, unique=True, index=True, nullable=True)
    status = Column(
        Enum(CallStatus, values_callable=lambda enum_cls: [m.value for m in enum_cls]),
        default=CallStatus.IN_PROGRESS,
        nullable=False,
    )
    duration_seconds = Column(Integer, nullable=True)
    summary = Column(Text, nullable=True)
    last_polled_at = Column(DateTime(timezone=True), nullable=True)
    # Null until the call is billed; only the billing reconciler writes it.
    usage_claimed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    restaurant = relationship("Restaurant", back_populates="call_logs")

    @property
    def usage_claim(self) -> UsageClaim:
        return usage_claim_from(self.usage_claimed_at)
