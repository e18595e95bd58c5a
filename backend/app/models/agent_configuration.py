import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..platform.database import Base
from ..shared.states import ResetSchedule, reset_schedule_from


class AgentMode(str, enum.Enum):
    AGENT = "agent"
    FORWARD = "forward"
    OFFLINE = "offline"


class AgentConfiguration(Base):
    __tablename__ = "agent_configurations"

    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), unique=True, nullable=False)
    billing_account_id = Column(Integer, ForeignKey("billing_accounts.id"), index=True, nullable=True)
    mode = Column(
        Enum(AgentMode, values_callable=lambda enum_cls: [m.value for m in enum_cls]),
        default=AgentMode.AGENT,
        nullable=False,
    )
    phone_number = Column(String, unique=True, nullable=True)  # E.164
    redirect_phone_number = Column(String, nullable=True)
    wait_time_minutes = Column(Integer, default=15, nullable=False)
    default_wait_time_minutes = Column(Integer, default=30, nullable=False)
    reset_wait_time_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    restaurant = relationship("Restaurant", back_populates="agent_configuration")
    billing_account = relationship("BillingAccount")
    menu_overrides = relationship("MenuOverride", back_populates="agent_configuration")

    @property
    def wait_time_reset(self) -> ResetSchedule:
        return reset_schedule_from(self.reset_wait_time_at)
