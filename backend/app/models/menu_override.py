import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..platform.database import Base
from ..shared.states import ResetSchedule, reset_schedule_from


class MenuOverrideStatus(str, enum.Enum):
    ACTIVE = "active"
    DELETED = "deleted"


class MenuOverride(Base):
    """Temporary instruction appended to an agent's menu, optionally auto-expiring."""

    __tablename__ = "menu_overrides"

    id = Column(Integer, primary_key=True, index=True)
    agent_configuration_id = Column(Integer, ForeignKey("agent_configurations.id"), index=True, nullable=False)
    content = Column(Text, nullable=False)
    reset_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(
        Enum(MenuOverrideStatus, values_callable=lambda enum_cls: [m.value for m in enum_cls]),
        default=MenuOverrideStatus.ACTIVE,
        nullable=False,
    )
    last_modified_by = Column(String, nullable=True)
    last_modified_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    agent_configuration = relationship("AgentConfiguration", back_populates="menu_overrides")

    @property
    def reset_schedule(self) -> ResetSchedule:
        return reset_schedule_from(self.reset_at)
