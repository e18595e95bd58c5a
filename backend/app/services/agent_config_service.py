"""User-facing edits to agent settings that the reset sweepers also touch.

Every write here replaces or clears the reset timestamp, which is what the
sweepers guard on: a pending sweep that read the old timestamp becomes a no-op.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from ..models.agent_configuration import AgentConfiguration
from ..models.menu_override import MenuOverride, MenuOverrideStatus
from ..shared.utils import utcnow

logger = logging.getLogger(__name__)


def get_agent_configuration(db: Session, restaurant_id: int) -> AgentConfiguration | None:
    return db.query(AgentConfiguration).filter(AgentConfiguration.restaurant_id == restaurant_id).first()


def update_wait_time(
    db: Session,
    config: AgentConfiguration,
    *,
    wait_time_minutes: int,
    reset_at: datetime | None = None,
) -> AgentConfiguration:
    """Set a temporary wait time; ``reset_at=None`` keeps it until the next edit."""
    if wait_time_minutes < 0:
        raise ValueError("wait_time_minutes_must_be_non_negative")
    config.wait_time_minutes = wait_time_minutes
    config.reset_wait_time_at = reset_at
    config.updated_at = utcnow()
    db.commit()
    db.refresh(config)
    logger.info(
        "Updated wait time for restaurant_id=%s to %d min (reset_at=%s)",
        config.restaurant_id,
        wait_time_minutes,
        reset_at,
    )
    return config


def create_menu_override(
    db: Session,
    config: AgentConfiguration,
    *,
    content: str,
    reset_at: datetime | None = None,
    modified_by: str | None = None,
) -> MenuOverride:
    content = (content or "").strip()
    if not content:
        raise ValueError("menu_override_content_required")
    override = MenuOverride(
        agent_configuration_id=config.id,
        content=content,
        reset_at=reset_at,
        status=MenuOverrideStatus.ACTIVE,
        last_modified_by=modified_by,
        last_modified_at=utcnow(),
    )
    db.add(override)
    db.commit()
    db.refresh(override)
    return override


def update_menu_override(
    db: Session,
    override: MenuOverride,
    *,
    content: str | None = None,
    reset_at: datetime | None = None,
    modified_by: str | None = None,
) -> MenuOverride:
    if override.status != MenuOverrideStatus.ACTIVE:
        raise ValueError("menu_override_not_active")
    if content is not None:
        content = content.strip()
        if not content:
            raise ValueError("menu_override_content_required")
        override.content = content
    override.reset_at = reset_at
    override.last_modified_by = modified_by
    override.last_modified_at = utcnow()
    db.commit()
    db.refresh(override)
    return override


def delete_menu_override(db: Session, override_id: int, *, modified_by: str | None = None) -> bool:
    """Soft delete; returns False when the override was already deleted (possibly by a sweep)."""
    updated = (
        db.query(MenuOverride)
        .filter(MenuOverride.id == override_id, MenuOverride.status == MenuOverrideStatus.ACTIVE)
        .update(
            {
                MenuOverride.status: MenuOverrideStatus.DELETED,
                MenuOverride.reset_at: None,
                MenuOverride.last_modified_by: modified_by,
                MenuOverride.last_modified_at: utcnow(),
            },
            synchronize_session=False,
        )
    )
    db.commit()
    return updated == 1


def active_menu_overrides(db: Session, config: AgentConfiguration) -> list[MenuOverride]:
    return (
        db.query(MenuOverride)
        .filter(
            MenuOverride.agent_configuration_id == config.id,
            MenuOverride.status == MenuOverrideStatus.ACTIVE,
        )
        .order_by(MenuOverride.created_at, MenuOverride.id)
        .all()
    )
