"""Scheduled sweepers that undo temporary agent settings once their reset time passes.

Each sweep reads the due rows, then resets them one at a time with an UPDATE
guarded by the values it read. If a user edited the row in between (new reset
time, cleared reset, deleted override) the guard matches nothing and the row
is skipped, so a sweep never overwrites a newer edit.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from ..models.agent_configuration import AgentConfiguration
from ..models.menu_override import MenuOverride, MenuOverrideStatus
from ..platform.database import SessionLocal
from ..shared.states import ScheduledReset, reset_schedule_from
from ..shared.utils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DueReset:
    """What a sweep read for one row; the reset only applies if the row still matches."""

    row_id: int
    schedule: ScheduledReset
    status: Any = None


def _due_resets(rows, now: datetime) -> list[DueReset]:
    due = []
    for row in rows:
        schedule = reset_schedule_from(row[1])
        if isinstance(schedule, ScheduledReset) and schedule.is_due(now):
            due.append(DueReset(row_id=row[0], schedule=schedule, status=row[2] if len(row) > 2 else None))
    return due


class ResetSweeper:
    """Base sweep loop; subclasses pick the due rows and apply the guarded reset."""

    name = "reset"

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    def run_once(self) -> int:
        """Reset every due row; returns how many rows actually changed."""
        now = self._clock()
        db = self._session_factory()
        changed = 0
        try:
            # Snapshots, not ORM instances: those would reload current values after a commit.
            due = self._find_due(db, now)
            if due:
                logger.info("Found %d %s row(s) due for reset", len(due), self.name)
            for snapshot in due:
                row_id = snapshot.row_id
                try:
                    updated = self._reset_one(db, snapshot)
                    db.commit()
                except Exception:
                    db.rollback()
                    logger.exception("Failed to reset %s id=%s", self.name, row_id)
                    continue
                if updated:
                    changed += 1
                    logger.info("Reset %s id=%s", self.name, row_id)
                else:
                    logger.info("Skipped %s id=%s: modified since it was read", self.name, row_id)
        finally:
            db.close()
        return changed

    def _find_due(self, db: Session, now: datetime) -> list[DueReset]:
        raise NotImplementedError

    def _reset_one(self, db: Session, snapshot: DueReset) -> bool:
        raise NotImplementedError


class WaitTimeResetSweeper(ResetSweeper):
    """Restores ``wait_time_minutes`` to the configured default."""

    name = "wait_time"

    def _find_due(self, db: Session, now: datetime) -> list[DueReset]:
        rows = (
            db.query(AgentConfiguration.id, AgentConfiguration.reset_wait_time_at)
            .filter(
                AgentConfiguration.reset_wait_time_at.isnot(None),
                AgentConfiguration.reset_wait_time_at <= now,
            )
            .order_by(AgentConfiguration.id)
            .all()
        )
        return _due_resets(rows, now)

    def _reset_one(self, db: Session, snapshot: DueReset) -> bool:
        updated = (
            db.query(AgentConfiguration)
            .filter(
                AgentConfiguration.id == snapshot.row_id,
                AgentConfiguration.reset_wait_time_at == snapshot.schedule.at,
            )
            .update(
                {
                    AgentConfiguration.wait_time_minutes: AgentConfiguration.default_wait_time_minutes,
                    AgentConfiguration.reset_wait_time_at: None,
                    AgentConfiguration.updated_at: self._clock(),
                },
                synchronize_session=False,
            )
        )
        return updated == 1


class MenuOverrideResetSweeper(ResetSweeper):
    """Soft-deletes active menu overrides whose ``reset_at`` has passed."""

    name = "menu_override"

    def _find_due(self, db: Session, now: datetime) -> list[DueReset]:
        rows = (
            db.query(MenuOverride.id, MenuOverride.reset_at, MenuOverride.status)
            .filter(
                MenuOverride.status == MenuOverrideStatus.ACTIVE,
                MenuOverride.reset_at.isnot(None),
                MenuOverride.reset_at <= now,
            )
            .order_by(MenuOverride.id)
            .all()
        )
        return _due_resets(rows, now)

    def _reset_one(self, db: Session, snapshot: DueReset) -> bool:
        updated = (
            db.query(MenuOverride)
            .filter(
                MenuOverride.id == snapshot.row_id,
                MenuOverride.reset_at == snapshot.schedule.at,
                MenuOverride.status == snapshot.status,
            )
            .update(
                {
                    MenuOverride.status: MenuOverrideStatus.DELETED,
                    MenuOverride.last_modified_at: self._clock(),
                    MenuOverride.last_modified_by: "system",
                },
                synchronize_session=False,
            )
        )
        return updated == 1
