from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..models.billing_account import BillingAccount
from ..models.usage_record import UsageKind, UsageRecord
from ..shared.utils import utcnow

_COUNTER_COLUMNS = {
    UsageKind.CALL: BillingAccount.monthly_calls_used,
    UsageKind.MINUTE: BillingAccount.monthly_minutes_used,
}


def monthly_usage(account: BillingAccount, kind: UsageKind) -> int:
    if kind == UsageKind.CALL:
        return int(account.monthly_calls_used or 0)
    return int(account.monthly_minutes_used or 0)


def append_usage_entry(
    db: Session,
    *,
    billing_account_id: int,
    restaurant_id: int | None,
    kind: UsageKind,
    quantity: int,
    billing_period: datetime | None = None,
) -> UsageRecord:
    """Add one ledger row and bump the matching monthly counter in SQL.

    Flushes but does not commit; the caller owns the transaction so several
    entries land together or not at all.
    """
    if int(quantity) <= 0:
        raise ValueError("usage_quantity_must_be_positive")

    counter = _COUNTER_COLUMNS[kind]
    updated = (
        db.query(BillingAccount)
        .filter(BillingAccount.id == billing_account_id)
        .update({counter: func.coalesce(counter, 0) + int(quantity)}, synchronize_session=False)
    )
    if updated != 1:
        raise ValueError("billing_account_not_found")

    entry = UsageRecord(
        billing_account_id=billing_account_id,
        restaurant_id=restaurant_id,
        kind=kind,
        quantity=int(quantity),
        reported_to_stripe=False,
        billing_period=billing_period or utcnow(),
    )
    db.add(entry)
    db.flush()
    return entry


def get_unreported(db: Session, billing_account_id: int, kind: UsageKind) -> list[UsageRecord]:
    # Not limited to the current billing period so an old backlog still gets reported.
    return (
        db.query(UsageRecord)
        .filter(
            UsageRecord.billing_account_id == billing_account_id,
            UsageRecord.kind == kind,
            UsageRecord.reported_to_stripe.is_(False),
        )
        .order_by(UsageRecord.id)
        .all()
    )


def mark_reported(db: Session, entry_ids: list[int], external_id: str) -> int:
    if not entry_ids:
        return 0
    return (
        db.query(UsageRecord)
        .filter(UsageRecord.id.in_(entry_ids), UsageRecord.reported_to_stripe.is_(False))
        .update(
            {
                UsageRecord.reported_to_stripe: True,
                UsageRecord.stripe_usage_record_id: external_id,
            },
            synchronize_session=False,
        )
    )


def unreported_backlog(db: Session) -> list[tuple[int, UsageKind, int]]:
    """(billing_account_id, kind, total quantity) for every account with unreported usage."""
    rows = (
        db.query(
            UsageRecord.billing_account_id,
            UsageRecord.kind,
            func.sum(UsageRecord.quantity),
        )
        .filter(UsageRecord.reported_to_stripe.is_(False))
        .group_by(UsageRecord.billing_account_id, UsageRecord.kind)
        .order_by(UsageRecord.billing_account_id)
        .all()
    )
    return [(int(account_id), kind, int(total or 0)) for account_id, kind, total in rows]


def reset_monthly_usage(db: Session, billing_account_id: int, *, reset_ref: str) -> bool:
    """Zero the monthly counters once per billing-period-start event.

    ``reset_ref`` identifies the provider event (invoice id); a redelivery of
    the same event matches zero rows and leaves the counters alone.
    """
    updated = (
        db.query(BillingAccount)
        .filter(
            BillingAccount.id == billing_account_id,
            or_(
                BillingAccount.usage_reset_ref.is_(None),
                BillingAccount.usage_reset_ref != reset_ref,
            ),
        )
        .update(
            {
                BillingAccount.monthly_calls_used: 0,
                BillingAccount.monthly_minutes_used: 0,
                BillingAccount.usage_reset_ref: reset_ref,
            },
            synchronize_session=False,
        )
    )
    return updated == 1
