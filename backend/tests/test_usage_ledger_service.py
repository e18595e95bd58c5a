"""Usage ledger writes, counters and monthly resets."""

import pytest

from app.models.usage_record import UsageKind, UsageRecord
from app.services.usage_ledger_service import (
    append_usage_entry,
    get_unreported,
    mark_reported,
    monthly_usage,
    reset_monthly_usage,
    unreported_backlog,
)
from tests.conftest import create_billing_account, create_restaurant


def test_append_increments_matching_counter(db):
    account = create_billing_account(db, calls_used=4, minutes_used=10)
    restaurant = create_restaurant(db)

    append_usage_entry(db, billing_account_id=account.id, restaurant_id=restaurant.id, kind=UsageKind.CALL, quantity=1)
    append_usage_entry(db, billing_account_id=account.id, restaurant_id=restaurant.id, kind=UsageKind.MINUTE, quantity=7)
    db.commit()

    db.refresh(account)
    assert monthly_usage(account, UsageKind.CALL) == 5
    assert monthly_usage(account, UsageKind.MINUTE) == 17
    entries = db.query(UsageRecord).order_by(UsageRecord.id).all()
    assert [(e.kind, e.quantity, e.reported_to_stripe) for e in entries] == [
        (UsageKind.CALL, 1, False),
        (UsageKind.MINUTE, 7, False),
    ]
    assert all(e.billing_period is not None for e in entries)


def test_append_is_not_committed_by_itself(db):
    account = create_billing_account(db)

    append_usage_entry(db, billing_account_id=account.id, restaurant_id=None, kind=UsageKind.CALL, quantity=1)
    db.rollback()

    db.refresh(account)
    assert account.monthly_calls_used == 0
    assert db.query(UsageRecord).count() == 0


@pytest.mark.parametrize("quantity", [0, -3])
def test_append_rejects_non_positive_quantity(db, quantity):
    account = create_billing_account(db)
    with pytest.raises(ValueError, match="usage_quantity_must_be_positive"):
        append_usage_entry(db, billing_account_id=account.id, restaurant_id=None, kind=UsageKind.CALL, quantity=quantity)


def test_append_rejects_unknown_account(db):
    with pytest.raises(ValueError, match="billing_account_not_found"):
        append_usage_entry(db, billing_account_id=9999, restaurant_id=None, kind=UsageKind.CALL, quantity=1)


def test_mark_reported_skips_already_reported_rows(db):
    account = create_billing_account(db)
    first = append_usage_entry(db, billing_account_id=account.id, restaurant_id=None, kind=UsageKind.CALL, quantity=1)
    second = append_usage_entry(db, billing_account_id=account.id, restaurant_id=None, kind=UsageKind.CALL, quantity=1)
    db.commit()

    assert mark_reported(db, [first.id], "mevt_a") == 1
    assert mark_reported(db, [first.id, second.id], "mevt_b") == 1
    db.commit()

    db.expire_all()
    assert db.get(UsageRecord, first.id).stripe_usage_record_id == "mevt_a"
    assert db.get(UsageRecord, second.id).stripe_usage_record_id == "mevt_b"
    assert get_unreported(db, account.id, UsageKind.CALL) == []
    assert mark_reported(db, [], "mevt_c") == 0


def test_unreported_backlog_groups_by_account_and_kind(db):
    a = create_billing_account(db)
    b = create_billing_account(db)
    for account, kind, quantity in [
        (a, UsageKind.CALL, 1),
        (a, UsageKind.CALL, 1),
        (a, UsageKind.MINUTE, 9),
        (b, UsageKind.MINUTE, 4),
    ]:
        append_usage_entry(db, billing_account_id=account.id, restaurant_id=None, kind=kind, quantity=quantity)
    db.commit()

    backlog = unreported_backlog(db)

    assert sorted(backlog, key=lambda row: (row[0], row[1].value)) == [
        (a.id, UsageKind.CALL, 2),
        (a.id, UsageKind.MINUTE, 9),
        (b.id, UsageKind.MINUTE, 4),
    ]


def test_monthly_reset_applies_once_per_reference(db):
    account = create_billing_account(db, calls_used=12, minutes_used=80)

    assert reset_monthly_usage(db, account.id, reset_ref="in_1") is True
    db.commit()
    db.refresh(account)
    assert (account.monthly_calls_used, account.monthly_minutes_used) == (0, 0)

    append_usage_entry(db, billing_account_id=account.id, restaurant_id=None, kind=UsageKind.CALL, quantity=1)
    db.commit()
    assert reset_monthly_usage(db, account.id, reset_ref="in_1") is False
    db.commit()
    db.refresh(account)
    assert account.monthly_calls_used == 1

    assert reset_monthly_usage(db, account.id, reset_ref="in_2") is True
