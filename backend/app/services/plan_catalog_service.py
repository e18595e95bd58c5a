from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from ..models.subscription_price import PlanId, SubscriptionPrice
from ..models.usage_record import UsageKind

# Seed values for ``subscription_prices``; Stripe price ids are deployment specific.
PLAN_DEFAULTS: dict[PlanId, dict[str, Any]] = {
    PlanId.STARTER: {
        "monthly_price_cents": 0,
        "included_calls": 20,
        "included_minutes": 0,
        "per_call_overage_cents": 100,
        "per_minute_overage_cents": None,
    },
    PlanId.GROWTH: {
        "monthly_price_cents": 29900,
        "included_calls": None,
        "included_minutes": 750,
        "per_call_overage_cents": None,
        "per_minute_overage_cents": 27,
    },
    PlanId.PRO: {
        "monthly_price_cents": 59900,
        "included_calls": None,
        "included_minutes": 1800,
        "per_call_overage_cents": None,
        "per_minute_overage_cents": 25,
    },
    PlanId.UNLIMITED: {
        "monthly_price_cents": 99900,
        "included_calls": None,
        "included_minutes": None,
        "per_call_overage_cents": None,
        "per_minute_overage_cents": None,
    },
}


@dataclass(frozen=True)
class PlanConfig:
    plan: PlanId
    stripe_price_id: str
    stripe_metered_price_id: str | None
    monthly_price_cents: int
    included_calls: int | None
    included_minutes: int | None
    per_call_overage_cents: int | None
    per_minute_overage_cents: int | None

    @property
    def overage_kind(self) -> UsageKind | None:
        """Usage kind billed per unit past the allowance; ``None`` means no overage model."""
        if self.per_call_overage_cents is not None:
            return UsageKind.CALL
        if self.per_minute_overage_cents is not None:
            return UsageKind.MINUTE
        return None

    def included_for(self, kind: UsageKind) -> int:
        if kind == UsageKind.CALL:
            return int(self.included_calls or 0)
        return int(self.included_minutes or 0)


def resolve_plan_id(value: Any) -> PlanId | None:
    """Map a stored or provider-supplied plan name (``"Growth"``, ``"growth"``) to ``PlanId``."""
    if isinstance(value, PlanId):
        return value
    key = str(value or "").strip().lower()
    if not key:
        return None
    try:
        return PlanId(key)
    except ValueError:
        return None


def _to_config(row: SubscriptionPrice) -> PlanConfig:
    return PlanConfig(
        plan=row.plan,
        stripe_price_id=row.stripe_price_id,
        stripe_metered_price_id=row.stripe_metered_price_id or None,
        monthly_price_cents=int(row.monthly_price_cents or 0),
        included_calls=row.included_calls,
        included_minutes=row.included_minutes,
        per_call_overage_cents=row.per_call_overage_cents,
        per_minute_overage_cents=row.per_minute_overage_cents,
    )


def get_plan(db: Session, plan: Any) -> PlanConfig | None:
    plan_id = resolve_plan_id(plan)
    if plan_id is None:
        return None
    row = db.query(SubscriptionPrice).filter(SubscriptionPrice.plan == plan_id).first()
    if row is None:
        return None
    return _to_config(row)


def upsert_plan_prices(
    db: Session,
    *,
    plan: PlanId,
    stripe_price_id: str,
    stripe_metered_price_id: str | None = None,
) -> SubscriptionPrice:
    """Create or refresh a plan row from ``PLAN_DEFAULTS`` plus its Stripe price ids."""
    defaults = PLAN_DEFAULTS[plan]
    row = db.query(SubscriptionPrice).filter(SubscriptionPrice.plan == plan).first()
    if row is None:
        row = SubscriptionPrice(plan=plan)
        db.add(row)
    row.stripe_price_id = stripe_price_id
    row.stripe_metered_price_id = stripe_metered_price_id or None
    for key, value in defaults.items():
        setattr(row, key, value)
    db.flush()
    return row
