"""
Create or refresh a subscription plan row with its Stripe price ids.

Usage (from backend/ with DATABASE_URL set):
  python -m app.scripts.seed_subscription_prices growth price_123 price_metered_456
"""
from __future__ import annotations

import sys
from app.platform.database import SessionLocal
from app.services.plan_catalog_service import resolve_plan_id, upsert_plan_prices


def main() -> None:
    if len(sys.argv) < 3:
        print(
            "Usage: python -m app.scripts.seed_subscription_prices <plan> <stripe_price_id> [stripe_metered_price_id]",
            file=sys.stderr,
        )
        sys.exit(1)
    plan = resolve_plan_id(sys.argv[1])
    if plan is None:
        print(f"Unknown plan: {sys.argv[1]}", file=sys.stderr)
        sys.exit(2)
    metered_price_id = sys.argv[3].strip() if len(sys.argv) > 3 else None
    db = SessionLocal()
    try:
        row = upsert_plan_prices(
            db,
            plan=plan,
            stripe_price_id=sys.argv[2].strip(),
            stripe_metered_price_id=metered_price_id,
        )
        db.commit()
        print(
            f"Plan {row.plan.value}: price={row.stripe_price_id} metered={row.stripe_metered_price_id or '-'} "
            f"included_calls={row.included_calls} included_minutes={row.included_minutes}"
        )
    finally:
        db.close()


if __name__ == "__main__":
    main()
