"""Exceptions raised by the usage billing flow."""

from __future__ import annotations


class BillingError(Exception):
    """Base class for usage billing failures."""


class UsageRecordingError(BillingError):
    """Ledger write failed before any usage became durable; the call claim was released."""

    def __init__(self, call_log_id: int, detail: str):
        self.call_log_id = call_log_id
        self.detail = detail
        super().__init__(f"Failed to record usage for call_log_id={call_log_id}: {detail}")


class OverageReportError(BillingError):
    """Stripe rejected or never acknowledged a metered usage submission."""

    def __init__(
        self,
        *,
        billing_account_id: int,
        kind: str,
        quantity: int,
        detail: str,
        error_code: str | None = None,
    ):
        self.billing_account_id = billing_account_id
        self.kind = kind
        self.quantity = quantity
        self.detail = detail
        self.error_code = error_code
        super().__init__(
            f"Overage report failed for billing_account_id={billing_account_id} "
            f"({quantity} {kind}): {detail}"
        )
