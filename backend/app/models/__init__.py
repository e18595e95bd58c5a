from .billing_account import BillingAccount
from .subscription_price import PlanId, SubscriptionPrice
from .restaurant import Restaurant
from .agent_configuration import AgentConfiguration, AgentMode
from .menu_override import MenuOverride, MenuOverrideStatus
from .call_log import CallLog, CallStatus
from .usage_record import UsageKind, UsageRecord
from .invoice import Invoice

__all__ = [
    "BillingAccount",
    "PlanId",
    "SubscriptionPrice",
    "Restaurant",
    "AgentConfiguration",
    "AgentMode",
    "MenuOverride",
    "MenuOverrideStatus",
    "CallLog",
    "CallStatus",
    "UsageKind",
    "UsageRecord",
    "Invoice",
]
