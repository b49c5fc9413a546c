"""Re-export all models so Base.metadata sees them."""

from premium_billing.db.models.processed_reference import ProcessedPaymentReference
from premium_billing.db.models.subscription import SubscriptionRecord
from premium_billing.db.models.user import User

__all__ = [
    "ProcessedPaymentReference",
    "SubscriptionRecord",
    "User",
]
