"""SQLAlchemy models for Studio Ledger.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from studio_ledger.models.activity_log import ActivityLogEntry
from studio_ledger.models.booking import Booking
from studio_ledger.models.plan import SubscriptionPlan
from studio_ledger.models.studio_class import StudioClass
from studio_ledger.models.subscription import Subscription
from studio_ledger.models.user import User
from studio_ledger.models.waitlist import WaitlistEntry

__all__ = [
    "ActivityLogEntry",
    "Booking",
    "StudioClass",
    "Subscription",
    "SubscriptionPlan",
    "User",
    "WaitlistEntry",
]
