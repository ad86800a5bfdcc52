"""Lazy subscription expiry, evaluated whenever a subscription is read or acted upon."""

import logging
from datetime import datetime

from studio_ledger import clock, states
from studio_ledger.models.subscription import Subscription
from studio_ledger.services.unit_of_work import PendingEffects
from studio_ledger.states import ActivityType, SubscriptionEvent

logger = logging.getLogger(__name__)


def apply_lazy_expiry(
    subscription: Subscription,
    effects: PendingEffects,
    now: datetime | None = None,
) -> bool:
    """Expire ``subscription`` in place if it is live and past its end date.

    The caller must hold the subscription's lock. Returns True when the
    status changed.
    """
    now = now or clock.utcnow()
    if not states.is_past_end(subscription.status, subscription.end_date, now):
        return False

    previous = subscription.status
    subscription.status = states.next_subscription_status(previous, SubscriptionEvent.EXPIRE)
    subscription.paused_until = None

    effects.record(
        client_id=subscription.client_id,
        action_type=ActivityType.SUBSCRIPTION_EXPIRED,
        description=f"Subscription expired (end date {subscription.end_date:%Y-%m-%d}).",
        subscription_id=subscription.id,
        previous_status=previous,
        remaining_classes=subscription.remaining_classes,
    )
    logger.info(
        "Expired subscription %s (client %s), was %s, end date %s",
        subscription.id,
        subscription.client_id,
        previous,
        subscription.end_date,
    )
    return True
