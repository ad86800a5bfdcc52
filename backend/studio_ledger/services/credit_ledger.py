"""Credit ledger — the only writer of ``Subscription.remaining_classes``.

Balance changes are single conditional UPDATE statements, so the balance can
never go below zero even if two writers slip past the in-process locks. The
booking and waitlist services call ``consume_one`` / ``restore_one`` inside
their own units of work; reception adjustments go through ``add_credits`` /
``remove_credits``, which own theirs.
"""

import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from studio_ledger.errors import InsufficientCreditsError, InvalidInputError, SubscriptionNotFoundError
from studio_ledger.locks import entity_locks
from studio_ledger.models.subscription import Subscription
from studio_ledger.services.expiry import apply_lazy_expiry
from studio_ledger.services.unit_of_work import unit_of_work
from studio_ledger.states import TERMINAL_SUBSCRIPTION_STATUSES, ActivityType, SubscriptionStatus

logger = logging.getLogger(__name__)


def _validate_count(count: int) -> int:
    if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
        raise InvalidInputError("Class count must be a positive integer", field="count")
    return count


async def get_subscription(
    db: AsyncSession,
    subscription_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> Subscription:
    """Load a subscription, optionally row-locked and refreshed from the store."""
    stmt = select(Subscription).where(Subscription.id == subscription_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    subscription = result.scalar_one_or_none()
    if subscription is None:
        raise SubscriptionNotFoundError(subscription_id)
    return subscription


async def _shift_balance(db: AsyncSession, subscription: Subscription, delta: int) -> int:
    """Apply ``delta`` to the stored balance and return the new balance.

    Debits only apply when the balance covers them; otherwise
    ``InsufficientCreditsError`` is raised and nothing changes.
    """
    stmt = update(Subscription).where(Subscription.id == subscription.id)
    if delta < 0:
        stmt = stmt.where(Subscription.remaining_classes >= -delta)
    stmt = (
        stmt.values(remaining_classes=Subscription.remaining_classes + delta)
        .returning(Subscription.remaining_classes)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    balance = result.scalar_one_or_none()
    if balance is None:
        raise InsufficientCreditsError(subscription.id, subscription.remaining_classes, -delta)

    set_committed_value(subscription, "remaining_classes", balance)
    return balance


# ---------------------------------------------------------------------------
# Booking-path primitives (caller holds the subscription lock and a unit of work)
# ---------------------------------------------------------------------------


async def consume_one(db: AsyncSession, subscription: Subscription) -> int:
    """Debit one class for a booking. Raises ``InsufficientCreditsError`` at zero."""
    balance = await _shift_balance(db, subscription, -1)
    logger.debug("Consumed one class from subscription %s, %d left", subscription.id, balance)
    return balance


async def restore_one(db: AsyncSession, subscription: Subscription) -> int:
    """Give back one class after a cancellation or an unfulfilled booking attempt.

    Applies whatever the subscription's status is, so a class booked before a
    subscription ended is still returned to it.
    """
    balance = await _shift_balance(db, subscription, 1)
    logger.debug("Restored one class to subscription %s, %d left", subscription.id, balance)
    return balance


# ---------------------------------------------------------------------------
# Reception adjustments
# ---------------------------------------------------------------------------


async def add_credits(
    db: AsyncSession,
    subscription_id: uuid.UUID,
    count: int,
    *,
    actor_id: uuid.UUID | None = None,
    reason: str | None = None,
) -> Subscription:
    """Add ``count`` classes to a live subscription."""
    count = _validate_count(count)

    async with entity_locks.hold(subscriptions=[subscription_id]):
        async with unit_of_work(db) as effects:
            subscription = await get_subscription(db, subscription_id, for_update=True)
            apply_lazy_expiry(subscription, effects)
            if subscription.status in TERMINAL_SUBSCRIPTION_STATUSES:
                raise InvalidInputError(
                    f"Cannot add classes to a {subscription.status} subscription",
                    field="subscription_id",
                )

            balance = await _shift_balance(db, subscription, count)
            effects.record(
                client_id=subscription.client_id,
                actor_id=actor_id,
                action_type=ActivityType.CREDITS_ADDED,
                description=f"Added {count} classes. {reason or 'Administrative addition'}",
                subscription_id=subscription.id,
                count=count,
                remaining_classes=balance,
                reason=reason,
            )

    logger.info("Added %d classes to subscription %s (now %d)", count, subscription_id, balance)
    return subscription


async def remove_credits(
    db: AsyncSession,
    subscription_id: uuid.UUID,
    count: int,
    reason: str,
    *,
    actor_id: uuid.UUID | None = None,
) -> Subscription:
    """Remove ``count`` classes from a live subscription.

    Never takes more than the current balance: asking for more raises
    ``InsufficientCreditsError`` and leaves the balance untouched.
    """
    count = _validate_count(count)
    reason = (reason or "").strip() or "Administrative removal"

    async with entity_locks.hold(subscriptions=[subscription_id]):
        async with unit_of_work(db) as effects:
            subscription = await get_subscription(db, subscription_id, for_update=True)
            apply_lazy_expiry(subscription, effects)
            if subscription.status in TERMINAL_SUBSCRIPTION_STATUSES:
                raise InvalidInputError(
                    f"Cannot remove classes from a {subscription.status} subscription",
                    field="subscription_id",
                )
            if count > subscription.remaining_classes:
                raise InsufficientCreditsError(subscription.id, subscription.remaining_classes, count)

            balance = await _shift_balance(db, subscription, -count)
            effects.record(
                client_id=subscription.client_id,
                actor_id=actor_id,
                action_type=ActivityType.CREDITS_REMOVED,
                description=f"Removed {count} classes. {reason}",
                subscription_id=subscription.id,
                count=count,
                remaining_classes=balance,
                reason=reason,
            )

    logger.info("Removed %d classes from subscription %s (now %d)", count, subscription_id, balance)
    return subscription


async def list_bookable_subscription_ids(db: AsyncSession, client_id: uuid.UUID) -> list[uuid.UUID]:
    """Active subscriptions of a client that still hold credit, best candidate first.

    Largest balance first, newest purchase breaking ties. Read without locks;
    callers re-check each candidate under its lock.
    """
    result = await db.execute(
        select(Subscription.id)
        .where(
            Subscription.client_id == client_id,
            Subscription.status == SubscriptionStatus.ACTIVE,
            Subscription.remaining_classes >= 1,
        )
        .order_by(Subscription.remaining_classes.desc(), Subscription.created_at.desc())
    )
    return list(result.scalars().all())
