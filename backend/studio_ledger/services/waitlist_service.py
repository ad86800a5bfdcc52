"""Waitlist service — FIFO queue per class and automatic promotion.

Positions are assigned as ``max(position) + 1`` under the class lock and
are never renumbered when an entry leaves. Promotion always takes the
smallest position present, draws one credit from the promoted client's
best active subscription, and books the seat in a single transaction per
promoted client.
"""

import logging
import uuid
from contextlib import AsyncExitStack

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from studio_ledger.errors import DuplicateBookingError, WaitlistEntryNotFoundError
from studio_ledger.locks import entity_locks
from studio_ledger.models.booking import Booking
from studio_ledger.models.studio_class import StudioClass
from studio_ledger.models.subscription import Subscription
from studio_ledger.models.waitlist import WaitlistEntry
from studio_ledger.services import class_service, credit_ledger, notification_service
from studio_ledger.services.expiry import apply_lazy_expiry
from studio_ledger.services.unit_of_work import PendingEffects, unit_of_work
from studio_ledger.states import ActivityType, BookingStatus, ClassStatus, SubscriptionStatus

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_entry(db: AsyncSession, entry_id: uuid.UUID, *, for_update: bool = False) -> WaitlistEntry:
    stmt = select(WaitlistEntry).where(WaitlistEntry.id == entry_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    entry = result.scalar_one_or_none()
    if entry is None:
        raise WaitlistEntryNotFoundError(entry_id)
    return entry


async def find_entry(db: AsyncSession, class_id: uuid.UUID, client_id: uuid.UUID) -> WaitlistEntry | None:
    result = await db.execute(
        select(WaitlistEntry).where(WaitlistEntry.class_id == class_id, WaitlistEntry.client_id == client_id)
    )
    return result.scalar_one_or_none()


async def list_waitlist(db: AsyncSession, class_id: uuid.UUID) -> list[WaitlistEntry]:
    """Entries of a class in promotion order."""
    await class_service.get_class(db, class_id)
    result = await db.execute(
        select(WaitlistEntry).where(WaitlistEntry.class_id == class_id).order_by(WaitlistEntry.position)
    )
    return list(result.scalars().all())


async def _head_of_queue(db: AsyncSession, class_id: uuid.UUID) -> WaitlistEntry | None:
    result = await db.execute(
        select(WaitlistEntry)
        .where(WaitlistEntry.class_id == class_id)
        .order_by(WaitlistEntry.position)
        .limit(1)
        .with_for_update()
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Join / leave
# ---------------------------------------------------------------------------


async def enqueue(
    db: AsyncSession,
    studio_class: StudioClass,
    client_id: uuid.UUID,
    effects: PendingEffects,
    *,
    actor_id: uuid.UUID | None = None,
) -> WaitlistEntry:
    """Append a client to the class queue. Caller holds the class lock and a unit of work."""
    existing = await find_entry(db, studio_class.id, client_id)
    if existing is not None:
        raise DuplicateBookingError(
            f"Client is already on the waitlist for {studio_class.name} at position {existing.position}",
            {"waitlist_entry_id": str(existing.id), "position": existing.position},
        )

    result = await db.execute(
        select(func.coalesce(func.max(WaitlistEntry.position), 0)).where(WaitlistEntry.class_id == studio_class.id)
    )
    position = result.scalar_one() + 1

    entry = WaitlistEntry(class_id=studio_class.id, client_id=client_id, position=position)
    db.add(entry)
    await db.flush()

    effects.record(
        client_id=client_id,
        actor_id=actor_id,
        action_type=ActivityType.WAITLIST_JOINED,
        description=f"Joined the waitlist for {studio_class.name} at position {position}.",
        class_id=studio_class.id,
        waitlist_entry_id=entry.id,
        position=position,
    )
    logger.info("Client %s waitlisted for class %s at position %d", client_id, studio_class.id, position)
    return entry


async def withdraw_from_waitlist(
    db: AsyncSession,
    entry_id: uuid.UUID,
    *,
    actor_id: uuid.UUID | None = None,
) -> WaitlistEntry:
    """Remove an entry from its queue. Later entries keep their positions."""
    entry = await get_entry(db, entry_id)
    class_id = entry.class_id

    async with entity_locks.hold(classes=[class_id]):
        async with unit_of_work(db) as effects:
            entry = await get_entry(db, entry_id, for_update=True)
            await db.delete(entry)
            effects.record(
                client_id=entry.client_id,
                actor_id=actor_id,
                action_type=ActivityType.WAITLIST_LEFT,
                description=f"Left the waitlist (position {entry.position}).",
                class_id=class_id,
                position=entry.position,
            )

    logger.info("Waitlist entry %s withdrawn from class %s", entry_id, class_id)
    return entry


# ---------------------------------------------------------------------------
# Promotion
# ---------------------------------------------------------------------------


async def _draw_credit(
    db: AsyncSession,
    client_id: uuid.UUID,
    effects: PendingEffects,
    held: AsyncExitStack,
) -> Subscription | None:
    """Consume one credit from the client's best active subscription.

    All candidates are locked up front in id order, in the registry and as
    rows, and stay locked until the promotion's transaction has committed.
    They are then tried best first.
    """
    candidates = await credit_ledger.list_bookable_subscription_ids(db, client_id)
    await held.enter_async_context(entity_locks.hold(subscriptions=candidates))
    locked = {
        subscription_id: await credit_ledger.get_subscription(db, subscription_id, for_update=True)
        for subscription_id in sorted(candidates, key=str)
    }
    for subscription_id in candidates:
        subscription = locked[subscription_id]
        if apply_lazy_expiry(subscription, effects):
            continue
        if subscription.status != SubscriptionStatus.ACTIVE or subscription.remaining_classes < 1:
            continue
        await credit_ledger.consume_one(db, subscription)
        return subscription
    return None


async def _promote_head(
    db: AsyncSession,
    studio_class: StudioClass,
    entry: WaitlistEntry,
    effects: PendingEffects,
    held: AsyncExitStack,
) -> Booking | None:
    """Book the seat for ``entry`` or drop it when it cannot be honoured."""
    if await class_service.find_live_booking(db, entry.client_id, studio_class.id) is not None:
        await db.delete(entry)
        effects.record(
            client_id=entry.client_id,
            action_type=ActivityType.WAITLIST_REMOVED,
            description=f"Removed from the waitlist for {studio_class.name}: already booked.",
            class_id=studio_class.id,
            position=entry.position,
            reason="already_booked",
        )
        return None

    subscription = await _draw_credit(db, entry.client_id, effects, held)
    if subscription is None:
        await db.delete(entry)
        effects.record(
            client_id=entry.client_id,
            action_type=ActivityType.WAITLIST_REMOVED,
            description=f"Removed from the waitlist for {studio_class.name}: no active subscription with classes left.",
            class_id=studio_class.id,
            position=entry.position,
            reason="no_eligible_subscription",
        )
        logger.warning(
            "Waitlist entry %s for class %s dropped: client %s has no bookable subscription",
            entry.id,
            studio_class.id,
            entry.client_id,
        )
        return None

    if not await class_service.claim_seat(db, studio_class):
        raise RuntimeError(f"Class {studio_class.id} filled up while its lock was held")

    booking = Booking(
        client_id=entry.client_id,
        class_id=studio_class.id,
        subscription_id=subscription.id,
        status=BookingStatus.CONFIRMED,
    )
    db.add(booking)
    await db.delete(entry)
    await db.flush()

    effects.record(
        client_id=entry.client_id,
        action_type=ActivityType.WAITLIST_PROMOTED,
        description=f"Promoted from the waitlist into {studio_class.name}.",
        class_id=studio_class.id,
        booking_id=booking.id,
        subscription_id=subscription.id,
        position=entry.position,
        remaining_classes=subscription.remaining_classes,
        initiated_by="system",
    )
    effects.notify(notification_service.waitlist_promotion_event(booking, studio_class))
    logger.info(
        "Promoted client %s from position %d into class %s (booking %s)",
        entry.client_id,
        entry.position,
        studio_class.id,
        booking.id,
    )
    return booking


async def promote_locked(db: AsyncSession, class_id: uuid.UUID) -> list[Booking]:
    """Fill free seats of a class from its waitlist. Caller holds the class lock.

    Each promoted client is committed in its own transaction. A failure is
    logged and stops the run; seats already filled stay filled and the
    remaining entries wait for the next trigger.
    """
    promoted: list[Booking] = []
    while True:
        try:
            async with AsyncExitStack() as held, unit_of_work(db) as effects:
                studio_class = await class_service.get_class(db, class_id, for_update=True)
                if studio_class.status != ClassStatus.SCHEDULED or studio_class.spots_left <= 0:
                    break
                entry = await _head_of_queue(db, class_id)
                if entry is None:
                    break
                booking = await _promote_head(db, studio_class, entry, effects, held)
        except Exception:
            logger.exception("Waitlist promotion for class %s stopped after %d promotions", class_id, len(promoted))
            # the rollback expired everything loaded so far
            for booking in promoted:
                await db.refresh(booking)
            break
        if booking is not None:
            promoted.append(booking)
    return promoted


async def promote_from_waitlist(db: AsyncSession, class_id: uuid.UUID) -> list[Booking]:
    """Fill free seats of a class from its waitlist, taking the class lock."""
    await class_service.get_class(db, class_id)
    async with entity_locks.hold(classes=[class_id]):
        return await promote_locked(db, class_id)
