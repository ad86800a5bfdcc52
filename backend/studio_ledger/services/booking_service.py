"""Booking service — book, cancel, and close out class bookings.

Locks are always taken class first, then subscription. ``book_class``
charges one credit before it looks for a seat and hands the credit back if
the client ends up on the waitlist, all inside one transaction.
``cancel_booking`` commits the cancellation before it starts promoting from
the waitlist, so a failed promotion never undoes a cancellation.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Literal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from studio_ledger import clock, states
from studio_ledger.config import settings
from studio_ledger.errors import (
    BookingNotFoundError,
    CancellationWindowClosedError,
    DuplicateBookingError,
    InsufficientCreditsError,
    InvalidInputError,
    SubscriptionInactiveError,
)
from studio_ledger.locks import entity_locks
from studio_ledger.models.booking import Booking
from studio_ledger.models.subscription import Subscription
from studio_ledger.models.waitlist import WaitlistEntry
from studio_ledger.services import class_service, credit_ledger, waitlist_service
from studio_ledger.services.expiry import apply_lazy_expiry
from studio_ledger.services.subscription_service import get_client
from studio_ledger.services.unit_of_work import unit_of_work
from studio_ledger.states import ActivityType, BookingEvent, BookingStatus, CancelledBy, SubscriptionStatus

logger = logging.getLogger(__name__)


@dataclass
class BookingOutcome:
    """Result of ``book_class``: a confirmed booking or a waitlist entry."""

    outcome: Literal["confirmed", "waitlisted"]
    remaining_classes: int
    booking: Booking | None = None
    waitlist_entry: WaitlistEntry | None = None


@dataclass
class CancellationResult:
    booking: Booking
    remaining_classes: int
    promoted: list[Booking] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_booking(db: AsyncSession, booking_id: uuid.UUID, *, for_update: bool = False) -> Booking:
    stmt = select(Booking).where(Booking.id == booking_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    booking = result.scalar_one_or_none()
    if booking is None:
        raise BookingNotFoundError(booking_id)
    return booking


async def list_bookings(
    db: AsyncSession,
    *,
    client_id: uuid.UUID | None = None,
    class_id: uuid.UUID | None = None,
    status: str | None = None,
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[Booking], int]:
    """Return one page of bookings, newest first, plus the total count."""
    base_query = select(Booking)
    count_query = select(func.count()).select_from(Booking)
    if client_id is not None:
        base_query = base_query.where(Booking.client_id == client_id)
        count_query = count_query.where(Booking.client_id == client_id)
    if class_id is not None:
        base_query = base_query.where(Booking.class_id == class_id)
        count_query = count_query.where(Booking.class_id == class_id)
    if status is not None:
        base_query = base_query.where(Booking.status == status)
        count_query = count_query.where(Booking.status == status)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(base_query.order_by(Booking.created_at.desc()).offset(skip).limit(limit))
    return list(result.scalars().all()), total


# ---------------------------------------------------------------------------
# Book
# ---------------------------------------------------------------------------


async def _resolve_subscription_id(db: AsyncSession, client_id: uuid.UUID) -> uuid.UUID:
    """Pick the subscription to charge when the caller did not name one."""
    candidates = await credit_ledger.list_bookable_subscription_ids(db, client_id)
    if candidates:
        return candidates[0]

    result = await db.execute(
        select(Subscription.id).where(
            Subscription.client_id == client_id,
            Subscription.status == SubscriptionStatus.ACTIVE,
        )
    )
    exhausted = result.scalars().first()
    if exhausted is not None:
        raise InsufficientCreditsError(exhausted, 0)
    raise SubscriptionInactiveError(None, None)


async def book_class(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    class_id: uuid.UUID,
    subscription_id: uuid.UUID | None = None,
    actor_id: uuid.UUID | None = None,
) -> BookingOutcome:
    """Book ``client_id`` into a class, or waitlist them when it is full.

    Checks run in this order, and the first failure wins: the class exists
    and has not started; the subscription belongs to the client, is active
    and has a class left; the client holds no live booking for the class;
    then a seat is claimed. A full class refunds the credit and queues the
    client instead.
    """
    await get_client(db, client_id)
    await class_service.get_class(db, class_id, include_cancelled=False)
    if subscription_id is None:
        subscription_id = await _resolve_subscription_id(db, client_id)

    async with entity_locks.hold(classes=[class_id], subscriptions=[subscription_id]):
        async with unit_of_work(db) as effects:
            studio_class = await class_service.get_class(db, class_id, for_update=True, include_cancelled=False)
            subscription = await credit_ledger.get_subscription(db, subscription_id, for_update=True)
            now = clock.utcnow()

            if studio_class.starts_at <= now:
                raise InvalidInputError("Class has already started", field="class_id")
            if subscription.client_id != client_id:
                raise InvalidInputError("Subscription does not belong to this client", field="subscription_id")

            apply_lazy_expiry(subscription, effects, now)
            if subscription.status != SubscriptionStatus.ACTIVE:
                raise SubscriptionInactiveError(subscription.id, subscription.status)

            await credit_ledger.consume_one(db, subscription)

            if await class_service.find_live_booking(db, client_id, class_id) is not None:
                raise DuplicateBookingError(
                    f"Client already has a booking for {studio_class.name}",
                    {"class_id": str(class_id), "client_id": str(client_id)},
                )

            if await class_service.claim_seat(db, studio_class):
                booking = Booking(
                    client_id=client_id,
                    class_id=class_id,
                    subscription_id=subscription.id,
                    status=BookingStatus.CONFIRMED,
                )
                db.add(booking)
                queued = await waitlist_service.find_entry(db, class_id, client_id)
                if queued is not None:
                    await db.delete(queued)
                await db.flush()

                effects.record(
                    client_id=client_id,
                    actor_id=actor_id,
                    action_type=ActivityType.CLASS_BOOKING,
                    description=f"Booked {studio_class.name} on {studio_class.starts_at:%Y-%m-%d %H:%M}.",
                    class_id=class_id,
                    booking_id=booking.id,
                    subscription_id=subscription.id,
                    remaining_classes=subscription.remaining_classes,
                )
                outcome = BookingOutcome("confirmed", subscription.remaining_classes, booking=booking)
            else:
                await credit_ledger.restore_one(db, subscription)
                entry = await waitlist_service.enqueue(db, studio_class, client_id, effects, actor_id=actor_id)
                outcome = BookingOutcome("waitlisted", subscription.remaining_classes, waitlist_entry=entry)

    logger.info(
        "Client %s %s for class %s (subscription %s, %d left)",
        client_id,
        outcome.outcome,
        class_id,
        subscription_id,
        outcome.remaining_classes,
    )
    return outcome


# ---------------------------------------------------------------------------
# Cancel / attend / no-show
# ---------------------------------------------------------------------------


async def cancel_booking(
    db: AsyncSession,
    booking_id: uuid.UUID,
    *,
    cancelled_by: CancelledBy,
    actor_id: uuid.UUID | None = None,
    enforce_cutoff: bool = False,
) -> CancellationResult:
    """Cancel a confirmed booking, return its credit, and refill the seat from the waitlist.

    With ``enforce_cutoff`` the cancellation is refused inside the last
    ``client_cancellation_cutoff_hours`` before the class starts.
    """
    booking = await get_booking(db, booking_id)
    class_id = booking.class_id

    async with entity_locks.hold(classes=[class_id]):
        async with entity_locks.hold(subscriptions=[booking.subscription_id]):
            async with unit_of_work(db) as effects:
                studio_class = await class_service.get_class(db, class_id, for_update=True)
                booking = await get_booking(db, booking_id, for_update=True)
                target = states.next_booking_status(booking.status, BookingEvent.CANCEL)

                now = clock.utcnow()
                cutoff = timedelta(hours=settings.client_cancellation_cutoff_hours)
                if enforce_cutoff and studio_class.starts_at - now < cutoff:
                    raise CancellationWindowClosedError(
                        f"Bookings can only be cancelled up to {settings.client_cancellation_cutoff_hours} "
                        "hours before the class starts",
                        {"class_id": str(class_id), "starts_at": studio_class.starts_at.isoformat()},
                    )

                subscription = await credit_ledger.get_subscription(db, booking.subscription_id, for_update=True)
                booking.status = target
                booking.cancelled_by = cancelled_by
                booking.cancelled_at = now
                await db.flush()

                await class_service.release_seat(db, studio_class)
                balance = await credit_ledger.restore_one(db, subscription)
                effects.record(
                    client_id=booking.client_id,
                    actor_id=actor_id,
                    action_type=ActivityType.CLASS_CANCELLATION,
                    description=f"Cancelled booking for {studio_class.name}; class returned.",
                    class_id=class_id,
                    booking_id=booking.id,
                    subscription_id=subscription.id,
                    cancelled_by=cancelled_by,
                    remaining_classes=balance,
                )

        logger.info("Booking %s cancelled by %s; %d classes left", booking_id, cancelled_by, balance)
        promoted = await waitlist_service.promote_locked(db, class_id)
        await db.refresh(booking)

    return CancellationResult(booking=booking, remaining_classes=balance, promoted=promoted)


async def _close_out(
    db: AsyncSession,
    booking_id: uuid.UUID,
    event: BookingEvent,
    action_type: ActivityType,
    *,
    actor_id: uuid.UUID | None,
) -> Booking:
    booking = await get_booking(db, booking_id)
    class_id = booking.class_id

    async with entity_locks.hold(classes=[class_id]):
        async with unit_of_work(db) as effects:
            studio_class = await class_service.get_class(db, class_id, for_update=True)
            booking = await get_booking(db, booking_id, for_update=True)
            previous = states.BookingStatus(booking.status)
            target = states.next_booking_status(previous, event)
            booking.status = target
            if states.releases_seat(previous, target):
                await class_service.release_seat(db, studio_class)

            effects.record(
                client_id=booking.client_id,
                actor_id=actor_id,
                action_type=action_type,
                description=f"{studio_class.name} on {studio_class.starts_at:%Y-%m-%d %H:%M}: {target.value}.",
                class_id=class_id,
                booking_id=booking.id,
            )

    logger.info("Booking %s marked %s", booking_id, target)
    return booking


async def mark_attended(db: AsyncSession, booking_id: uuid.UUID, *, actor_id: uuid.UUID | None = None) -> Booking:
    """Record that the client came to class. The credit stays spent."""
    return await _close_out(db, booking_id, BookingEvent.ATTEND, ActivityType.CLASS_ATTENDANCE, actor_id=actor_id)


async def mark_no_show(db: AsyncSession, booking_id: uuid.UUID, *, actor_id: uuid.UUID | None = None) -> Booking:
    """Record that the client did not come. The seat is freed, the credit is not returned."""
    return await _close_out(db, booking_id, BookingEvent.MARK_NO_SHOW, ActivityType.CLASS_NO_SHOW, actor_id=actor_id)
