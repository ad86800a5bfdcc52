"""Tests for the class waitlist — queueing, withdrawal and promotion."""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from studio_ledger.errors import WaitlistEntryNotFoundError
from studio_ledger.locks import entity_locks
from studio_ledger.models.activity_log import ActivityLogEntry
from studio_ledger.services import (
    booking_service,
    class_service,
    credit_ledger,
    notification_service,
    waitlist_service,
)
from studio_ledger.states import ActivityType, BookingStatus, CancelledBy, UserRole
from tests.helpers import count_seat_holders


@pytest_asyncio.fixture
async def full_class(db_session: AsyncSession, make_user, make_subscription, make_class):
    """A one-seat class and the booking that fills it."""
    studio_class = await make_class(capacity=1, name="Tower Intermediate")
    holder = await make_user(UserRole.CLIENT)
    subscription = await make_subscription(holder, remaining=5)
    outcome = await booking_service.book_class(
        db_session, client_id=holder.id, class_id=studio_class.id, subscription_id=subscription.id
    )
    return studio_class, outcome.booking


@pytest_asyncio.fixture
async def queue_client(db_session: AsyncSession, make_user, make_subscription):
    """Waitlist a new client with ``remaining`` classes on one subscription."""

    async def _queue(studio_class, *, remaining: int = 4):
        client = await make_user(UserRole.CLIENT)
        subscription = await make_subscription(client, remaining=remaining)
        outcome = await booking_service.book_class(
            db_session, client_id=client.id, class_id=studio_class.id, subscription_id=subscription.id
        )
        assert outcome.outcome == "waitlisted"
        return client, subscription, outcome.waitlist_entry

    return _queue


class TestQueue:
    async def test_positions_follow_arrival_order(self, db_session: AsyncSession, full_class, queue_client):
        studio_class, _ = full_class
        entries = [(await queue_client(studio_class))[2] for _ in range(3)]

        assert [e.position for e in entries] == [1, 2, 3]
        listed = await waitlist_service.list_waitlist(db_session, studio_class.id)
        assert [e.id for e in listed] == [e.id for e in entries]

    async def test_withdraw_keeps_other_positions(self, db_session: AsyncSession, full_class, queue_client):
        studio_class, _ = full_class
        _, second, _ = [(await queue_client(studio_class))[2] for _ in range(3)]

        await waitlist_service.withdraw_from_waitlist(db_session, second.id)
        _, _, late = await queue_client(studio_class)

        listed = await waitlist_service.list_waitlist(db_session, studio_class.id)
        assert [e.position for e in listed] == [1, 3, 4]
        assert late.position == 4

    async def test_withdraw_unknown_entry(self, db_session: AsyncSession, full_class, queue_client):
        studio_class, _ = full_class
        _, _, entry = await queue_client(studio_class)
        entry_id = entry.id
        await waitlist_service.withdraw_from_waitlist(db_session, entry_id)

        with pytest.raises(WaitlistEntryNotFoundError):
            await waitlist_service.withdraw_from_waitlist(db_session, entry_id)

    async def test_joining_and_leaving_are_logged(self, db_session: AsyncSession, full_class, queue_client):
        studio_class, _ = full_class
        client, _, entry = await queue_client(studio_class)
        await waitlist_service.withdraw_from_waitlist(db_session, entry.id, actor_id=client.id)

        result = await db_session.execute(
            select(ActivityLogEntry.action_type)
            .where(ActivityLogEntry.client_id == client.id)
            .order_by(ActivityLogEntry.id)
        )
        assert result.scalars().all() == [ActivityType.WAITLIST_JOINED, ActivityType.WAITLIST_LEFT]


class TestPromotion:
    async def test_first_in_line_is_promoted_first(self, db_session: AsyncSession, full_class, queue_client):
        studio_class, booking = full_class
        first, first_subscription, _ = await queue_client(studio_class, remaining=2)
        second, _, _ = await queue_client(studio_class, remaining=9)

        result = await booking_service.cancel_booking(db_session, booking.id, cancelled_by=CancelledBy.RECEPTION)

        assert [b.client_id for b in result.promoted] == [first.id]
        await db_session.refresh(first_subscription)
        assert first_subscription.remaining_classes == 1
        listed = await waitlist_service.list_waitlist(db_session, studio_class.id)
        assert [(e.client_id, e.position) for e in listed] == [(second.id, 2)]

    async def test_client_without_credit_is_skipped(
        self, db_session: AsyncSession, full_class, queue_client
    ):
        studio_class, booking = full_class
        broke, broke_subscription, _ = await queue_client(studio_class, remaining=1)
        await credit_ledger.remove_credits(db_session, broke_subscription.id, 1, "Refunded")
        next_in_line, _, _ = await queue_client(studio_class, remaining=3)

        result = await booking_service.cancel_booking(db_session, booking.id, cancelled_by=CancelledBy.RECEPTION)

        assert [b.client_id for b in result.promoted] == [next_in_line.id]
        assert await waitlist_service.list_waitlist(db_session, studio_class.id) == []

        removed = await db_session.execute(
            select(ActivityLogEntry).where(
                ActivityLogEntry.client_id == broke.id,
                ActivityLogEntry.action_type == ActivityType.WAITLIST_REMOVED,
            )
        )
        assert removed.scalar_one().metadata_["reason"] == "no_eligible_subscription"

    async def test_promotion_uses_best_subscription(
        self, db_session: AsyncSession, full_class, queue_client, make_subscription
    ):
        studio_class, booking = full_class
        client, _, _ = await queue_client(studio_class, remaining=1)
        bigger = await make_subscription(client, remaining=6)

        result = await booking_service.cancel_booking(db_session, booking.id, cancelled_by=CancelledBy.RECEPTION)

        assert result.promoted[0].subscription_id == bigger.id
        await db_session.refresh(bigger)
        assert bigger.remaining_classes == 5

    async def test_fills_every_free_seat(
        self, db_session: AsyncSession, make_class, make_user, make_subscription, queue_client
    ):
        studio_class = await make_class(capacity=2)
        bookings = []
        for _ in range(2):
            holder = await make_user(UserRole.CLIENT)
            subscription = await make_subscription(holder)
            outcome = await booking_service.book_class(
                db_session, client_id=holder.id, class_id=studio_class.id, subscription_id=subscription.id
            )
            bookings.append(outcome.booking)
        queued = [(await queue_client(studio_class))[0] for _ in range(3)]
        for booking in bookings:
            await booking_service.mark_no_show(db_session, booking.id)

        promoted = await waitlist_service.promote_from_waitlist(db_session, studio_class.id)

        assert [b.client_id for b in promoted] == [queued[0].id, queued[1].id]
        assert all(b.status == BookingStatus.CONFIRMED for b in promoted)
        await db_session.refresh(studio_class)
        assert studio_class.enrolled_count == 2
        assert await count_seat_holders(db_session, studio_class.id) == 2
        listed = await waitlist_service.list_waitlist(db_session, studio_class.id)
        assert [e.client_id for e in listed] == [queued[2].id]

    async def test_nothing_to_do_on_full_class(self, db_session: AsyncSession, full_class, queue_client):
        studio_class, _ = full_class
        await queue_client(studio_class)
        assert await waitlist_service.promote_from_waitlist(db_session, studio_class.id) == []

    async def test_promotion_sends_notification(
        self, db_session: AsyncSession, full_class, queue_client, monkeypatch
    ):
        studio_class, booking = full_class
        client, _, _ = await queue_client(studio_class)
        send = AsyncMock(return_value=True)
        monkeypatch.setattr(notification_service, "send_event", send)

        result = await booking_service.cancel_booking(db_session, booking.id, cancelled_by=CancelledBy.RECEPTION)
        await notification_service.wait_for_pending()

        send.assert_awaited_once()
        event = send.await_args.args[0]
        assert event.type == notification_service.WAITLIST_PROMOTION
        assert event.client_id == client.id
        assert event.payload["booking_id"] == result.promoted[0].id
        assert "Tower Intermediate" in event.payload["message"]

    async def test_failed_promotion_keeps_cancellation(
        self, db_session: AsyncSession, full_class, queue_client, monkeypatch
    ):
        studio_class, booking = full_class
        booking_id = booking.id
        class_id = studio_class.id
        _, subscription, _ = await queue_client(studio_class, remaining=2)

        async def broken_consume(db, subscription):
            raise OperationalError("UPDATE subscriptions", {}, Exception("database is locked"))

        monkeypatch.setattr(credit_ledger, "consume_one", broken_consume)

        result = await booking_service.cancel_booking(db_session, booking_id, cancelled_by=CancelledBy.RECEPTION)

        assert result.promoted == []
        assert result.booking.status == BookingStatus.CANCELLED
        await db_session.refresh(subscription)
        assert subscription.remaining_classes == 2
        assert len(await waitlist_service.list_waitlist(db_session, class_id)) == 1
        assert await count_seat_holders(db_session, class_id) == 0

    async def test_lost_seat_during_promotion_keeps_cancellation(
        self, db_session: AsyncSession, full_class, queue_client, monkeypatch
    ):
        studio_class, booking = full_class
        booking_id = booking.id
        class_id = studio_class.id
        _, subscription, _ = await queue_client(studio_class, remaining=2)
        monkeypatch.setattr(class_service, "claim_seat", AsyncMock(return_value=False))

        result = await booking_service.cancel_booking(db_session, booking_id, cancelled_by=CancelledBy.RECEPTION)

        assert result.promoted == []
        assert result.booking.status == BookingStatus.CANCELLED
        await db_session.refresh(subscription)
        assert subscription.remaining_classes == 2
        assert len(await waitlist_service.list_waitlist(db_session, class_id)) == 1

    async def test_candidate_subscriptions_are_locked_in_one_call(
        self, db_session: AsyncSession, full_class, queue_client, make_subscription, monkeypatch
    ):
        studio_class, booking = full_class
        client, small, _ = await queue_client(studio_class, remaining=1)
        big = await make_subscription(client, remaining=6)
        candidate_ids = {str(small.id), str(big.id)}

        requested = []
        original_hold = entity_locks.hold

        def recording_hold(**kwargs):
            requested.append([str(i) for i in kwargs.get("subscriptions", ())])
            return original_hold(**kwargs)

        monkeypatch.setattr(entity_locks, "hold", recording_hold)

        result = await booking_service.cancel_booking(db_session, booking.id, cancelled_by=CancelledBy.RECEPTION)

        assert result.promoted[0].subscription_id == big.id
        touching = [ids for ids in requested if candidate_ids & set(ids)]
        assert [sorted(ids) for ids in touching] == [sorted(candidate_ids)]
