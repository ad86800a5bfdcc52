"""Tests for subscription purchase and lifecycle transitions."""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studio_ledger.errors import (
    ClientNotFoundError,
    InvalidInputError,
    InvalidStateTransitionError,
    PlanNotFoundError,
    SubscriptionConflictError,
)
from studio_ledger.models.activity_log import ActivityLogEntry
from studio_ledger.services import credit_ledger, subscription_service
from studio_ledger.states import ActivityType, SubscriptionStatus, UserRole
from tests.helpers import NOW


async def _action_types(db_session: AsyncSession, client_id) -> list[str]:
    result = await db_session.execute(
        select(ActivityLogEntry.action_type)
        .where(ActivityLogEntry.client_id == client_id)
        .order_by(ActivityLogEntry.id)
    )
    return list(result.scalars().all())


class TestPurchase:
    async def test_creates_active_subscription_with_plan_credits(
        self, db_session: AsyncSession, client_user, reception, make_plan
    ):
        plan = await make_plan(12, duration_days=30)

        subscription = await subscription_service.purchase_subscription(
            db_session, client_id=client_user.id, plan_id=plan.id, actor_id=reception.id
        )

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.remaining_classes == 12
        assert subscription.end_date - subscription.start_date == timedelta(days=30)
        assert await _action_types(db_session, client_user.id) == [ActivityType.SUBSCRIPTION_PURCHASE]

    async def test_second_live_subscription_on_same_plan_conflicts(
        self, db_session: AsyncSession, client_user, make_plan
    ):
        plan = await make_plan()
        await subscription_service.purchase_subscription(db_session, client_id=client_user.id, plan_id=plan.id)

        with pytest.raises(SubscriptionConflictError):
            await subscription_service.purchase_subscription(db_session, client_id=client_user.id, plan_id=plan.id)

    async def test_different_plans_may_overlap(self, db_session: AsyncSession, client_user, make_plan):
        first, second = await make_plan(4), await make_plan(8)
        await subscription_service.purchase_subscription(db_session, client_id=client_user.id, plan_id=first.id)
        await subscription_service.purchase_subscription(db_session, client_id=client_user.id, plan_id=second.id)

        subscriptions = await subscription_service.list_client_subscriptions(db_session, client_user.id)
        assert len(subscriptions) == 2

    async def test_run_out_subscription_is_expired_on_repurchase(
        self, db_session: AsyncSession, client_user, make_plan, make_subscription
    ):
        plan = await make_plan()
        old = await make_subscription(client_user, plan=plan, end_date=NOW - timedelta(hours=1))

        new = await subscription_service.purchase_subscription(db_session, client_id=client_user.id, plan_id=plan.id)

        await db_session.refresh(old)
        assert old.status == SubscriptionStatus.EXPIRED
        assert new.status == SubscriptionStatus.ACTIVE

    async def test_only_clients_can_buy(self, db_session: AsyncSession, make_user, make_plan):
        instructor = await make_user(UserRole.INSTRUCTOR)
        plan = await make_plan()
        with pytest.raises(ClientNotFoundError):
            await subscription_service.purchase_subscription(db_session, client_id=instructor.id, plan_id=plan.id)

    async def test_retired_plan_cannot_be_sold(self, db_session: AsyncSession, client_user, make_plan):
        plan = await make_plan(is_active=False)
        with pytest.raises(PlanNotFoundError):
            await subscription_service.purchase_subscription(db_session, client_id=client_user.id, plan_id=plan.id)


class TestPauseResume:
    async def test_pause_extends_end_date(self, db_session: AsyncSession, client_user, make_subscription):
        subscription = await make_subscription(client_user)
        original_end = subscription.end_date

        paused = await subscription_service.pause_subscription(db_session, subscription.id, 7, reason="Travel")

        assert paused.status == SubscriptionStatus.PAUSED
        assert paused.end_date == original_end + timedelta(days=7)
        assert paused.paused_until.date() == (NOW + timedelta(days=7)).date()
        assert paused.status_reason == "Travel"

    async def test_pausing_twice_changes_nothing(self, db_session: AsyncSession, client_user, make_subscription):
        subscription = await make_subscription(client_user)
        await subscription_service.pause_subscription(db_session, subscription.id, 7)
        end_after_first = subscription.end_date

        again = await subscription_service.pause_subscription(db_session, subscription.id, 7)

        assert again.status == SubscriptionStatus.PAUSED
        assert again.end_date == end_after_first
        assert (await _action_types(db_session, client_user.id)).count(ActivityType.SUBSCRIPTION_PAUSED) == 1

    @pytest.mark.parametrize("days", [0, -1, 366])
    async def test_pause_days_out_of_range(self, db_session: AsyncSession, client_user, make_subscription, days):
        subscription = await make_subscription(client_user)
        with pytest.raises(InvalidInputError):
            await subscription_service.pause_subscription(db_session, subscription.id, days)

    async def test_resume_clears_pause(self, db_session: AsyncSession, client_user, make_subscription):
        subscription = await make_subscription(client_user, status=SubscriptionStatus.PAUSED)
        resumed = await subscription_service.resume_subscription(db_session, subscription.id)
        assert resumed.status == SubscriptionStatus.ACTIVE
        assert resumed.paused_until is None

    async def test_resume_active_is_rejected(self, db_session: AsyncSession, client_user, make_subscription):
        subscription = await make_subscription(client_user)
        with pytest.raises(InvalidStateTransitionError):
            await subscription_service.resume_subscription(db_session, subscription.id)


class TestEndings:
    async def test_cancel_keeps_remaining_classes(self, db_session: AsyncSession, client_user, make_subscription):
        subscription = await make_subscription(client_user, remaining=6)

        cancelled = await subscription_service.cancel_subscription(db_session, subscription.id, reason="Moving away")

        assert cancelled.status == SubscriptionStatus.CANCELLED
        assert cancelled.remaining_classes == 6
        assert cancelled.end_date <= NOW + timedelta(seconds=1)
        result = await db_session.execute(
            select(ActivityLogEntry).where(ActivityLogEntry.action_type == ActivityType.SUBSCRIPTION_CANCELLATION)
        )
        assert result.scalar_one().metadata_["refundable"] is True

    async def test_cancel_is_idempotent(self, db_session: AsyncSession, client_user, make_subscription):
        subscription = await make_subscription(client_user)
        first = await subscription_service.cancel_subscription(db_session, subscription.id)
        end_date = first.end_date
        second = await subscription_service.cancel_subscription(db_session, subscription.id)
        assert second.status == SubscriptionStatus.CANCELLED
        assert second.end_date == end_date

    async def test_terminate_is_not_refundable(self, db_session: AsyncSession, client_user, make_subscription):
        subscription = await make_subscription(client_user, status=SubscriptionStatus.PAUSED)
        terminated = await subscription_service.terminate_subscription(db_session, subscription.id)
        assert terminated.status == SubscriptionStatus.TERMINATED
        assert terminated.paused_until is None

    async def test_terminated_cannot_be_cancelled_or_paused(
        self, db_session: AsyncSession, client_user, make_subscription
    ):
        subscription = await make_subscription(client_user)
        subscription_id = subscription.id
        await subscription_service.terminate_subscription(db_session, subscription_id)

        with pytest.raises(InvalidStateTransitionError):
            await subscription_service.cancel_subscription(db_session, subscription_id)
        with pytest.raises(InvalidStateTransitionError):
            await subscription_service.pause_subscription(db_session, subscription_id, 3)

    async def test_cancelled_subscription_gets_no_more_classes(
        self, db_session: AsyncSession, client_user, make_subscription
    ):
        subscription = await make_subscription(client_user)
        await subscription_service.cancel_subscription(db_session, subscription.id)
        with pytest.raises(InvalidInputError):
            await credit_ledger.add_credits(db_session, subscription.id, 2)


class TestExtend:
    async def test_extends_live_subscription(self, db_session: AsyncSession, client_user, make_subscription):
        subscription = await make_subscription(client_user)
        original_end = subscription.end_date

        extended = await subscription_service.extend_subscription(db_session, subscription.id, 14)

        assert extended.end_date == original_end + timedelta(days=14)
        assert ActivityType.SUBSCRIPTION_EXTENDED in await _action_types(db_session, client_user.id)

    async def test_end_date_of_terminal_subscription_is_frozen(
        self, db_session: AsyncSession, client_user, make_subscription
    ):
        subscription = await make_subscription(client_user, status=SubscriptionStatus.CANCELLED)
        with pytest.raises(InvalidStateTransitionError):
            await subscription_service.extend_subscription(db_session, subscription.id, 5)

    async def test_extension_limit(self, db_session: AsyncSession, client_user, make_subscription):
        subscription = await make_subscription(client_user)
        with pytest.raises(InvalidInputError):
            await subscription_service.extend_subscription(db_session, subscription.id, 366)


class TestExpiry:
    async def test_read_after_end_date_expires(
        self, db_session: AsyncSession, client_user, make_subscription, frozen_clock
    ):
        subscription = await make_subscription(client_user, remaining=3)
        frozen_clock.advance(days=30)

        current = await subscription_service.get_subscription(db_session, subscription.id)

        assert current.status == SubscriptionStatus.EXPIRED
        assert current.remaining_classes == 3
        assert await _action_types(db_session, client_user.id) == [ActivityType.SUBSCRIPTION_EXPIRED]

    async def test_paused_subscription_expires_too(
        self, db_session: AsyncSession, client_user, make_subscription, frozen_clock
    ):
        subscription = await make_subscription(client_user, status=SubscriptionStatus.PAUSED)
        frozen_clock.advance(days=30)
        current = await subscription_service.get_subscription(db_session, subscription.id)
        assert current.status == SubscriptionStatus.EXPIRED
        assert current.paused_until is None

    async def test_pause_after_end_date_is_rejected(
        self, db_session: AsyncSession, client_user, make_subscription, frozen_clock
    ):
        subscription = await make_subscription(client_user)
        frozen_clock.advance(days=30)
        with pytest.raises(InvalidStateTransitionError):
            await subscription_service.pause_subscription(db_session, subscription.id, 3)

    async def test_sweep_expires_only_due_subscriptions(
        self, db_session: AsyncSession, make_user, make_subscription, frozen_clock
    ):
        first, second = await make_user(), await make_user()
        due = await make_subscription(first, end_date=NOW + timedelta(days=2))
        not_due = await make_subscription(second, end_date=NOW + timedelta(days=20))
        cancelled = await make_subscription(second, status=SubscriptionStatus.CANCELLED, end_date=NOW)
        frozen_clock.advance(days=3)

        assert await subscription_service.expire_due_subscriptions(db_session) == 1
        assert await subscription_service.expire_due_subscriptions(db_session) == 0

        for subscription in (due, not_due, cancelled):
            await db_session.refresh(subscription)
        assert due.status == SubscriptionStatus.EXPIRED
        assert not_due.status == SubscriptionStatus.ACTIVE
        assert cancelled.status == SubscriptionStatus.CANCELLED


class TestStats:
    async def test_summarises_spend_and_balance(
        self, db_session: AsyncSession, client_user, make_plan, make_subscription
    ):
        cheap, dear = await make_plan(4, price="60.00"), await make_plan(12, price="150.00")
        await make_subscription(client_user, plan=cheap, remaining=3)
        await make_subscription(client_user, plan=dear, remaining=10, status=SubscriptionStatus.CANCELLED)
        await make_subscription(client_user, plan=dear, remaining=0, status=SubscriptionStatus.EXPIRED)

        stats = await subscription_service.get_client_subscription_stats(db_session, client_user.id)

        assert stats["total_subscriptions"] == 3
        assert stats["total_spent"] == Decimal("210.00")
        assert stats["remaining_classes"] == 3
        assert stats["by_status"]["cancelled"] == 1
        assert stats["by_status"]["paused"] == 0
        assert stats["current_subscription_id"] is not None

    async def test_unknown_client_has_empty_stats(self, db_session: AsyncSession):
        stats = await subscription_service.get_client_subscription_stats(db_session, uuid.uuid4())
        assert stats["total_subscriptions"] == 0
        assert stats["total_spent"] == Decimal("0")
        assert stats["current_subscription_id"] is None
