"""Subscription service — purchase and lifecycle of client subscriptions.

Every status change is looked up in ``states.SUBSCRIPTION_TRANSITIONS`` and
applied under the subscription's lock. Expiry is lazy: any read or action
on a live subscription whose end date has passed first moves it to
``expired``; ``expire_due_subscriptions`` sweeps the rest.
"""

import logging
import uuid
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from studio_ledger import clock, states
from studio_ledger.config import settings
from studio_ledger.errors import (
    ClientNotFoundError,
    InvalidInputError,
    InvalidStateTransitionError,
    PlanNotFoundError,
    SubscriptionConflictError,
)
from studio_ledger.locks import entity_locks
from studio_ledger.models.plan import SubscriptionPlan
from studio_ledger.models.subscription import Subscription
from studio_ledger.models.user import User
from studio_ledger.services.credit_ledger import get_subscription as load_subscription
from studio_ledger.services.expiry import apply_lazy_expiry
from studio_ledger.services.unit_of_work import PendingEffects, unit_of_work
from studio_ledger.states import (
    LIVE_SUBSCRIPTION_STATUSES,
    ActivityType,
    SubscriptionEvent,
    SubscriptionStatus,
    UserRole,
)

logger = logging.getLogger(__name__)


def _validate_days(days: int, limit: int, field: str) -> int:
    if isinstance(days, bool) or not isinstance(days, int) or not 1 <= days <= limit:
        raise InvalidInputError(f"{field} must be an integer between 1 and {limit}", field=field)
    return days


# ---------------------------------------------------------------------------
# Plans and purchase
# ---------------------------------------------------------------------------


async def list_plans(db: AsyncSession, *, include_inactive: bool = False) -> list[SubscriptionPlan]:
    query = select(SubscriptionPlan).order_by(SubscriptionPlan.monthly_price, SubscriptionPlan.name)
    if not include_inactive:
        query = query.where(SubscriptionPlan.is_active.is_(True))
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_plan(db: AsyncSession, plan_id: uuid.UUID) -> SubscriptionPlan:
    plan = await db.get(SubscriptionPlan, plan_id)
    if plan is None:
        raise PlanNotFoundError(plan_id)
    return plan


async def get_client(db: AsyncSession, client_id: uuid.UUID) -> User:
    """Return an active client account or raise ``ClientNotFoundError``."""
    result = await db.execute(
        select(User).where(User.id == client_id, User.role == UserRole.CLIENT, User.is_active.is_(True))
    )
    client = result.scalar_one_or_none()
    if client is None:
        raise ClientNotFoundError(client_id)
    return client


async def purchase_subscription(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    plan_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
    start_date: datetime | None = None,
) -> Subscription:
    """Create an active subscription for ``client_id`` on ``plan_id``.

    A client may hold at most one live (active or paused) subscription per
    plan; a live one that has already run out is expired on the way.
    """
    async with unit_of_work(db) as effects:
        await get_client(db, client_id)
        plan = await get_plan(db, plan_id)
        if not plan.is_active:
            raise PlanNotFoundError(plan_id)

        now = clock.utcnow()
        result = await db.execute(
            select(Subscription)
            .where(
                Subscription.client_id == client_id,
                Subscription.plan_id == plan_id,
                Subscription.status.in_(LIVE_SUBSCRIPTION_STATUSES),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        for existing in result.scalars().all():
            if not apply_lazy_expiry(existing, effects, now):
                raise SubscriptionConflictError(
                    f"Client already has a {existing.status} subscription on plan {plan.name}",
                    {"subscription_id": str(existing.id)},
                )

        start = start_date or now
        subscription = Subscription(
            client_id=client_id,
            plan_id=plan.id,
            status=SubscriptionStatus.ACTIVE,
            remaining_classes=plan.monthly_classes,
            start_date=start,
            end_date=start + timedelta(days=plan.duration_days),
        )
        db.add(subscription)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise SubscriptionConflictError(
                f"Client already has a live subscription on plan {plan.name}"
            ) from exc

        effects.record(
            client_id=client_id,
            actor_id=actor_id,
            action_type=ActivityType.SUBSCRIPTION_PURCHASE,
            description=f"Purchased {plan.name} ({plan.monthly_classes} classes).",
            subscription_id=subscription.id,
            plan_id=plan.id,
            plan_name=plan.name,
            price=plan.monthly_price,
            remaining_classes=subscription.remaining_classes,
            end_date=subscription.end_date,
        )

    logger.info("Client %s purchased plan %s as subscription %s", client_id, plan.name, subscription.id)
    return subscription


# ---------------------------------------------------------------------------
# Reads (apply lazy expiry)
# ---------------------------------------------------------------------------


async def get_subscription(db: AsyncSession, subscription_id: uuid.UUID) -> Subscription:
    """Return a subscription with its expiry evaluated against the current time."""
    async with entity_locks.hold(subscriptions=[subscription_id]):
        async with unit_of_work(db) as effects:
            subscription = await load_subscription(db, subscription_id, for_update=True)
            apply_lazy_expiry(subscription, effects)
    return subscription


async def list_client_subscriptions(db: AsyncSession, client_id: uuid.UUID) -> list[Subscription]:
    """Return every subscription of a client, newest first, expiry evaluated."""
    result = await db.execute(select(Subscription.id).where(Subscription.client_id == client_id))
    ids = list(result.scalars().all())

    async with entity_locks.hold(subscriptions=ids):
        async with unit_of_work(db) as effects:
            result = await db.execute(
                select(Subscription)
                .where(Subscription.client_id == client_id)
                .order_by(Subscription.created_at.desc())
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            subscriptions = list(result.scalars().all())
            now = clock.utcnow()
            for subscription in subscriptions:
                if subscription.id in ids:
                    apply_lazy_expiry(subscription, effects, now)
    return subscriptions


async def get_client_subscription_stats(db: AsyncSession, client_id: uuid.UUID) -> dict[str, Any]:
    """Summarise a client's subscriptions for the front desk."""
    subscriptions = await list_client_subscriptions(db, client_id)
    plan_ids = {s.plan_id for s in subscriptions}
    plans: dict[uuid.UUID, SubscriptionPlan] = {}
    if plan_ids:
        result = await db.execute(select(SubscriptionPlan).where(SubscriptionPlan.id.in_(plan_ids)))
        plans = {plan.id: plan for plan in result.scalars().all()}

    by_status = Counter(s.status for s in subscriptions)
    total_spent = sum(
        (plans[s.plan_id].monthly_price for s in subscriptions if s.status != SubscriptionStatus.CANCELLED),
        Decimal("0"),
    )
    live = [s for s in subscriptions if s.status in LIVE_SUBSCRIPTION_STATUSES]
    active = [s for s in subscriptions if s.status == SubscriptionStatus.ACTIVE]

    return {
        "client_id": client_id,
        "total_subscriptions": len(subscriptions),
        "by_status": {status.value: by_status.get(status.value, 0) for status in SubscriptionStatus},
        "total_spent": total_spent,
        "remaining_classes": sum(s.remaining_classes for s in live),
        "current_subscription_id": active[0].id if active else None,
    }


# ---------------------------------------------------------------------------
# Lifecycle transitions
# ---------------------------------------------------------------------------


async def _transition(
    db: AsyncSession,
    subscription_id: uuid.UUID,
    event: SubscriptionEvent,
    apply: Callable[[Subscription, PendingEffects, datetime], None],
) -> Subscription:
    """Move a subscription through ``event`` under its lock.

    ``apply(subscription, effects, now)`` sets the new fields and records
    the audit entry; it is skipped when the event is an idempotent repeat.
    """
    async with entity_locks.hold(subscriptions=[subscription_id]):
        async with unit_of_work(db) as effects:
            subscription = await load_subscription(db, subscription_id, for_update=True)
            now = clock.utcnow()
            apply_lazy_expiry(subscription, effects, now)

            target = states.next_subscription_status(subscription.status, event)
            if target is None:
                logger.info("Subscription %s already %s; %s ignored", subscription_id, subscription.status, event)
                return subscription

            previous = subscription.status
            subscription.status = target
            apply(subscription, effects, now)

    logger.info("Subscription %s: %s -> %s (%s)", subscription_id, previous, target, event)
    return subscription


async def pause_subscription(
    db: AsyncSession,
    subscription_id: uuid.UUID,
    days: int,
    *,
    actor_id: uuid.UUID | None = None,
    reason: str | None = None,
) -> Subscription:
    """Freeze an active subscription for ``days`` and push its end date out by as much.

    There is no automatic resume; ``paused_until`` only tells reception when
    the client expected to be back.
    """
    days = _validate_days(days, settings.max_pause_days, "days")

    def apply(subscription: Subscription, effects: PendingEffects, now: datetime) -> None:
        subscription.paused_until = now + timedelta(days=days)
        subscription.end_date = subscription.end_date + timedelta(days=days)
        subscription.status_reason = reason
        effects.record(
            client_id=subscription.client_id,
            actor_id=actor_id,
            action_type=ActivityType.SUBSCRIPTION_PAUSED,
            description=f"Subscription paused for {days} days. {reason or ''}".strip(),
            subscription_id=subscription.id,
            days=days,
            paused_until=subscription.paused_until,
            new_end_date=subscription.end_date,
            reason=reason,
        )

    return await _transition(db, subscription_id, SubscriptionEvent.PAUSE, apply)


async def resume_subscription(
    db: AsyncSession,
    subscription_id: uuid.UUID,
    *,
    actor_id: uuid.UUID | None = None,
    reason: str | None = None,
) -> Subscription:
    def apply(subscription: Subscription, effects: PendingEffects, now: datetime) -> None:
        subscription.paused_until = None
        subscription.status_reason = reason
        effects.record(
            client_id=subscription.client_id,
            actor_id=actor_id,
            action_type=ActivityType.SUBSCRIPTION_RESUMED,
            description=f"Subscription resumed. {reason or ''}".strip(),
            subscription_id=subscription.id,
            end_date=subscription.end_date,
            reason=reason,
        )

    return await _transition(db, subscription_id, SubscriptionEvent.RESUME, apply)


async def cancel_subscription(
    db: AsyncSession,
    subscription_id: uuid.UUID,
    *,
    actor_id: uuid.UUID | None = None,
    reason: str | None = None,
) -> Subscription:
    """Cancel with refund eligibility. Remaining classes stay on the record but can no longer be booked."""

    def apply(subscription: Subscription, effects: PendingEffects, now: datetime) -> None:
        subscription.end_date = now
        subscription.paused_until = None
        subscription.status_reason = reason
        effects.record(
            client_id=subscription.client_id,
            actor_id=actor_id,
            action_type=ActivityType.SUBSCRIPTION_CANCELLATION,
            description=f"Subscription cancelled. {reason or ''}".strip(),
            subscription_id=subscription.id,
            refundable=True,
            remaining_classes=subscription.remaining_classes,
            reason=reason,
        )

    return await _transition(db, subscription_id, SubscriptionEvent.CANCEL, apply)


async def terminate_subscription(
    db: AsyncSession,
    subscription_id: uuid.UUID,
    *,
    actor_id: uuid.UUID | None = None,
    reason: str | None = None,
) -> Subscription:
    """End a subscription immediately without refund."""

    def apply(subscription: Subscription, effects: PendingEffects, now: datetime) -> None:
        subscription.end_date = now
        subscription.paused_until = None
        subscription.status_reason = reason
        effects.record(
            client_id=subscription.client_id,
            actor_id=actor_id,
            action_type=ActivityType.SUBSCRIPTION_TERMINATED,
            description=f"Subscription terminated. {reason or ''}".strip(),
            subscription_id=subscription.id,
            refundable=False,
            remaining_classes=subscription.remaining_classes,
            reason=reason,
        )

    return await _transition(db, subscription_id, SubscriptionEvent.TERMINATE, apply)


async def extend_subscription(
    db: AsyncSession,
    subscription_id: uuid.UUID,
    days: int,
    *,
    actor_id: uuid.UUID | None = None,
    reason: str | None = None,
) -> Subscription:
    """Push a live subscription's end date out by ``days``."""
    days = _validate_days(days, settings.max_extension_days, "days")

    async with entity_locks.hold(subscriptions=[subscription_id]):
        async with unit_of_work(db) as effects:
            subscription = await load_subscription(db, subscription_id, for_update=True)
            apply_lazy_expiry(subscription, effects)
            if subscription.status not in LIVE_SUBSCRIPTION_STATUSES:
                raise InvalidStateTransitionError("subscription", subscription.status, "extend")

            previous_end = subscription.end_date
            subscription.end_date = previous_end + timedelta(days=days)
            effects.record(
                client_id=subscription.client_id,
                actor_id=actor_id,
                action_type=ActivityType.SUBSCRIPTION_EXTENDED,
                description=f"Subscription extended by {days} days. {reason or ''}".strip(),
                subscription_id=subscription.id,
                days=days,
                previous_end_date=previous_end,
                new_end_date=subscription.end_date,
                reason=reason,
            )

    logger.info("Extended subscription %s by %d days to %s", subscription_id, days, subscription.end_date)
    return subscription


async def expire_due_subscriptions(db: AsyncSession) -> int:
    """Expire every live subscription whose end date has passed. Returns how many changed."""
    now = clock.utcnow()
    result = await db.execute(
        select(Subscription.id).where(
            Subscription.status.in_(LIVE_SUBSCRIPTION_STATUSES),
            Subscription.end_date < now,
        )
    )
    ids = list(result.scalars().all())
    if not ids:
        return 0

    expired = 0
    async with entity_locks.hold(subscriptions=ids):
        async with unit_of_work(db) as effects:
            for subscription_id in ids:
                subscription = await load_subscription(db, subscription_id, for_update=True)
                if apply_lazy_expiry(subscription, effects, now):
                    expired += 1

    logger.info("Expiry sweep: %d subscriptions expired", expired)
    return expired
