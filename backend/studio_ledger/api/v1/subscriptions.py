"""Subscriptions API router — plans, purchases, credits and lifecycle.

Clients can read their own subscriptions; every mutation is front-desk only.
"""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from studio_ledger.api.deps import ensure_self_or_staff, get_current_active_user, get_db, require_staff
from studio_ledger.models.subscription import Subscription
from studio_ledger.models.user import User
from studio_ledger.schemas.subscription import (
    CreditAdjustment,
    ExpireDueResponse,
    ExtendRequest,
    PauseRequest,
    PlanResponse,
    StatusChangeRequest,
    SubscriptionListResponse,
    SubscriptionPurchase,
    SubscriptionResponse,
    SubscriptionStatsResponse,
)
from studio_ledger.services import credit_ledger, subscription_service

router = APIRouter(prefix="/api/v1/subscriptions", tags=["subscriptions"])


# ---------------------------------------------------------------------------
# Plans, purchase, and collection routes
# ---------------------------------------------------------------------------


@router.get("/plans", response_model=list[PlanResponse], summary="List purchasable plans")
async def list_plans(
    include_inactive: bool = Query(False, description="Include retired plans"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> list:
    return await subscription_service.list_plans(db, include_inactive=include_inactive)


@router.post(
    "",
    response_model=SubscriptionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Sell a plan to a client",
)
async def purchase_subscription(
    body: SubscriptionPurchase,
    db: AsyncSession = Depends(get_db),
    staff: User = Depends(require_staff),
) -> Subscription:
    return await subscription_service.purchase_subscription(
        db,
        client_id=body.client_id,
        plan_id=body.plan_id,
        actor_id=staff.id,
        start_date=body.start_date,
    )


@router.post("/expire-due", response_model=ExpireDueResponse, summary="Expire subscriptions past their end date")
async def expire_due(
    db: AsyncSession = Depends(get_db),
    staff: User = Depends(require_staff),
) -> dict:
    expired = await subscription_service.expire_due_subscriptions(db)
    return {"expired": expired}


@router.get(
    "/client/{client_id}",
    response_model=SubscriptionListResponse,
    summary="List a client's subscriptions",
)
async def list_client_subscriptions(
    client_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> dict:
    ensure_self_or_staff(current_user, client_id)
    items = await subscription_service.list_client_subscriptions(db, client_id)
    return {"items": items, "total": len(items)}


@router.get(
    "/client/{client_id}/stats",
    response_model=SubscriptionStatsResponse,
    summary="Summarise a client's subscriptions",
)
async def client_subscription_stats(
    client_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> dict:
    ensure_self_or_staff(current_user, client_id)
    return await subscription_service.get_client_subscription_stats(db, client_id)


# ---------------------------------------------------------------------------
# Single subscription
# ---------------------------------------------------------------------------


@router.get("/{subscription_id}", response_model=SubscriptionResponse, summary="Get a subscription")
async def get_subscription(
    subscription_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Subscription:
    subscription = await subscription_service.get_subscription(db, subscription_id)
    ensure_self_or_staff(current_user, subscription.client_id)
    return subscription


@router.post(
    "/{subscription_id}/credits/add",
    response_model=SubscriptionResponse,
    summary="Add classes to a subscription",
)
async def add_credits(
    subscription_id: uuid.UUID,
    body: CreditAdjustment,
    db: AsyncSession = Depends(get_db),
    staff: User = Depends(require_staff),
) -> Subscription:
    return await credit_ledger.add_credits(db, subscription_id, body.count, actor_id=staff.id, reason=body.reason)


@router.post(
    "/{subscription_id}/credits/remove",
    response_model=SubscriptionResponse,
    summary="Remove classes from a subscription",
)
async def remove_credits(
    subscription_id: uuid.UUID,
    body: CreditAdjustment,
    db: AsyncSession = Depends(get_db),
    staff: User = Depends(require_staff),
) -> Subscription:
    return await credit_ledger.remove_credits(db, subscription_id, body.count, body.reason, actor_id=staff.id)


@router.post("/{subscription_id}/pause", response_model=SubscriptionResponse, summary="Pause a subscription")
async def pause_subscription(
    subscription_id: uuid.UUID,
    body: PauseRequest,
    db: AsyncSession = Depends(get_db),
    staff: User = Depends(require_staff),
) -> Subscription:
    return await subscription_service.pause_subscription(
        db, subscription_id, body.days, actor_id=staff.id, reason=body.reason
    )


@router.post("/{subscription_id}/resume", response_model=SubscriptionResponse, summary="Resume a paused subscription")
async def resume_subscription(
    subscription_id: uuid.UUID,
    body: StatusChangeRequest | None = None,
    db: AsyncSession = Depends(get_db),
    staff: User = Depends(require_staff),
) -> Subscription:
    reason = body.reason if body else None
    return await subscription_service.resume_subscription(db, subscription_id, actor_id=staff.id, reason=reason)


@router.post("/{subscription_id}/extend", response_model=SubscriptionResponse, summary="Extend a subscription")
async def extend_subscription(
    subscription_id: uuid.UUID,
    body: ExtendRequest,
    db: AsyncSession = Depends(get_db),
    staff: User = Depends(require_staff),
) -> Subscription:
    return await subscription_service.extend_subscription(
        db, subscription_id, body.days, actor_id=staff.id, reason=body.reason
    )


@router.post("/{subscription_id}/cancel", response_model=SubscriptionResponse, summary="Cancel with refund")
async def cancel_subscription(
    subscription_id: uuid.UUID,
    body: StatusChangeRequest | None = None,
    db: AsyncSession = Depends(get_db),
    staff: User = Depends(require_staff),
) -> Subscription:
    reason = body.reason if body else None
    return await subscription_service.cancel_subscription(db, subscription_id, actor_id=staff.id, reason=reason)


@router.post("/{subscription_id}/terminate", response_model=SubscriptionResponse, summary="Terminate without refund")
async def terminate_subscription(
    subscription_id: uuid.UUID,
    body: StatusChangeRequest | None = None,
    db: AsyncSession = Depends(get_db),
    staff: User = Depends(require_staff),
) -> Subscription:
    reason = body.reason if body else None
    return await subscription_service.terminate_subscription(db, subscription_id, actor_id=staff.id, reason=reason)
