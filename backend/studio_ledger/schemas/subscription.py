"""Pydantic v2 request/response schemas for subscription endpoints."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class SubscriptionPurchase(BaseModel):
    """Schema for selling a plan to a client at the front desk."""

    client_id: uuid.UUID
    plan_id: uuid.UUID
    start_date: datetime | None = None


class CreditAdjustment(BaseModel):
    """Schema for adding or removing classes by hand."""

    count: int = Field(..., ge=1, le=100)
    reason: str | None = Field(None, max_length=500)


class PauseRequest(BaseModel):
    days: int = Field(..., ge=1)
    reason: str | None = Field(None, max_length=500)


class ExtendRequest(BaseModel):
    days: int = Field(..., ge=1)
    reason: str | None = Field(None, max_length=500)


class StatusChangeRequest(BaseModel):
    """Body for resume / cancel / terminate."""

    reason: str | None = Field(None, max_length=500)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class PlanResponse(BaseModel):
    id: uuid.UUID
    name: str
    monthly_classes: int
    duration_days: int
    monthly_price: Decimal
    category: str
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class SubscriptionResponse(BaseModel):
    """Standard subscription response."""

    id: uuid.UUID
    client_id: uuid.UUID
    plan_id: uuid.UUID
    status: str
    remaining_classes: int
    start_date: datetime
    end_date: datetime
    paused_until: datetime | None = None
    status_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SubscriptionListResponse(BaseModel):
    items: list[SubscriptionResponse]
    total: int


class SubscriptionStatsResponse(BaseModel):
    """Front-desk summary of a client's subscriptions."""

    client_id: uuid.UUID
    total_subscriptions: int
    by_status: dict[str, int]
    total_spent: Decimal
    remaining_classes: int
    current_subscription_id: uuid.UUID | None = None


class ExpireDueResponse(BaseModel):
    expired: int
