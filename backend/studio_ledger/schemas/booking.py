"""Pydantic v2 request/response schemas for booking and waitlist endpoints."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class BookingCreate(BaseModel):
    """Schema for booking a class.

    Clients book for themselves and may leave ``client_id`` empty; staff
    must name the client. Without ``subscription_id`` the client's active
    subscription with the most classes left is charged.
    """

    class_id: uuid.UUID
    client_id: uuid.UUID | None = None
    subscription_id: uuid.UUID | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BookingResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    class_id: uuid.UUID
    subscription_id: uuid.UUID
    status: str
    cancelled_by: str | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WaitlistEntryResponse(BaseModel):
    id: uuid.UUID
    class_id: uuid.UUID
    client_id: uuid.UUID
    position: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingOutcomeResponse(BaseModel):
    """Result of a booking attempt: a seat, or a place in the queue."""

    outcome: Literal["confirmed", "waitlisted"]
    remaining_classes: int
    booking: BookingResponse | None = None
    waitlist_entry: WaitlistEntryResponse | None = None

    model_config = ConfigDict(from_attributes=True)


class CancellationResponse(BaseModel):
    booking: BookingResponse
    remaining_classes: int
    promoted: list[BookingResponse]

    model_config = ConfigDict(from_attributes=True)


class BookingListResponse(BaseModel):
    items: list[BookingResponse]
    total: int


class MessageResponse(BaseModel):
    message: str
