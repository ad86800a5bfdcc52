"""Pydantic v2 request/response schemas for class endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from studio_ledger.schemas.booking import BookingResponse, WaitlistEntryResponse


class ClassCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    instructor_id: uuid.UUID
    starts_at: datetime
    duration_minutes: int = Field(50, ge=1, le=480)
    capacity: int = Field(..., ge=1, le=500)


class ClassResponse(BaseModel):
    id: uuid.UUID
    name: str
    instructor_id: uuid.UUID
    starts_at: datetime
    duration_minutes: int
    capacity: int
    enrolled_count: int
    spots_left: int
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AttendeeResponse(BaseModel):
    booking_id: uuid.UUID
    client_id: uuid.UUID
    name: str
    email: str
    phone: str | None = None
    status: str


class AttendeeListResponse(BaseModel):
    class_id: uuid.UUID
    items: list[AttendeeResponse]
    total: int


class WaitlistResponse(BaseModel):
    class_id: uuid.UUID
    items: list[WaitlistEntryResponse]
    total: int


class PromotionResponse(BaseModel):
    class_id: uuid.UUID
    promoted: list[BookingResponse]
