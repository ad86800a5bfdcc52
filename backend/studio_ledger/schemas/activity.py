"""Pydantic v2 response schemas for the activity log."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ActivityLogResponse(BaseModel):
    id: int
    client_id: uuid.UUID
    actor_id: uuid.UUID | None = None
    action_type: str
    description: str
    metadata: dict[str, Any] | None = Field(None, validation_alias="metadata_")
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ActivityListResponse(BaseModel):
    items: list[ActivityLogResponse]
    total: int


class ActivityTypesResponse(BaseModel):
    action_types: list[str]
