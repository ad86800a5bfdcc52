"""Activity log API router — read-only audit trail."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from studio_ledger.api.deps import ensure_self_or_staff, get_current_active_user, get_db, require_staff
from studio_ledger.models.user import User
from studio_ledger.schemas.activity import ActivityListResponse, ActivityLogResponse, ActivityTypesResponse
from studio_ledger.services import activity_log
from studio_ledger.states import ActivityType

router = APIRouter(prefix="/api/v1/activity", tags=["activity"])


@router.get("/types", response_model=ActivityTypesResponse, summary="List activity action types")
async def list_action_types(
    current_user: User = Depends(get_current_active_user),
) -> dict:
    return {"action_types": [action.value for action in ActivityType]}


@router.get("/client/{client_id}", response_model=ActivityListResponse, summary="A client's activity")
async def client_activity(
    client_id: uuid.UUID,
    action_type: ActivityType | None = Query(None, description="Filter by action type"),
    skip: int = Query(0, ge=0, description="Pagination offset"),
    limit: int = Query(50, ge=1, le=200, description="Pagination limit"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> dict:
    """Return a client's activity, newest first."""
    ensure_self_or_staff(current_user, client_id)
    items, total = await activity_log.list_client_activity(
        db, client_id, action_type=action_type, skip=skip, limit=limit
    )
    return {"items": items, "total": total}


@router.get("/recent", response_model=list[ActivityLogResponse], summary="Latest activity across clients")
async def recent_activity(
    limit: int = Query(50, ge=1, le=200, description="How many entries to return"),
    db: AsyncSession = Depends(get_db),
    staff: User = Depends(require_staff),
) -> list:
    return await activity_log.list_recent_activity(db, limit=limit)
