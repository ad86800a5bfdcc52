"""Classes API router — scheduling, rosters, and the waitlist queue."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from studio_ledger.api.deps import get_current_active_user, get_db, is_staff, require_staff
from studio_ledger.models.studio_class import StudioClass
from studio_ledger.models.user import User
from studio_ledger.schemas.studio_class import (
    AttendeeListResponse,
    ClassCreate,
    ClassResponse,
    PromotionResponse,
    WaitlistResponse,
)
from studio_ledger.services import class_service, waitlist_service

router = APIRouter(prefix="/api/v1/classes", tags=["classes"])


async def _get_class_for_staff_or_instructor(
    class_id: uuid.UUID,
    current_user: User,
    db: AsyncSession,
) -> StudioClass:
    studio_class = await class_service.get_class(db, class_id)
    if is_staff(current_user) or studio_class.instructor_id == current_user.id:
        return studio_class
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Only reception or the class instructor can view this",
    )


@router.post(
    "",
    response_model=ClassResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule a class",
)
async def create_class(
    body: ClassCreate,
    db: AsyncSession = Depends(get_db),
    staff: User = Depends(require_staff),
) -> StudioClass:
    return await class_service.create_class(db, **body.model_dump())


@router.get("/{class_id}", response_model=ClassResponse, summary="Get a class")
async def get_class(
    class_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> StudioClass:
    return await class_service.get_class(db, class_id)


@router.get("/{class_id}/attendees", response_model=AttendeeListResponse, summary="List booked clients")
async def list_attendees(
    class_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> dict:
    await _get_class_for_staff_or_instructor(class_id, current_user, db)
    rows = await class_service.list_attendees(db, class_id)
    items = [
        {
            "booking_id": booking.id,
            "client_id": client.id,
            "name": client.name,
            "email": client.email,
            "phone": client.phone,
            "status": booking.status,
        }
        for booking, client in rows
    ]
    return {"class_id": class_id, "items": items, "total": len(items)}


@router.get("/{class_id}/waitlist", response_model=WaitlistResponse, summary="Show the waitlist queue")
async def list_waitlist(
    class_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> dict:
    await _get_class_for_staff_or_instructor(class_id, current_user, db)
    items = await waitlist_service.list_waitlist(db, class_id)
    return {"class_id": class_id, "items": items, "total": len(items)}


@router.post(
    "/{class_id}/waitlist/promote",
    response_model=PromotionResponse,
    summary="Fill free seats from the waitlist",
)
async def promote_waitlist(
    class_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    staff: User = Depends(require_staff),
) -> dict:
    promoted = await waitlist_service.promote_from_waitlist(db, class_id)
    return {"class_id": class_id, "promoted": promoted}
