"""Bookings API router — book, cancel, check in, and the waitlist.

Access rule: clients act on their own bookings, instructors on bookings of
the classes they teach, reception and admins on everything. Clients are
held to the cancellation cutoff; staff are not.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from studio_ledger.api.deps import cancelled_by_for, get_current_active_user, get_db, is_staff
from studio_ledger.models.booking import Booking
from studio_ledger.models.user import User
from studio_ledger.schemas.booking import (
    BookingCreate,
    BookingListResponse,
    BookingOutcomeResponse,
    BookingResponse,
    CancellationResponse,
    MessageResponse,
)
from studio_ledger.services import booking_service, class_service, waitlist_service
from studio_ledger.states import UserRole

router = APIRouter(prefix="/api/v1/bookings", tags=["bookings"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _forbidden(detail: str = "Not allowed to access this booking") -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


async def _teaches(db: AsyncSession, user: User, class_id: uuid.UUID) -> bool:
    if user.role != UserRole.INSTRUCTOR:
        return False
    studio_class = await class_service.get_class(db, class_id)
    return studio_class.instructor_id == user.id


async def _get_booking_with_access(
    booking_id: uuid.UUID,
    current_user: User,
    db: AsyncSession,
    *,
    allow_client: bool = True,
) -> Booking:
    """Fetch a booking and verify the user may act on it.

    Raises ``HTTPException 403`` when the booking belongs to someone else.
    """
    booking = await booking_service.get_booking(db, booking_id)
    if is_staff(current_user):
        return booking
    if allow_client and current_user.role == UserRole.CLIENT and booking.client_id == current_user.id:
        return booking
    if await _teaches(db, current_user, booking.class_id):
        return booking
    raise _forbidden()


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=BookingOutcomeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book a class (or join its waitlist when full)",
)
async def create_booking(
    body: BookingCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> BookingOutcomeResponse:
    """Book a seat, charging one class from the client's subscription.

    When the class is full the client is added to the waitlist instead and
    nothing is charged; the response ``outcome`` tells which happened.
    """
    if current_user.role == UserRole.CLIENT:
        if body.client_id not in (None, current_user.id):
            raise _forbidden("Clients can only book for themselves")
        client_id = current_user.id
    elif is_staff(current_user) or await _teaches(db, current_user, body.class_id):
        if body.client_id is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="client_id is required when booking on behalf of a client",
            )
        client_id = body.client_id
    else:
        raise _forbidden("Instructors can only book clients into their own classes")

    outcome = await booking_service.book_class(
        db,
        client_id=client_id,
        class_id=body.class_id,
        subscription_id=body.subscription_id,
        actor_id=current_user.id,
    )
    return BookingOutcomeResponse.model_validate(outcome)


@router.get("", response_model=BookingListResponse, summary="List bookings")
async def list_bookings(
    client_id: uuid.UUID | None = Query(None, description="Filter by client"),
    class_id: uuid.UUID | None = Query(None, description="Filter by class"),
    status_filter: str | None = Query(None, alias="status", description="Filter by booking status"),
    skip: int = Query(0, ge=0, description="Pagination offset"),
    limit: int = Query(20, ge=1, le=100, description="Pagination limit"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> dict:
    """Return a paginated list of bookings the user is allowed to see."""
    if current_user.role == UserRole.CLIENT:
        client_id = current_user.id
    elif not is_staff(current_user):
        if class_id is None or not await _teaches(db, current_user, class_id):
            raise _forbidden("Instructors can only list bookings of their own classes")

    items, total = await booking_service.list_bookings(
        db,
        client_id=client_id,
        class_id=class_id,
        status=status_filter,
        skip=skip,
        limit=limit,
    )
    return {"items": items, "total": total}


@router.get("/{booking_id}", response_model=BookingResponse, summary="Get a booking")
async def get_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Booking:
    return await _get_booking_with_access(booking_id, current_user, db)


@router.post("/{booking_id}/cancel", response_model=CancellationResponse, summary="Cancel a booking")
async def cancel_booking(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> CancellationResponse:
    """Cancel a confirmed booking and return its class to the subscription.

    Clients cannot cancel inside the cutoff window before the class starts.
    The freed seat is offered to the waitlist straight away.
    """
    await _get_booking_with_access(booking_id, current_user, db)
    result = await booking_service.cancel_booking(
        db,
        booking_id,
        cancelled_by=cancelled_by_for(current_user),
        actor_id=current_user.id,
        enforce_cutoff=current_user.role == UserRole.CLIENT,
    )
    return CancellationResponse.model_validate(result)


@router.post("/{booking_id}/attend", response_model=BookingResponse, summary="Check a client in")
async def mark_attended(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Booking:
    await _get_booking_with_access(booking_id, current_user, db, allow_client=False)
    return await booking_service.mark_attended(db, booking_id, actor_id=current_user.id)


@router.post("/{booking_id}/no-show", response_model=BookingResponse, summary="Mark a client as no-show")
async def mark_no_show(
    booking_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Booking:
    await _get_booking_with_access(booking_id, current_user, db, allow_client=False)
    return await booking_service.mark_no_show(db, booking_id, actor_id=current_user.id)


@router.delete(
    "/waitlist/{entry_id}",
    response_model=MessageResponse,
    summary="Leave a class waitlist",
)
async def leave_waitlist(
    entry_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> dict:
    entry = await waitlist_service.get_entry(db, entry_id)
    if not is_staff(current_user) and entry.client_id != current_user.id:
        raise _forbidden("You can only leave your own waitlist entries")
    await waitlist_service.withdraw_from_waitlist(db, entry_id, actor_id=current_user.id)
    return {"message": "Removed from the waitlist"}
