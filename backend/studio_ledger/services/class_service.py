"""Class service — class lookup, creation and the seat counter.

``claim_seat`` and ``release_seat`` are the only writers of
``StudioClass.enrolled_count``. Both are conditional UPDATE statements, so
the count stays within ``0..capacity`` even without the class lock; the
callers hold it anyway to keep booking rows and the counter in step.
"""

import logging
import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from studio_ledger.errors import ClassNotFoundError, InvalidInputError
from studio_ledger.models.booking import Booking
from studio_ledger.models.studio_class import StudioClass
from studio_ledger.models.user import User
from studio_ledger.services.unit_of_work import unit_of_work
from studio_ledger.states import SEAT_HOLDING_STATUSES, BookingStatus, ClassStatus, UserRole

logger = logging.getLogger(__name__)


async def get_class(
    db: AsyncSession,
    class_id: uuid.UUID,
    *,
    for_update: bool = False,
    include_cancelled: bool = True,
) -> StudioClass:
    stmt = select(StudioClass).where(StudioClass.id == class_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    studio_class = result.scalar_one_or_none()
    if studio_class is None or (not include_cancelled and studio_class.status == ClassStatus.CANCELLED):
        raise ClassNotFoundError(class_id)
    return studio_class


async def create_class(
    db: AsyncSession,
    *,
    name: str,
    instructor_id: uuid.UUID,
    starts_at: datetime,
    capacity: int,
    duration_minutes: int = 50,
) -> StudioClass:
    """Schedule a class taught by ``instructor_id``."""
    if capacity <= 0:
        raise InvalidInputError("Capacity must be a positive integer", field="capacity")
    if duration_minutes <= 0:
        raise InvalidInputError("Duration must be a positive number of minutes", field="duration_minutes")

    async with unit_of_work(db):
        result = await db.execute(
            select(User).where(User.id == instructor_id, User.role == UserRole.INSTRUCTOR)
        )
        if result.scalar_one_or_none() is None:
            raise InvalidInputError(f"User {instructor_id} is not an instructor", field="instructor_id")

        studio_class = StudioClass(
            name=name,
            instructor_id=instructor_id,
            starts_at=starts_at,
            duration_minutes=duration_minutes,
            capacity=capacity,
            enrolled_count=0,
            status=ClassStatus.SCHEDULED,
        )
        db.add(studio_class)

    logger.info("Scheduled class %s (%s) at %s, capacity %d", studio_class.id, name, starts_at, capacity)
    return studio_class


async def claim_seat(db: AsyncSession, studio_class: StudioClass) -> bool:
    """Take one seat if any is left. Returns False when the class is full."""
    result = await db.execute(
        update(StudioClass)
        .where(StudioClass.id == studio_class.id, StudioClass.enrolled_count < StudioClass.capacity)
        .values(enrolled_count=StudioClass.enrolled_count + 1)
        .returning(StudioClass.enrolled_count)
        .execution_options(synchronize_session=False)
    )
    enrolled = result.scalar_one_or_none()
    if enrolled is None:
        return False
    set_committed_value(studio_class, "enrolled_count", enrolled)
    return True


async def release_seat(db: AsyncSession, studio_class: StudioClass) -> int:
    """Give one seat back and return the new enrolled count."""
    result = await db.execute(
        update(StudioClass)
        .where(StudioClass.id == studio_class.id, StudioClass.enrolled_count > 0)
        .values(enrolled_count=StudioClass.enrolled_count - 1)
        .returning(StudioClass.enrolled_count)
        .execution_options(synchronize_session=False)
    )
    enrolled = result.scalar_one_or_none()
    if enrolled is None:
        raise RuntimeError(f"Class {studio_class.id} has no enrolled seat to release")
    set_committed_value(studio_class, "enrolled_count", enrolled)
    return enrolled


async def find_live_booking(db: AsyncSession, client_id: uuid.UUID, class_id: uuid.UUID) -> Booking | None:
    """The client's non-cancelled booking for the class, if any."""
    result = await db.execute(
        select(Booking).where(
            Booking.client_id == client_id,
            Booking.class_id == class_id,
            Booking.status != BookingStatus.CANCELLED,
        )
    )
    return result.scalar_one_or_none()


async def list_attendees(db: AsyncSession, class_id: uuid.UUID) -> list[tuple[Booking, User]]:
    """Seat-holding bookings of a class with their clients, in booking order."""
    await get_class(db, class_id)
    result = await db.execute(
        select(Booking, User)
        .join(User, Booking.client_id == User.id)
        .where(
            Booking.class_id == class_id,
            Booking.status.in_(SEAT_HOLDING_STATUSES),
        )
        .order_by(Booking.created_at)
    )
    return [(booking, user) for booking, user in result.all()]
