"""Shared constants and stand-ins for the test suite."""

import uuid
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from studio_ledger.models.booking import Booking
from studio_ledger.states import SEAT_HOLDING_STATUSES

NOW = datetime(2026, 3, 2, 9, 0, 0)


class TickingClock:
    """Stand-in for ``clock.utcnow`` that tests can move forward."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(microseconds=1)
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


async def count_seat_holders(db: AsyncSession, class_id: uuid.UUID) -> int:
    """Bookings of a class that currently hold a seat."""
    result = await db.execute(
        select(func.count())
        .select_from(Booking)
        .where(Booking.class_id == class_id, Booking.status.in_(SEAT_HOLDING_STATUSES))
    )
    return result.scalar_one()
