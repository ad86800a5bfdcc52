"""Tests for class scheduling and the seat counter."""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from studio_ledger.errors import ClassNotFoundError, InvalidInputError
from studio_ledger.services import booking_service, class_service
from studio_ledger.states import BookingStatus, ClassStatus, UserRole
from tests.helpers import NOW


class TestCreateClass:
    async def test_schedules_empty_class(self, db_session: AsyncSession, instructor):
        studio_class = await class_service.create_class(
            db_session,
            name="Reformer Basics",
            instructor_id=instructor.id,
            starts_at=NOW + timedelta(days=2),
            capacity=6,
        )

        assert studio_class.status == ClassStatus.SCHEDULED
        assert studio_class.enrolled_count == 0
        assert studio_class.spots_left == 6
        assert studio_class.duration_minutes == 50

    @pytest.mark.parametrize(("capacity", "duration"), [(0, 50), (-3, 50), (6, 0)])
    async def test_rejects_non_positive_sizes(self, db_session: AsyncSession, instructor, capacity, duration):
        with pytest.raises(InvalidInputError):
            await class_service.create_class(
                db_session,
                name="Mat",
                instructor_id=instructor.id,
                starts_at=NOW + timedelta(days=1),
                capacity=capacity,
                duration_minutes=duration,
            )

    async def test_instructor_must_be_an_instructor(self, db_session: AsyncSession, client_user):
        with pytest.raises(InvalidInputError) as exc_info:
            await class_service.create_class(
                db_session,
                name="Mat",
                instructor_id=client_user.id,
                starts_at=NOW + timedelta(days=1),
                capacity=6,
            )
        assert exc_info.value.field == "instructor_id"


class TestSeatCounter:
    async def test_claim_stops_at_capacity(self, db_session: AsyncSession, make_class):
        studio_class = await make_class(capacity=2)

        assert await class_service.claim_seat(db_session, studio_class) is True
        assert await class_service.claim_seat(db_session, studio_class) is True
        assert await class_service.claim_seat(db_session, studio_class) is False
        assert studio_class.enrolled_count == 2
        await db_session.rollback()

    async def test_release_never_goes_below_zero(self, db_session: AsyncSession, make_class):
        studio_class = await make_class(capacity=2)
        with pytest.raises(RuntimeError):
            await class_service.release_seat(db_session, studio_class)
        await db_session.rollback()


class TestRoster:
    async def test_lists_seat_holders_in_booking_order(
        self, db_session: AsyncSession, make_user, make_subscription, make_class
    ):
        studio_class = await make_class(capacity=5)
        clients = []
        for name in ("Ana", "Boris", "Cvetka"):
            client = await make_user(UserRole.CLIENT, name=name)
            subscription = await make_subscription(client)
            outcome = await booking_service.book_class(
                db_session, client_id=client.id, class_id=studio_class.id, subscription_id=subscription.id
            )
            clients.append((client, outcome.booking))
        await booking_service.mark_attended(db_session, clients[0][1].id)
        await booking_service.mark_no_show(db_session, clients[1][1].id)

        roster = await class_service.list_attendees(db_session, studio_class.id)

        assert [(user.name, booking.status) for booking, user in roster] == [
            ("Ana", BookingStatus.ATTENDED),
            ("Cvetka", BookingStatus.CONFIRMED),
        ]

    async def test_unknown_class(self, db_session: AsyncSession):
        with pytest.raises(ClassNotFoundError):
            await class_service.list_attendees(db_session, uuid.uuid4())
