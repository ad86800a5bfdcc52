"""Seed the database with a small pilates studio: plans, staff, clients, and a week of classes.

Wipes every studio table first, so it can be re-run freely. Prints an access
token per seeded user for trying the API by hand.

Run from the backend directory:
    python -m scripts.seed_data
"""

import asyncio
import sys
from datetime import datetime, time, timedelta
from decimal import Decimal
from pathlib import Path

# Add backend to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import delete

from studio_ledger import clock
from studio_ledger.auth.jwt import create_access_token
from studio_ledger.database import Base, async_session_factory, engine
from studio_ledger.models import (
    ActivityLogEntry,
    Booking,
    StudioClass,
    Subscription,
    SubscriptionPlan,
    User,
    WaitlistEntry,
)
from studio_ledger.services import booking_service, class_service, subscription_service
from studio_ledger.states import UserRole

# ---------------------------------------------------------------------------
# Seed data definitions
# ---------------------------------------------------------------------------

PLANS = [
    {"name": "4 Classes / Month", "monthly_classes": 4, "monthly_price": Decimal("60.00")},
    {"name": "8 Classes / Month", "monthly_classes": 8, "monthly_price": Decimal("110.00")},
    {"name": "12 Classes / Month", "monthly_classes": 12, "monthly_price": Decimal("150.00")},
    {"name": "Personal Training x5", "monthly_classes": 5, "monthly_price": Decimal("250.00"), "category": "personal"},
]

STAFF = [
    {"email": "admin@studio.test", "name": "Studio Admin", "role": UserRole.ADMIN},
    {"email": "desk@studio.test", "name": "Front Desk", "role": UserRole.RECEPTION},
    {"email": "maria@studio.test", "name": "Maria Instructor", "role": UserRole.INSTRUCTOR},
    {"email": "jonas@studio.test", "name": "Jonas Instructor", "role": UserRole.INSTRUCTOR},
]

CLIENTS = [
    {"email": "ana@example.com", "name": "Ana Petrova", "phone": "+359888000001"},
    {"email": "ben@example.com", "name": "Ben Howard", "phone": "+359888000002"},
    {"email": "chloe@example.com", "name": "Chloe Martin", "phone": "+359888000003"},
    {"email": "dev@example.com", "name": "Dev Patel", "phone": None},
]

# (name, hour, capacity) repeated every day for the coming week
DAILY_CLASSES = [
    ("Mat Pilates", 8, 10),
    ("Reformer Basics", 12, 4),
    ("Reformer Flow", 18, 6),
]


async def seed() -> None:
    """Populate the database with sample studio data."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as session:
        for model in (ActivityLogEntry, WaitlistEntry, Booking, Subscription, StudioClass, SubscriptionPlan, User):
            await session.execute(delete(model))
        await session.commit()

        # ------------------------------------------------------------------
        # 1. Plans and people
        # ------------------------------------------------------------------
        plans = [SubscriptionPlan(**plan_data) for plan_data in PLANS]
        staff = [User(**user_data) for user_data in STAFF]
        clients = [User(role=UserRole.CLIENT, **user_data) for user_data in CLIENTS]
        session.add_all([*plans, *staff, *clients])
        await session.commit()

        for plan in plans:
            print(f"   📋 {plan.name} — {plan.monthly_classes} classes, ${plan.monthly_price}")
        for user in [*staff, *clients]:
            token = create_access_token({"sub": str(user.id)}, expires_delta=timedelta(days=7))
            print(f"   👤 {user.role:<10} {user.email:<22} {token}")

        desk = staff[1]
        instructors = [user for user in staff if user.role == UserRole.INSTRUCTOR]

        # ------------------------------------------------------------------
        # 2. Subscriptions (sold at the front desk)
        # ------------------------------------------------------------------
        for index, client in enumerate(clients):
            plan = plans[index % 3]
            subscription = await subscription_service.purchase_subscription(
                session, client_id=client.id, plan_id=plan.id, actor_id=desk.id
            )
            print(f"   🎟️  {client.name}: {plan.name} ({subscription.remaining_classes} classes)")

        # ------------------------------------------------------------------
        # 3. A week of classes
        # ------------------------------------------------------------------
        tomorrow = clock.utcnow().date() + timedelta(days=1)
        created_classes: list[StudioClass] = []
        for day in range(7):
            for slot, (name, hour, capacity) in enumerate(DAILY_CLASSES):
                studio_class = await class_service.create_class(
                    session,
                    name=name,
                    instructor_id=instructors[(day + slot) % len(instructors)].id,
                    starts_at=datetime.combine(tomorrow + timedelta(days=day), time(hour)),
                    capacity=capacity,
                )
                created_classes.append(studio_class)
        print(f"   🗓️  Scheduled {len(created_classes)} classes")

        # ------------------------------------------------------------------
        # 4. Fill the first reformer class so its waitlist has someone on it
        # ------------------------------------------------------------------
        reformer = next(c for c in created_classes if c.name == "Reformer Basics")
        for client in clients:
            outcome = await booking_service.book_class(
                session, client_id=client.id, class_id=reformer.id, actor_id=desk.id
            )
            print(f"   🧘 {client.name} → {reformer.name}: {outcome.outcome}")

    await engine.dispose()
    print("\n🎉 Seed complete!")


if __name__ == "__main__":
    asyncio.run(seed())
