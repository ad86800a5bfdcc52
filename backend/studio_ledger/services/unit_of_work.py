"""Transaction scope shared by every engine mutation.

``unit_of_work`` wraps one atomic change: the caller mutates rows through
the session and queues its side effects on the yielded ``PendingEffects``.
On success the queued audit entries are appended in a SAVEPOINT, the
transaction commits, and only then are notifications dispatched. On any
error the transaction is rolled back and nothing is emitted.
"""

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from studio_ledger.errors import StudioError, UnavailableError
from studio_ledger.services import activity_log, notification_service
from studio_ledger.services.activity_log import ActivityRecord
from studio_ledger.services.notification_service import NotificationEvent

logger = logging.getLogger(__name__)

_UNAVAILABLE = (OperationalError, InterfaceError, PoolTimeoutError)


@dataclass
class PendingEffects:
    """Audit entries and notifications produced by one unit of work."""

    activities: list[ActivityRecord] = field(default_factory=list)
    notifications: list[NotificationEvent] = field(default_factory=list)

    def record(
        self,
        *,
        client_id: uuid.UUID,
        action_type: str,
        description: str,
        actor_id: uuid.UUID | None = None,
        **metadata: Any,
    ) -> None:
        self.activities.append(
            ActivityRecord(
                client_id=client_id,
                action_type=action_type,
                description=description,
                actor_id=actor_id,
                metadata=metadata,
            )
        )

    def notify(self, event: NotificationEvent) -> None:
        self.notifications.append(event)


async def _rollback(db: AsyncSession) -> None:
    try:
        await db.rollback()
    except SQLAlchemyError:
        logger.exception("Rollback failed")


@asynccontextmanager
async def unit_of_work(db: AsyncSession) -> AsyncIterator[PendingEffects]:
    """Run the enclosed block as one transaction on ``db``.

    The block always runs in a fresh transaction: whatever the session had
    open (reads done before taking entity locks) is committed first, so the
    block sees the latest committed rows. Domain errors roll back and
    propagate unchanged. Connection-level failures roll back and surface as
    ``UnavailableError``.
    """
    effects = PendingEffects()
    try:
        if db.in_transaction():
            await db.commit()
        yield effects
        await db.flush()
        await activity_log.append_records(db, effects.activities)
        await db.commit()
    except StudioError:
        await _rollback(db)
        raise
    except _UNAVAILABLE as exc:
        logger.error("Data store unavailable, transaction rolled back: %s", exc)
        await _rollback(db)
        raise UnavailableError("The studio database is unavailable, please retry") from exc
    except Exception:
        await _rollback(db)
        raise

    for event in effects.notifications:
        notification_service.dispatch(event)
