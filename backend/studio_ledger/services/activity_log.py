"""Activity log service — the audit emitter and its read side.

Writes are best-effort: a failure to store an entry is logged (with the
entry's content, so nothing is lost from the operator's view) and never
raised into the business operation that produced it.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from studio_ledger.database import utc_timestamp
from studio_ledger.models.activity_log import ActivityLogEntry

logger = logging.getLogger(__name__)


@dataclass
class ActivityRecord:
    """An audit entry waiting to be written."""

    client_id: uuid.UUID
    action_type: str
    description: str
    actor_id: uuid.UUID | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_timestamp)

    def to_model(self) -> ActivityLogEntry:
        return ActivityLogEntry(
            client_id=self.client_id,
            actor_id=self.actor_id,
            action_type=str(self.action_type),
            description=self.description,
            metadata_=jsonable_encoder(self.metadata) if self.metadata else None,
            created_at=self.created_at,
        )


def _log_locally(records: list[ActivityRecord]) -> None:
    for record in records:
        logger.warning(
            "Unstored activity: client=%s actor=%s type=%s at=%s: %s %s",
            record.client_id,
            record.actor_id,
            record.action_type,
            record.created_at.isoformat(),
            record.description,
            record.metadata,
        )


async def append_records(db: AsyncSession, records: list[ActivityRecord]) -> int:
    """Append ``records`` inside a SAVEPOINT of the caller's transaction.

    Returns the number of entries written; 0 when the store rejected them,
    in which case only the savepoint is rolled back.
    """
    if not records:
        return 0
    try:
        async with db.begin_nested():
            db.add_all([record.to_model() for record in records])
    except SQLAlchemyError:
        logger.exception("Failed to append %d activity entries; continuing without them", len(records))
        _log_locally(records)
        return 0
    return len(records)


async def record_activity(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    action_type: str,
    description: str,
    actor_id: uuid.UUID | None = None,
    metadata: dict[str, Any] | None = None,
) -> bool:
    """Record a single entry in its own transaction. Always returns, never raises."""
    record = ActivityRecord(
        client_id=client_id,
        action_type=action_type,
        description=description,
        actor_id=actor_id,
        metadata=metadata or {},
    )
    written = await append_records(db, [record])
    if not written:
        return False
    try:
        await db.commit()
    except SQLAlchemyError:
        logger.exception("Failed to commit activity entry for client %s", client_id)
        _log_locally([record])
        await db.rollback()
        return False
    return True


async def list_client_activity(
    db: AsyncSession,
    client_id: uuid.UUID,
    *,
    action_type: str | None = None,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[ActivityLogEntry], int]:
    """Return one page of a client's activity, newest first, plus the total count."""
    base_query = select(ActivityLogEntry).where(ActivityLogEntry.client_id == client_id)
    count_query = select(func.count()).select_from(ActivityLogEntry).where(ActivityLogEntry.client_id == client_id)
    if action_type is not None:
        base_query = base_query.where(ActivityLogEntry.action_type == action_type)
        count_query = count_query.where(ActivityLogEntry.action_type == action_type)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(
        base_query.order_by(ActivityLogEntry.created_at.desc(), ActivityLogEntry.id.desc()).offset(skip).limit(limit)
    )
    return list(result.scalars().all()), total


async def list_recent_activity(db: AsyncSession, *, limit: int = 50) -> list[ActivityLogEntry]:
    """Return the most recent entries across all clients."""
    result = await db.execute(
        select(ActivityLogEntry)
        .order_by(ActivityLogEntry.created_at.desc(), ActivityLogEntry.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
