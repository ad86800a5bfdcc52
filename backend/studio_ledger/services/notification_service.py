"""Notification service — hands client-facing events to the notification collaborator.

Delivery is fire-and-forget: events are sent from background tasks after
the owning transaction committed, and a failed delivery is logged, never
raised. Translation and push routing happen on the collaborator's side.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

import httpx
from fastapi.encoders import jsonable_encoder

from studio_ledger.config import settings
from studio_ledger.models.booking import Booking
from studio_ledger.models.studio_class import StudioClass

logger = logging.getLogger(__name__)

WAITLIST_PROMOTION = "waitlist_promotion"

# Strong references to in-flight deliveries so they are not garbage collected.
_pending_deliveries: set[asyncio.Task] = set()


@dataclass(frozen=True)
class NotificationEvent:
    type: str
    client_id: uuid.UUID
    payload: dict[str, Any] = field(default_factory=dict)

    def as_json(self) -> dict[str, Any]:
        return jsonable_encoder({"type": self.type, "client_id": self.client_id, **self.payload})


def waitlist_promotion_event(booking: Booking, studio_class: StudioClass) -> NotificationEvent:
    """Build the event sent when a waitlisted client is booked automatically."""
    return NotificationEvent(
        type=WAITLIST_PROMOTION,
        client_id=booking.client_id,
        payload={
            "class_id": booking.class_id,
            "booking_id": booking.id,
            "class_name": studio_class.name,
            "starts_at": studio_class.starts_at,
            "message": (
                f'A spot opened up in "{studio_class.name}" on '
                f"{studio_class.starts_at:%Y-%m-%d} at {studio_class.starts_at:%H:%M}. "
                "You are now booked automatically."
            ),
        },
    )


async def send_event(event: NotificationEvent) -> bool:
    """POST ``event`` to the configured webhook.

    Returns True when the collaborator accepted it. Raises ``httpx.HTTPError``
    on transport failures or non-2xx responses.
    """
    if not settings.notification_webhook_url:
        logger.info(
            "No notification webhook configured; %s for client %s not delivered",
            event.type,
            event.client_id,
        )
        return False

    async with httpx.AsyncClient(timeout=settings.notification_timeout_seconds) as client:
        response = await client.post(settings.notification_webhook_url, json=event.as_json())
        response.raise_for_status()

    logger.info("Delivered %s notification to client %s", event.type, event.client_id)
    return True


async def _deliver(event: NotificationEvent) -> None:
    try:
        await send_event(event)
    except httpx.HTTPError:
        logger.exception("Failed to deliver %s notification to client %s", event.type, event.client_id)


def dispatch(event: NotificationEvent) -> asyncio.Task:
    """Schedule delivery of ``event`` on the running loop and return the task."""
    task = asyncio.create_task(_deliver(event))
    _pending_deliveries.add(task)
    task.add_done_callback(_pending_deliveries.discard)
    return task


async def wait_for_pending() -> None:
    """Wait for every scheduled delivery to finish (used on shutdown and in tests)."""
    if _pending_deliveries:
        await asyncio.gather(*list(_pending_deliveries), return_exceptions=True)
