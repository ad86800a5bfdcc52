"""Domain exceptions raised by the engine services.

Services raise these; the API layer maps them to HTTP responses in
``studio_ledger.api.errors``. Nothing here knows about HTTP.
"""

from __future__ import annotations

import uuid
from typing import Any


class StudioError(Exception):
    """Base exception for all engine errors."""

    code = "studio_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class InvalidInputError(StudioError):
    """Input shape or range is wrong; nothing was changed."""

    code = "invalid_input"

    def __init__(self, message: str, field: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details)
        self.field = field


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFoundError(StudioError):
    """A referenced record does not exist."""

    code = "not_found"
    resource_type = "Resource"

    def __init__(self, identifier: uuid.UUID | str, details: dict[str, Any] | None = None) -> None:
        super().__init__(f"{self.resource_type} {identifier} not found", details)
        self.identifier = identifier


class ClassNotFoundError(NotFoundError):
    code = "class_not_found"
    resource_type = "Class"


class SubscriptionNotFoundError(NotFoundError):
    code = "subscription_not_found"
    resource_type = "Subscription"


class BookingNotFoundError(NotFoundError):
    code = "booking_not_found"
    resource_type = "Booking"


class WaitlistEntryNotFoundError(NotFoundError):
    code = "waitlist_entry_not_found"
    resource_type = "Waitlist entry"


class PlanNotFoundError(NotFoundError):
    code = "plan_not_found"
    resource_type = "Plan"


class ClientNotFoundError(NotFoundError):
    code = "client_not_found"
    resource_type = "Client"


# ---------------------------------------------------------------------------
# Business rules
# ---------------------------------------------------------------------------


class BusinessRuleError(StudioError):
    """The request is well formed but the current state forbids it."""

    code = "business_rule_violation"


class InsufficientCreditsError(BusinessRuleError):
    code = "insufficient_credits"

    def __init__(self, subscription_id: uuid.UUID, available: int, requested: int = 1) -> None:
        super().__init__(
            f"Subscription {subscription_id} has {available} classes remaining, {requested} required",
            {"subscription_id": str(subscription_id), "available": available, "requested": requested},
        )


class DuplicateBookingError(BusinessRuleError):
    code = "duplicate_booking"


class SubscriptionInactiveError(BusinessRuleError):
    code = "subscription_inactive"

    def __init__(self, subscription_id: uuid.UUID | None, status: str | None) -> None:
        if subscription_id is None:
            super().__init__("Client has no active subscription", {})
            return
        super().__init__(
            f"Subscription {subscription_id} is {status}; only active subscriptions can be booked against",
            {"subscription_id": str(subscription_id), "status": status},
        )


class InvalidStateTransitionError(BusinessRuleError):
    code = "invalid_state_transition"

    def __init__(self, entity: str, current: str, action: str) -> None:
        super().__init__(
            f"Cannot {action} a {current} {entity}",
            {"entity": entity, "current": current, "action": action},
        )


class SubscriptionConflictError(BusinessRuleError):
    code = "subscription_conflict"


class CancellationWindowClosedError(BusinessRuleError):
    code = "cancellation_window_closed"


# ---------------------------------------------------------------------------
# Data store
# ---------------------------------------------------------------------------


class UnavailableError(StudioError):
    """The data store could not be reached; the operation was not applied."""

    code = "unavailable"
