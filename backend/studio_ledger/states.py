"""Status vocabularies and the transition tables for subscriptions and bookings.

The tables are the only place that decides whether a status change is
allowed. Services look the transition up, apply the side effects that
belong to it, and never compare status strings ad hoc.
"""

from datetime import datetime
from enum import StrEnum

from studio_ledger.errors import InvalidStateTransitionError


class UserRole(StrEnum):
    CLIENT = "client"
    INSTRUCTOR = "instructor"
    RECEPTION = "reception"
    ADMIN = "admin"


STAFF_ROLES = frozenset({UserRole.RECEPTION, UserRole.ADMIN})


class ClassStatus(StrEnum):
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


class SubscriptionStatus(StrEnum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    TERMINATED = "terminated"
    EXPIRED = "expired"


class SubscriptionEvent(StrEnum):
    PAUSE = "pause"
    RESUME = "resume"
    CANCEL = "cancel"
    TERMINATE = "terminate"
    EXPIRE = "expire"


LIVE_SUBSCRIPTION_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.PAUSED})
TERMINAL_SUBSCRIPTION_STATUSES = frozenset(
    {SubscriptionStatus.CANCELLED, SubscriptionStatus.TERMINATED, SubscriptionStatus.EXPIRED}
)

# (current, event) -> new status
SUBSCRIPTION_TRANSITIONS: dict[tuple[SubscriptionStatus, SubscriptionEvent], SubscriptionStatus] = {
    (SubscriptionStatus.ACTIVE, SubscriptionEvent.PAUSE): SubscriptionStatus.PAUSED,
    (SubscriptionStatus.PAUSED, SubscriptionEvent.RESUME): SubscriptionStatus.ACTIVE,
    (SubscriptionStatus.ACTIVE, SubscriptionEvent.CANCEL): SubscriptionStatus.CANCELLED,
    (SubscriptionStatus.PAUSED, SubscriptionEvent.CANCEL): SubscriptionStatus.CANCELLED,
    (SubscriptionStatus.ACTIVE, SubscriptionEvent.TERMINATE): SubscriptionStatus.TERMINATED,
    (SubscriptionStatus.PAUSED, SubscriptionEvent.TERMINATE): SubscriptionStatus.TERMINATED,
    (SubscriptionStatus.ACTIVE, SubscriptionEvent.EXPIRE): SubscriptionStatus.EXPIRED,
    (SubscriptionStatus.PAUSED, SubscriptionEvent.EXPIRE): SubscriptionStatus.EXPIRED,
}

# Re-issuing these against a subscription already in the target status is a no-op.
# RESUME is deliberately absent: resuming an active subscription is an error.
IDEMPOTENT_SUBSCRIPTION_EVENTS: dict[SubscriptionEvent, SubscriptionStatus] = {
    SubscriptionEvent.PAUSE: SubscriptionStatus.PAUSED,
    SubscriptionEvent.CANCEL: SubscriptionStatus.CANCELLED,
    SubscriptionEvent.TERMINATE: SubscriptionStatus.TERMINATED,
    SubscriptionEvent.EXPIRE: SubscriptionStatus.EXPIRED,
}


def next_subscription_status(current: str, event: SubscriptionEvent) -> SubscriptionStatus | None:
    """Look up the status ``event`` moves a subscription to.

    Returns ``None`` when the subscription already sits in the event's target
    status and the event is idempotent. Raises ``InvalidStateTransitionError``
    for anything the table does not allow.
    """
    status = SubscriptionStatus(current)
    if IDEMPOTENT_SUBSCRIPTION_EVENTS.get(event) == status:
        return None
    try:
        return SUBSCRIPTION_TRANSITIONS[(status, event)]
    except KeyError:
        raise InvalidStateTransitionError("subscription", status.value, event.value) from None


def is_past_end(status: str, end_date: datetime, now: datetime) -> bool:
    """True when a live subscription has run past its end date and must expire."""
    return SubscriptionStatus(status) in LIVE_SUBSCRIPTION_STATUSES and now > end_date


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


class BookingStatus(StrEnum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    ATTENDED = "attended"
    NO_SHOW = "no_show"


class BookingEvent(StrEnum):
    CANCEL = "cancel"
    ATTEND = "attend"
    MARK_NO_SHOW = "mark_no_show"


class CancelledBy(StrEnum):
    CLIENT = "client"
    RECEPTION = "reception"
    STUDIO = "studio"


# Bookings in these states occupy a seat and count towards enrolled_count.
SEAT_HOLDING_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.ATTENDED})

BOOKING_TRANSITIONS: dict[tuple[BookingStatus, BookingEvent], BookingStatus] = {
    (BookingStatus.CONFIRMED, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingEvent.ATTEND): BookingStatus.ATTENDED,
    (BookingStatus.CONFIRMED, BookingEvent.MARK_NO_SHOW): BookingStatus.NO_SHOW,
}


def next_booking_status(current: str, event: BookingEvent) -> BookingStatus:
    """Look up the status ``event`` moves a booking to, or raise."""
    status = BookingStatus(current)
    try:
        return BOOKING_TRANSITIONS[(status, event)]
    except KeyError:
        raise InvalidStateTransitionError("booking", status.value, event.value) from None


def releases_seat(before: BookingStatus, after: BookingStatus) -> bool:
    return before in SEAT_HOLDING_STATUSES and after not in SEAT_HOLDING_STATUSES


# ---------------------------------------------------------------------------
# Activity log
# ---------------------------------------------------------------------------


class ActivityType(StrEnum):
    SUBSCRIPTION_PURCHASE = "subscription_purchase"
    SUBSCRIPTION_PAUSED = "subscription_paused"
    SUBSCRIPTION_RESUMED = "subscription_resumed"
    SUBSCRIPTION_EXTENDED = "subscription_extended"
    SUBSCRIPTION_CANCELLATION = "subscription_cancellation"
    SUBSCRIPTION_TERMINATED = "subscription_terminated"
    SUBSCRIPTION_EXPIRED = "subscription_expired"
    CREDITS_ADDED = "credits_added"
    CREDITS_REMOVED = "credits_removed"
    CLASS_BOOKING = "class_booking"
    CLASS_CANCELLATION = "class_cancellation"
    CLASS_ATTENDANCE = "class_attendance"
    CLASS_NO_SHOW = "class_no_show"
    WAITLIST_JOINED = "waitlist_joined"
    WAITLIST_LEFT = "waitlist_left"
    WAITLIST_PROMOTED = "waitlist_promoted"
    WAITLIST_REMOVED = "waitlist_removed"
