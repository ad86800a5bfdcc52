"""Single source of the current time.

Everything in the engine stores naive UTC datetimes. Tests patch
``studio_ledger.clock.utcnow`` to move time forward.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
