"""Shared API dependencies — single import point for all routers.

Re-exports database session and authentication dependencies so that router
modules can import everything they need from one place::

    from studio_ledger.api.deps import get_db, get_current_active_user
"""

from studio_ledger.auth.dependencies import (
    cancelled_by_for,
    ensure_self_or_staff,
    get_current_active_user,
    get_current_user,
    is_staff,
    require_roles,
    require_staff,
)
from studio_ledger.database import get_db

__all__ = [
    "get_db",
    "get_current_user",
    "get_current_active_user",
    "require_roles",
    "require_staff",
    "is_staff",
    "cancelled_by_for",
    "ensure_self_or_staff",
]
