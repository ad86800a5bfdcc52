"""FastAPI authentication and role dependencies for route protection."""

import uuid
from collections.abc import Awaitable, Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studio_ledger.auth.jwt import decode_token
from studio_ledger.database import get_db
from studio_ledger.models.user import User
from studio_ledger.states import STAFF_ROLES, CancelledBy, UserRole

# Strict bearer — raises 403 automatically if no token provided
_bearer_scheme = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the Bearer token, then return the authenticated user.

    Raises:
        HTTPException 401: If the token is invalid, expired, wrong type, or user not found.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise credentials_exception from None

    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
            headers={"WWW-Authenticate": "Bearer"},
        )

    sub: str | None = payload.get("sub")
    if sub is None:
        raise credentials_exception

    try:
        user_id = uuid.UUID(sub)
    except ValueError:
        raise credentials_exception from None

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise credentials_exception

    return user


async def get_current_active_user(
    user: User = Depends(get_current_user),
) -> User:
    """Return the current user only if their account is active.

    Raises:
        HTTPException 403: If the user account is inactive.
    """
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )
    return user


def require_roles(*roles: UserRole) -> Callable[..., Awaitable[User]]:
    """Build a dependency that admits only users holding one of ``roles``."""
    allowed = frozenset(roles)

    async def _check(user: User = Depends(get_current_active_user)) -> User:
        if user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not allowed for your role",
            )
        return user

    return _check


require_staff = require_roles(*STAFF_ROLES)


def is_staff(user: User) -> bool:
    return user.role in STAFF_ROLES


def cancelled_by_for(user: User) -> CancelledBy:
    """Who a cancellation is attributed to, based on the acting user's role."""
    if user.role == UserRole.CLIENT:
        return CancelledBy.CLIENT
    if user.role in STAFF_ROLES:
        return CancelledBy.RECEPTION
    return CancelledBy.STUDIO


def ensure_self_or_staff(user: User, client_id: uuid.UUID) -> None:
    """Clients may only act on their own records; staff may act on anyone's.

    Raises:
        HTTPException 403: For any other combination.
    """
    if is_staff(user):
        return
    if user.role == UserRole.CLIENT and user.id == client_id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You can only access your own records",
    )
