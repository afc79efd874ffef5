"""FastAPI dependencies for injection into route handlers."""

from collections.abc import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import decode_token
from app.core.database import get_db
from app.models.member import User, UserRole
from app.services.permissions import CallerContext, build_caller_context

bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the current user from the JWT bearer token."""
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    try:
        payload = decode_token(credentials.credentials)
        user_id = int(payload["sub"])
    except (JWTError, KeyError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    result = await db.execute(select(User).where(User.id == user_id, User.is_active.is_(True)))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    return user


async def get_caller(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CallerContext:
    """Resolve the caller once per request: account id, role and (for members) profile id."""
    return await build_caller_context(db, user)


# ---------------------------------------------------------------------------
# Role gates
# ---------------------------------------------------------------------------


def require_role(*allowed_roles: UserRole) -> Callable:
    """Factory: return a dependency that enforces the caller has one of the allowed roles.

    Admins always pass.

    Usage in a route:
        @router.post("/sessions")
        async def create(caller=Depends(require_role(UserRole.COACH))):
            ...
    """

    async def _check(caller: CallerContext = Depends(get_caller)) -> CallerContext:
        if caller.is_admin or caller.role in allowed_roles:
            return caller
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Requires one of: {', '.join(r.value for r in (UserRole.ADMIN, *allowed_roles))}",
        )

    return _check


# Convenience shortcut
require_coach = require_role(UserRole.COACH)
