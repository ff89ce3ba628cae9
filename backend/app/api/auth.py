"""Minimal identity dependency.

Stub implementation that extracts user_id/role from the bearer token or uses
test defaults. Token issuance and signature checks live in the identity
provider, not here.
"""

import uuid
from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from backend.app.db.context import RequestContext

DEFAULT_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")
ROLES = ("student", "staff", "admin")


async def get_current_context(
    authorization: Annotated[str | None, Header()] = None,
) -> RequestContext:
    """Extract request context from authorization header.

    Accepts "Bearer <user_id>" or "Bearer <user_id>:<role>"; without a
    header, a fixed student identity is used.

    Args:
        authorization: Authorization header (e.g., "Bearer <token>")

    Returns:
        RequestContext with user_id and role

    Raises:
        HTTPException: If authorization is invalid
    """
    if not authorization:
        return RequestContext(user_id=DEFAULT_USER_ID)

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = authorization[7:]  # Strip "Bearer "
    user_id_str, _, role = token.partition(":")
    role = role or "student"

    try:
        user_id = uuid.UUID(user_id_str)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token format (expected user_id:role)",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    if role not in ROLES:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown role: {role}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return RequestContext(user_id=user_id, role=role)


def require_roles(*roles: str) -> Callable[..., Awaitable[RequestContext]]:
    """Build a dependency that admits only the given roles."""

    async def dependency(
        ctx: Annotated[RequestContext, Depends(get_current_context)],
    ) -> RequestContext:
        if ctx.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied. Insufficient permissions.",
            )
        return ctx

    return dependency
