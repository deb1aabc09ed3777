'''
Client-portal identity.

Login and sessions live outside this service; the portal forwards the
signed-in user as the `x-user-id` / `x-username` headers, which are checked
against the users table here.
'''
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.logger import log
from ..database import models as db_models
from ..database.db_enums import UserRole
from ..database.engine import get_db_session
from ..models.client import PortalIdentity


async def get_portal_identity(
    db: Annotated[AsyncSession, Depends(get_db_session)],
    x_user_id: Annotated[Optional[str], Header()] = None,
    x_username: Annotated[Optional[str], Header()] = None
) -> PortalIdentity:
    """
    Dependency that resolves the identity headers to a known user.
    Missing headers, an unknown user or a username mismatch give 401.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials"
    )

    if not x_user_id or not x_username:
        log.warning("Client portal request without identity headers.")
        raise credentials_exception

    try:
        user_id = int(x_user_id)
    except ValueError:
        log.warning(f"Client portal request with malformed user id: {x_user_id!r}")
        raise credentials_exception

    user = await db.get(db_models.Users, user_id)
    if user is None:
        log.warning(f"Client portal user {user_id} not found.")
        raise credentials_exception

    if user.username != x_username:
        log.warning(f"SECURITY: username mismatch for user {user_id} (header: {x_username!r}).")
        raise credentials_exception

    return PortalIdentity(
        user_id=user.id,
        username=user.username,
        email=user.email,
        name=user.name,
        role=UserRole(user.role)
    )


async def require_client_portal_identity(
    identity: Annotated[PortalIdentity, Depends(get_portal_identity)]
) -> PortalIdentity:
    """Dependency for client-portal routes. Administrators are refused with 403."""
    if not identity.can_use_client_portal:
        log.warning(f"Admin user {identity.user_id} tried to use the client portal.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrators cannot use the client portal."
        )
    log.info(f"Client portal identity verified for user {identity.user_id} ({identity.username}).")
    return identity
