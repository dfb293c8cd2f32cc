"""API Dependencies - Common dependencies for routes"""
from typing import List, Optional
from fastapi import Header, HTTPException, status

from ..domain.models import ActorContext


def _split(header: Optional[str]) -> List[str]:
    """Comma separated header value; permissions may contain spaces"""
    if not header:
        return []
    return [item.strip() for item in header.split(",") if item.strip()]


async def get_actor_dep(
    x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    x_actor_name: Optional[str] = Header(None, alias="X-Actor-Name"),
    x_actor_roles: Optional[str] = Header(None, alias="X-Actor-Roles"),
    x_actor_permissions: Optional[str] = Header(None, alias="X-Actor-Permissions"),
) -> ActorContext:
    """
    Build the acting user from identity headers

    Authentication happens upstream; the gateway forwards the identity.

    Raises:
        HTTPException: 401 if X-Actor-Id is missing
    """
    if not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "AUTHENTICATION_ERROR", "message": "X-Actor-Id header is missing"}},
        )
    return ActorContext(
        actor_id=x_actor_id,
        display_name=x_actor_name,
        roles=_split(x_actor_roles),
        permissions=_split(x_actor_permissions),
    )
