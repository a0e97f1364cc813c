"""
Actor dependencies.

The identity service authenticates callers upstream and forwards the
actor as ``X-Actor-Id`` / ``X-Actor-Role`` headers.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from moderation_engine.lib.errors import NotAuthorized
from moderation_engine.models.enums import ActorRole
from moderation_engine.models.user import Actor
from moderation_engine.services.engine import ModerationEngine


def get_engine(request: Request) -> ModerationEngine:
    return request.app.state.engine


async def get_actor(
    x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    x_actor_role: Optional[str] = Header(None, alias="X-Actor-Role"),
) -> Actor:
    """Raises ``401 Unauthorized`` when no usable identity was forwarded."""
    if not x_actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        role = ActorRole(x_actor_role) if x_actor_role else ActorRole.USER
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown actor role")
    return Actor(id=x_actor_id, role=role)


async def require_reviewer(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_reviewer:
        raise NotAuthorized("Reviewer role required")
    return actor


async def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_admin:
        raise NotAuthorized("Admin role required")
    return actor
