import uuid
from collections.abc import AsyncGenerator

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from bountycourt.common.enums import ActorRole
from bountycourt.common.exceptions import AuthorizationError
from bountycourt.core.disputes.schemas import Actor
from bountycourt.db.session import async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_current_actor(
    x_actor_id: str = Header(..., description="Authenticated user id, set by the gateway"),
    x_actor_role: str = Header(ActorRole.USER.value, description="user | admin"),
) -> Actor:
    """Identity is established upstream; the gateway forwards it in headers."""
    try:
        actor_id = uuid.UUID(x_actor_id)
    except ValueError:
        raise AuthorizationError("Invalid actor id header")
    try:
        role = ActorRole(x_actor_role.lower())
    except ValueError:
        raise AuthorizationError(f"Unknown actor role '{x_actor_role}'")
    return Actor(id=actor_id, role=role)


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        raise AuthorizationError("This action requires the admin role")
    return actor
