"""Loading disputes on behalf of an actor and enforcing who may touch them."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bountycourt.common.exceptions import AuthorizationError, NotFoundError
from bountycourt.core.disputes.schemas import Actor
from bountycourt.db.models.dispute import Dispute


def require_admin(actor: Actor, action: str = "perform this action") -> None:
    if not actor.is_admin:
        raise AuthorizationError(f"Only an admin may {action}")


def require_access(dispute: Dispute, actor: Actor) -> None:
    """Initiator, counterparty or admin only."""
    if actor.is_admin or dispute.is_party(actor.id):
        return
    raise AuthorizationError()


async def get_dispute(db: AsyncSession, dispute_id: uuid.UUID) -> Dispute:
    result = await db.execute(select(Dispute).where(Dispute.id == dispute_id))
    dispute = result.scalar_one_or_none()
    if not dispute:
        raise NotFoundError("Dispute", str(dispute_id))
    return dispute


async def get_dispute_for_actor(db: AsyncSession, actor: Actor, dispute_id: uuid.UUID) -> Dispute:
    dispute = await get_dispute(db, dispute_id)
    require_access(dispute, actor)
    return dispute
