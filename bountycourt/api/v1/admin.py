import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from bountycourt.api.deps import get_db, require_admin
from bountycourt.api.v1.disputes import DisputeResponse
from bountycourt.common.enums import AuditAction, DisputeStatus
from bountycourt.common.pagination import PaginatedResponse, PaginationParams, paginate
from bountycourt.core.disputes import audit
from bountycourt.core.disputes.access import get_dispute
from bountycourt.core.disputes.automation import DisputeScheduler
from bountycourt.core.disputes.schemas import Actor
from bountycourt.core.disputes.service import DisputeService

router = APIRouter(prefix="/admin", tags=["Admin"])

QUEUE_STATUSES = [DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW, DisputeStatus.REOPENED]


# ---------- Schemas ----------


class AuditEntryResponse(BaseModel):
    id: uuid.UUID
    dispute_id: uuid.UUID
    action: str
    actor_id: uuid.UUID | None
    actor_type: str
    details: dict[str, Any] | None
    created_at: datetime

    model_config = {"from_attributes": True}


class JobRunResponse(BaseModel):
    job: str
    dispute_ids: list[str]
    count: int


# ---------- Endpoints ----------


@router.get("/disputes/queue", response_model=PaginatedResponse[DisputeResponse])
async def review_queue(
    status: list[DisputeStatus] | None = Query(None),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Undecided disputes, escalated ones first."""
    query = DisputeService().list_query(actor, statuses=status or QUEUE_STATUSES, queue=True)
    return await paginate(db, query, pagination, DisputeResponse.model_validate)


@router.get("/disputes/{dispute_id}/audit", response_model=list[AuditEntryResponse])
async def dispute_audit_log(
    dispute_id: uuid.UUID,
    action: AuditAction | None = None,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    dispute = await get_dispute(db, dispute_id)
    entries = await audit.list_for_dispute(db, dispute.id, action.value if action else None)
    return [AuditEntryResponse.model_validate(e) for e in entries]


@router.post("/jobs/auto-close", response_model=JobRunResponse)
async def run_auto_close(
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    closed = await DisputeScheduler().auto_close_stale(db)
    return JobRunResponse(job="auto_close", dispute_ids=closed, count=len(closed))


@router.post("/jobs/escalate", response_model=JobRunResponse)
async def run_escalation(
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    escalated = await DisputeScheduler().escalate_stagnant(db)
    return JobRunResponse(job="escalate", dispute_ids=escalated, count=len(escalated))
