import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from bountycourt.api.deps import get_current_actor, get_db, require_admin
from bountycourt.common.enums import ResolutionOutcome, SettlementStatus
from bountycourt.core.disputes.resolution import ResolutionEngine, ResolutionResult
from bountycourt.core.disputes.schemas import Actor, AllocationInput, SuggestedResolution
from bountycourt.db.models.resolution import DisputeResolution

router = APIRouter(tags=["Resolutions"])


# ---------- Schemas ----------


class ResolutionCreateRequest(BaseModel):
    outcome: ResolutionOutcome
    rationale: str
    allocation: AllocationInput | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ResolutionResponse(BaseModel):
    id: uuid.UUID
    dispute_id: uuid.UUID
    admin_id: uuid.UUID
    outcome: ResolutionOutcome
    escrow_amount: int
    amount_to_hunter: int
    amount_to_poster: int
    rationale: str
    metadata: dict[str, Any]
    decided_at: datetime
    superseded_at: datetime | None
    settlement_status: SettlementStatus
    settlement_reference: str | None
    settlement_attempts: int
    last_settlement_error: str | None
    settled_at: datetime | None


class ResolutionOutcomeResponse(BaseModel):
    resolution: ResolutionResponse
    settlement_error: str | None = None


# ---------- Endpoints ----------


@router.post(
    "/disputes/{dispute_id}/resolution",
    response_model=ResolutionOutcomeResponse,
    status_code=201,
)
async def resolve_dispute(
    dispute_id: uuid.UUID,
    body: ResolutionCreateRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await ResolutionEngine().propose_resolution(
        db,
        actor,
        dispute_id,
        body.outcome,
        body.allocation,
        body.rationale,
        metadata=body.metadata,
    )
    return _result_to_response(result)


@router.get("/disputes/{dispute_id}/resolutions", response_model=list[ResolutionResponse])
async def list_resolutions(
    dispute_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    resolutions = await ResolutionEngine().list_resolutions(db, actor, dispute_id)
    return [_resolution_to_response(r) for r in resolutions]


@router.get("/disputes/{dispute_id}/resolution/suggestion", response_model=SuggestedResolution)
async def suggest_resolution(
    dispute_id: uuid.UUID,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await ResolutionEngine().suggest_resolution(db, actor, dispute_id)


@router.post("/resolutions/{resolution_id}/settle", response_model=ResolutionOutcomeResponse)
async def retry_settlement(
    resolution_id: uuid.UUID,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await ResolutionEngine().retry_settlement(db, actor, resolution_id)
    return _result_to_response(result)


def _resolution_to_response(resolution: DisputeResolution) -> ResolutionResponse:
    return ResolutionResponse(
        id=resolution.id,
        dispute_id=resolution.dispute_id,
        admin_id=resolution.admin_id,
        outcome=resolution.outcome,
        escrow_amount=resolution.escrow_amount,
        amount_to_hunter=resolution.amount_to_hunter,
        amount_to_poster=resolution.amount_to_poster,
        rationale=resolution.rationale,
        metadata=resolution.metadata_ or {},
        decided_at=resolution.decided_at,
        superseded_at=resolution.superseded_at,
        settlement_status=resolution.settlement_status,
        settlement_reference=resolution.settlement_reference,
        settlement_attempts=resolution.settlement_attempts,
        last_settlement_error=resolution.last_settlement_error,
        settled_at=resolution.settled_at,
    )


def _result_to_response(result: ResolutionResult) -> ResolutionOutcomeResponse:
    return ResolutionOutcomeResponse(
        resolution=_resolution_to_response(result.resolution),
        settlement_error=result.settlement_error,
    )
