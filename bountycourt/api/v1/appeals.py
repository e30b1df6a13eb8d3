import uuid
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from bountycourt.api.deps import get_current_actor, get_db, require_admin
from bountycourt.common.enums import AppealDecision, AppealStatus
from bountycourt.core.disputes.appeals import AppealService
from bountycourt.core.disputes.schemas import Actor

router = APIRouter(tags=["Appeals"])


# ---------- Schemas ----------


class AppealCreateRequest(BaseModel):
    reason: str
    evidence_refs: list[str] = Field(default_factory=list)


class AppealReviewRequest(BaseModel):
    decision: AppealDecision
    notes: str | None = None


class AppealResponse(BaseModel):
    id: uuid.UUID
    dispute_id: uuid.UUID
    resolution_id: uuid.UUID
    appellant_id: uuid.UUID
    reason: str
    evidence_refs: list[str] | None
    status: AppealStatus
    reviewed_by: uuid.UUID | None
    review_notes: str | None
    reviewed_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------- Endpoints ----------


@router.post("/disputes/{dispute_id}/appeals", response_model=AppealResponse, status_code=201)
async def file_appeal(
    dispute_id: uuid.UUID,
    body: AppealCreateRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    appeal = await AppealService().create_appeal(
        db, actor, dispute_id, body.reason, evidence_refs=body.evidence_refs
    )
    return AppealResponse.model_validate(appeal)


@router.get("/disputes/{dispute_id}/appeals", response_model=list[AppealResponse])
async def list_appeals(
    dispute_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    appeals = await AppealService().list_appeals(db, actor, dispute_id)
    return [AppealResponse.model_validate(a) for a in appeals]


@router.post("/appeals/{appeal_id}/start-review", response_model=AppealResponse)
async def start_appeal_review(
    appeal_id: uuid.UUID,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    appeal = await AppealService().begin_review(db, actor, appeal_id)
    return AppealResponse.model_validate(appeal)


@router.post("/appeals/{appeal_id}/review", response_model=AppealResponse)
async def review_appeal(
    appeal_id: uuid.UUID,
    body: AppealReviewRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    appeal = await AppealService().review_appeal(
        db, actor, appeal_id, body.decision, notes=body.notes
    )
    return AppealResponse.model_validate(appeal)
