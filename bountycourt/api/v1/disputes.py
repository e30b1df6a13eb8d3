import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from bountycourt.api.deps import get_current_actor, get_db, require_admin
from bountycourt.common.enums import DisputeStatus
from bountycourt.common.pagination import PaginatedResponse, PaginationParams, paginate
from bountycourt.core.disputes.ledger import EvidenceLedger
from bountycourt.core.disputes.schemas import Actor, EvidenceInput
from bountycourt.core.disputes.service import DisputeService
from bountycourt.db.models.dispute import Dispute
from bountycourt.db.models.evidence import DisputeEvidence

router = APIRouter(prefix="/disputes", tags=["Disputes"])


# ---------- Schemas ----------


class DisputeCreateRequest(BaseModel):
    cancellation_id: uuid.UUID
    reason: str
    evidence: list[EvidenceInput] = Field(default_factory=list)


class DisputeCloseRequest(BaseModel):
    reason: str


class CommentCreateRequest(BaseModel):
    body: str
    internal: bool = False


class DisputeResponse(BaseModel):
    id: uuid.UUID
    cancellation_id: uuid.UUID
    bounty_id: uuid.UUID
    initiator_id: uuid.UUID
    reason: str
    status: DisputeStatus
    escalated: bool
    escalated_at: datetime | None
    last_activity_at: datetime
    auto_close_at: datetime | None
    resolved_at: datetime | None
    closed_at: datetime | None
    closed_reason: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class EvidenceResponse(BaseModel):
    id: uuid.UUID
    dispute_id: uuid.UUID
    uploaded_by: uuid.UUID
    kind: str
    payload: dict[str, Any]
    description: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class CommentResponse(BaseModel):
    id: uuid.UUID
    dispute_id: uuid.UUID
    author_id: uuid.UUID
    body: str
    internal: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class EntriesResponse(BaseModel):
    evidence: list[EvidenceResponse]
    comments: list[CommentResponse]


class TimelineEntry(BaseModel):
    at: datetime
    type: str
    id: uuid.UUID
    actor_id: uuid.UUID | None
    data: dict[str, Any]


class TimelineResponse(BaseModel):
    dispute_id: uuid.UUID
    status: DisputeStatus
    entries: list[TimelineEntry]


# ---------- Endpoints ----------


@router.post("", response_model=DisputeResponse, status_code=201)
async def open_dispute(
    body: DisputeCreateRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    dispute = await DisputeService().create_dispute(
        db, actor, body.cancellation_id, body.reason, evidence=body.evidence
    )
    return _dispute_to_response(dispute)


@router.get("", response_model=PaginatedResponse[DisputeResponse])
async def list_disputes(
    status: list[DisputeStatus] | None = Query(None),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    query = DisputeService().list_query(actor, statuses=status)
    return await paginate(db, query, pagination, _dispute_to_response)


@router.get("/{dispute_id}", response_model=DisputeResponse)
async def get_dispute(
    dispute_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    dispute = await DisputeService().get(db, actor, dispute_id)
    return _dispute_to_response(dispute)


@router.post("/{dispute_id}/review", response_model=DisputeResponse)
async def mark_under_review(
    dispute_id: uuid.UUID,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    dispute = await DisputeService().mark_under_review(db, actor, dispute_id)
    return _dispute_to_response(dispute)


@router.post("/{dispute_id}/close", response_model=DisputeResponse)
async def close_dispute(
    dispute_id: uuid.UUID,
    body: DisputeCloseRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    dispute = await DisputeService().close_dispute(db, actor, dispute_id, body.reason)
    return _dispute_to_response(dispute)


@router.post("/{dispute_id}/evidence", response_model=EvidenceResponse, status_code=201)
async def add_evidence(
    dispute_id: uuid.UUID,
    body: EvidenceInput,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    evidence = await EvidenceLedger().add_evidence(db, actor, dispute_id, body)
    return _evidence_to_response(evidence)


@router.post("/{dispute_id}/comments", response_model=CommentResponse, status_code=201)
async def add_comment(
    dispute_id: uuid.UUID,
    body: CommentCreateRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    comment = await EvidenceLedger().add_comment(
        db, actor, dispute_id, body.body, internal=body.internal
    )
    return CommentResponse.model_validate(comment)


@router.get("/{dispute_id}/entries", response_model=EntriesResponse)
async def list_entries(
    dispute_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    entries = await EvidenceLedger().list_entries(db, actor, dispute_id)
    return EntriesResponse(
        evidence=[_evidence_to_response(e) for e in entries["evidence"]],
        comments=[CommentResponse.model_validate(c) for c in entries["comments"]],
    )


@router.get("/{dispute_id}/timeline", response_model=TimelineResponse)
async def dispute_timeline(
    dispute_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    service = DisputeService()
    entries = await service.timeline(db, actor, dispute_id)
    dispute = await service.get(db, actor, dispute_id)
    return TimelineResponse(
        dispute_id=dispute.id,
        status=dispute.status,
        entries=[TimelineEntry(**e) for e in entries],
    )


def _dispute_to_response(dispute: Dispute) -> DisputeResponse:
    return DisputeResponse.model_validate(dispute)


def _evidence_to_response(evidence: DisputeEvidence) -> EvidenceResponse:
    return EvidenceResponse(
        id=evidence.id,
        dispute_id=evidence.dispute_id,
        uploaded_by=evidence.uploaded_by,
        kind=evidence.kind,
        payload=evidence.payload or {},
        description=evidence.description,
        created_at=evidence.created_at,
    )
