import uuid
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from bountycourt.common.enums import ActorRole, ActorType, MediaType, ResolutionOutcome


class Actor(BaseModel):
    """Authenticated caller, passed explicitly into every operation."""

    id: uuid.UUID
    role: ActorRole = ActorRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

    @property
    def actor_type(self) -> ActorType:
        return ActorType.ADMIN if self.is_admin else ActorType.USER


# ---------- Evidence (tagged union) ----------


class TextEvidence(BaseModel):
    kind: Literal["text"] = "text"
    text: str = Field(min_length=1)
    description: str | None = None


class LinkEvidence(BaseModel):
    kind: Literal["link"] = "link"
    url: str = Field(min_length=1, pattern=r"^https?://")
    description: str | None = None


class MediaEvidence(BaseModel):
    """Reference to a file held by the media storage collaborator."""

    kind: Literal["media"] = "media"
    reference: str = Field(min_length=1)
    media_type: MediaType = MediaType.IMAGE
    mime_type: str | None = None
    file_size: int | None = Field(default=None, ge=0)
    description: str | None = None


EvidenceInput = Annotated[
    Union[TextEvidence, LinkEvidence, MediaEvidence], Field(discriminator="kind")
]


# ---------- Resolution ----------


class AllocationInput(BaseModel):
    """Either both percentages or both explicit amounts (integer minor units)."""

    hunter_percent: int | None = Field(default=None, ge=0, le=100)
    poster_percent: int | None = Field(default=None, ge=0, le=100)
    amount_to_hunter: int | None = Field(default=None, ge=0)
    amount_to_poster: int | None = Field(default=None, ge=0)


class PartyAllocation(BaseModel):
    party_id: uuid.UUID
    amount: int


class SuggestedResolution(BaseModel):
    suggested_outcome: ResolutionOutcome
    confidence: float
    reasoning: str
    hunter_score: int
    poster_score: int
