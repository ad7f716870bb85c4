"""Empathy Schemas — feel-heard, empathy statements, share offers, and status views.

Invariants:
    - ShareOfferRespond: refine requires refined_content; accept/decline ignore it
    - No response model has a field for PrivateAnalysis content
    - ShareOfferResponse is only ever built for the offer's own subject
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.domain_types import (
    DeliveryStatus, EmpathyStatus, GuidanceType, ShareAction, ShareOfferStatus, Stage,
)


class FeelHeardRequest(BaseModel):
    emotional_reading: int | None = Field(None, ge=1, le=10)


class FeelHeardResponse(BaseModel):
    current_stage: Stage
    reconcile_scheduled: bool


class EmpathySubmit(BaseModel):
    content: str = Field(min_length=1, max_length=5000)

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("content cannot be empty or whitespace")
        return v


class EmpathySubmitResponse(BaseModel):
    status: EmpathyStatus
    revision_count: int
    reconcile_scheduled: bool
    refinement_attempts: int = 0


class GuidanceResponse(BaseModel):
    guidance_type: GuidanceType
    area_hint: str | None


class ShareOfferResponse(BaseModel):
    id: UUID
    status: ShareOfferStatus
    suggested_content: str
    suggested_reason: str | None
    created_at: datetime | None = None


class SharedContextResponse(BaseModel):
    from_user_id: str
    content: str
    shared_at: datetime


class PartnerStatementResponse(BaseModel):
    content: str
    revealed_at: datetime | None


class EmpathyStatusResponse(BaseModel):
    my_status: EmpathyStatus | None
    my_revision_count: int
    partner_status: EmpathyStatus | None
    partner_statement: PartnerStatementResponse | None
    guidance: GuidanceResponse | None
    share_offer: ShareOfferResponse | None
    shared_context: list[SharedContextResponse]


class ShareOfferRespond(BaseModel):
    action: ShareAction
    refined_content: str | None = Field(None, max_length=5000)

    @model_validator(mode="after")
    def require_refined_content(self):
        if self.action == ShareAction.REFINE and not (self.refined_content or "").strip():
            raise ValueError("refine requires refined_content")
        return self


class ShareOfferRespondResponse(BaseModel):
    offer_status: ShareOfferStatus
    empathy_status: EmpathyStatus
    confirmation: str
    shared_content: str | None
    delivery_status: DeliveryStatus


class SessionViewed(BaseModel):
    viewed_at: datetime | None = None


class ReconcileRequest(BaseModel):
    guesser_id: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)


class ReconcileResponse(BaseModel):
    empathy_status: EmpathyStatus
    share_offer_created: bool
    persisted: bool


class AttemptCheckResponse(BaseModel):
    direction: str
    attempts: int
    should_skip_reconciler: bool
