"""Response Builders — records -> API response models.

Invariants:
    - Pure conversions, no IO
    - Only EmpathyStatusView (already privacy filtered) feeds the status response
"""

from app.core.records import (
    MessageRecord, SessionMembers, ShareOfferRecord, StageProgressRecord,
)
from app.core.stage_gates import gates_to_dict
from app.schemas.empathy import (
    EmpathyStatusResponse, GuidanceResponse, PartnerStatementResponse,
    SharedContextResponse, ShareOfferResponse,
)
from app.schemas.session import MessageResponse, SessionResponse
from app.schemas.stage import StageProgressResponse
from app.services.empathy_status import EmpathyStatusView


def build_session_response(
    members: SessionMembers, status: str, created_at=None,
) -> SessionResponse:
    return SessionResponse(
        id=members.session_id,
        user_a_id=members.user_a_id,
        user_a_name=members.user_a_name,
        user_b_id=members.user_b_id,
        user_b_name=members.user_b_name,
        status=status,
        created_at=created_at,
    )


def build_progress_response(record: StageProgressRecord) -> StageProgressResponse:
    return StageProgressResponse(
        stage=record.stage,
        stage_name=record.stage.name,
        status=record.status,
        gates=gates_to_dict(record.gates),
        started_at=record.started_at,
        completed_at=record.completed_at,
    )


def build_message_response(message: MessageRecord) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        role=message.role,
        sender_id=message.sender_id,
        content=message.content,
        stage=message.stage,
        created_at=message.created_at,
    )


def build_offer_response(offer: ShareOfferRecord | None) -> ShareOfferResponse | None:
    if offer is None:
        return None
    return ShareOfferResponse(
        id=offer.id,
        status=offer.status,
        suggested_content=offer.suggested_content,
        suggested_reason=offer.suggested_reason,
        created_at=offer.created_at,
    )


def build_status_response(view: EmpathyStatusView) -> EmpathyStatusResponse:
    return EmpathyStatusResponse(
        my_status=view.my_status,
        my_revision_count=view.my_revision_count,
        partner_status=view.partner_status,
        partner_statement=(
            PartnerStatementResponse(
                content=view.partner_statement.content,
                revealed_at=view.partner_statement.revealed_at,
            )
            if view.partner_statement else None
        ),
        guidance=(
            GuidanceResponse(
                guidance_type=view.guidance.guidance_type,
                area_hint=view.guidance.area_hint,
            )
            if view.guidance else None
        ),
        share_offer=build_offer_response(view.share_offer),
        shared_context=[
            SharedContextResponse(
                from_user_id=d.from_user_id, content=d.content, shared_at=d.shared_at,
            )
            for d in view.shared_context
        ],
    )
