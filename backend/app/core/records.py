"""Records — immutable values passed between stores, services, and routes.

Invariants:
    - Stores return records, never ORM instances (no lazy loads, no stale identity-map rows)
    - PrivateAnalysis never leaves the server unfiltered; ConsentedDisclosure is the ONLY
      record that carries one party's words to the other
    - AbstractGuidance holds fixed-vocabulary hints only

Design Decisions:
    - Two distinct types for private analysis vs consented disclosure instead of one record
      with visibility flags: leaking requires constructing the wrong type on purpose
"""

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from app.core.domain_types import (
    DeliveryStatus, EmpathyStatus, GapSeverity, GuidanceType, MessageRole,
    RecommendedAction, ShareOfferStatus, Stage, StageStatus,
)
from app.core.stage_gates import StageGates


@dataclass(frozen=True)
class StageProgressRecord:
    session_id: UUID
    user_id: str
    stage: Stage
    status: StageStatus
    gates: StageGates
    started_at: datetime | None
    completed_at: datetime | None
    version: int = 0


@dataclass(frozen=True)
class EmpathyAttemptRecord:
    id: UUID
    session_id: UUID
    source_user_id: str
    content: str
    status: EmpathyStatus
    shared_at: datetime | None
    revealed_at: datetime | None
    delivery_status: DeliveryStatus
    revision_count: int = 0


@dataclass(frozen=True)
class PrivateAnalysis:
    """Full gap analysis. Server-side only."""
    alignment_score: int
    gap_severity: GapSeverity
    recommended_action: RecommendedAction
    alignment_summary: str = ""
    correctly_identified: tuple[str, ...] = ()
    gap_summary: str = ""
    missed_feelings: tuple[str, ...] = ()
    misattributions: tuple[str, ...] = ()
    most_important_gap: str | None = None
    rationale: str = ""
    sharing_would_help: bool = False
    suggested_share_focus: str | None = None


@dataclass(frozen=True)
class AbstractGuidance:
    """Refinement steer that says a gap exists without quoting anyone."""
    guidance_type: GuidanceType
    area_hint: str | None


@dataclass(frozen=True)
class ReconcilerResultRecord:
    id: UUID | None  # None when persistence degraded to an in-memory result
    session_id: UUID
    guesser_id: str
    subject_id: str
    analysis: PrivateAnalysis
    guidance: AbstractGuidance
    created_at: datetime | None = None

    @property
    def persisted(self) -> bool:
        return self.id is not None


@dataclass(frozen=True)
class ShareOfferRecord:
    id: UUID
    result_id: UUID
    session_id: UUID
    guesser_id: str
    subject_id: str
    status: ShareOfferStatus
    suggested_content: str
    suggested_reason: str | None
    refined_content: str | None
    shared_content: str | None
    shared_at: datetime | None
    delivery_status: DeliveryStatus
    created_at: datetime | None = None


@dataclass(frozen=True)
class ConsentedDisclosure:
    """Content the subject explicitly agreed to share with the guesser."""
    offer_id: UUID
    session_id: UUID
    from_user_id: str
    to_user_id: str
    content: str
    shared_at: datetime


@dataclass(frozen=True)
class AttemptCheck:
    attempts: int
    should_skip_reconciler: bool


@dataclass(frozen=True)
class WitnessingContent:
    user_messages: str
    themes: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.user_messages.strip()


@dataclass(frozen=True)
class ShareSuggestion:
    suggested_content: str
    reason: str


@dataclass(frozen=True)
class ReconcileOutcome:
    result: ReconcilerResultRecord
    empathy_status: EmpathyStatus
    share_offer: ShareOfferRecord | None


@dataclass(frozen=True)
class ShareResponseOutcome:
    offer: ShareOfferRecord
    empathy_status: EmpathyStatus
    confirmation: str
    disclosure: ConsentedDisclosure | None


@dataclass(frozen=True)
class RefinementOutcome:
    empathy_status: EmpathyStatus
    attempts: int
    skipped_reconciler: bool
    guidance: AbstractGuidance | None = None


@dataclass(frozen=True)
class ReconcileTrigger:
    """A direction that is ready for reconciliation."""
    session_id: UUID
    guesser_id: str
    subject_id: str


@dataclass(frozen=True)
class SessionMembers:
    """The two members of a session. Membership never changes after creation."""
    session_id: UUID
    user_a_id: str
    user_a_name: str
    user_b_id: str
    user_b_name: str

    def is_member(self, user_id: str) -> bool:
        return user_id in (self.user_a_id, self.user_b_id)

    def partner_of(self, user_id: str) -> str:
        return self.user_b_id if user_id == self.user_a_id else self.user_a_id

    def name_of(self, user_id: str) -> str:
        return self.user_a_name if user_id == self.user_a_id else self.user_b_name


@dataclass(frozen=True)
class MessageRecord:
    id: UUID
    session_id: UUID
    for_user_id: str
    sender_id: str | None
    role: MessageRole
    content: str
    stage: Stage
    extracted_emotions: tuple[str, ...]
    created_at: datetime | None


@dataclass(frozen=True)
class EmpathySubmission:
    """Result of a guesser submitting (or revising) their empathy statement."""
    attempt: EmpathyAttemptRecord
    trigger: ReconcileTrigger | None = None
    needs_recheck: bool = False
    refinement_attempts: int = 0
