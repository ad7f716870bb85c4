"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - SessionId wraps UUID; UserId wraps the external user identifier (str)
    - Stage is ordered (IntEnum): completed stages always form a prefix
    - AlignmentScore is bounded 0–100
    - All valid states encoded as Enums — no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums for statuses: serialize to JSON and DB columns without custom encoders
    - Stage as IntEnum: "next stage" and "highest stage" are plain arithmetic
"""

from enum import Enum, IntEnum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

SessionId = NewType("SessionId", UUID)
UserId = NewType("UserId", str)
Direction = NewType("Direction", str)   # "guesserId->subjectId"


# ─── Value Types ─────────────────────────────────────────────────

AlignmentScore = NewType("AlignmentScore", int)   # 0–100


# ─── Stages ──────────────────────────────────────────────────────

class Stage(IntEnum):
    """The ordered stages every user walks through."""
    ONBOARDING = 0
    WITNESS = 1
    PERSPECTIVE_STRETCH = 2
    NEED_MAPPING = 3
    STRATEGIC_REPAIR = 4

    @property
    def next(self) -> "Stage | None":
        if self is Stage.STRATEGIC_REPAIR:
            return None
        return Stage(self + 1)


FINAL_STAGE = Stage.STRATEGIC_REPAIR


class StageStatus(str, Enum):
    """Per-(session, user, stage) progress state."""
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    GATE_PENDING = "GATE_PENDING"
    COMPLETED = "COMPLETED"


ACTIVE_STAGE_STATUSES = frozenset({StageStatus.IN_PROGRESS, StageStatus.GATE_PENDING})


# ─── Empathy exchange ────────────────────────────────────────────

class EmpathyStatus(str, Enum):
    """Lifecycle of one directed empathy attempt. REVEALED is terminal."""
    HELD = "HELD"
    AWAITING_SHARING = "AWAITING_SHARING"
    REFINING = "REFINING"
    REVEALED = "REVEALED"


class DeliveryStatus(str, Enum):
    UNDELIVERED = "UNDELIVERED"
    DELIVERED = "DELIVERED"
    SEEN = "SEEN"


class GapSeverity(str, Enum):
    NONE = "none"
    MINOR = "minor"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"


class RecommendedAction(str, Enum):
    PROCEED = "PROCEED"
    OFFER_OPTIONAL = "OFFER_OPTIONAL"
    OFFER_SHARING = "OFFER_SHARING"


class GuidanceType(str, Enum):
    """Fixed vocabulary for refinement hints — never carries user text."""
    NONE = "none"
    EXPLORE_DEEPER_FEELINGS = "explore_deeper_feelings"
    RECONSIDER_ASSUMPTIONS = "reconsider_assumptions"
    CONSIDER_CONTEXT = "consider_context"


class ShareOfferStatus(str, Enum):
    """Share offer lifecycle. ACCEPTED and DECLINED are terminal."""
    PENDING = "PENDING"
    OFFERED = "OFFERED"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"


OPEN_OFFER_STATUSES = frozenset({ShareOfferStatus.PENDING, ShareOfferStatus.OFFERED})


class ShareAction(str, Enum):
    """Subject's three-way response to a share offer."""
    ACCEPT = "accept"
    DECLINE = "decline"
    REFINE = "refine"


class MessageRole(str, Enum):
    """Transcript roles the engine reads (USER) or writes (the rest)."""
    USER = "user"
    ASSISTANT = "assistant"
    SHARED_CONTEXT = "shared_context"
    SHARE_RECEIPT = "share_receipt"
    SYSTEM = "system"


class NotificationEvent(str, Enum):
    EMPATHY_REVEALED = "empathy.revealed"
    PARTNER_EMPATHY_SHARED = "partner.empathy_shared"
    SHARE_OFFER = "empathy.share_offer"
    CONTEXT_SHARED = "empathy.context_shared"
    REFINEMENT_SKIPPED = "empathy.refinement_skipped"


class SessionStatus(str, Enum):
    """Session lifecycle states — maps to DB `status` column."""
    ACTIVE = "active"
    RESOLVED = "resolved"
    ABANDONED = "abandoned"
