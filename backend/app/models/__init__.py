"""ORM Models — SQLAlchemy declarative models for all domain entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - Session is the aggregate root; all entities scoped by session_id

Design Decisions:
    - One file per entity for locality (ADR: max 3-4 files to understand a feature)
    - All models imported here so Base.metadata is complete before create_all/migrations
"""

from app.models.session import Session  # noqa: F401
from app.models.stage_progress import StageProgress  # noqa: F401
from app.models.empathy_attempt import EmpathyAttempt  # noqa: F401
from app.models.reconciler_result import ReconcilerResult  # noqa: F401
from app.models.share_offer import ReconcilerShareOffer  # noqa: F401
from app.models.refinement_attempt import RefinementAttemptCounter  # noqa: F401
from app.models.message import Message  # noqa: F401
