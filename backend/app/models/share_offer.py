"""ReconcilerShareOffer ORM — the subject's accept/decline/refine negotiation.

Invariants:
    - Unique result_id: at most one offer per reconciler result
    - status: PENDING -> OFFERED -> ACCEPTED | DECLINED (terminal)
    - shared_content is set only on ACCEPTED; it is the only subject text that ever
      reaches the guesser

Design Decisions:
    - session/guesser/subject denormalized from the result: the subject's open offer is
      looked up without a join
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class ReconcilerShareOffer(Base):
    __tablename__ = "reconciler_share_offers"
    __table_args__ = (Index("ix_share_offers_subject", "session_id", "subject_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    result_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("reconciler_results.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    guesser_id: Mapped[str] = mapped_column(String(64), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="PENDING",
    )
    suggested_content: Mapped[str] = mapped_column(Text, nullable=False)
    suggested_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    refined_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    shared_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    shared_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    delivery_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="UNDELIVERED",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    responded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
