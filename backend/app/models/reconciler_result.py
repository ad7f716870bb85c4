"""ReconcilerResult ORM — the compute-once gap analysis for one direction.

Invariants:
    - Unique (session_id, guesser_id, subject_id): a direction is analyzed exactly once;
      a concurrent second insert fails and the loser reads this row back
    - Never updated after insert
    - Analysis columns are private: only area_hint/guidance_type may reach the guesser

Design Decisions:
    - Flat columns over one JSON blob: severity and action are queried for status views
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    String, Text, Integer, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class ReconcilerResult(Base):
    __tablename__ = "reconciler_results"
    __table_args__ = (
        UniqueConstraint(
            "session_id", "guesser_id", "subject_id",
            name="uq_reconciler_result_direction",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    guesser_id: Mapped[str] = mapped_column(String(64), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)

    alignment_score: Mapped[int] = mapped_column(Integer, nullable=False)
    alignment_summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    correctly_identified: Mapped[list] = mapped_column(
        JSON, nullable=False, default=list,
    )
    gap_severity: Mapped[str] = mapped_column(String(20), nullable=False)
    gap_summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    missed_feelings: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    misattributions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    most_important_gap: Mapped[str | None] = mapped_column(Text, nullable=True)
    recommended_action: Mapped[str] = mapped_column(String(20), nullable=False)
    rationale: Mapped[str] = mapped_column(Text, nullable=False, default="")
    sharing_would_help: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    suggested_share_focus: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Abstract guidance (fixed vocabulary, safe for the guesser)
    guidance_type: Mapped[str] = mapped_column(
        String(40), nullable=False, default="none",
    )
    area_hint: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
