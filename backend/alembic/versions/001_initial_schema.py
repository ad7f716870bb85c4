"""Initial schema — sessions, stage progress, empathy exchange, messages.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _session_fk() -> sa.Column:
    return sa.Column(
        "session_id", UUID(as_uuid=True),
        sa.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "sessions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_a_id", sa.String(64), nullable=False),
        sa.Column("user_a_name", sa.String(100), nullable=False),
        sa.Column("user_b_id", sa.String(64), nullable=False),
        sa.Column("user_b_name", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "stage_progress",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        _session_fk(),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("stage", sa.Integer, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="IN_PROGRESS"),
        sa.Column("gates_satisfied", sa.JSON, nullable=False),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("session_id", "user_id", "stage", name="uq_stage_progress_user_stage"),
    )

    op.create_table(
        "empathy_attempts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        _session_fk(),
        sa.Column("source_user_id", sa.String(64), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="HELD"),
        sa.Column("shared_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revealed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivery_status", sa.String(20), nullable=False, server_default="UNDELIVERED"),
        sa.Column("revision_count", sa.Integer, nullable=False, server_default="0"),
        sa.UniqueConstraint("session_id", "source_user_id", name="uq_empathy_attempt_direction"),
    )

    op.create_table(
        "reconciler_results",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        _session_fk(),
        sa.Column("guesser_id", sa.String(64), nullable=False),
        sa.Column("subject_id", sa.String(64), nullable=False),
        sa.Column("alignment_score", sa.Integer, nullable=False),
        sa.Column("alignment_summary", sa.Text, nullable=False, server_default=""),
        sa.Column("correctly_identified", sa.JSON, nullable=False),
        sa.Column("gap_severity", sa.String(20), nullable=False),
        sa.Column("gap_summary", sa.Text, nullable=False, server_default=""),
        sa.Column("missed_feelings", sa.JSON, nullable=False),
        sa.Column("misattributions", sa.JSON, nullable=False),
        sa.Column("most_important_gap", sa.Text, nullable=True),
        sa.Column("recommended_action", sa.String(20), nullable=False),
        sa.Column("rationale", sa.Text, nullable=False, server_default=""),
        sa.Column("sharing_would_help", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("suggested_share_focus", sa.Text, nullable=True),
        sa.Column("guidance_type", sa.String(40), nullable=False, server_default="none"),
        sa.Column("area_hint", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint(
            "session_id", "guesser_id", "subject_id", name="uq_reconciler_result_direction",
        ),
    )

    op.create_table(
        "reconciler_share_offers",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "result_id", UUID(as_uuid=True),
            sa.ForeignKey("reconciler_results.id", ondelete="CASCADE"),
            nullable=False, unique=True,
        ),
        _session_fk(),
        sa.Column("guesser_id", sa.String(64), nullable=False),
        sa.Column("subject_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("suggested_content", sa.Text, nullable=False),
        sa.Column("suggested_reason", sa.Text, nullable=True),
        sa.Column("refined_content", sa.Text, nullable=True),
        sa.Column("shared_content", sa.Text, nullable=True),
        sa.Column("shared_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivery_status", sa.String(20), nullable=False, server_default="UNDELIVERED"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_share_offers_subject", "reconciler_share_offers", ["session_id", "subject_id"],
    )

    op.create_table(
        "refinement_attempt_counters",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        _session_fk(),
        sa.Column("direction", sa.String(140), nullable=False),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("session_id", "direction", name="uq_refinement_counter_direction"),
    )

    op.create_table(
        "messages",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        _session_fk(),
        sa.Column("for_user_id", sa.String(64), nullable=False),
        sa.Column("sender_id", sa.String(64), nullable=True),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("stage", sa.Integer, nullable=False),
        sa.Column("extracted_emotions", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_messages_session_user", "messages", ["session_id", "for_user_id"])


def downgrade() -> None:
    op.drop_index("ix_messages_session_user", table_name="messages")
    op.drop_table("messages")
    op.drop_table("refinement_attempt_counters")
    op.drop_index("ix_share_offers_subject", table_name="reconciler_share_offers")
    op.drop_table("reconciler_share_offers")
    op.drop_table("reconciler_results")
    op.drop_table("empathy_attempts")
    op.drop_table("stage_progress")
    op.drop_table("sessions")
