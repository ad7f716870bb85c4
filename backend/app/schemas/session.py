"""Session Schemas — Pydantic models with field-level validation for API boundaries.

Invariants:
    - SessionCreate: two distinct user ids, non-empty display names (stripped)
    - MessageCreate.content: 1-10000 chars, stripped, non-empty
    - Messages are listed per user: a response never contains the partner's slice

Design Decisions:
    - field_validator for side-effect-free transforms (strip) — keeps models pure
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.domain_types import MessageRole, Stage


class SessionCreate(BaseModel):
    """Session creation — the two members are fixed for the session's lifetime."""
    user_a_id: str = Field(min_length=1, max_length=64)
    user_a_name: str = Field(min_length=1, max_length=100)
    user_b_id: str = Field(min_length=1, max_length=64)
    user_b_name: str = Field(min_length=1, max_length=100)

    @field_validator("user_a_id", "user_b_id", "user_a_name", "user_b_name")
    @classmethod
    def strip_value(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("value cannot be empty or whitespace")
        return v

    @model_validator(mode="after")
    def distinct_members(self):
        if self.user_a_id == self.user_b_id:
            raise ValueError("a session needs two different users")
        return self


class SessionResponse(BaseModel):
    """Session response — public-facing session data."""
    id: UUID
    user_a_id: str
    user_a_name: str
    user_b_id: str
    user_b_name: str
    status: str
    created_at: datetime | None = None


class MessageCreate(BaseModel):
    """A user's own message in their private conversation."""
    content: str = Field(min_length=1, max_length=10_000)
    stage: Stage = Stage.WITNESS
    extracted_emotions: list[str] = Field(default_factory=list, max_length=10)

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("content cannot be empty or whitespace")
        return v


class MessageResponse(BaseModel):
    id: UUID
    role: MessageRole
    sender_id: str | None
    content: str
    stage: Stage
    created_at: datetime | None = None
