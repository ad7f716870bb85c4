"""Stage Schemas — progress reads, advance requests, and single-gate updates.

Invariants:
    - GateUpdate carries exactly one key; values are bool, int, str, or null
    - Gate validity (known key, right type) is checked in core/stage_gates.py, not here
"""

from datetime import datetime

from pydantic import BaseModel, Field

from app.core.domain_types import Stage, StageStatus


class StageAdvanceRequest(BaseModel):
    from_stage: Stage


class GateUpdate(BaseModel):
    key: str = Field(min_length=1, max_length=64)
    value: bool | int | str | None


class StageStatusUpdate(BaseModel):
    status: StageStatus


class StageProgressResponse(BaseModel):
    stage: Stage
    stage_name: str
    status: StageStatus
    gates: dict
    started_at: datetime | None = None
    completed_at: datetime | None = None


class ProgressListResponse(BaseModel):
    current_stage: Stage
    stages: list[StageProgressResponse]
