"""Collaborator Payload Schemas — validation for what the analysis collaborator returns.

Invariants:
    - Anything that fails validation here is "malformed output" and triggers the
      conservative fallback in the reconciler
    - Severity is normalized to lowercase, action to uppercase before enum matching
    - alignment_score bounded 0–100 (floats rounded)
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.domain_types import GapSeverity, RecommendedAction


class GapAnalysisPayload(BaseModel):
    """Flat gap analysis as returned by AnalysisCollaborator.analyze_gap."""
    model_config = ConfigDict(extra="ignore")

    alignment_score: int = Field(ge=0, le=100)
    gap_severity: GapSeverity
    recommended_action: RecommendedAction
    alignment_summary: str = ""
    correctly_identified: list[str] = Field(default_factory=list)
    gap_summary: str = ""
    missed_feelings: list[str] = Field(default_factory=list)
    misattributions: list[str] = Field(default_factory=list)
    most_important_gap: str | None = None
    rationale: str = ""
    sharing_would_help: bool = False
    suggested_share_focus: str | None = None

    @field_validator("alignment_score", mode="before")
    @classmethod
    def round_score(cls, v):
        if isinstance(v, float):
            return round(v)
        return v

    @field_validator("gap_severity", mode="before")
    @classmethod
    def lower_severity(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("recommended_action", mode="before")
    @classmethod
    def upper_action(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


class ShareSuggestionPayload(BaseModel):
    """What SuggestionCollaborator.suggest_share returns."""
    model_config = ConfigDict(extra="ignore")

    suggested_content: str = ""
    reason: str = ""


class ThemesPayload(BaseModel):
    """What the theme extraction call returns; blanks dropped, at most 10 accepted."""
    model_config = ConfigDict(extra="ignore")

    themes: list[str] = Field(default_factory=list, max_length=10)

    @field_validator("themes", mode="before")
    @classmethod
    def clean_themes(cls, v):
        if v is None:
            return []
        if isinstance(v, list):
            return [str(t).strip() for t in v if str(t).strip()]
        return v
