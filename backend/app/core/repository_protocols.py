"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - Every external collaborator is reached through one of these Protocols
    - Implementations provided by shell via dependency injection

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no base class
    - Collaborators return plain dicts: the shell validates them (schemas/gap_analysis.py)
      before anything enters the core, so malformed output is caught in one place
"""

from typing import Protocol
from uuid import UUID

from app.core.records import WitnessingContent


class AnalysisCollaborator(Protocol):
    """Compares a guess with what the subject actually expressed. Unreliable."""
    async def analyze_gap(
        self,
        guesser_statement: str,
        subject_content: str,
        themes: list[str],
        *,
        guesser_name: str = "Your partner",
        subject_name: str = "They",
    ) -> dict: ...


class SuggestionCollaborator(Protocol):
    """Drafts what the subject could share, grounded in their own words. Unreliable."""
    async def suggest_share(
        self,
        subject_name: str,
        guesser_name: str,
        gap_summary: str,
        most_important_gap: str | None,
        subject_raw_content: str,
    ) -> dict: ...


class ThemeExtractor(Protocol):
    async def extract_themes(self, content: str) -> list[str]: ...


class WitnessingContentProvider(Protocol):
    """Read-only view of what a user said while being witnessed."""
    async def get_witnessing_content(
        self, session_id: UUID, user_id: str,
    ) -> WitnessingContent: ...


class NotificationChannel(Protocol):
    """Fire-and-forget push. Failures must never block a state transition."""
    async def notify(
        self, session_id: UUID, user_id: str, event_type: str, payload: dict,
    ) -> None: ...
