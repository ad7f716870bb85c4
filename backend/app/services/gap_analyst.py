"""Anthropic Gap Analyst — LLM-backed analysis, suggestion, and theme collaborators.

Invariants:
    - Implements AnalysisCollaborator, SuggestionCollaborator, ThemeExtractor
    - Returns plain dicts in the collaborator contract (flat snake_case keys)
    - Unparseable replies raise ValueError; API failures raise AnthropicAPIError.
      Callers own the fallback (this class never invents a default analysis)
    - _parse_json has 2 fallback levels (direct, first {...} block) before giving up

Design Decisions:
    - One class, three methods: all three share the client, model, and JSON parsing
    - The model replies in nested camelCase JSON (easier for it to follow);
      _flatten_analysis maps it onto the contract once
"""

import json
import logging
import re

from app.core.errors import ErrorContext
from app.infrastructure.anthropic_client import ResilientAnthropicClient
from app.schemas.gap_analysis import ThemesPayload
from app.services.reconciler_prompts import (
    THEME_EXTRACTION_PROMPT,
    build_gap_analysis_message,
    build_gap_analysis_prompt,
    build_share_suggestion_message,
    build_share_suggestion_prompt,
)

logger = logging.getLogger(__name__)


def _response_text(response) -> str:
    return "".join(
        block.text for block in response.content
        if getattr(block, "type", None) == "text"
    )


def _parse_json(text: str) -> dict:
    """Extract a JSON object from a model reply. Handles markdown wrapping.

    Fallback levels:
    1. Direct json.loads
    2. Regex: extract first {...} block
    Raises ValueError when neither yields an object.
    """
    text = text.strip()

    # Level 1: direct parse
    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    # Level 2: extract JSON block (handles ```json ... ``` wrapping)
    match = re.search(r"\{[\s\S]*\}", text)
    if match:
        try:
            parsed = json.loads(match.group())
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass

    raise ValueError(f"Model reply is not a JSON object: {text[:120]!r}")


def _flatten_analysis(data: dict) -> dict:
    alignment = data.get("alignment") or {}
    gaps = data.get("gaps") or {}
    recommendation = data.get("recommendation") or {}
    return {
        "alignment_score": alignment.get("score"),
        "alignment_summary": alignment.get("summary") or "",
        "correctly_identified": alignment.get("correctlyIdentified") or [],
        "gap_severity": gaps.get("severity"),
        "gap_summary": gaps.get("summary") or "",
        "missed_feelings": gaps.get("missedFeelings") or [],
        "misattributions": gaps.get("misattributions") or [],
        "most_important_gap": gaps.get("mostImportantGap"),
        "recommended_action": recommendation.get("action"),
        "rationale": recommendation.get("rationale") or "",
        "sharing_would_help": bool(recommendation.get("sharingWouldHelp", False)),
        "suggested_share_focus": recommendation.get("suggestedShareFocus"),
    }


class AnthropicGapAnalyst:
    """LLM collaborator for the reconciler."""

    def __init__(
        self, client: ResilientAnthropicClient, model: str, max_tokens: int = 2048,
    ):
        self._client = client
        self._model = model
        self._max_tokens = max_tokens

    async def analyze_gap(
        self,
        guesser_statement: str,
        subject_content: str,
        themes: list[str],
        *,
        guesser_name: str = "Your partner",
        subject_name: str = "They",
    ) -> dict:
        text = await self._complete(
            build_gap_analysis_prompt(guesser_name, subject_name),
            build_gap_analysis_message(guesser_statement, subject_content, themes),
        )
        return _flatten_analysis(_parse_json(text))

    async def suggest_share(
        self,
        subject_name: str,
        guesser_name: str,
        gap_summary: str,
        most_important_gap: str | None,
        subject_raw_content: str,
    ) -> dict:
        text = await self._complete(
            build_share_suggestion_prompt(subject_name, guesser_name),
            build_share_suggestion_message(
                gap_summary, most_important_gap, subject_raw_content,
            ),
        )
        data = _parse_json(text)
        return {
            "suggested_content": data.get("suggestedContent") or "",
            "reason": data.get("reason") or "",
        }

    async def extract_themes(self, content: str) -> list[str]:
        text = await self._complete(THEME_EXTRACTION_PROMPT, content)
        return ThemesPayload.model_validate(_parse_json(text)).themes[:5]

    async def _complete(self, system: str, user_message: str) -> str:
        response = await self._client.create_message(
            model=self._model,
            max_tokens=self._max_tokens,
            system=system,
            messages=[{"role": "user", "content": user_message}],
            context=ErrorContext(debug_info={"model": self._model}),
        )
        return _response_text(response)
