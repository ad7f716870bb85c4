"""Witnessing Content Provider — what a user said about themselves in stage 1.

Invariants:
    - Read-only: never writes messages
    - user_messages = the user's own stage-1 messages joined with a blank line
    - themes = extracted_emotions carried on those messages (deduplicated, in order);
      only when none exist is the ThemeExtractor asked; its failure or timeout yields []
    - Theme extraction runs under the same timeout as the gap analysis
"""

import asyncio
import logging
from uuid import UUID

from app.core.records import WitnessingContent
from app.core.repository_protocols import ThemeExtractor
from app.services.message_store import MessageStore

logger = logging.getLogger(__name__)


class TranscriptWitnessingProvider:

    def __init__(
        self,
        messages: MessageStore,
        theme_extractor: ThemeExtractor | None = None,
        *,
        timeout_seconds: float = 30.0,
    ):
        self._messages = messages
        self._theme_extractor = theme_extractor
        self._timeout_seconds = timeout_seconds

    async def get_witnessing_content(
        self, session_id: UUID, user_id: str,
    ) -> WitnessingContent:
        rows = await self._messages.witnessing_messages(session_id, user_id)
        content = "\n\n".join(m.content for m in rows if m.content.strip())
        themes = list(dict.fromkeys(
            emotion for m in rows for emotion in m.extracted_emotions
        ))
        if not themes and content and self._theme_extractor:
            themes = await self._extract_themes(session_id, user_id, content)
        return WitnessingContent(user_messages=content, themes=themes)

    async def _extract_themes(
        self, session_id: UUID, user_id: str, content: str,
    ) -> list[str]:
        log_extra = {"session_id": session_id, "user_id": user_id}
        try:
            return await asyncio.wait_for(
                self._theme_extractor.extract_themes(content),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Theme extraction timed out after {self._timeout_seconds}s, "
                f"continuing without themes",
                extra=log_extra,
            )
            return []
        except Exception as e:
            logger.warning(
                f"Theme extraction failed, continuing without themes: {e}", extra=log_extra,
            )
            return []
