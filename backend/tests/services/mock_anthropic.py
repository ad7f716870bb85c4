"""Mock Anthropic Client — stands in for ResilientAnthropicClient in gap analyst tests.

Invariants:
    - MockAnthropicClient sequences replies (one per create_message call)
    - A queued Exception instance is raised instead of returned
    - Every call's kwargs are recorded for assertions on system prompt and messages

Design Decisions:
    - Flat mock classes (no inheritance): simple, explicit, easy to debug
    - _Block mirrors the SDK's text block (type + text); other block types are ignored
      by the analyst, so a "thinking" block is enough to exercise the filter
"""

import json


class _Block:
    """Mock content block (text, thinking)."""

    def __init__(self, type, text=None):
        self.type = type
        self.text = text


class _Usage:
    def __init__(self, input_tokens=100, output_tokens=50):
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens


class _Message:
    def __init__(self, content):
        self.content = content
        self.stop_reason = "end_turn"
        self.usage = _Usage()


def text_reply(text: str) -> _Message:
    return _Message([_Block("text", text)])


def json_reply(data: dict, fenced: bool = False) -> _Message:
    body = json.dumps(data)
    if fenced:
        body = f"```json\n{body}\n```"
    return text_reply(body)


def nested_analysis(
    score=82, severity="minor", action="PROCEED", **gaps,
) -> dict:
    """Analysis in the nested camelCase shape the model is prompted to return."""
    return {
        "alignment": {
            "score": score,
            "summary": "Mostly there.",
            "correctlyIdentified": ["tired"],
        },
        "gaps": {
            "severity": severity,
            "summary": gaps.get("summary", ""),
            "missedFeelings": gaps.get("missedFeelings", []),
            "misattributions": [],
            "mostImportantGap": gaps.get("mostImportantGap"),
        },
        "recommendation": {
            "action": action,
            "rationale": "Close enough.",
            "sharingWouldHelp": action == "OFFER_SHARING",
            "suggestedShareFocus": None,
        },
    }


class MockAnthropicClient:
    """Sequenced replies for create_message."""

    def __init__(self, replies):
        self._replies = list(replies)
        self._index = 0
        self.calls = []

    async def create_message(self, **kwargs):
        self.calls.append(kwargs)
        reply = self._replies[self._index]
        self._index += 1
        if isinstance(reply, Exception):
            raise reply
        return reply
