"""Exchange Message Formatting — pure functions for the texts the engine delivers.

Invariants:
    - All functions are pure (no IO, no async, no DB)
    - Neutral notices never quote either party
    - Only format_shared_context / format_share_receipt include shared content, and they
      take a ConsentedDisclosure (the consented type), not raw strings
"""

from app.core.records import ConsentedDisclosure

ACCEPT_CONFIRMATION = "Thanks for sharing that. It's been sent to help them understand you better."
DECLINE_CONFIRMATION = "No problem at all. You've shared what feels right, and that's perfect."


def format_reveal_notice(subject_name: str) -> str:
    """Neutral notice for the guesser once their statement is revealed."""
    return (
        f"{subject_name} has shared their side and is now considering "
        f"what you wrote about them."
    )


def format_shared_context(disclosure: ConsentedDisclosure, subject_name: str) -> str:
    """Delivered to the guesser: the consented content plus a reflection prompt."""
    return (
        f"{subject_name} wanted to help you understand them a little better and shared this:\n\n"
        f"\"{disclosure.content}\"\n\n"
        f"Take a moment with it. Is there anything you'd like to add or change "
        f"in how you described what {subject_name} might be feeling?"
    )


def format_share_receipt(disclosure: ConsentedDisclosure, guesser_name: str) -> str:
    """Mirrored copy for the subject."""
    return f"What you shared with {guesser_name}:\n\n\"{disclosure.content}\""


def format_circuit_breaker_notice(subject_name: str) -> str:
    return (
        f"You've put real care into understanding {subject_name}. "
        f"Let's move forward: your latest statement has been shared with {subject_name}."
    )


def confirmation_for(accepted: bool) -> str:
    return ACCEPT_CONFIRMATION if accepted else DECLINE_CONFIRMATION
