"""Reveal — make a guesser's statement visible to the subject and announce it.

Invariants:
    - Announcements (neutral notice + notifications) happen only on the call that
      actually moved the attempt to REVEALED; a duplicate reveal is silent
    - The neutral notice to the guesser quotes nobody
"""

import logging

from app.core.domain_types import MessageRole, NotificationEvent, Stage
from app.core.format_messages import format_reveal_notice
from app.core.records import EmpathyAttemptRecord, SessionMembers
from app.core.repository_protocols import NotificationChannel
from app.services.empathy_ledger import EmpathyLedger
from app.services.message_store import MessageStore
from app.services.notifier import notify_safely

logger = logging.getLogger(__name__)


async def reveal_direction(
    ledger: EmpathyLedger,
    messages: MessageStore,
    notifier: NotificationChannel,
    members: SessionMembers,
    guesser_id: str,
) -> EmpathyAttemptRecord:
    session_id = members.session_id
    subject_id = members.partner_of(guesser_id)
    attempt, applied = await ledger.mark_revealed(session_id, guesser_id)
    if not applied:
        return attempt

    await messages.add(
        session_id, guesser_id, MessageRole.SYSTEM,
        format_reveal_notice(members.name_of(subject_id)),
        Stage.PERSPECTIVE_STRETCH,
    )
    await notify_safely(
        notifier, session_id, guesser_id, NotificationEvent.EMPATHY_REVEALED,
        {"status": attempt.status.value},
    )
    await notify_safely(
        notifier, session_id, subject_id, NotificationEvent.PARTNER_EMPATHY_SHARED,
        {"from_user_id": guesser_id},
    )
    logger.info(
        "Empathy statement revealed",
        extra={"session_id": session_id, "direction": f"{guesser_id}->{subject_id}"},
    )
    return attempt
