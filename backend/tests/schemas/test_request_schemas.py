"""Request schema tests — input bounds, stripping, and cross-field rules."""

import pytest
from pydantic import ValidationError

from app.core.domain_types import ShareAction, Stage
from app.schemas.empathy import (
    EmpathySubmit, FeelHeardRequest, ShareOfferRespond,
)
from app.schemas.session import MessageCreate, SessionCreate
from app.schemas.stage import GateUpdate


def test_refine_requires_refined_content():
    with pytest.raises(ValidationError):
        ShareOfferRespond(action=ShareAction.REFINE)
    with pytest.raises(ValidationError):
        ShareOfferRespond(action=ShareAction.REFINE, refined_content="   ")
    ok = ShareOfferRespond(action="refine", refined_content="I felt unseen.")
    assert ok.action == ShareAction.REFINE


def test_accept_and_decline_need_no_content():
    assert ShareOfferRespond(action="accept").refined_content is None
    assert ShareOfferRespond(action="decline").action == ShareAction.DECLINE


def test_unknown_share_action_rejected():
    with pytest.raises(ValidationError):
        ShareOfferRespond(action="maybe")


def test_empathy_content_is_stripped_and_non_empty():
    assert EmpathySubmit(content="  You felt tired.  ").content == "You felt tired."
    with pytest.raises(ValidationError):
        EmpathySubmit(content="    ")


def test_emotional_reading_bounds():
    assert FeelHeardRequest(emotional_reading=10).emotional_reading == 10
    with pytest.raises(ValidationError):
        FeelHeardRequest(emotional_reading=11)


def test_session_members_must_differ():
    with pytest.raises(ValidationError):
        SessionCreate(
            user_a_id="alice", user_a_name="Alice",
            user_b_id="alice", user_b_name="Alice again",
        )


def test_message_defaults_to_witness_stage():
    message = MessageCreate(content=" hello ")
    assert message.content == "hello"
    assert message.stage == Stage.WITNESS


def test_gate_update_accepts_scalar_values():
    assert GateUpdate(key="final_emotional_reading", value=6).value == 6
    assert GateUpdate(key="feel_heard_confirmed", value=True).value is True
