"""Stage enforcement tests — pure checks for advance, pause/resume, current stage."""

from datetime import datetime, timezone
from uuid import uuid4

from app.core.domain_types import Stage, StageStatus
from app.core.enforce_stages import (
    check_pause_transition, pick_current_stage, validate_advance,
)
from app.core.records import StageProgressRecord
from app.core.stage_gates import WitnessGates, empty_gates

SESSION = uuid4()


def _record(stage=Stage.WITNESS, status=StageStatus.IN_PROGRESS, gates=None):
    return StageProgressRecord(
        session_id=SESSION,
        user_id="alice",
        stage=stage,
        status=status,
        gates=gates if gates is not None else empty_gates(stage),
        started_at=datetime.now(timezone.utc),
        completed_at=None,
    )


def test_advance_passes_when_active_and_gates_met():
    record = _record(gates=WitnessGates(feel_heard_confirmed=True))
    assert validate_advance(record, Stage.WITNESS, None) is None


def test_advance_from_gate_pending_is_allowed():
    record = _record(
        status=StageStatus.GATE_PENDING, gates=WitnessGates(feel_heard_confirmed=True),
    )
    assert validate_advance(record, Stage.WITNESS, None) is None


def test_advance_without_record_fails():
    error = validate_advance(None, Stage.WITNESS, None)
    assert error["error_code"] == "NOT_ON_STAGE"


def test_advance_on_completed_stage_fails():
    record = _record(
        status=StageStatus.COMPLETED, gates=WitnessGates(feel_heard_confirmed=True),
    )
    error = validate_advance(record, Stage.WITNESS, None)
    assert error["error_code"] == "NOT_ON_STAGE"


def test_advance_when_successor_exists_fails():
    record = _record(gates=WitnessGates(feel_heard_confirmed=True))
    successor = _record(stage=Stage.PERSPECTIVE_STRETCH)
    error = validate_advance(record, Stage.WITNESS, successor)
    assert error["error_code"] == "ALREADY_ADVANCED"


def test_advance_with_missing_gates_lists_them():
    error = validate_advance(_record(), Stage.WITNESS, None)
    assert error["error_code"] == "GATES_NOT_SATISFIED"
    assert error["missing_gates"] == ["feel_heard_confirmed"]


def test_pause_and_resume_toggle():
    assert check_pause_transition(_record(), StageStatus.GATE_PENDING) is None
    paused = _record(status=StageStatus.GATE_PENDING)
    assert check_pause_transition(paused, StageStatus.IN_PROGRESS) is None


def test_pause_rejects_other_targets_and_sources():
    assert check_pause_transition(_record(), StageStatus.COMPLETED) is not None
    done = _record(status=StageStatus.COMPLETED)
    assert check_pause_transition(done, StageStatus.GATE_PENDING) is not None
    assert check_pause_transition(None, StageStatus.GATE_PENDING) is not None


def test_current_stage_is_highest_active():
    records = [
        _record(stage=Stage.ONBOARDING, status=StageStatus.COMPLETED),
        _record(stage=Stage.WITNESS, status=StageStatus.COMPLETED),
        _record(stage=Stage.PERSPECTIVE_STRETCH, status=StageStatus.GATE_PENDING),
    ]
    assert pick_current_stage(records) == Stage.PERSPECTIVE_STRETCH


def test_current_stage_defaults_to_onboarding():
    assert pick_current_stage([]) == Stage.ONBOARDING
