"""Stage Transition Enforcement — pure checks for the per-user stage state machine.

Invariants:
    - All functions are PURE: no IO, no async, no DB, no side effects
    - Return error dict on violation, None on success
    - validate_advance chains all checks — first error wins
    - Only IN_PROGRESS and GATE_PENDING stages can be advanced or paused
    - A successor record that already exists blocks advance (calling twice never double-advances)

Design Decisions:
    - Pure functions over method dispatch: testable without a database
    - The shell (services/stage_progress.py) turns error dicts into typed exceptions
"""

from app.core.domain_types import ACTIVE_STAGE_STATUSES, Stage, StageStatus
from app.core.records import StageProgressRecord
from app.core.stage_gates import missing_required_gates


def _error(code: str, message: str, **extra: object) -> dict:
    return {"status": "error", "error_code": code, "message": message, **extra}


def check_on_stage(record: StageProgressRecord | None, from_stage: Stage) -> dict | None:
    """The user must currently be working on from_stage."""
    if record is None:
        return _error(
            "NOT_ON_STAGE",
            f"User has no progress record for stage {from_stage.name}.",
        )
    if record.status not in ACTIVE_STAGE_STATUSES:
        return _error(
            "NOT_ON_STAGE",
            f"Stage {from_stage.name} is {record.status.value}; only "
            f"IN_PROGRESS or GATE_PENDING stages can be advanced.",
        )
    return None


def check_successor_absent(
    from_stage: Stage, successor: StageProgressRecord | None,
) -> dict | None:
    """Next stage must not exist yet (idempotency guard)."""
    if successor is not None:
        return _error(
            "ALREADY_ADVANCED",
            f"Stage {successor.stage.name} already exists "
            f"({successor.status.value}); {from_stage.name} was already advanced.",
        )
    return None


def check_required_gates(record: StageProgressRecord) -> dict | None:
    missing = missing_required_gates(record.stage, record.gates)
    if missing:
        return _error(
            "GATES_NOT_SATISFIED",
            f"Stage {record.stage.name} cannot complete. Missing gates: {missing}.",
            missing_gates=missing,
        )
    return None


def validate_advance(
    record: StageProgressRecord | None,
    from_stage: Stage,
    successor: StageProgressRecord | None,
) -> dict | None:
    """Chain all advance checks. Returns first error or None."""
    return (
        check_on_stage(record, from_stage)
        or check_successor_absent(from_stage, successor)
        or check_required_gates(record)
    )


def check_pause_transition(
    record: StageProgressRecord | None, target: StageStatus,
) -> dict | None:
    """IN_PROGRESS <-> GATE_PENDING only."""
    allowed = {
        StageStatus.GATE_PENDING: StageStatus.IN_PROGRESS,
        StageStatus.IN_PROGRESS: StageStatus.GATE_PENDING,
    }
    if target not in allowed:
        return _error(
            "INVALID_TRANSITION",
            f"Stage status can only toggle between IN_PROGRESS and GATE_PENDING, "
            f"not to {target.value}.",
        )
    if record is None or record.status != allowed[target]:
        current = record.status.value if record else StageStatus.NOT_STARTED.value
        return _error(
            "INVALID_TRANSITION",
            f"Cannot move to {target.value} from {current}.",
        )
    return None


def pick_current_stage(records: list[StageProgressRecord]) -> Stage:
    """Highest active stage; stage 0 when nothing is active."""
    active = [r.stage for r in records if r.status in ACTIVE_STAGE_STATUSES]
    return max(active) if active else Stage.ONBOARDING
