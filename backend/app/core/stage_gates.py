"""Stage Gates — one typed gate struct per stage, merged one key at a time.

Invariants:
    - Every stage has exactly one gate dataclass (GATES_BY_STAGE)
    - merge_gate replaces ONE field and keeps every other field as-is (merge, never overwrite)
    - Unknown gate keys and wrongly-typed values are rejected, never stored
    - Timestamps are stored as ISO-8601 strings (the map is persisted as JSON)

Design Decisions:
    - Frozen dataclasses over a free-form dict: a typo in a gate key is an error, not a new key
    - Pure functions return error dicts on violation, None on success (same shape as enforce_stages)
"""

import types
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Union, get_args

from app.core.domain_types import Stage


@dataclass(frozen=True)
class OnboardingGates:
    compact_signed: bool = False
    compact_signed_at: str | None = None


@dataclass(frozen=True)
class WitnessGates:
    feel_heard_confirmed: bool = False
    feel_heard_confirmed_at: str | None = None
    final_emotional_reading: int | None = None


@dataclass(frozen=True)
class PerspectiveGates:
    empathy_draft_ready: bool = False
    empathy_consented: bool = False
    partner_validated: bool = False
    # Set by the reconciler on the subject's record, not by the subject
    reconciler_check_offered: bool = False


@dataclass(frozen=True)
class NeedGates:
    needs_confirmed: bool = False
    common_ground_confirmed: bool = False


@dataclass(frozen=True)
class RepairGates:
    strategies_submitted: bool = False
    rankings_submitted: bool = False
    agreement_created: bool = False


StageGates = Union[OnboardingGates, WitnessGates, PerspectiveGates, NeedGates, RepairGates]

GATES_BY_STAGE: dict[Stage, type] = {
    Stage.ONBOARDING: OnboardingGates,
    Stage.WITNESS: WitnessGates,
    Stage.PERSPECTIVE_STRETCH: PerspectiveGates,
    Stage.NEED_MAPPING: NeedGates,
    Stage.STRATEGIC_REPAIR: RepairGates,
}

REQUIRED_GATES: dict[Stage, tuple[str, ...]] = {
    Stage.ONBOARDING: ("compact_signed",),
    Stage.WITNESS: ("feel_heard_confirmed",),
    Stage.PERSPECTIVE_STRETCH: ("empathy_consented",),
    Stage.NEED_MAPPING: ("needs_confirmed", "common_ground_confirmed"),
    Stage.STRATEGIC_REPAIR: ("agreement_created",),
}


def _allowed_types(annotation: Any) -> tuple[type, ...]:
    if isinstance(annotation, types.UnionType):
        return get_args(annotation)
    return (annotation,)


def _field_types(stage: Stage) -> dict[str, tuple[type, ...]]:
    return {f.name: _allowed_types(f.type) for f in fields(GATES_BY_STAGE[stage])}


def empty_gates(stage: Stage) -> StageGates:
    return GATES_BY_STAGE[stage]()


def check_gate_value(stage: Stage, key: str, value: Any) -> dict | None:
    """Gate key must exist on the stage's struct and value must match its type."""
    allowed = _field_types(stage)
    if key not in allowed:
        return {
            "status": "error",
            "error_code": "UNKNOWN_GATE",
            "message": (
                f"Gate '{key}' is not defined for stage {stage.name}. "
                f"Valid gates: {sorted(allowed)}"
            ),
        }
    if not isinstance(value, allowed[key]):
        return {
            "status": "error",
            "error_code": "INVALID_GATE_VALUE",
            "message": (
                f"Gate '{key}' expects {[t.__name__ for t in allowed[key]]}, "
                f"got {type(value).__name__}"
            ),
        }
    return None


def parse_gates(stage: Stage, raw: dict | None) -> StageGates:
    """Rebuild the typed struct from its stored JSON. Unknown keys raise ValueError."""
    raw = raw or {}
    for key, value in raw.items():
        error = check_gate_value(stage, key, value)
        if error:
            raise ValueError(error["message"])
    return GATES_BY_STAGE[stage](**raw)


def merge_gate(gates: StageGates, stage: Stage, key: str, value: Any) -> StageGates:
    """Return a copy with exactly one gate replaced. Raises ValueError on invalid input."""
    error = check_gate_value(stage, key, value)
    if error:
        raise ValueError(error["message"])
    return replace(gates, **{key: value})


def gates_to_dict(gates: StageGates) -> dict:
    return asdict(gates)


def missing_required_gates(stage: Stage, gates: StageGates) -> list[str]:
    return [key for key in REQUIRED_GATES[stage] if not getattr(gates, key)]
