"""Gap Analysis Rules — pure decisions over an empathy gap analysis.

Invariants:
    - CONSERVATIVE_ANALYSIS is what a failed/timed-out/malformed analysis becomes:
      score 70, severity minor, PROCEED — a failure never escalates to sharing
    - should_reveal: severity in {none, minor, moderate} AND action != OFFER_SHARING
    - derive_guidance only emits fixed-vocabulary hints; no field of the analysis that
      could hold either party's words is ever copied into AbstractGuidance
    - All functions are PURE: no IO, no async, no DB, no side effects

Design Decisions:
    - Decision and guidance live here (not in the reconciler service) so both the first
      reconciliation and the refinement re-check apply identical rules
"""

from app.core.domain_types import GapSeverity, GuidanceType, RecommendedAction
from app.core.records import AbstractGuidance, PrivateAnalysis

CONSERVATIVE_ANALYSIS = PrivateAnalysis(
    alignment_score=70,
    gap_severity=GapSeverity.MINOR,
    recommended_action=RecommendedAction.PROCEED,
    alignment_summary="Unable to fully analyze the empathy exchange.",
    gap_summary="",
    rationale="Analysis unavailable; proceeding without additional sharing.",
    sharing_would_help=False,
)

REVEALABLE_SEVERITIES = frozenset({
    GapSeverity.NONE, GapSeverity.MINOR, GapSeverity.MODERATE,
})

GENERIC_GAP_SUMMARY = "Some of what they expressed may not be fully reflected yet."

_AREA_HINTS: dict[GuidanceType, str | None] = {
    GuidanceType.NONE: None,
    GuidanceType.EXPLORE_DEEPER_FEELINGS: (
        "There may be feelings underneath what you described that are worth exploring."
    ),
    GuidanceType.RECONSIDER_ASSUMPTIONS: (
        "Some of what you assumed about how they felt may not match their experience."
    ),
    GuidanceType.CONSIDER_CONTEXT: (
        "Think about what the situation might have been like from where they stood."
    ),
}


def to_private_analysis(data: dict) -> PrivateAnalysis:
    """Build a PrivateAnalysis from an already-validated flat payload."""
    return PrivateAnalysis(
        alignment_score=max(0, min(100, int(data["alignment_score"]))),
        gap_severity=GapSeverity(data["gap_severity"]),
        recommended_action=RecommendedAction(data["recommended_action"]),
        alignment_summary=data.get("alignment_summary") or "",
        correctly_identified=tuple(data.get("correctly_identified") or ()),
        gap_summary=data.get("gap_summary") or "",
        missed_feelings=tuple(data.get("missed_feelings") or ()),
        misattributions=tuple(data.get("misattributions") or ()),
        most_important_gap=data.get("most_important_gap") or None,
        rationale=data.get("rationale") or "",
        sharing_would_help=bool(data.get("sharing_would_help", False)),
        suggested_share_focus=data.get("suggested_share_focus") or None,
    )


def should_reveal(analysis: PrivateAnalysis) -> bool:
    return (
        analysis.gap_severity in REVEALABLE_SEVERITIES
        and analysis.recommended_action != RecommendedAction.OFFER_SHARING
    )


def classify_guidance(analysis: PrivateAnalysis) -> GuidanceType:
    if analysis.gap_severity == GapSeverity.NONE:
        return GuidanceType.NONE
    if analysis.misattributions:
        return GuidanceType.RECONSIDER_ASSUMPTIONS
    if analysis.missed_feelings:
        return GuidanceType.EXPLORE_DEEPER_FEELINGS
    if analysis.most_important_gap or analysis.gap_severity != GapSeverity.MINOR:
        return GuidanceType.CONSIDER_CONTEXT
    return GuidanceType.NONE


def derive_guidance(analysis: PrivateAnalysis) -> AbstractGuidance:
    guidance_type = classify_guidance(analysis)
    return AbstractGuidance(
        guidance_type=guidance_type, area_hint=_AREA_HINTS[guidance_type],
    )


def guidance_from_type(raw_type: str | None) -> AbstractGuidance:
    """Rebuild guidance from its stored tag. Unknown tags degrade to NONE."""
    try:
        guidance_type = GuidanceType(raw_type) if raw_type else GuidanceType.NONE
    except ValueError:
        guidance_type = GuidanceType.NONE
    return AbstractGuidance(
        guidance_type=guidance_type, area_hint=_AREA_HINTS[guidance_type],
    )


def gap_summary_for_suggestion(analysis: PrivateAnalysis) -> str:
    return analysis.gap_summary or GENERIC_GAP_SUMMARY
