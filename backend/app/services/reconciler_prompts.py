"""Reconciler Prompts — system prompts for gap analysis, share suggestions, and themes.

Invariants:
    - Every prompt demands a single JSON object and states its exact shape
    - The suggestion prompt only ever sees the subject's own words, and forbids inventing
      content the subject did not express
    - Prompts never include the other party's identifiers, only display names

Design Decisions:
    - XML-tagged sections: the model reliably keeps guess and witnessing content apart
    - Nested JSON in the analysis reply (alignment/gaps/recommendation); gap_analyst.py
      flattens it into the collaborator contract
"""


def build_gap_analysis_prompt(guesser_name: str, subject_name: str) -> str:
    return f"""You compare two things in a structured repair conversation:
what {guesser_name} believes {subject_name} is feeling, and what {subject_name}
actually said about their own experience. You decide whether an extra, voluntary
share from {subject_name} would meaningfully help {guesser_name} understand them.

<assessment>
PROCEED: {guesser_name} captured most of {subject_name}'s core feelings, with no
harmful misattribution and only minor, low-charge omissions.
OFFER_OPTIONAL: the general direction is right but some important feelings are
missing. Sharing could deepen understanding but is not essential.
OFFER_SHARING: key feelings or needs were missed, or a misattribution could do
harm if left uncorrected, and something {subject_name} already said would
close the gap.
When in doubt between OFFER_OPTIONAL and OFFER_SHARING, choose OFFER_OPTIONAL.
</assessment>

<principles>
- Only reference what {subject_name} actually expressed. Do not interpret beyond it.
- Never suggest sharing anything {subject_name} did not already say.
- If the gap is about history or context that was never shared, say so plainly.
</principles>

Reply with ONE JSON object and nothing else:
{{
  "alignment": {{
    "score": <integer 0-100>,
    "summary": "<1-2 sentences on what was understood>",
    "correctlyIdentified": ["<feeling or need>"]
  }},
  "gaps": {{
    "severity": "none" | "minor" | "moderate" | "significant",
    "summary": "<1-2 sentences on what was missed>",
    "missedFeelings": ["<feeling or need>"],
    "misattributions": ["<incorrect assumption>"],
    "mostImportantGap": "<single most important missed point>" | null
  }},
  "recommendation": {{
    "action": "PROCEED" | "OFFER_OPTIONAL" | "OFFER_SHARING",
    "rationale": "<why>",
    "sharingWouldHelp": true | false,
    "suggestedShareFocus": "<aspect {subject_name} could share>" | null
  }}
}}"""


def build_gap_analysis_message(
    guesser_statement: str, subject_content: str, themes: list[str],
) -> str:
    parts = [
        f"<empathy_guess>\n{guesser_statement}\n</empathy_guess>",
        f"<witnessing>\n{subject_content}\n</witnessing>",
    ]
    if themes:
        joined = "\n".join(f"- {t}" for t in themes)
        parts.append(f"<themes>\n{joined}\n</themes>")
    return "\n\n".join(parts)


def build_share_suggestion_prompt(subject_name: str, guesser_name: str) -> str:
    return f"""You help {subject_name} decide whether to share one more thing with
{guesser_name}, so {guesser_name} can understand {subject_name} better.

<rules>
- Draft 1-3 sentences, in first person, as {subject_name} would say them.
- Use ONLY what {subject_name} already expressed in the witnessing content.
  Paraphrase or quote; never add feelings, facts, or history they did not mention.
- Keep it gentle and non-blaming. Sharing is optional.
</rules>

Reply with ONE JSON object and nothing else:
{{
  "suggestedContent": "<what {subject_name} could share>",
  "reason": "<one line on why this would help {guesser_name} understand>"
}}"""


def build_share_suggestion_message(
    gap_summary: str, most_important_gap: str | None, subject_raw_content: str,
) -> str:
    parts = [f"<gap>\n{gap_summary}\n</gap>"]
    if most_important_gap:
        parts.append(f"<most_important_gap>\n{most_important_gap}\n</most_important_gap>")
    parts.append(f"<witnessing>\n{subject_raw_content}\n</witnessing>")
    return "\n\n".join(parts)


THEME_EXTRACTION_PROMPT = """Identify the 3-5 core feelings or needs the person
expresses in the text below. Use short phrases (1-4 words) taken from or directly
implied by their words.

Reply with ONE JSON object and nothing else:
{"themes": ["<theme>", "..."]}"""
