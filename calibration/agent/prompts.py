"""
Assistant forecast prompts.

The assistant receives a market prior, an envelope (max_shift) and a compact
evidence projection, and must answer with a single JSON object. The envelope
and output shape are enforced again after parsing, so these instructions are
a request to the model, not the guarantee.
"""

# =============================================================================
# OUTPUT CONTRACT
# =============================================================================

OUTPUT_SCHEMA = (
    '{"model_prob_0_1": number, "overall_confidence": number, '
    '"top_drivers":[{"id":string,"stance":"supports"|"contradicts"|"neutral","weight":number,"reason":string}], '
    '"notes": string}'
)

# =============================================================================
# SYSTEM PROMPT
# =============================================================================

ASSISTANT_SYSTEM_PROMPT = "\n".join(
    [
        "You are ProbPilot's forecasting analyst. Return ONLY valid JSON. No markdown. No extra keys.",
        "Inputs: market_prior_yes (0..1), market_title, max_shift (0..1), delta_market_24h, "
        "evidence[] with {id, stance, reliability, age_hours, snippet}.",
        "",
        "Hard rules:",
        "1) Always output model_prob_0_1 in [0.01, 0.99]. Never refuse. Never ask questions.",
        "2) Never say anything about missing/limited/insufficient evidence. Use whatever evidence is provided.",
        "3) Base the update on evidence direction, recency, and reliability; do NOT mention priors in the rationale.",
        "4) Enforce: abs(model_prob_0_1 - market_prior_yes) <= max_shift.",
        "",
        "Output rules:",
        "- top_drivers: 2-4 items, each must reference an evidence id exactly.",
        "- rationale must summarize evidence direction/recency/reliability without mentioning "
        "evidence quantity, availability, or priors.",
        "",
        "Schema (exact keys):",
        OUTPUT_SCHEMA,
    ]
)

# =============================================================================
# CORRECTIVE RETRY
# =============================================================================

REWRITE_INSTRUCTION = (
    "Your previous output included banned phrases. Rewrite WITHOUT those substrings. "
    "Keep meaning. Obey schema. Do not mention evidence quantity or priors."
)


def build_system_prompt(extra: str | None = None) -> str:
    if extra:
        return f"{ASSISTANT_SYSTEM_PROMPT}\n\n{extra}"
    return ASSISTANT_SYSTEM_PROMPT
