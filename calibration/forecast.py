from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from calibration.aggregation import CONFLICT_PENALTY, STRONG_THRESHOLD, aggregate_evidence
from calibration.calibrator import SHRINK_FACTORS, calibrate, clamp_probability
from calibration.confidence import DEFAULT_CONFIDENCE_PARAMS, ConfidenceParams, estimate_confidence
from calibration.errors import InvalidInput
from calibration.evidence import DEFAULT_HALF_LIFE_HOURS, score_all
from calibration.guardrail import AssistantGuardrail, AssistantTransport
from calibration.schemas import (
    AggregateSignal,
    AssistantForecastResult,
    ConfidenceEstimate,
    EvidenceItem,
    ForecastResult,
    MarketSnapshot,
)
from calibration.sources import DEFAULT_SOURCE_PRIOR, SourcePriorClassifier
from calibration.utils import utc_now


@dataclass(frozen=True)
class DeterministicParams:
    half_life_hours: float = DEFAULT_HALF_LIFE_HOURS
    strong_threshold: float = STRONG_THRESHOLD
    conflict_penalty: float = CONFLICT_PENALTY
    shrink_factors: Mapping[str, float] = field(default_factory=lambda: dict(SHRINK_FACTORS))
    confidence: ConfidenceParams = DEFAULT_CONFIDENCE_PARAMS
    source_prior: SourcePriorClassifier = DEFAULT_SOURCE_PRIOR


def validate_market_prob(value: Any) -> float:
    if value is None or isinstance(value, bool):
        raise InvalidInput("marketProb is required")
    try:
        prob = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"marketProb must be a number, got {value!r}") from exc
    if not math.isfinite(prob):
        raise InvalidInput(f"marketProb must be finite, got {value!r}")
    return prob


def build_summary(
    market_prob: float,
    evidence_count: int,
    signal: AggregateSignal,
    confidence: ConfidenceEstimate,
    spread: Optional[float],
) -> str:
    parts = [
        f"Market prior {round(market_prob * 1000) / 10}%",
        f"Evidence count {evidence_count}, avg reliability {round(signal.avg_reliability)}%",
    ]
    if spread is not None:
        parts.append(f"Spread {spread * 100:.1f}pp")
    if confidence.disagreement > 0.4:
        parts.append("Evidence conflicts, shrinking toward market")
    return "Log-odds update from market prior using stance-weighted evidence. " + " | ".join(parts)


def compute_deterministic_forecast(
    snapshot: MarketSnapshot,
    items: Sequence[EvidenceItem],
    now: Optional[datetime] = None,
    params: Optional[DeterministicParams] = None,
) -> ForecastResult:
    params = params or DeterministicParams()
    now = now or utc_now()
    p = clamp_probability(validate_market_prob(snapshot.market_prob))

    scored = score_all(items, now=now, source_prior=params.source_prior, half_life_hours=params.half_life_hours)
    signal = aggregate_evidence(
        scored,
        strong_threshold=params.strong_threshold,
        conflict_penalty=params.conflict_penalty,
    )
    confidence = estimate_confidence(items, spread=snapshot.spread, params=params.confidence)
    model_prob = calibrate(
        p,
        signal.total_delta,
        signal.conflict_penalty,
        confidence.label,
        shrink_factors=params.shrink_factors,
    )
    delta = model_prob - p
    return ForecastResult(
        market_id=snapshot.market_id,
        market_title=snapshot.market_title,
        generated_at=now,
        market_prob=p,
        model_prob=model_prob,
        delta=delta,
        confidence_label=confidence.label,
        confidence_score=confidence.score,
        signal=delta,
        summary=build_summary(p, len(items), signal, confidence, snapshot.spread),
    )


async def compute_assistant_forecast(
    snapshot: MarketSnapshot,
    items: Sequence[EvidenceItem],
    transport: Optional[AssistantTransport] = None,
    now: Optional[datetime] = None,
    guardrail: Optional[AssistantGuardrail] = None,
) -> AssistantForecastResult:
    validate_market_prob(snapshot.market_prob)
    if guardrail is None:
        if transport is None:
            raise ValueError("compute_assistant_forecast needs a transport or a guardrail")
        guardrail = AssistantGuardrail(transport)
    return await guardrail.run(snapshot, items, now=now)
