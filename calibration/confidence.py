from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from calibration.schemas import ConfidenceEstimate, EvidenceItem
from calibration.utils import clamp


@dataclass(frozen=True)
class ConfidenceParams:
    high_threshold: float = 70.0
    med_threshold: float = 45.0
    consensus_value: float = 0.75
    spread_reference: float = 0.05
    min_items: int = 2
    min_avg_reliability: float = 50.0
    max_spread_penalty: float = 0.8
    downgrade_cap: float = 40.0


DEFAULT_CONFIDENCE_PARAMS = ConfidenceParams()


def spread_penalty(spread: Optional[float], reference: float = 0.05) -> float:
    if spread is None:
        return 0.0
    return clamp(spread / reference, 0.0, 1.0)


def label_for_score(score: float, params: ConfidenceParams = DEFAULT_CONFIDENCE_PARAMS) -> str:
    if score >= params.high_threshold:
        return "high"
    if score >= params.med_threshold:
        return "med"
    return "low"


def estimate_confidence(
    items: Sequence[EvidenceItem],
    spread: Optional[float] = None,
    params: ConfidenceParams = DEFAULT_CONFIDENCE_PARAMS,
) -> ConfidenceEstimate:
    """Score evidence sufficiency and consensus into a 0..100 score and a label.

    Sets with fewer than ``min_items`` directional items, weak average
    reliability, or a wide market spread are forced to ``low`` and capped at
    ``downgrade_cap`` regardless of the additive score.
    """
    non_neutral = [item for item in items if item.directional_value != 0]
    n = len(non_neutral)
    avg_rel = sum(clamp(item.reliability, 0.0, 100.0) for item in non_neutral) / n if n else 0.0

    supports = sum(1 for item in non_neutral if item.directional_value > params.consensus_value)
    contradicts = sum(1 for item in non_neutral if item.directional_value < -params.consensus_value)
    disagreement = min(supports, contradicts) / n if n else 1.0

    penalty = spread_penalty(spread, params.spread_reference)

    score = 0.0
    score += clamp(n * 10.0, 0.0, 30.0)
    score += clamp(avg_rel * 0.4, 0.0, 30.0)
    score += (1.0 - disagreement) * 20.0
    score += (1.0 - penalty) * 20.0
    score = clamp(score, 0.0, 100.0)

    label = label_for_score(score, params)

    # Hard downgrades
    if n < params.min_items or avg_rel < params.min_avg_reliability or penalty > params.max_spread_penalty:
        label = "low"
        score = min(score, params.downgrade_cap)

    return ConfidenceEstimate(score=score, label=label, disagreement=disagreement)
