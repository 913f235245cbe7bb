from __future__ import annotations

from typing import Sequence

from calibration.schemas import AggregateSignal, ScoredEvidence

STRONG_THRESHOLD = 0.8
CONFLICT_PENALTY = 0.6


def aggregate_evidence(
    scored: Sequence[ScoredEvidence],
    strong_threshold: float = STRONG_THRESHOLD,
    conflict_penalty: float = CONFLICT_PENALTY,
) -> AggregateSignal:
    total_delta = 0.0
    strong_supports = 0
    strong_contradicts = 0
    for entry in scored:
        v = entry.directional_value
        if v == 0:
            continue
        total_delta += entry.weight * v
        if v >= strong_threshold:
            strong_supports += 1
        if v <= -strong_threshold:
            strong_contradicts += 1

    # Reliability is averaged over every item, neutral ones included.
    avg_reliability = (
        sum(entry.reliability_norm for entry in scored) / len(scored) * 100.0 if scored else 0.0
    )
    penalty = conflict_penalty if strong_supports > 0 and strong_contradicts > 0 else 1.0
    return AggregateSignal(
        total_delta=total_delta,
        avg_reliability=avg_reliability,
        conflict_penalty=penalty,
        strong_supports=strong_supports,
        strong_contradicts=strong_contradicts,
    )
