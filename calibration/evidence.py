from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from calibration.schemas import EvidenceItem, ScoredEvidence
from calibration.sources import DEFAULT_SOURCE_PRIOR, SourcePriorClassifier
from calibration.utils import clamp, hours_between, utc_now

DEFAULT_HALF_LIFE_HOURS = 24.0


def recency_weight(age_hours: float, half_life_hours: float = DEFAULT_HALF_LIFE_HOURS) -> float:
    # 0h => 1.0, 24h => 0.5, 72h => 0.125
    return 0.5 ** (max(0.0, age_hours) / half_life_hours)


def base_weight(reliability_norm: float, recency: float, stance_conf_norm: float) -> float:
    return 0.4 * reliability_norm + 0.3 * recency + 0.2 * stance_conf_norm + 0.1


def score_evidence(
    item: EvidenceItem,
    now: Optional[datetime] = None,
    source_prior: SourcePriorClassifier = DEFAULT_SOURCE_PRIOR,
    half_life_hours: float = DEFAULT_HALF_LIFE_HOURS,
) -> ScoredEvidence:
    now = now or utc_now()
    age_hours = hours_between(item.published_at, now)
    reliability_norm = clamp(item.reliability, 0.0, 100.0) / 100.0
    stance_conf_norm = clamp(item.stance_confidence, 0.0, 100.0) / 100.0
    weight = base_weight(reliability_norm, recency_weight(age_hours, half_life_hours), stance_conf_norm)
    weight *= 1.0 + source_prior(item.source_host)
    return ScoredEvidence(
        item=item,
        directional_value=item.directional_value,
        weight=weight,
        reliability_norm=reliability_norm,
        age_hours=age_hours,
    )


def score_all(
    items: Iterable[EvidenceItem],
    now: Optional[datetime] = None,
    source_prior: SourcePriorClassifier = DEFAULT_SOURCE_PRIOR,
    half_life_hours: float = DEFAULT_HALF_LIFE_HOURS,
) -> List[ScoredEvidence]:
    now = now or utc_now()
    return [
        score_evidence(item, now=now, source_prior=source_prior, half_life_hours=half_life_hours)
        for item in items
    ]
