from __future__ import annotations

import math
from typing import Mapping

from calibration.utils import clamp

PROB_FLOOR = 0.01
PROB_CEILING = 0.99

SHRINK_FACTORS: Mapping[str, float] = {"high": 0.7, "med": 0.5, "low": 0.3}


def clamp_probability(p: float) -> float:
    return clamp(float(p), PROB_FLOOR, PROB_CEILING)


def logit(p: float) -> float:
    return math.log(p / (1 - p))


def inv_logit(x: float) -> float:
    # Split on sign so large magnitudes never overflow exp().
    if x >= 0:
        return 1 / (1 + math.exp(-x))
    z = math.exp(x)
    return z / (1 + z)


def shrink_factor(label: str, shrink_factors: Mapping[str, float] = SHRINK_FACTORS) -> float:
    return shrink_factors.get(label, shrink_factors["low"])


def calibrate(
    market_prob: float,
    total_delta: float,
    conflict_penalty: float,
    confidence_label: str,
    shrink_factors: Mapping[str, float] = SHRINK_FACTORS,
) -> float:
    """Blend the market prior with the evidence signal in log-odds space.

    The raw update is shrunk back toward the prior in probability space by a
    factor that grows with confidence, then bounded to [0.01, 0.99].
    """
    p = clamp_probability(market_prob)
    adjusted_delta = total_delta * conflict_penalty
    if adjusted_delta == 0:
        return p
    q_raw = inv_logit(logit(p) + adjusted_delta)
    q = p + shrink_factor(confidence_label, shrink_factors) * (q_raw - p)
    return clamp_probability(q)
