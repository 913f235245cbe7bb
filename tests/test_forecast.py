import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from calibration.errors import InvalidInput
from calibration.forecast import (
    DeterministicParams,
    compute_assistant_forecast,
    compute_deterministic_forecast,
)
from calibration.schemas import EvidenceItem, MarketSnapshot

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _item(
    id: str,
    stance: str,
    reliability: float,
    age_hours: float = 1.0,
    stance_confidence: float = 60,
    url: str = "",
) -> EvidenceItem:
    return EvidenceItem(
        id=id,
        stance=stance,
        reliability=reliability,
        stance_confidence=stance_confidence,
        published_at=NOW - timedelta(hours=age_hours),
        url=url,
    )


def _forecast(market_prob: float, items, spread=None, params=None):
    snapshot = MarketSnapshot(market_prob=market_prob, market_id="m1", market_title="Q?", spread=spread)
    return compute_deterministic_forecast(snapshot, items, now=NOW, params=params)


def test_fresh_reliable_support_outweighs_stale_contradiction() -> None:
    items = [
        _item("s", "supports", 90, age_hours=1, stance_confidence=80, url="https://www.reuters.com/a"),
        _item("c", "contradicts", 40, age_hours=70, stance_confidence=50, url="https://blog.example.com/b"),
    ]
    result = _forecast(0.40, items)
    assert result.model_prob > 0.40
    assert result.delta > 0
    assert result.signal == result.delta
    assert result.summary == (
        "Log-odds update from market prior using stance-weighted evidence. "
        "Market prior 40.0% | Evidence count 2, avg reliability 65% | "
        "Evidence conflicts, shrinking toward market"
    )


def test_empty_evidence_returns_market() -> None:
    result = _forecast(0.73, [])
    assert result.model_prob == 0.73
    assert result.delta == 0
    assert result.confidence_label == "low"


def test_neutral_only_evidence_is_idempotent() -> None:
    items = [_item("n", "neutral", 90), _item("i", "irrelevant", 80), _item("u", "uncertain", 95)]
    result = _forecast(0.37, items)
    assert result.model_prob == 0.37
    assert result.delta == 0


def test_extreme_market_probabilities_are_clamped() -> None:
    assert _forecast(0.0, []).model_prob == 0.01
    assert _forecast(1.0, []).model_prob == 0.99


def test_output_stays_bounded_under_overwhelming_evidence() -> None:
    supports = [_item(str(i), "supports", 100, age_hours=0, url="https://bls.gov/x") for i in range(10)]
    contradicts = [_item(str(i), "contradicts", 100, age_hours=0, url="https://bls.gov/x") for i in range(10)]
    assert 0.01 <= _forecast(0.98, supports).model_prob <= 0.99
    assert 0.01 <= _forecast(0.02, contradicts).model_prob <= 0.99


def test_more_reliable_support_never_lowers_forecast() -> None:
    probs = []
    for reliability in (10, 30, 50, 70, 90):
        items = [_item("a", "supports", reliability), _item("b", "supports", 80)]
        probs.append(_forecast(0.5, items).model_prob)
    assert probs == sorted(probs)
    assert probs[0] > 0.5


def test_confidence_upgrade_can_outweigh_a_stronger_supporter() -> None:
    # Net-contradicting set: the stronger supporter lifts average reliability past
    # the downgrade floor, the label jumps low -> high, and the wider shrink factor
    # carries the negative signal further from the market.
    contradictions = [_item("c1", "contradicts", 45), _item("c2", "contradicts", 45)]
    weak = _forecast(0.5, [_item("s", "supports", 10)] + contradictions)
    strong = _forecast(0.5, [_item("s", "supports", 70)] + contradictions)
    assert weak.confidence_label == "low"
    assert strong.confidence_label == "high"
    assert weak.model_prob == pytest.approx(0.4633, abs=1e-3)
    assert strong.model_prob == pytest.approx(0.4385, abs=1e-3)
    assert strong.model_prob < weak.model_prob


def test_conflict_dampens_the_update() -> None:
    support = _item("s", "supports", 80, age_hours=0)
    contradiction = _item("c", "contradicts", 50, age_hours=48)
    alone = _forecast(0.5, [support])
    conflicted = _forecast(0.5, [support, contradiction])
    assert abs(conflicted.delta) < abs(alone.delta)
    assert conflicted.delta > 0


def test_spread_is_reported_in_summary() -> None:
    result = _forecast(0.5, [_item("s", "supports", 80), _item("t", "supports", 80)], spread=0.03)
    assert "Spread 3.0pp" in result.summary


def test_params_override_shrinkage() -> None:
    items = [_item("s", "supports", 80), _item("t", "supports", 80)]
    default = _forecast(0.5, items)
    nothing = _forecast(0.5, items, params=DeterministicParams(shrink_factors={"high": 0, "med": 0, "low": 0}))
    assert nothing.model_prob == 0.5
    assert default.model_prob > 0.5


@pytest.mark.parametrize("bad", [None, "abc", float("nan"), float("inf"), True])
def test_invalid_market_prob_is_rejected(bad) -> None:
    with pytest.raises(InvalidInput):
        _forecast(bad, [])


def test_record_uses_dashboard_keys() -> None:
    record = _forecast(0.6, []).to_record()
    assert record["marketId"] == "m1"
    assert record["modelProb"] == 0.6
    assert record["confidence"] == "low"
    assert set(record) >= {"marketProb", "delta", "confidenceScore", "signal", "summary", "timestamp"}


class _StaticTransport:
    def __init__(self, content: str) -> None:
        self.content = content

    async def invoke(self, system_prompt: str, user_payload: str) -> str:
        return self.content


def test_assistant_forecast_rejects_invalid_prior() -> None:
    snapshot = MarketSnapshot(market_prob=float("nan"), market_id="m1", market_title="Q?")
    with pytest.raises(InvalidInput):
        asyncio.run(compute_assistant_forecast(snapshot, [], transport=_StaticTransport("{}")))


def test_assistant_forecast_requires_a_transport() -> None:
    snapshot = MarketSnapshot(market_prob=0.5, market_id="m1", market_title="Q?")
    with pytest.raises(ValueError):
        asyncio.run(compute_assistant_forecast(snapshot, []))


def test_assistant_forecast_with_transport() -> None:
    snapshot = MarketSnapshot(market_prob=0.5, market_id="m1", market_title="Q?")
    transport = _StaticTransport(json.dumps({"model_prob_0_1": 0.7, "notes": "ok"}))
    result = asyncio.run(compute_assistant_forecast(snapshot, [], transport=transport, now=NOW))
    # Empty evidence allows only the sparse envelope.
    assert result.model_prob == pytest.approx(0.53)
    assert result.to_record()["maxShift"] == 0.03
