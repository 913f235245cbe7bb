import pytest

from calibration.confidence import ConfidenceParams, estimate_confidence, label_for_score, spread_penalty
from calibration.schemas import EvidenceItem


def _items(*entries: tuple[str, float]) -> list[EvidenceItem]:
    return [
        EvidenceItem(id=f"e{i}", stance=stance, reliability=rel, published_at=None)
        for i, (stance, rel) in enumerate(entries)
    ]


def test_label_boundaries() -> None:
    assert label_for_score(70) == "high"
    assert label_for_score(69.9) == "med"
    assert label_for_score(45) == "med"
    assert label_for_score(44.9) == "low"


def test_spread_penalty() -> None:
    assert spread_penalty(None) == 0.0
    assert spread_penalty(0.02) == pytest.approx(0.4)
    assert spread_penalty(0.5) == 1.0
    assert spread_penalty(-0.1) == 0.0


def test_empty_evidence_is_low() -> None:
    estimate = estimate_confidence([])
    assert estimate.label == "low"
    assert estimate.disagreement == 1.0
    assert estimate.score == pytest.approx(20.0)


def test_strong_consensus_is_high() -> None:
    estimate = estimate_confidence(_items(("supports", 90), ("supports", 90), ("supports", 90)))
    assert estimate.score == pytest.approx(100.0)
    assert estimate.label == "high"


def test_spread_reduces_score() -> None:
    items = _items(("supports", 90), ("supports", 90), ("supports", 90))
    estimate = estimate_confidence(items, spread=0.02)
    assert estimate.score == pytest.approx(92.0)
    assert estimate.label == "high"


def test_medium_band() -> None:
    estimate = estimate_confidence(_items(("supports", 55), ("supports", 55)), spread=0.035)
    assert estimate.score == pytest.approx(68.0)
    assert estimate.label == "med"


def test_disagreement_and_scenario_score() -> None:
    estimate = estimate_confidence(_items(("supports", 90), ("contradicts", 40)))
    assert estimate.disagreement == pytest.approx(0.5)
    # 20 items + 26 reliability + 10 consensus + 20 spread
    assert estimate.score == pytest.approx(76.0)


def test_weak_stances_are_directional_but_not_consensus() -> None:
    estimate = estimate_confidence(_items(("weak_supports", 80), ("contradicts", 80)))
    assert estimate.disagreement == 0.0


def test_single_item_is_downgraded() -> None:
    estimate = estimate_confidence(_items(("supports", 100), ("neutral", 100)))
    assert estimate.label == "low"
    assert estimate.score <= 40.0


def test_low_reliability_is_downgraded() -> None:
    estimate = estimate_confidence(_items(("supports", 40), ("supports", 40), ("supports", 40)))
    assert estimate.label == "low"
    assert estimate.score == 40.0


def test_wide_spread_is_downgraded() -> None:
    estimate = estimate_confidence(_items(("supports", 90), ("supports", 90), ("supports", 90)), spread=0.05)
    assert estimate.label == "low"
    assert estimate.score == 40.0


def test_custom_params() -> None:
    params = ConfidenceParams(min_items=1, min_avg_reliability=0.0)
    estimate = estimate_confidence(_items(("supports", 100)), params=params)
    assert estimate.score == pytest.approx(10 + 30 + 20 + 20)
    assert estimate.label == "high"
