from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
import tomllib

from calibration.confidence import ConfidenceParams
from calibration.forecast import DeterministicParams
from calibration.guardrail import EnvelopePolicy


@dataclass
class ScoringConfig:
    half_life_hours: float = 24.0


@dataclass
class AggregationConfig:
    strong_threshold: float = 0.8
    conflict_penalty: float = 0.6


@dataclass
class ConfidenceConfig:
    high_threshold: float = 70.0
    med_threshold: float = 45.0
    spread_reference: float = 0.05
    min_items: int = 2
    min_avg_reliability: float = 50.0
    max_spread_penalty: float = 0.8
    downgrade_cap: float = 40.0


@dataclass
class CalibratorConfig:
    shrink_high: float = 0.7
    shrink_med: float = 0.5
    shrink_low: float = 0.3


@dataclass
class GuardrailConfig:
    strong_min_count: int = 3
    strong_min_reliability: float = 80.0
    strong_shift: float = 0.25
    sparse_min_items: int = 2
    sparse_min_reliability: float = 55.0
    sparse_shift: float = 0.03
    moderate_min_items: int = 4
    moderate_min_reliability: float = 70.0
    moderate_shift: float = 0.08
    default_shift: float = 0.15
    max_evidence: int = 12
    snippet_chars: int = 400
    timeout_seconds: float = 60.0


@dataclass
class AssistantConfig:
    provider: str = "openai"
    model: str = "llama-3.3-70b-versatile"
    base_url: str | None = "https://api.groq.com/openai/v1"
    api_key_env: str = "GROQ_API_KEY"
    temperature: float = 0.0
    dry_run_default: bool = False


@dataclass
class ProbPilotConfig:
    history_db_path: str = "probpilot.sqlite3"
    log_level: str = "INFO"
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    confidence: ConfidenceConfig = field(default_factory=ConfidenceConfig)
    calibrator: CalibratorConfig = field(default_factory=CalibratorConfig)
    guardrail: GuardrailConfig = field(default_factory=GuardrailConfig)
    assistant: AssistantConfig = field(default_factory=AssistantConfig)

    def deterministic_params(self) -> DeterministicParams:
        conf = self.confidence
        return DeterministicParams(
            half_life_hours=self.scoring.half_life_hours,
            strong_threshold=self.aggregation.strong_threshold,
            conflict_penalty=self.aggregation.conflict_penalty,
            shrink_factors={
                "high": self.calibrator.shrink_high,
                "med": self.calibrator.shrink_med,
                "low": self.calibrator.shrink_low,
            },
            confidence=ConfidenceParams(
                high_threshold=conf.high_threshold,
                med_threshold=conf.med_threshold,
                spread_reference=conf.spread_reference,
                min_items=conf.min_items,
                min_avg_reliability=conf.min_avg_reliability,
                max_spread_penalty=conf.max_spread_penalty,
                downgrade_cap=conf.downgrade_cap,
            ),
        )

    def envelope_policy(self) -> EnvelopePolicy:
        g = self.guardrail
        return EnvelopePolicy(
            strong_value=self.aggregation.strong_threshold,
            strong_min_count=g.strong_min_count,
            strong_min_reliability=g.strong_min_reliability,
            strong_shift=g.strong_shift,
            sparse_min_items=g.sparse_min_items,
            sparse_min_reliability=g.sparse_min_reliability,
            sparse_shift=g.sparse_shift,
            moderate_min_items=g.moderate_min_items,
            moderate_min_reliability=g.moderate_min_reliability,
            moderate_shift=g.moderate_shift,
            default_shift=g.default_shift,
        )


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, dict):
        return {}
    return value


def load_config(path: str = "probpilot.toml") -> ProbPilotConfig:
    cfg_path = Path(path)
    if not cfg_path.exists():
        return ProbPilotConfig()

    with cfg_path.open("rb") as f:
        raw = tomllib.load(f)

    return ProbPilotConfig(
        history_db_path=str(raw.get("history_db_path", "probpilot.sqlite3")),
        log_level=str(raw.get("log_level", "INFO")),
        scoring=ScoringConfig(**_section(raw, "scoring")),
        aggregation=AggregationConfig(**_section(raw, "aggregation")),
        confidence=ConfidenceConfig(**_section(raw, "confidence")),
        calibrator=CalibratorConfig(**_section(raw, "calibrator")),
        guardrail=GuardrailConfig(**_section(raw, "guardrail")),
        assistant=AssistantConfig(**_section(raw, "assistant")),
    )
