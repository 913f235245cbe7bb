from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from calibration.utils import clamp, host_from_url, parse_timestamp, to_float, utc_now

JsonDict = Dict[str, Any]

DEFAULT_STANCE_CONFIDENCE = 60.0


class Stance(str, Enum):
    SUPPORTS = "supports"
    WEAK_SUPPORTS = "weak_supports"
    CONTRADICTS = "contradicts"
    WEAK_CONTRADICTS = "weak_contradicts"
    NEUTRAL = "neutral"
    IRRELEVANT = "irrelevant"
    UNCERTAIN = "uncertain"

    @staticmethod
    def parse(raw: Any) -> "Stance":
        if isinstance(raw, Stance):
            return raw
        try:
            return Stance(str(raw or "").strip().lower())
        except ValueError:
            return Stance.NEUTRAL


STANCE_VALUES: Dict[Stance, float] = {
    Stance.SUPPORTS: 1.0,
    Stance.WEAK_SUPPORTS: 0.5,
    Stance.CONTRADICTS: -1.0,
    Stance.WEAK_CONTRADICTS: -0.5,
    Stance.NEUTRAL: 0.0,
    Stance.IRRELEVANT: 0.0,
    Stance.UNCERTAIN: 0.0,
}


@dataclass(frozen=True)
class EvidenceItem:
    id: str
    stance: Stance
    reliability: float
    published_at: Optional[datetime]
    stance_confidence: float = DEFAULT_STANCE_CONFIDENCE
    url: str = ""
    title: str = ""
    snippet: str = ""
    source_name: str = ""
    source_host: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "stance", Stance.parse(self.stance))
        object.__setattr__(self, "reliability", clamp(to_float(self.reliability, 0.0), 0.0, 100.0))
        object.__setattr__(
            self,
            "stance_confidence",
            clamp(to_float(self.stance_confidence, DEFAULT_STANCE_CONFIDENCE), 0.0, 100.0),
        )
        if not self.source_host and self.url:
            object.__setattr__(self, "source_host", host_from_url(self.url))

    @property
    def directional_value(self) -> float:
        return STANCE_VALUES[self.stance]

    @staticmethod
    def from_record(record: JsonDict) -> "EvidenceItem":
        """Build an item from the dashboard payload (camelCase) or snake_case keys."""
        url = str(record.get("url") or "")
        return EvidenceItem(
            id=str(record.get("id", "")),
            stance=Stance.parse(record.get("stance")),
            reliability=to_float(record.get("reliability"), 0.0),
            stance_confidence=to_float(
                record.get("stanceConfidence", record.get("stance_confidence")),
                DEFAULT_STANCE_CONFIDENCE,
            ),
            published_at=parse_timestamp(record.get("timestamp", record.get("published_at"))),
            url=url,
            title=str(record.get("title") or ""),
            snippet=str(record.get("snippet") or ""),
            source_name=str(record.get("sourceName", record.get("source_name")) or ""),
            source_host=str(record.get("sourceHost", record.get("source_host")) or host_from_url(url)),
        )


@dataclass(frozen=True)
class MarketSnapshot:
    market_prob: float
    market_id: str = ""
    market_title: str = ""
    spread: Optional[float] = None
    delta_24h: Optional[float] = None


@dataclass(frozen=True)
class ScoredEvidence:
    item: EvidenceItem
    directional_value: float
    weight: float
    reliability_norm: float
    age_hours: float


@dataclass(frozen=True)
class AggregateSignal:
    total_delta: float
    avg_reliability: float
    conflict_penalty: float
    strong_supports: int
    strong_contradicts: int


@dataclass(frozen=True)
class ConfidenceEstimate:
    score: float
    label: str
    disagreement: float


@dataclass(frozen=True)
class ForecastResult:
    market_prob: float
    model_prob: float
    delta: float
    confidence_label: str
    confidence_score: float
    signal: float
    summary: str
    market_id: str = ""
    market_title: str = ""
    generated_at: datetime = field(default_factory=utc_now)

    def to_record(self) -> JsonDict:
        return {
            "marketId": self.market_id,
            "marketTitle": self.market_title,
            "timestamp": self.generated_at.isoformat(),
            "marketProb": self.market_prob,
            "modelProb": self.model_prob,
            "delta": self.delta,
            "confidence": self.confidence_label,
            "confidenceScore": self.confidence_score,
            "signal": self.signal,
            "summary": self.summary,
        }


@dataclass(frozen=True)
class Driver:
    reason: str
    id: Optional[str] = None
    stance: Optional[str] = None
    weight: Optional[float] = None

    def to_record(self) -> JsonDict:
        record: JsonDict = {"reason": self.reason}
        if self.id is not None:
            record["id"] = self.id
        if self.stance is not None:
            record["stance"] = self.stance
        if self.weight is not None:
            record["weight"] = self.weight
        return record


@dataclass(frozen=True)
class AssistantForecastResult:
    market_prob: float
    model_prob: float
    delta: float
    max_shift: float
    overall_confidence: float
    top_drivers: Tuple[Driver, ...]
    notes: str
    rationale: str
    retried: bool = False
    fallback_reason: Optional[str] = None
    market_id: str = ""
    market_title: str = ""
    generated_at: datetime = field(default_factory=utc_now)

    @property
    def used_fallback(self) -> bool:
        return self.fallback_reason is not None

    def to_record(self) -> JsonDict:
        return {
            "marketId": self.market_id,
            "marketTitle": self.market_title,
            "timestamp": self.generated_at.isoformat(),
            "marketProb": self.market_prob,
            "modelProb": self.model_prob,
            "delta": self.delta,
            "maxShift": self.max_shift,
            "overallConfidence": self.overall_confidence,
            "notes": self.notes,
            "topDrivers": [d.to_record() for d in self.top_drivers],
            "rationale": self.rationale,
            "retried": self.retried,
            "fallbackReason": self.fallback_reason,
        }
