from __future__ import annotations

import math
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any
from urllib.parse import urlparse

from calibration.confidence import label_for_score
from calibration.errors import InvalidInput
from calibration.schemas import AssistantForecastResult, EvidenceItem, ForecastResult, MarketSnapshot
from calibration.utils import utc_now
from probpilot.core.utils import from_iso, normalize_tag, to_iso


JsonDict = dict[str, Any]


def _optional_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def normalize_url(url: str) -> str:
    """Host and path without ``www.`` or a trailing slash; "" when unparseable."""
    try:
        parsed = urlparse(url.strip())
        host = parsed.hostname or ""
    except ValueError:
        return ""
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    return f"{host}{parsed.path.rstrip('/')}"


def dedupe_evidence(items: list[EvidenceItem]) -> list[EvidenceItem]:
    """Drop repeated ids and repeated normalized URLs, keeping the first."""
    seen_ids: set[str] = set()
    seen_urls: set[str] = set()
    out: list[EvidenceItem] = []
    for item in items:
        url_key = normalize_url(item.url) if item.url else ""
        if (item.id and item.id in seen_ids) or (url_key and url_key in seen_urls):
            continue
        if item.id:
            seen_ids.add(item.id)
        if url_key:
            seen_urls.add(url_key)
        out.append(item)
    return out


@dataclass
class ForecastRequest:
    snapshot: MarketSnapshot
    evidence: list[EvidenceItem]
    tags: list[str] = field(default_factory=list)

    @staticmethod
    def from_record(record: JsonDict) -> "ForecastRequest":
        if not isinstance(record, dict):
            raise InvalidInput("request body must be a JSON object")
        market_id = str(record.get("marketId") or "")
        market_title = str(record.get("marketTitle") or "")
        market_prob = _optional_float(record.get("marketProb"))
        if not market_id or not market_title or market_prob is None:
            raise InvalidInput("marketId, marketTitle, marketProb required")

        raw_evidence = record.get("evidence")
        evidence = [
            EvidenceItem.from_record(entry)
            for entry in (raw_evidence if isinstance(raw_evidence, list) else [])
            if isinstance(entry, dict)
        ]
        return ForecastRequest(
            snapshot=MarketSnapshot(
                market_id=market_id,
                market_title=market_title,
                market_prob=market_prob,
                spread=_optional_float(record.get("spread")),
                delta_24h=_optional_float(record.get("delta24h")),
            ),
            evidence=dedupe_evidence(evidence),
            tags=[normalize_tag(str(t)) for t in record.get("tags") or [] if str(t).strip()],
        )


@dataclass
class ForecastRun:
    id: str
    market_id: str
    market_title: str
    made_at: datetime
    kind: str
    market_prob: float
    model_prob: float
    delta: float
    confidence: str
    confidence_score: float | None
    signal: float | None
    summary: str
    tags: list[str] = field(default_factory=list)
    payload: JsonDict = field(default_factory=dict)

    def to_record(self) -> JsonDict:
        record = asdict(self)
        record["made_at"] = to_iso(self.made_at)
        return record

    @staticmethod
    def from_record(record: JsonDict) -> "ForecastRun":
        return ForecastRun(
            id=record["id"],
            market_id=record["market_id"],
            market_title=record.get("market_title", ""),
            made_at=from_iso(record.get("made_at")) or utc_now(),
            kind=record.get("kind", "deterministic"),
            market_prob=float(record["market_prob"]),
            model_prob=float(record["model_prob"]),
            delta=float(record["delta"]),
            confidence=record.get("confidence", "low"),
            confidence_score=record.get("confidence_score"),
            signal=record.get("signal"),
            summary=record.get("summary", ""),
            tags=list(record.get("tags", [])),
            payload=dict(record.get("payload", {})),
        )

    @staticmethod
    def from_deterministic(result: ForecastResult, tags: list[str] | None = None) -> "ForecastRun":
        return ForecastRun(
            id=str(uuid.uuid4()),
            market_id=result.market_id,
            market_title=result.market_title,
            made_at=result.generated_at,
            kind="deterministic",
            market_prob=result.market_prob,
            model_prob=result.model_prob,
            delta=result.delta,
            confidence=result.confidence_label,
            confidence_score=result.confidence_score,
            signal=result.signal,
            summary=result.summary,
            tags=list(tags or []),
            payload=result.to_record(),
        )

    @staticmethod
    def from_assistant(result: AssistantForecastResult, tags: list[str] | None = None) -> "ForecastRun":
        return ForecastRun(
            id=str(uuid.uuid4()),
            market_id=result.market_id,
            market_title=result.market_title,
            made_at=result.generated_at,
            kind="assistant",
            market_prob=result.market_prob,
            model_prob=result.model_prob,
            delta=result.delta,
            confidence=label_for_score(result.overall_confidence),
            confidence_score=result.overall_confidence,
            signal=result.delta,
            summary=result.rationale,
            tags=list(tags or []),
            payload=result.to_record(),
        )
