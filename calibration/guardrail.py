from __future__ import annotations

import asyncio
import json
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from calibration.agent.prompts import REWRITE_INSTRUCTION, build_system_prompt
from calibration.agent.utils import extract_json_from_response
from calibration.calibrator import PROB_CEILING, PROB_FLOOR, clamp_probability
from calibration.errors import AssistantContractViolation, AssistantUnavailable
from calibration.schemas import AssistantForecastResult, Driver, EvidenceItem, MarketSnapshot, Stance
from calibration.utils import clamp, hours_between, to_float, utc_now

logger = logging.getLogger(__name__)

BANNED_PHRASES = re.compile(
    r"(lack of evidence|insufficient evidence|not enough evidence|limited evidence|cannot determine|no data)",
    re.IGNORECASE,
)

MAX_DRIVERS = 5
MAX_FALLBACK_DRIVERS = 4
MAX_REASON_CHARS = 160
MAX_NOTES_CHARS = 240
EXCLUDED_DRIVER_STANCES = (Stance.IRRELEVANT, Stance.UNCERTAIN)


class AssistantTransport(Protocol):
    async def invoke(self, system_prompt: str, user_payload: str) -> str:
        ...


class RetryState(Enum):
    INITIAL = "initial"
    RETRIED = "retried"


@dataclass(frozen=True)
class EnvelopePolicy:
    strong_value: float = 0.8
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


DEFAULT_ENVELOPE = EnvelopePolicy()


@dataclass(frozen=True)
class ParsedAssistantOutput:
    model_prob: float
    overall_confidence: float
    notes: str
    drivers: Tuple[Driver, ...]


def _mean_reliability(items: Sequence[EvidenceItem]) -> float:
    if not items:
        return 0.0
    return sum(clamp(item.reliability, 0.0, 100.0) for item in items) / len(items)


def compute_max_shift(items: Sequence[EvidenceItem], policy: EnvelopePolicy = DEFAULT_ENVELOPE) -> float:
    strong_supports = [i for i in items if i.directional_value >= policy.strong_value]
    strong_contradicts = [i for i in items if i.directional_value <= -policy.strong_value]
    for strong in (strong_supports, strong_contradicts):
        if len(strong) >= policy.strong_min_count and _mean_reliability(strong) >= policy.strong_min_reliability:
            return policy.strong_shift

    non_neutral = [i for i in items if i.directional_value != 0]
    n = len(non_neutral)
    avg_rel = _mean_reliability(non_neutral)
    if n < policy.sparse_min_items or avg_rel < policy.sparse_min_reliability:
        return policy.sparse_shift
    if n < policy.moderate_min_items or avg_rel < policy.moderate_min_reliability:
        return policy.moderate_shift
    return policy.default_shift


def project_evidence(
    items: Sequence[EvidenceItem],
    now: datetime,
    max_items: int = 12,
    snippet_chars: int = 400,
) -> List[Dict[str, Any]]:
    return [
        {
            "id": item.id,
            "source": item.source_name or item.source_host,
            "title": item.title,
            "stance": item.stance.value,
            "reliability": clamp(item.reliability, 0.0, 100.0),
            "age_hours": round(hours_between(item.published_at, now)),
            "snippet": (item.snippet or "")[:snippet_chars],
        }
        for item in items[:max_items]
    ]


def build_user_payload(
    snapshot: MarketSnapshot,
    market_prob: float,
    max_shift: float,
    compact: List[Dict[str, Any]],
) -> str:
    counts: Dict[str, int] = {}
    for entry in compact:
        counts[entry["stance"]] = counts.get(entry["stance"], 0) + 1
    return json.dumps(
        {
            "market_title": snapshot.market_title,
            "market_prior_yes": market_prob,
            "max_shift": max_shift,
            "delta_market_24h": snapshot.delta_24h or 0.0,
            "evidence": compact,
            "evidence_counts": counts,
        }
    )


def _sanitize_driver(raw: Dict[str, Any]) -> Driver:
    raw_id = raw.get("id")
    driver_id = str(raw_id) if raw_id is not None and raw_id != "" else None
    reason = str(raw.get("reason") or "").strip()
    if not reason:
        reason = f"Evidence {driver_id}" if driver_id else "Evidence"
    weight = raw.get("weight")
    if isinstance(weight, bool) or not isinstance(weight, (int, float)) or not math.isfinite(weight):
        weight = None
    stance = raw.get("stance")
    return Driver(
        id=driver_id,
        reason=reason[:MAX_REASON_CHARS],
        stance=str(stance) if stance else None,
        weight=float(weight) if weight is not None else None,
    )


def parse_assistant_output(content: str) -> ParsedAssistantOutput:
    """Validate and sanitize one raw assistant reply.

    Raises AssistantUnavailable when no JSON can be extracted and
    AssistantContractViolation when the JSON lacks a usable probability.
    """
    try:
        parsed = extract_json_from_response(content)
    except json.JSONDecodeError as exc:
        raise AssistantUnavailable("assistant returned non-JSON output") from exc
    if not isinstance(parsed, dict):
        raise AssistantContractViolation("assistant output is not a JSON object")

    raw_prob = parsed.get("model_prob_0_1")
    prob = math.nan if isinstance(raw_prob, bool) else to_float(raw_prob, math.nan)
    if math.isnan(prob):
        raise AssistantContractViolation("assistant output is missing a numeric model_prob_0_1")

    raw_drivers = parsed.get("top_drivers")
    drivers: Tuple[Driver, ...] = ()
    if isinstance(raw_drivers, list):
        drivers = tuple(_sanitize_driver(d) for d in raw_drivers[:MAX_DRIVERS] if isinstance(d, dict))

    return ParsedAssistantOutput(
        model_prob=clamp_probability(prob),
        overall_confidence=clamp(to_float(parsed.get("overall_confidence"), 0.0), 0.0, 100.0),
        notes=str(parsed.get("notes") or "")[:MAX_NOTES_CHARS],
        drivers=drivers,
    )


def build_fallback_drivers(items: Sequence[EvidenceItem], limit: int = MAX_FALLBACK_DRIVERS) -> List[Driver]:
    candidates = [item for item in items if item.id]
    ranked = [item for item in candidates if item.stance not in EXCLUDED_DRIVER_STANCES]
    # sorted() is stable, so equal reliabilities keep input order.
    pool = sorted(ranked or candidates, key=lambda item: -item.reliability)
    drivers: List[Driver] = []
    for item in pool[:limit]:
        source = (item.source_host or item.source_name or "source").strip()
        title = (item.title or "evidence").strip()
        drivers.append(
            Driver(
                id=str(item.id),
                stance=item.stance.value,
                weight=round(item.reliability) / 100,
                reason=f"{source}: {title}"[:MAX_REASON_CHARS],
            )
        )
    return drivers


def build_rationale(drivers: Sequence[Driver], model_prob: float, market_prob: float) -> str:
    if model_prob > market_prob:
        leaning = "Evidence tilts above the market"
    elif model_prob < market_prob:
        leaning = "Evidence leans below the market"
    else:
        leaning = "Evidence keeps the view aligned with the market"

    if not drivers:
        return f"{leaning}. Direction and recency of the sources set the forecast."

    highlights = "; ".join(
        f"{d.stance or 'neutral'}: {(d.reason or d.id or 'evidence').strip()}" for d in drivers[:3]
    )
    return f"{leaning}. Key signals: {highlights}"


class AssistantGuardrail:
    """Bounds an external forecasting assistant around the market prior.

    One call to the transport, plus at most one corrective call when the reply
    uses banned phrasing. Whatever the assistant answers, the returned
    probability stays within ``max_shift`` of the clamped prior; an unusable
    assistant yields the prior itself with drivers synthesized from evidence.
    """

    def __init__(
        self,
        transport: AssistantTransport,
        policy: EnvelopePolicy = DEFAULT_ENVELOPE,
        max_evidence: int = 12,
        snippet_chars: int = 400,
        timeout_seconds: Optional[float] = 60.0,
    ) -> None:
        self.transport = transport
        self.policy = policy
        self.max_evidence = max_evidence
        self.snippet_chars = snippet_chars
        self.timeout_seconds = timeout_seconds

    async def _invoke(self, system_prompt: str, user_payload: str) -> str:
        try:
            content = await asyncio.wait_for(
                self.transport.invoke(system_prompt, user_payload),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise AssistantUnavailable(f"assistant timed out after {self.timeout_seconds}s") from exc
        except Exception as exc:
            raise AssistantUnavailable(f"assistant transport failed: {exc}") from exc
        if not isinstance(content, str):
            raise AssistantUnavailable("assistant returned no text")
        return content

    async def run(
        self,
        snapshot: MarketSnapshot,
        items: Sequence[EvidenceItem],
        now: Optional[datetime] = None,
    ) -> AssistantForecastResult:
        now = now or utc_now()
        p = clamp_probability(snapshot.market_prob)
        max_shift = compute_max_shift(items, self.policy)
        visible = list(items[: self.max_evidence])
        compact = project_evidence(visible, now, max_items=self.max_evidence, snippet_chars=self.snippet_chars)
        user_payload = build_user_payload(snapshot, p, max_shift, compact)

        state = RetryState.INITIAL
        parsed: Optional[ParsedAssistantOutput] = None
        fallback_reason: Optional[str] = None
        try:
            content = await self._invoke(build_system_prompt(), user_payload)
            if state is RetryState.INITIAL and BANNED_PHRASES.search(content):
                state = RetryState.RETRIED
                logger.info("Assistant output used banned phrasing; issuing corrective retry")
                # Once retried, only the rewritten reply counts.
                content = await self._invoke(build_system_prompt(REWRITE_INSTRUCTION), user_payload)
            parsed = parse_assistant_output(content)
        except (AssistantUnavailable, AssistantContractViolation) as exc:
            fallback_reason = f"{type(exc).__name__}: {exc}"
            logger.warning(f"Assistant forecast unusable for market {snapshot.market_id!r}, using fallback: {exc}")

        if parsed is not None:
            lo = max(PROB_FLOOR, p - max_shift)
            hi = min(PROB_CEILING, p + max_shift)
            model_prob = clamp(parsed.model_prob, lo, hi)
            overall_confidence = parsed.overall_confidence
            notes = parsed.notes
            drivers = list(parsed.drivers)
        else:
            model_prob = p
            overall_confidence = 0.0
            notes = ""
            drivers = []

        if not drivers:
            drivers = build_fallback_drivers(visible)

        return AssistantForecastResult(
            market_id=snapshot.market_id,
            market_title=snapshot.market_title,
            generated_at=now,
            market_prob=p,
            model_prob=model_prob,
            delta=model_prob - p,
            max_shift=max_shift,
            overall_confidence=overall_confidence,
            top_drivers=tuple(drivers),
            notes=notes,
            rationale=build_rationale(drivers, model_prob, p),
            retried=state is RetryState.RETRIED,
            fallback_reason=fallback_reason,
        )
