from __future__ import annotations

import asyncio
import logging
import time

from calibration.forecast import compute_assistant_forecast, compute_deterministic_forecast
from calibration.guardrail import AssistantGuardrail, AssistantTransport
from calibration.schemas import AssistantForecastResult, ForecastResult
from probpilot.core.config import ProbPilotConfig
from probpilot.core.schemas import ForecastRequest

logger = logging.getLogger(__name__)


def build_guardrail(config: ProbPilotConfig, transport: AssistantTransport) -> AssistantGuardrail:
    return AssistantGuardrail(
        transport,
        policy=config.envelope_policy(),
        max_evidence=config.guardrail.max_evidence,
        snippet_chars=config.guardrail.snippet_chars,
        timeout_seconds=config.guardrail.timeout_seconds,
    )


def run_deterministic_forecast(request: ForecastRequest, config: ProbPilotConfig) -> ForecastResult:
    result = compute_deterministic_forecast(
        request.snapshot,
        request.evidence,
        params=config.deterministic_params(),
    )
    logger.info(
        f"Deterministic forecast for {result.market_id}: market={result.market_prob:.3f} "
        f"model={result.model_prob:.3f} confidence={result.confidence_label} "
        f"({len(request.evidence)} evidence items)"
    )
    return result


def run_assistant_forecast(
    request: ForecastRequest,
    config: ProbPilotConfig,
    transport: AssistantTransport,
) -> AssistantForecastResult:
    start = time.perf_counter()
    result = asyncio.run(
        compute_assistant_forecast(
            request.snapshot,
            request.evidence,
            guardrail=build_guardrail(config, transport),
        )
    )
    latency = time.perf_counter() - start
    logger.info(
        f"Assistant forecast for {result.market_id}: market={result.market_prob:.3f} "
        f"model={result.model_prob:.3f} max_shift={result.max_shift:.2f} "
        f"retried={result.retried} fallback={result.used_fallback} latency={latency:.2f}s"
    )
    return result
