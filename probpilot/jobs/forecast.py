from __future__ import annotations

from typing import Any

from calibration.guardrail import AssistantTransport
from probpilot.connectors import build_transport
from probpilot.core.config import load_config
from probpilot.core.forecast_runner import run_assistant_forecast, run_deterministic_forecast
from probpilot.core.schemas import ForecastRequest, ForecastRun
from probpilot.jobs.common import bootstrap


def _save(config_path: str, run: ForecastRun) -> None:
    _, storage = bootstrap(config_path)
    try:
        storage.save_forecast_run(run)
    finally:
        storage.close()


def run_forecast(
    payload: dict[str, Any],
    config_path: str = "probpilot.toml",
    save: bool = False,
) -> dict[str, Any]:
    config = load_config(config_path)
    request = ForecastRequest.from_record(payload)
    result = run_deterministic_forecast(request, config)
    if save:
        _save(config_path, ForecastRun.from_deterministic(result, tags=request.tags))
    return result.to_record()


def run_assistant(
    payload: dict[str, Any],
    config_path: str = "probpilot.toml",
    dry_run: bool | None = None,
    save: bool = False,
    transport: AssistantTransport | None = None,
) -> dict[str, Any]:
    config = load_config(config_path)
    request = ForecastRequest.from_record(payload)
    if transport is None:
        if dry_run is None:
            dry_run = config.assistant.dry_run_default
        transport = build_transport(config.assistant, dry_run=dry_run)
    result = run_assistant_forecast(request, config, transport)
    if save:
        _save(config_path, ForecastRun.from_assistant(result, tags=request.tags))
    return result.to_record()
