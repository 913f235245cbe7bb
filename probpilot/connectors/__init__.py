from __future__ import annotations

import os

from calibration.guardrail import AssistantTransport
from probpilot.connectors.assistant import DryRunTransport, OpenAIChatTransport, OpenRouterTransport
from probpilot.core.config import AssistantConfig


def build_transport(config: AssistantConfig, dry_run: bool = False) -> AssistantTransport:
    if dry_run or config.provider == "dry_run":
        return DryRunTransport()

    api_key = os.getenv(config.api_key_env)
    if not api_key:
        raise ValueError(f"{config.api_key_env} not found in environment")

    if config.provider == "openai":
        return OpenAIChatTransport(
            api_key=api_key,
            model=config.model,
            base_url=config.base_url,
            temperature=config.temperature,
        )
    if config.provider == "openrouter":
        return OpenRouterTransport(api_key=api_key, model=config.model, temperature=config.temperature)
    raise ValueError(f"Unknown assistant provider: {config.provider!r}")
