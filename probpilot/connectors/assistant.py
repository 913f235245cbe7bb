from __future__ import annotations

import json
import logging
from typing import Any

import httpx
import openai

from probpilot.core.utils import stable_hash

logger = logging.getLogger(__name__)

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"


def _messages(system_prompt: str, user_payload: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_payload},
    ]


class OpenAIChatTransport:
    """Assistant transport for any OpenAI-compatible chat endpoint (Groq, OpenAI)."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        temperature: float = 0.0,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.client = client or openai.AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def invoke(self, system_prompt: str, user_payload: str) -> str:
        logger.info(f"Calling assistant model: {self.model}")
        completion = await self.client.chat.completions.create(
            model=self.model,
            temperature=self.temperature,
            response_format={"type": "json_object"},
            messages=_messages(system_prompt, user_payload),
        )
        usage = getattr(completion, "usage", None)
        if usage is not None:
            logger.info(
                f"Assistant usage for {self.model}: prompt={usage.prompt_tokens}, "
                f"completion={usage.completion_tokens}, total={usage.total_tokens}"
            )
        if not completion.choices:
            return "{}"
        return completion.choices[0].message.content or "{}"


class OpenRouterTransport:
    """Assistant transport that posts to OpenRouter with httpx."""

    def __init__(
        self,
        api_key: str,
        model: str,
        temperature: float = 0.0,
        url: str = OPENROUTER_URL,
        timeout_seconds: float = 120.0,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.http_transport = http_transport

    async def invoke(self, system_prompt: str, user_payload: str) -> str:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": _messages(system_prompt, user_payload),
            "temperature": self.temperature,
            "response_format": {"type": "json_object"},
        }

        logger.info(f"Calling OpenRouter with model: {self.model}")
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.http_transport) as client:
            response = await client.post(self.url, headers=headers, json=payload)

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError:
            logger.error(f"OpenRouter API error ({response.status_code}): {response.text[:500]}")
            raise

        result = response.json()
        choices = result.get("choices") or []
        if not choices:
            raise ValueError(f"Unexpected OpenRouter response format: {result}")
        message = choices[0].get("message", {}) or {}
        content = (message.get("content") or "").strip()
        logger.info(f"OpenRouter response received ({len(content)} chars)")
        return content or "{}"


class DryRunTransport:
    """Offline transport: a deterministic in-envelope answer derived from the payload."""

    async def invoke(self, system_prompt: str, user_payload: str) -> str:
        request: dict[str, Any] = json.loads(user_payload)
        prior = float(request.get("market_prior_yes", 0.5))
        max_shift = float(request.get("max_shift", 0.0))
        h = stable_hash(str(request.get("market_title", "")))
        bucket = int(h[:8], 16) / 0xFFFFFFFF
        prob = prior + (2 * bucket - 1) * max_shift * 0.5
        stance = "supports" if prob >= prior else "contradicts"
        drivers = [
            {
                "id": str(entry.get("id")),
                "stance": entry.get("stance") or stance,
                "weight": round(float(entry.get("reliability", 0)) / 100, 2),
                "reason": f"{entry.get('source') or 'source'}: {entry.get('title') or 'evidence'}",
            }
            for entry in (request.get("evidence") or [])[:2]
            if entry.get("id")
        ]
        return json.dumps(
            {
                "model_prob_0_1": prob,
                "overall_confidence": 50,
                "top_drivers": drivers,
                "notes": "dry-run assistant",
            }
        )
