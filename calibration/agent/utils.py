import json
import logging
from typing import Any

# Set up logging
logger = logging.getLogger(__name__)


def strip_code_fences(response_text: str) -> str:
    """Remove markdown code fences (```json ... ```) around a model reply."""
    text = response_text.strip()
    if text.startswith("```json"):
        text = text[7:]
    if text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def extract_json_from_response(response_text: str) -> Any:
    """Robust JSON extraction from LLM responses.

    Handles:
    - Markdown code fences (```json, ```)
    - Extra commentary before/after JSON

    Args:
        response_text: Raw LLM response

    Returns:
        The parsed JSON value (normally a dict)

    Raises:
        json.JSONDecodeError: If JSON cannot be extracted
    """
    text = strip_code_fences(response_text)

    # Try direct parse first
    try:
        return json.loads(text)
    except json.JSONDecodeError as first_error:
        logger.debug("Direct JSON parse failed, attempting substring extraction")

        # Try to find JSON object boundaries
        try:
            start = text.index("{")
            end = text.rindex("}") + 1
            return json.loads(text[start:end])
        except (ValueError, json.JSONDecodeError):
            logger.debug(f"JSON extraction failed; raw response (first 500 chars): {response_text[:500]}")
            raise first_error
