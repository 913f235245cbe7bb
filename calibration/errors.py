from __future__ import annotations


class CalibrationError(Exception):
    """Base class for errors raised by the calibration core."""


class InvalidInput(CalibrationError, ValueError):
    """Malformed market snapshot (missing or non-finite probability)."""


class AssistantUnavailable(CalibrationError):
    """Transport failure, timeout, or no parseable JSON from the assistant."""


class AssistantContractViolation(CalibrationError):
    """Assistant returned JSON that is missing required keys."""
