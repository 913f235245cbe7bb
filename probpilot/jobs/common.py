from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

from calibration.errors import InvalidInput
from probpilot.core.config import ProbPilotConfig, load_config
from probpilot.core.sqlite_storage import SQLiteForecastStore


def bootstrap(config_path: str) -> tuple[ProbPilotConfig, SQLiteForecastStore]:
    config = load_config(config_path)
    storage = SQLiteForecastStore(config.history_db_path)
    storage.init()
    return config, storage


def load_payload(path: str) -> Any:
    try:
        if path == "-":
            return json.load(sys.stdin)
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InvalidInput(f"request body is not valid JSON: {exc}") from exc
