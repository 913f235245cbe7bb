from __future__ import annotations

from probpilot.core.dashboard import render_history
from probpilot.jobs.common import bootstrap


def run_history(config_path: str = "probpilot.toml", market_id: str | None = None, limit: int = 50) -> str:
    _, storage = bootstrap(config_path)
    try:
        return render_history(storage, market_id=market_id, limit=limit)
    finally:
        storage.close()
