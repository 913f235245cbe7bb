from __future__ import annotations

from collections import defaultdict

from probpilot.core.storage import ForecastStore


def render_history(store: ForecastStore, market_id: str | None = None, limit: int = 50) -> str:
    runs = store.list_forecast_runs(market_id=market_id, limit=limit)
    if not runs:
        return "No forecast runs recorded yet."

    title = f"# Forecast History: {market_id}" if market_id else "# Forecast History"
    lines = [title, "", f"Last {len(runs)} runs", ""]
    lines.append("| made_at | market_id | kind | market_prob | model_prob | delta | confidence |")
    lines.append("|---|---|---|---|---|---|---|")
    for run in runs:
        lines.append(
            f"| {run.made_at.strftime('%Y-%m-%d %H:%M')} | {run.market_id} | {run.kind} "
            f"| {run.market_prob:.3f} | {run.model_prob:.3f} | {run.delta:+.3f} | {run.confidence} |"
        )

    by_kind: dict[str, list[float]] = defaultdict(list)
    for run in runs:
        by_kind[run.kind].append(abs(run.delta))
    lines.append("")
    lines.append("## Mean |delta| by path")
    for kind, deltas in sorted(by_kind.items()):
        lines.append(f"- {kind}: {sum(deltas) / len(deltas):.3f} (n={len(deltas)})")
    return "\n".join(lines)
