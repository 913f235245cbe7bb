from __future__ import annotations

import json
import sqlite3
from typing import Any

from probpilot.core.schemas import ForecastRun
from probpilot.core.storage import ForecastStore
from probpilot.core.utils import to_iso

SCHEMA = """
CREATE TABLE IF NOT EXISTS forecast_runs (
    id TEXT PRIMARY KEY,
    market_id TEXT NOT NULL,
    market_title TEXT NOT NULL DEFAULT '',
    made_at TEXT NOT NULL,
    kind TEXT NOT NULL,
    market_prob REAL NOT NULL,
    model_prob REAL NOT NULL,
    delta REAL NOT NULL,
    confidence TEXT NOT NULL,
    confidence_score REAL,
    signal REAL,
    summary TEXT NOT NULL DEFAULT '',
    tags_json TEXT NOT NULL DEFAULT '[]',
    payload_json TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_forecast_runs_market ON forecast_runs(market_id, made_at);
"""


class SQLiteForecastStore(ForecastStore):
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row

    def init(self) -> None:
        self.conn.executescript(SCHEMA)
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    def _json(self, value: Any) -> str:
        return json.dumps(value, ensure_ascii=False, sort_keys=True)

    def _from_row(self, row: sqlite3.Row) -> ForecastRun:
        return ForecastRun.from_record(
            {
                "id": row["id"],
                "market_id": row["market_id"],
                "market_title": row["market_title"],
                "made_at": row["made_at"],
                "kind": row["kind"],
                "market_prob": row["market_prob"],
                "model_prob": row["model_prob"],
                "delta": row["delta"],
                "confidence": row["confidence"],
                "confidence_score": row["confidence_score"],
                "signal": row["signal"],
                "summary": row["summary"],
                "tags": json.loads(row["tags_json"]),
                "payload": json.loads(row["payload_json"]),
            }
        )

    def save_forecast_run(self, run: ForecastRun) -> None:
        self.conn.execute(
            """
            INSERT INTO forecast_runs (
                id, market_id, market_title, made_at, kind, market_prob, model_prob,
                delta, confidence, confidence_score, signal, summary, tags_json, payload_json
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                market_title=excluded.market_title,
                model_prob=excluded.model_prob,
                delta=excluded.delta,
                confidence=excluded.confidence,
                confidence_score=excluded.confidence_score,
                signal=excluded.signal,
                summary=excluded.summary,
                tags_json=excluded.tags_json,
                payload_json=excluded.payload_json
            """,
            (
                run.id,
                run.market_id,
                run.market_title,
                to_iso(run.made_at),
                run.kind,
                run.market_prob,
                run.model_prob,
                run.delta,
                run.confidence,
                run.confidence_score,
                run.signal,
                run.summary,
                self._json(run.tags),
                self._json(run.payload),
            ),
        )
        self.conn.commit()

    def get_forecast_run(self, run_id: str) -> ForecastRun | None:
        row = self.conn.execute("SELECT * FROM forecast_runs WHERE id = ?", (run_id,)).fetchone()
        return self._from_row(row) if row else None

    def list_forecast_runs(self, market_id: str | None = None, limit: int = 50) -> list[ForecastRun]:
        if market_id:
            rows = self.conn.execute(
                "SELECT * FROM forecast_runs WHERE market_id = ? ORDER BY made_at DESC LIMIT ?",
                (market_id, int(limit)),
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM forecast_runs ORDER BY made_at DESC LIMIT ?",
                (int(limit),),
            ).fetchall()
        return [self._from_row(row) for row in rows]
