from __future__ import annotations

from abc import ABC, abstractmethod

from probpilot.core.schemas import ForecastRun


class ForecastStore(ABC):
    @abstractmethod
    def init(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def save_forecast_run(self, run: ForecastRun) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_forecast_run(self, run_id: str) -> ForecastRun | None:
        raise NotImplementedError

    @abstractmethod
    def list_forecast_runs(self, market_id: str | None = None, limit: int = 50) -> list[ForecastRun]:
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError
