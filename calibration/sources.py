from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Tuple

SourcePriorClassifier = Callable[[str], float]

OFFICIAL_LABELS: Tuple[str, ...] = ("gov", "mil")

WIRE_PRESS_DOMAINS: Tuple[str, ...] = (
    "bloomberg.com",
    "reuters.com",
    "apnews.com",
    "ft.com",
    "wsj.com",
)

# Official statistical and monetary agencies that do not sit under a .gov/.mil host.
STATISTICAL_AGENCY_DOMAINS: Tuple[str, ...] = (
    "newyorkfed.org",
    "stlouisfed.org",
    "ecb.europa.eu",
    "ec.europa.eu",
    "imf.org",
    "bis.org",
    "oecd.org",
)


def _matches_domain(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


@dataclass(frozen=True)
class SourcePriorTable:
    """Tiered host classifier; the first matching tier wins."""

    official_labels: Tuple[str, ...] = OFFICIAL_LABELS
    wire_press: Tuple[str, ...] = WIRE_PRESS_DOMAINS
    statistical_agencies: Tuple[str, ...] = STATISTICAL_AGENCY_DOMAINS
    official_bonus: float = 0.25
    wire_press_bonus: float = 0.15
    statistical_bonus: float = 0.20

    def __call__(self, host: str) -> float:
        h = (host or "").strip().lower()
        if not h:
            return 0.0
        labels = h.split(".")
        if any(label in self.official_labels for label in labels[1:]):
            return self.official_bonus
        if any(_matches_domain(h, d) for d in self.wire_press):
            return self.wire_press_bonus
        if any(_matches_domain(h, d) for d in self.statistical_agencies):
            return self.statistical_bonus
        return 0.0

    def extended(
        self,
        wire_press: Tuple[str, ...] = (),
        statistical_agencies: Tuple[str, ...] = (),
    ) -> "SourcePriorTable":
        return SourcePriorTable(
            official_labels=self.official_labels,
            wire_press=self.wire_press + tuple(wire_press),
            statistical_agencies=self.statistical_agencies + tuple(statistical_agencies),
            official_bonus=self.official_bonus,
            wire_press_bonus=self.wire_press_bonus,
            statistical_bonus=self.statistical_bonus,
        )


DEFAULT_SOURCE_PRIOR = SourcePriorTable()


def source_prior_bonus(host: str) -> float:
    return DEFAULT_SOURCE_PRIOR(host)
