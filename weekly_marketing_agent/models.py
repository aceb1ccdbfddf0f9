from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import date
from typing import Any


SOURCE_NAMES: tuple[str, ...] = ("ga4", "gsc", "youtube", "kit", "meta", "unbounce", "vimeo")

SOURCE_LABELS: dict[str, str] = {
    "ga4": "GA4",
    "gsc": "GSC",
    "youtube": "YouTube",
    "kit": "Kit",
    "meta": "Meta",
    "unbounce": "Unbounce",
    "vimeo": "Vimeo",
}

SOURCE_TITLES: dict[str, str] = {
    "ga4": "GA4 - Website Analytics",
    "gsc": "Google Search Console - Organic Search",
    "youtube": "YouTube - Video Analytics",
    "kit": "Kit (ConvertKit) - Email Newsletter",
    "meta": "Meta Ads - Paid Social",
    "unbounce": "Unbounce - Landing Pages",
    "vimeo": "Vimeo - Video Sales Letters",
}


@dataclass(frozen=True)
class DateWindow:
    name: str
    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def as_dict(self) -> dict[str, str]:
        return {"startDate": self.start.isoformat(), "endDate": self.end.isoformat()}


@dataclass(frozen=True)
class SourceResult:
    """Settled outcome of one source adapter: a snapshot or an error message."""

    source: str
    snapshot: dict[str, Any] | None = None
    error: str = ""
    elapsed_sec: float = 0.0

    @property
    def ok(self) -> bool:
        return self.snapshot is not None and not self.error

    def to_payload(self) -> dict[str, Any]:
        if self.ok:
            return copy.deepcopy(self.snapshot)
        return {"error": self.error or "Unknown error."}


@dataclass(frozen=True)
class CombinedSnapshot:
    results: tuple[SourceResult, ...]

    def get(self, source: str) -> SourceResult | None:
        for result in self.results:
            if result.source == source:
                return result
        return None

    @property
    def succeeded(self) -> list[str]:
        return [result.source for result in self.results if result.ok]

    @property
    def failed(self) -> dict[str, str]:
        return {result.source: result.error for result in self.results if not result.ok}

    def as_dict(self) -> dict[str, dict[str, Any]]:
        return {result.source: result.to_payload() for result in self.results}
