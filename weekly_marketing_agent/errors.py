from __future__ import annotations


class WeeklyReportError(RuntimeError):
    """Base class for every failure the weekly marketing run knows how to report."""


class ConfigurationError(WeeklyReportError):
    def __init__(self, name: str, source: str = "") -> None:
        self.name = name
        self.source = source
        prefix = f"{source}: " if source else ""
        super().__init__(f"{prefix}{name} env var is missing")


class UpstreamError(WeeklyReportError):
    """A vendor API call failed (transport, non-2xx, API error payload or bad body)."""

    def __init__(
        self,
        vendor: str,
        message: str,
        *,
        path: str = "",
        status: int | None = None,
    ) -> None:
        self.vendor = vendor
        self.path = path
        self.status = status
        self.detail = message
        status_text = f" {status}" if status is not None else ""
        path_text = f" on {path}" if path else ""
        super().__init__(f"{vendor} API error{status_text}{path_text}: {message}")


class GenerationParseError(WeeklyReportError):
    """Narrative generator output could not be parsed into the report document."""


class NarrativeRetryExhaustedError(GenerationParseError):
    def __init__(self, attempts: int, errors: list[str]) -> None:
        self.attempts = attempts
        self.errors = list(errors)
        last = self.errors[-1] if self.errors else "unknown parse error"
        super().__init__(
            f"Narrative output was not valid JSON after {attempts} attempt(s). Last error: {last}"
        )


class PersistenceError(WeeklyReportError):
    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(f"Failed to write {path}: {message}")
