"""Exception hierarchy for the ingestion pipeline."""

from typing import Any


class MetricsHubError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(MetricsHubError):
    """A configured credential is present but unusable."""


class ContextBuildError(MetricsHubError):
    """The registry snapshot for a run could not be loaded."""


class UnknownSourceError(MetricsHubError):
    """A source name was requested that is not registered."""

    def __init__(self, name: str, available: list[str]):
        self.name = name
        self.available = available
        super().__init__(f"Unknown source: {name}. Available: {', '.join(available)}")


class NaturalKeyError(MetricsHubError):
    """A canonical record is missing a required natural-key field."""


class LogStateError(MetricsHubError):
    """An ingestion log entry was closed twice or does not exist."""


class SourceError(MetricsHubError):
    """A vendor call failed."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
        url: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.url = url

    def details(self) -> dict[str, Any]:
        details: dict[str, Any] = {"type": type(self).__name__, "message": str(self)}
        if self.status_code is not None:
            details["status_code"] = self.status_code
        if self.body:
            details["body"] = self.body[:2000]
        if self.url:
            details["url"] = self.url
        return details


class SourceAuthError(SourceError):
    """The vendor rejected our credentials (401/403)."""


class SourceHTTPError(SourceError):
    """The vendor returned a non-auth error status."""
