"""Base class for source adapters."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog

from metrics_hub.config import Settings
from metrics_hub.exceptions import SourceAuthError, SourceHTTPError
from metrics_hub.ingestion.context import IngestionContext
from metrics_hub.ingestion.outcome import FetchOutcome

logger = structlog.get_logger()


class SourceAdapter(ABC):
    """Abstract base class for one vendor integration.

    Subclasses translate a vendor's responses into canonical records and
    return a tagged ``FetchOutcome``. They never write to the database and
    never mutate the context.
    """

    name: str = ""
    display_name: str = ""
    # Pause between per-entity calls
    request_delay: float = 0.1
    retry_backoff: float = 1.0

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
        request_delay: float | None = None,
        retry_backoff: float | None = None,
    ):
        self.settings = settings
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=settings.http_timeout)
        if request_delay is not None:
            self.request_delay = request_delay
        if retry_backoff is not None:
            self.retry_backoff = retry_backoff

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether credentials for this source are present."""

    @abstractmethod
    async def fetch(self, context: IngestionContext) -> FetchOutcome:
        """Fetch and map one day of data."""

    @property
    def not_configured_note(self) -> str:
        return f"{self.display_name or self.name} not configured"

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def pause(self) -> None:
        if self.request_delay:
            await asyncio.sleep(self.request_delay)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json: Any = None,
        empty_statuses: tuple[int, ...] = (),
        max_retries: int = 3,
    ) -> httpx.Response | None:
        """Make a request with retry on 5xx and transport errors.

        Returns None when the response status is in ``empty_statuses``.
        Raises ``SourceAuthError`` on 401/403 and ``SourceHTTPError`` on
        other error statuses.
        """
        label = self.display_name or self.name
        for attempt in range(max_retries):
            try:
                response = await self.client.request(method, url, headers=headers, params=params, json=json)
            except httpx.TransportError as e:
                logger.warning("Request failed", source=self.name, error=str(e), url=url, attempt=attempt + 1)
                if attempt == max_retries - 1:
                    raise SourceHTTPError(f"{label} request failed: {e}", url=url) from e
                await asyncio.sleep(self.retry_backoff * 2**attempt)
                continue

            status = response.status_code
            if status in empty_statuses:
                return None
            if status in (401, 403):
                raise SourceAuthError(f"{label} API error: {status}", status, response.text, url)
            if status >= 500:
                logger.warning("HTTP error", source=self.name, status_code=status, url=url, attempt=attempt + 1)
                if attempt == max_retries - 1:
                    raise SourceHTTPError(f"{label} API error: {status}", status, response.text, url)
                await asyncio.sleep(self.retry_backoff * 2**attempt)
                continue
            if status >= 400:
                raise SourceHTTPError(f"{label} API error: {status}", status, response.text, url)
            return response

        raise SourceHTTPError(f"{label} request failed after {max_retries} attempts", url=url)

    async def _get_json(self, url: str, **kwargs) -> Any:
        response = await self._request("GET", url, **kwargs)
        return None if response is None else response.json()

    async def _post_json(self, url: str, body: Any, **kwargs) -> Any:
        response = await self._request("POST", url, json=body, **kwargs)
        return None if response is None else response.json()
