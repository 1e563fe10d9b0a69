"""Google service-account access tokens shared by the Google sources."""

import asyncio
import json
from datetime import timezone

import google.auth.transport.requests
from google.oauth2 import service_account

from metrics_hub.exceptions import ConfigurationError
from metrics_hub.ingestion.base import SourceAdapter
from metrics_hub.ingestion.tokens import TokenCache


def service_account_tokens(info_json: str, scopes: list[str]) -> TokenCache:
    """Build a token cache that refreshes an OAuth token for a service account."""
    # Some deployments wrap the JSON in single quotes
    raw = info_json.strip()
    if raw.startswith("'") and raw.endswith("'"):
        raw = raw[1:-1]
    try:
        info = json.loads(raw)
        credentials = service_account.Credentials.from_service_account_info(info, scopes=scopes)
    except ValueError as e:
        raise ConfigurationError(f"Invalid service account JSON: {e}") from e

    def refresh() -> tuple[str, float]:
        credentials.refresh(google.auth.transport.requests.Request())
        expiry = credentials.expiry.replace(tzinfo=timezone.utc)
        return credentials.token, expiry.timestamp()

    return TokenCache(refresh)


class GoogleSource(SourceAdapter):
    """Source authenticated with a Google service account."""

    scopes: list[str] = []
    request_delay = 0.2

    def __init__(self, settings, client=None, credentials: TokenCache | None = None, **kwargs):
        super().__init__(settings, client, **kwargs)
        self._credentials = credentials

    def service_account_json(self) -> str | None:
        return self.settings.google_service_account_json

    def is_configured(self) -> bool:
        return bool(self.service_account_json())

    @property
    def credentials(self) -> TokenCache:
        if self._credentials is None:
            self._credentials = service_account_tokens(self.service_account_json(), self.scopes)
        return self._credentials

    async def _auth_headers(self) -> dict[str, str]:
        # Token refresh does blocking I/O
        token = await asyncio.to_thread(self.credentials.get_token)
        return {"Authorization": f"Bearer {token}"}


class GA4Source(GoogleSource):
    """Source reading the GA4 Data API."""

    scopes = ["https://www.googleapis.com/auth/analytics.readonly"]
    GA4_DATA_API = "https://analyticsdata.googleapis.com/v1beta"

    async def run_report(self, property_id: str, body: dict) -> list[dict]:
        """Run a report and return its rows as ``{"dimensions": [...], "metrics": [...]}``."""
        data = await self._post_json(
            f"{self.GA4_DATA_API}/properties/{property_id}:runReport",
            body,
            headers=await self._auth_headers(),
        )
        return [
            {
                "dimensions": [d.get("value", "") for d in row.get("dimensionValues", [])],
                "metrics": [m.get("value", "0") for m in row.get("metricValues", [])],
            }
            for row in data.get("rows") or []
        ]


def day_range(date_str: str) -> list[dict[str, str]]:
    return [{"startDate": date_str, "endDate": date_str}]
