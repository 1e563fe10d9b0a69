"""Short-lived credential caching."""

import time
from collections.abc import Callable

import structlog

logger = structlog.get_logger()

# (token, expires_at as epoch seconds)
TokenFactory = Callable[[], tuple[str, float]]


class TokenCache:
    """Reuses a generated token until it is within ``margin`` seconds of expiry.

    One instance per credential. Only the owning adapter calls it.
    """

    def __init__(self, generate: TokenFactory, margin: float = 60.0, clock: Callable[[], float] = time.time):
        self._generate = generate
        self.margin = margin
        self._clock = clock
        self._token: str | None = None
        self._expires_at = 0.0

    @property
    def expires_at(self) -> float:
        return self._expires_at

    def is_fresh(self) -> bool:
        return self._token is not None and self._expires_at - self._clock() >= self.margin

    def get_token(self) -> str:
        if self.is_fresh():
            return self._token

        token, expires_at = self._generate()
        self._token = token
        self._expires_at = expires_at
        logger.debug("Token generated", expires_in=round(expires_at - self._clock()))
        return token

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0
