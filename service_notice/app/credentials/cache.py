"""
Access token cache for the WeCom identity endpoint.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from shared.logging import get_logger
from shared.errors import FetchError
from shared.metrics import MetricsCollector
from ..adapters.wecom_client import WeComClient

DEFAULT_SAFETY_MARGIN = 5 * 60


@dataclass(frozen=True)
class Credential:
    """An access token plus the moment it stops being safe to use."""

    token: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return self.expires_at > now


class CredentialCache:
    """Holds one access token and renews it before expiry.

    Concurrent callers that find the cache stale share a single in-flight
    fetch; each of them receives that fetch's credential or its error.
    """

    def __init__(self, client: WeComClient, safety_margin: int = DEFAULT_SAFETY_MARGIN,
                 clock: Callable[[], float] = time.time,
                 metrics: Optional[MetricsCollector] = None):
        self.client = client
        self.safety_margin = safety_margin
        self.clock = clock
        self.metrics = metrics
        self.logger = get_logger("notice.credentials")

        self._credential: Optional[Credential] = None
        self._inflight: Optional["asyncio.Future[Credential]"] = None

    @property
    def credential(self) -> Optional[Credential]:
        """The cached credential, valid or not."""
        return self._credential

    async def get(self) -> Credential:
        """Return a non-expired credential, fetching one if needed."""
        credential = self._credential
        if credential is not None and credential.is_valid(self.clock()):
            return credential

        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._refresh())
            self._inflight.add_done_callback(self._refresh_done)

        # Shielded so one cancelled waiter cannot abort the shared fetch.
        return await asyncio.shield(self._inflight)

    def invalidate(self):
        """Drop the cached credential so the next get() fetches a new one."""
        if self._credential is not None:
            self.logger.info("Access token invalidated")
        self._credential = None

    async def _refresh(self) -> Credential:
        status = "error"
        try:
            if self.metrics:
                with self.metrics.time_operation("credential_fetch_duration_seconds"):
                    body = await self.client.fetch_token()
            else:
                body = await self.client.fetch_token()
            credential = self._parse(body)
            status = "success"
        finally:
            if self.metrics:
                self.metrics.increment_counter("credential_fetch_total", status=status)

        self._credential = credential
        self.logger.info("Access token refreshed", expires_at=credential.expires_at)
        return credential

    def _parse(self, body: Dict[str, Any]) -> Credential:
        errcode = body.get("errcode")
        if errcode != 0:
            message = body.get("errmsg") or "unknown error"
            self.logger.error("Access token fetch rejected", errcode=errcode, errmsg=message)
            raise FetchError(message, details={"errcode": errcode})

        token = body.get("access_token")
        expires_in = body.get("expires_in")
        if not isinstance(token, str) or not token:
            raise FetchError("identity endpoint returned no access_token")
        if isinstance(expires_in, bool) or not isinstance(expires_in, int):
            raise FetchError("identity endpoint returned an invalid expires_in")

        credential = Credential(
            token=token,
            expires_at=self.clock() + expires_in - self.safety_margin,
        )
        # A token that is already inside the safety margin must never be handed out.
        if not credential.is_valid(self.clock()):
            raise FetchError(
                "access token lifetime is shorter than the safety margin",
                details={"expires_in": expires_in, "safety_margin": self.safety_margin},
            )
        return credential

    def _refresh_done(self, future: "asyncio.Future[Credential]"):
        self._inflight = None
        # Mark the error retrieved in case every waiter was cancelled.
        if not future.cancelled():
            future.exception()
