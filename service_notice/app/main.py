"""
Notice service for the Notice Relay.
"""

from typing import Optional

import httpx
from fastapi import Request
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import NoticeConfig, get_config
from shared.errors import FetchError
from .adapters.wecom_client import WeComClient
from .credentials.cache import CredentialCache
from .dispatch.dispatcher import NotificationDispatcher
from .dispatch.models import RawRequest


class NoticeService(BaseService):
    """Notice service implementation."""

    def __init__(self, config: Optional[NoticeConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        config = config or get_config()
        self.wecom_client = WeComClient(
            config.wecom_base_url,
            config.corp_id,
            config.corp_secret,
            timeout=config.http_timeout,
            transport=transport,
        )
        super().__init__(config)

        self.credentials = CredentialCache(
            self.wecom_client,
            safety_margin=config.token_safety_margin,
            metrics=self.metrics,
        )
        self.dispatcher = NotificationDispatcher(
            self.credentials,
            self.wecom_client,
            agent_id=config.agent_id,
            shared_secret=config.token,
            metrics=self.metrics,
        )

        self._setup_notice_routes()

    def _setup_notice_routes(self):
        """Set up notice-specific routes."""

        # No method list: every method reaches the dispatcher, which rejects non-POST calls itself.
        async def notice(request: Request):
            """Relay one notice to WeCom."""
            raw = RawRequest(
                method=request.method,
                headers=request.headers,
                body=await _read_json(request),
            )
            result = await self.dispatcher.handle(raw)
            return JSONResponse(
                status_code=201,
                content=result.to_response(),
                headers={"Cache-Control": "no-cache"},
            )

        self.app.add_route("/notice", notice, methods=None, include_in_schema=False)

    async def _on_startup(self):
        """Warm the token cache so the first notice skips the fetch."""
        if not self.config.prefetch_token:
            return
        try:
            await self.credentials.get()
        except FetchError as e:
            self.logger.warning("Access token prefetch failed", error=e.message)

    async def _check_dependencies(self):
        """Report the credential cache state."""
        credential = self.credentials.credential
        if credential is None:
            state = "empty"
        elif credential.is_valid(self.credentials.clock()):
            state = "valid"
        else:
            state = "expired"
        return {"credential": state}


async def _read_json(request: Request):
    """Decode the body as JSON; None when it is empty or malformed."""
    body = await request.body()
    if not body:
        return None
    try:
        return await request.json()
    except ValueError:
        return None


def create_app(config: Optional[NoticeConfig] = None,
               transport: Optional[httpx.AsyncBaseTransport] = None):
    """Create FastAPI application."""
    service = NoticeService(config, transport)
    return service.app


if __name__ == "__main__":
    service = NoticeService()
    service.run()
