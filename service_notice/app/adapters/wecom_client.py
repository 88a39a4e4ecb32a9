"""
WeCom (Enterprise WeChat) API client for the Notice service.
"""

import httpx
from typing import Dict, Any, Optional

from shared.logging import get_logger
from shared.errors import FetchError, UpstreamError


class WeComClient:
    """Thin client for the WeCom identity and message endpoints.

    Only transport concerns live here: URLs, timeouts, JSON decoding.
    Interpreting ``errcode`` is left to the callers.
    """

    def __init__(self, base_url: str, corp_id: str, corp_secret: str,
                 timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.corp_id = corp_id
        self.corp_secret = corp_secret
        self.timeout = timeout
        self._transport = transport
        self.logger = get_logger("notice.wecom_client")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def fetch_token(self) -> Dict[str, Any]:
        """Request a fresh access token from the identity endpoint."""
        params = {"corpid": self.corp_id, "corpsecret": self.corp_secret}
        try:
            async with self._client() as client:
                response = await client.get(f"{self.base_url}/gettoken", params=params)
                response.raise_for_status()
                return _json_object(response)
        except httpx.HTTPError as e:
            details = _http_error_details(e)
            self.logger.error("Identity endpoint HTTP error", **details)
            raise FetchError("identity endpoint unavailable", details=details)
        except ValueError as e:
            self.logger.error("Identity endpoint returned invalid JSON", error=str(e))
            raise FetchError("identity endpoint returned an invalid response")

    async def send_message(self, access_token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Push a message on behalf of the configured application."""
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/message/send",
                    params={"access_token": access_token},
                    json=payload
                )
                response.raise_for_status()
                return _json_object(response)
        except httpx.HTTPError as e:
            details = _http_error_details(e)
            self.logger.error("Push endpoint HTTP error", **details)
            raise UpstreamError("push endpoint unavailable", details=details)
        except ValueError as e:
            self.logger.error("Push endpoint returned invalid JSON", error=str(e))
            raise UpstreamError("push endpoint returned an invalid response")


def _json_object(response: httpx.Response) -> Dict[str, Any]:
    body = response.json()
    if not isinstance(body, dict):
        raise ValueError("expected a JSON object")
    return body


def _http_error_details(error: httpx.HTTPError) -> Dict[str, Any]:
    # The request URL carries corpsecret or access_token, so str(error) is never exposed.
    details: Dict[str, Any] = {"error_type": type(error).__name__}
    if isinstance(error, httpx.HTTPStatusError):
        details["status_code"] = error.response.status_code
    return details
