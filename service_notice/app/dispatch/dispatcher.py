"""
Notice dispatcher: validates inbound notices and pushes them to WeCom.
"""

import hmac
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError as SchemaError

from shared.logging import get_logger
from shared.errors import AuthError, FetchError, UpstreamError, ValidationError
from shared.metrics import MetricsCollector
from ..adapters.wecom_client import WeComClient
from ..credentials.cache import CredentialCache
from .models import DispatchResult, NotificationRequest, RawRequest, parse_recipient_list

SECRET_HEADER = "Token"

# Message types whose body is a plain {content} object.
CONTENT_MESSAGE_TYPES = ("text", "markdown")

# invalid credential, invalid access_token, access_token expired
TOKEN_REJECTED_ERRCODES = frozenset({40001, 40014, 42001})


class NotificationDispatcher:
    """Validates, sends and classifies a single notice."""

    def __init__(self, credentials: CredentialCache, client: WeComClient, agent_id: int,
                 shared_secret: str, metrics: Optional[MetricsCollector] = None):
        self.credentials = credentials
        self.client = client
        self.agent_id = agent_id
        self.shared_secret = shared_secret
        self.metrics = metrics
        self.logger = get_logger("notice.dispatcher")

    async def handle(self, raw: RawRequest) -> DispatchResult:
        """Validate then send; no network access happens unless validation passes."""
        notice = self.validate(raw)
        return await self.send(notice)

    def validate(self, raw: RawRequest) -> NotificationRequest:
        """Check method, shared secret and body schema, in that order."""
        if raw.method.upper() != "POST":
            raise ValidationError("method is not allowed", details={"method": raw.method})

        supplied = _header(raw.headers, SECRET_HEADER)
        if not self._secret_matches(supplied):
            self.logger.warning("Rejected notice with invalid token", token_present=supplied is not None)
            raise AuthError("token is invalid")

        if not isinstance(raw.body, dict):
            raise ValidationError("body must be a JSON object")

        try:
            notice = NotificationRequest.model_validate(raw.body)
        except SchemaError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"])
            raise ValidationError(f"{field}: {first['msg']}", details={"field": field})

        if notice.message_type not in CONTENT_MESSAGE_TYPES:
            raise ValidationError(
                f"type: unsupported message type '{notice.message_type}'",
                details={"supported": list(CONTENT_MESSAGE_TYPES)},
            )
        return notice

    def build_payload(self, notice: NotificationRequest) -> Dict[str, Any]:
        """Build the message/send body for a validated notice."""
        return {
            "touser": notice.recipients,
            "msgtype": notice.message_type,
            "agentid": self.agent_id,
            notice.message_type: {"content": notice.content},
        }

    async def send(self, notice: NotificationRequest) -> DispatchResult:
        """Push a validated notice and classify the upstream answer."""
        payload = self.build_payload(notice)

        try:
            credential = await self.credentials.get()
        except FetchError as e:
            self._count("failed")
            raise UpstreamError(e.message, stage=UpstreamError.CREDENTIAL_STAGE, details=e.details)

        try:
            body = await self.client.send_message(credential.token, payload)
        except UpstreamError:
            self._count("failed")
            raise

        errcode = body.get("errcode")
        if errcode != 0:
            if errcode in TOKEN_REJECTED_ERRCODES:
                self.credentials.invalidate()
            message = body.get("errmsg") or "unknown error"
            self.logger.error("Push rejected", errcode=errcode, errmsg=message)
            self._count("failed")
            raise UpstreamError(message, details={"errcode": errcode})

        reported = body.get("invaliduser")
        if reported is not None and not isinstance(reported, str):
            # Already delivered; an unreadable report must not fail the notice.
            self.logger.warning("Ignoring malformed invaliduser field", invaliduser=repr(reported))
            reported = None

        invalid = parse_recipient_list(reported)
        if invalid:
            self.logger.warning("Notice sent with invalid recipients", invalid_users=invalid)
            if self.metrics:
                self.metrics.increment_counter("invalid_recipients_total", amount=len(invalid))
            self._count("sent_with_invalid_recipients")
            return DispatchResult.sent_with_invalid_recipients(invalid)

        self.logger.info("Notice sent", recipients=notice.recipients, msgtype=notice.message_type)
        self._count("sent")
        return DispatchResult.sent()

    def _secret_matches(self, supplied: Optional[str]) -> bool:
        if not self.shared_secret or supplied is None:
            return False
        return hmac.compare_digest(supplied.encode(), self.shared_secret.encode())

    def _count(self, outcome: str):
        if self.metrics:
            self.metrics.increment_counter("notices_total", outcome=outcome)


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None
