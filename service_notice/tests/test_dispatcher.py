"""
Unit tests for NotificationDispatcher.
"""

import pytest
from structlog.testing import capture_logs

from service_notice.app.credentials.cache import Credential
from service_notice.app.dispatch.dispatcher import NotificationDispatcher
from service_notice.app.dispatch.models import DispatchStatus, RawRequest
from shared.errors import AuthError, ErrorKind, FetchError, UpstreamError, ValidationError
from shared.metrics import MetricsCollector

SECRET = "k1nG2QY9ef"


class FakeCredentialCache:
    """Hands out a fixed token, or raises a queued error."""

    def __init__(self, error: Exception = None):
        self.error = error
        self.calls = 0
        self.invalidated = 0

    async def get(self):
        self.calls += 1
        if self.error:
            raise self.error
        return Credential(token="cached-token", expires_at=float("inf"))

    def invalidate(self):
        self.invalidated += 1


class FakeWeComClient:
    """Records pushes and answers with a canned body."""

    def __init__(self, response=None, error: Exception = None):
        self.response = response if response is not None else {"errcode": 0, "errmsg": "ok"}
        self.error = error
        self.sent = []

    async def send_message(self, access_token, payload):
        self.sent.append((access_token, payload))
        if self.error:
            raise self.error
        return self.response


def notice(body=None, method="POST", token=SECRET):
    headers = {} if token is None else {"Token": token}
    if body is None:
        body = {"users": "u1|u2", "content": "hello"}
    return RawRequest(method=method, headers=headers, body=body)


class TestNotificationDispatcher:
    """Test cases for NotificationDispatcher."""

    @pytest.fixture
    def credentials(self):
        return FakeCredentialCache()

    @pytest.fixture
    def client(self):
        return FakeWeComClient()

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("notice")

    @pytest.fixture
    def dispatcher(self, credentials, client, metrics):
        return NotificationDispatcher(credentials, client, agent_id=1000002,
                                      shared_secret=SECRET, metrics=metrics)

    @pytest.mark.asyncio
    async def test_sends_text_notice(self, dispatcher, credentials, client):
        result = await dispatcher.handle(notice())

        assert result.status == DispatchStatus.SENT
        assert result.invalid_recipients == []
        assert credentials.calls == 1
        assert client.sent == [(
            "cached-token",
            {"touser": "u1|u2", "msgtype": "text", "agentid": 1000002, "text": {"content": "hello"}},
        )]

    @pytest.mark.asyncio
    async def test_markdown_is_wrapped_under_its_own_key(self, dispatcher, client):
        await dispatcher.handle(notice({"users": "u1", "type": "markdown", "content": "**hi**"}))

        payload = client.sent[0][1]
        assert payload["msgtype"] == "markdown"
        assert payload["markdown"] == {"content": "**hi**"}
        assert "text" not in payload

    @pytest.mark.parametrize("method", ["GET", "PUT", "DELETE"])
    @pytest.mark.asyncio
    async def test_non_post_rejected_before_network(self, dispatcher, credentials, client, method):
        with pytest.raises(ValidationError, match="method is not allowed"):
            await dispatcher.handle(notice(method=method))

        assert credentials.calls == 0
        assert client.sent == []

    @pytest.mark.parametrize("token", [None, "", "wrong", SECRET + " ", SECRET.lower()])
    @pytest.mark.asyncio
    async def test_bad_token_rejected(self, dispatcher, credentials, client, token):
        with pytest.raises(AuthError) as exc_info:
            await dispatcher.handle(notice(token=token))

        assert exc_info.value.kind == ErrorKind.AUTH
        assert exc_info.value.message == "token is invalid"
        assert credentials.calls == 0
        assert client.sent == []

    @pytest.mark.asyncio
    async def test_token_header_lookup_is_case_insensitive(self, dispatcher):
        raw = RawRequest(method="POST", headers={"token": SECRET}, body={"users": "u1", "content": "x"})

        result = await dispatcher.handle(raw)

        assert result.status == DispatchStatus.SENT

    @pytest.mark.asyncio
    async def test_empty_configured_secret_rejects_everyone(self, credentials, client):
        dispatcher = NotificationDispatcher(credentials, client, agent_id=1, shared_secret="")

        with pytest.raises(AuthError):
            await dispatcher.handle(notice(token=""))

    @pytest.mark.parametrize("body, field", [
        ({"users": "u1", "content": ""}, "content"),
        ({"content": "hello"}, "users"),
        ({"users": "", "content": "hello"}, "users"),
        ({"users": "u1"}, "content"),
        ({"users": 42, "content": "hello"}, "users"),
        ({"users": "u1", "content": "hello", "type": ""}, "type"),
    ])
    @pytest.mark.asyncio
    async def test_schema_violations_rejected_without_network(self, dispatcher, credentials, client, body, field):
        with pytest.raises(ValidationError) as exc_info:
            await dispatcher.handle(notice(body))

        assert exc_info.value.message.startswith(f"{field}: ")
        assert credentials.calls == 0
        assert client.sent == []

    @pytest.mark.parametrize("body", [None, [], "users=u1", 3])
    @pytest.mark.asyncio
    async def test_non_object_body_rejected(self, dispatcher, body):
        raw = RawRequest(method="POST", headers={"Token": SECRET}, body=body)

        with pytest.raises(ValidationError, match="JSON object"):
            await dispatcher.handle(raw)

    @pytest.mark.asyncio
    async def test_unsupported_message_type_rejected(self, dispatcher, client):
        with pytest.raises(ValidationError, match="unsupported message type"):
            await dispatcher.handle(notice({"users": "u1", "type": "video", "content": "x"}))

        assert client.sent == []

    @pytest.mark.asyncio
    async def test_first_validation_failure_is_reported(self, dispatcher):
        with pytest.raises(ValidationError) as exc_info:
            await dispatcher.handle(notice({}))

        assert exc_info.value.message == "users: Field required"

    @pytest.mark.asyncio
    async def test_invalid_recipients_still_succeed(self, credentials, metrics):
        client = FakeWeComClient({"errcode": 0, "errmsg": "ok", "invaliduser": "u2|u3"})
        dispatcher = NotificationDispatcher(credentials, client, agent_id=1,
                                            shared_secret=SECRET, metrics=metrics)

        with capture_logs() as logs:
            result = await dispatcher.handle(notice())

        assert result.status == DispatchStatus.SENT_WITH_INVALID_RECIPIENTS
        assert result.invalid_recipients == ["u2", "u3"]
        assert metrics.get_value("invalid_recipients_total") == 2
        assert metrics.get_value("notices_total", outcome="sent_with_invalid_recipients") == 1

        warnings = [entry for entry in logs if entry["log_level"] == "warning"]
        assert [entry["event"] for entry in warnings] == ["Notice sent with invalid recipients"]
        assert warnings[0]["invalid_users"] == ["u2", "u3"]

    @pytest.mark.parametrize("reported", [["u2"], 7, {"user": "u2"}])
    @pytest.mark.asyncio
    async def test_malformed_invalid_recipients_do_not_fail_delivered_notice(self, credentials, reported):
        client = FakeWeComClient({"errcode": 0, "errmsg": "ok", "invaliduser": reported})
        dispatcher = NotificationDispatcher(credentials, client, agent_id=1, shared_secret=SECRET)

        with capture_logs() as logs:
            result = await dispatcher.handle(notice())

        assert result.status == DispatchStatus.SENT
        assert result.invalid_recipients == []
        assert "Ignoring malformed invaliduser field" in [
            entry["event"] for entry in logs if entry["log_level"] == "warning"
        ]

    @pytest.mark.asyncio
    async def test_empty_invalid_recipients_is_plain_sent(self, credentials):
        client = FakeWeComClient({"errcode": 0, "errmsg": "ok", "invaliduser": ""})
        dispatcher = NotificationDispatcher(credentials, client, agent_id=1, shared_secret=SECRET)

        result = await dispatcher.handle(notice())

        assert result.status == DispatchStatus.SENT

    @pytest.mark.asyncio
    async def test_push_errcode_raises_upstream_message(self, credentials, metrics):
        client = FakeWeComClient({"errcode": 81013, "errmsg": "user & party & tag all invalid"})
        dispatcher = NotificationDispatcher(credentials, client, agent_id=1,
                                            shared_secret=SECRET, metrics=metrics)

        with pytest.raises(UpstreamError) as exc_info:
            await dispatcher.handle(notice())

        assert exc_info.value.message == "user & party & tag all invalid"
        assert exc_info.value.stage == UpstreamError.PUSH_STAGE
        assert credentials.invalidated == 0
        assert metrics.get_value("notices_total", outcome="failed") == 1

    @pytest.mark.asyncio
    async def test_push_errcode_without_message(self, credentials):
        dispatcher = NotificationDispatcher(credentials, FakeWeComClient({"errcode": -1}),
                                            agent_id=1, shared_secret=SECRET)

        with pytest.raises(UpstreamError, match="unknown error"):
            await dispatcher.handle(notice())

    @pytest.mark.parametrize("errcode", [40001, 40014, 42001])
    @pytest.mark.asyncio
    async def test_rejected_token_invalidates_cache(self, credentials, errcode):
        client = FakeWeComClient({"errcode": errcode, "errmsg": "invalid credential"})
        dispatcher = NotificationDispatcher(credentials, client, agent_id=1, shared_secret=SECRET)

        with pytest.raises(UpstreamError, match="invalid credential"):
            await dispatcher.handle(notice())

        assert credentials.invalidated == 1

    @pytest.mark.asyncio
    async def test_credential_failure_becomes_upstream_error(self, client):
        credentials = FakeCredentialCache(error=FetchError("invalid corpid", details={"errcode": 40013}))
        dispatcher = NotificationDispatcher(credentials, client, agent_id=1, shared_secret=SECRET)

        with pytest.raises(UpstreamError) as exc_info:
            await dispatcher.handle(notice())

        assert exc_info.value.message == "invalid corpid"
        assert exc_info.value.stage == UpstreamError.CREDENTIAL_STAGE
        assert exc_info.value.kind == ErrorKind.UPSTREAM
        assert client.sent == []

    @pytest.mark.asyncio
    async def test_transport_failure_propagates(self, credentials):
        client = FakeWeComClient(error=UpstreamError("push endpoint unavailable"))
        dispatcher = NotificationDispatcher(credentials, client, agent_id=1, shared_secret=SECRET)

        with pytest.raises(UpstreamError, match="push endpoint unavailable"):
            await dispatcher.handle(notice())
