"""
Mock WeCom server providing the gettoken and message/send endpoints.
"""

import uuid
from typing import Dict, Any, List, Optional, Set
from fastapi import FastAPI, Query, Request

from shared.logging import get_logger


class MockWeComServer:
    """Mock WeCom API implementation."""

    def __init__(self, corp_id: str = "mock-corp", corp_secret: str = "mock-secret",
                 agent_id: int = 1000002, users: Optional[Set[str]] = None,
                 expires_in: int = 7200):
        self.logger = get_logger("mock.wecom")
        self.app = FastAPI(title="Mock WeCom", version="1.0.0")

        self.corp_id = corp_id
        self.corp_secret = corp_secret
        self.agent_id = agent_id
        self.expires_in = expires_in
        self.users = users if users is not None else {"u1", "u2", "u3"}

        self.issued_tokens: Set[str] = set()
        self.token_requests = 0
        self.sent_messages: List[Dict[str, Any]] = []

        # When set, message/send answers with this body instead of delivering.
        self.forced_send_response: Optional[Dict[str, Any]] = None

        self._setup_routes()

    def _setup_routes(self):
        """Set up mock WeCom routes."""

        @self.app.get("/cgi-bin/gettoken")
        async def gettoken(corpid: str = Query(""), corpsecret: str = Query("")):
            """Issue an access token for valid corp credentials."""
            self.token_requests += 1
            if corpid != self.corp_id:
                return {"errcode": 40013, "errmsg": "invalid corpid"}
            if corpsecret != self.corp_secret:
                return {"errcode": 40001, "errmsg": "invalid credential"}

            token = uuid.uuid4().hex
            self.issued_tokens.add(token)
            self.logger.info("Issued access token", token_requests=self.token_requests)
            return {
                "errcode": 0,
                "errmsg": "ok",
                "access_token": token,
                "expires_in": self.expires_in,
            }

        @self.app.post("/cgi-bin/message/send")
        async def message_send(request: Request, access_token: str = Query("")):
            """Deliver a message to known users, reporting unknown ones."""
            if access_token not in self.issued_tokens:
                return {"errcode": 40014, "errmsg": "invalid access_token"}

            payload = await request.json()
            if self.forced_send_response is not None:
                return self.forced_send_response

            if payload.get("agentid") != self.agent_id:
                return {"errcode": 40056, "errmsg": "invalid agentid"}

            recipients = [user for user in str(payload.get("touser", "")).split("|") if user]
            unknown = [user for user in recipients if user not in self.users]
            if recipients and len(unknown) == len(recipients):
                return {"errcode": 81013, "errmsg": "user & party & tag all invalid"}

            self.sent_messages.append(payload)
            response: Dict[str, Any] = {"errcode": 0, "errmsg": "ok", "msgid": uuid.uuid4().hex}
            if unknown:
                response["invaliduser"] = "|".join(unknown)
            return response

    def revoke_tokens(self):
        """Forget every issued token, as if they had expired upstream."""
        self.issued_tokens.clear()


def create_app():
    """Create mock WeCom application."""
    server = MockWeComServer()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8090)
