"""
Assistant HTTP API: auth, input limits, rate limiting and the
usage/conversation endpoints.
"""
import sys
from datetime import timedelta
from pathlib import Path
from unittest.mock import AsyncMock, patch

backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from auth import create_access_token, create_user_token, user_from_claims
from models import AssistantReply
from utils.rate_limiter import ASSISTANT_MESSAGES_PER_MINUTE


def _headers(user_id="user-1"):
    return {"Authorization": f"Bearer {create_user_token(user_id, 'freelancer@example.com')}"}


def _reply(text="✅ Task created: \"Test\""):
    return AssistantReply(success=True, text=text, correlation_id="ast-000000000000")


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestAuth:

    def test_message_requires_token(self, client):
        response = client.post("/api/assistant/message", json={"message": "hello"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Not authenticated"

    def test_garbage_token(self, client):
        response = client.post(
            "/api/assistant/message",
            json={"message": "hello"},
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401

    def test_token_without_user_id(self, client):
        token = create_access_token({"email": "someone@example.com"})
        response = client.get("/api/assistant/usage", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token"

    def test_expired_token(self, client):
        token = create_access_token({"user_id": "user-1"}, expires_delta=timedelta(minutes=-5))
        response = client.get("/api/assistant/usage", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Not authenticated"

    def test_unknown_role_claim_is_plain_user(self):
        user = user_from_claims({"user_id": "user-1", "role": "superuser"})
        assert user == {"user_id": "user-1", "email": None, "role": "user"}

    def test_admin_claim_survives(self):
        user = user_from_claims({"user_id": "admin-1", "email": "a@example.com", "role": "admin"})
        assert user["role"] == "admin"


class TestPostMessage:

    def test_reply_and_history(self, client):
        handle = AsyncMock(return_value=_reply())
        append = AsyncMock(return_value=True)
        with patch("routes.assistant.assistant_service.handle_message", new=handle), \
             patch("routes.assistant.conversation_service.append", new=append):
            response = client.post(
                "/api/assistant/message",
                json={"message": '  Create task "Test"  '},
                headers=_headers(),
            )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["text"] == '✅ Task created: "Test"'
        assert body["correlation_id"] == "ast-000000000000"

        user, request = handle.call_args[0]
        assert user["user_id"] == "user-1"
        assert request.message == '  Create task "Test"  '

        user_id, messages = append.call_args[0]
        assert user_id == "user-1"
        assert [m.content for m in messages] == ['Create task "Test"', '✅ Task created: "Test"']

    def test_pending_confirmation_round_trips(self, client):
        handle = AsyncMock(return_value=_reply("✅ Order deleted"))
        with patch("routes.assistant.assistant_service.handle_message", new=handle), \
             patch("routes.assistant.conversation_service.append", new=AsyncMock(return_value=True)):
            response = client.post(
                "/api/assistant/message",
                json={
                    "message": "oui",
                    "pending_confirmation": {"resource": "order", "target_ids": ["123"], "operation": "delete"},
                },
                headers=_headers(),
            )
        assert response.status_code == 200
        request = handle.call_args[0][1]
        assert request.pending_confirmation.target_ids == ["123"]

    def test_empty_message(self, client):
        response = client.post("/api/assistant/message", json={"message": "   "}, headers=_headers())
        assert response.status_code == 400
        assert response.json()["detail"] == "Message cannot be empty"

    def test_message_too_long(self, client):
        response = client.post("/api/assistant/message", json={"message": "x" * 2001}, headers=_headers())
        assert response.status_code == 400

    def test_malformed_body(self, client):
        response = client.post("/api/assistant/message", json={"text": "hello"}, headers=_headers())
        assert response.status_code == 422
        assert "request_id" in response.json()

    def test_rate_limited(self, client):
        with patch("routes.assistant.assistant_service.handle_message", new=AsyncMock(return_value=_reply())), \
             patch("routes.assistant.conversation_service.append", new=AsyncMock(return_value=True)):
            for _ in range(ASSISTANT_MESSAGES_PER_MINUTE):
                ok = client.post("/api/assistant/message", json={"message": "hi"}, headers=_headers())
                assert ok.status_code == 200
            blocked = client.post("/api/assistant/message", json={"message": "hi"}, headers=_headers())
            other_user = client.post("/api/assistant/message", json={"message": "hi"}, headers=_headers("user-2"))
        assert blocked.status_code == 429
        assert blocked.json()["detail"].startswith("Too many messages")
        assert other_user.status_code == 200

    def test_unexpected_error(self, client):
        with patch("routes.assistant.assistant_service.handle_message", new=AsyncMock(side_effect=RuntimeError("boom"))):
            response = client.post("/api/assistant/message", json={"message": "hi"}, headers=_headers())
        assert response.status_code == 500
        assert "boom" not in response.text


class TestUsageAndConversation:

    def test_usage(self, client):
        info = {"plan": "scale", "usage": 12, "limit": 10000, "remaining": 9988, "percentage": 0.1}
        with patch("routes.assistant.entitlement_guard.get_usage_info", new=AsyncMock(return_value=info)) as usage:
            response = client.get("/api/assistant/usage", headers=_headers())
        assert response.status_code == 200
        assert response.json() == info
        usage.assert_awaited_once_with("user-1")

    def test_get_conversation(self, client):
        messages = [{"id": "m1", "role": "user", "content": "hi", "timestamp": "2026-03-10T09:30:00Z"}]
        with patch("routes.assistant.conversation_service.load", new=AsyncMock(return_value=messages)):
            response = client.get("/api/assistant/conversation", headers=_headers())
        assert response.status_code == 200
        assert response.json() == {"messages": messages}

    def test_clear_conversation(self, client):
        with patch("routes.assistant.conversation_service.clear", new=AsyncMock(return_value=True)) as clear:
            response = client.delete("/api/assistant/conversation", headers=_headers())
        assert response.status_code == 200
        assert response.json() == {"success": True}
        clear.assert_awaited_once_with("user-1")

    def test_clear_conversation_failure(self, client):
        with patch("routes.assistant.conversation_service.clear", new=AsyncMock(return_value=False)):
            response = client.delete("/api/assistant/conversation", headers=_headers())
        assert response.status_code == 500
