"""Webhook Service - Notify the automation endpoint of assistant mutations.

Events are named ``<resource>.<verb>``:
- task.created / task.updated / task.deleted
- client.created / client.updated / client.deleted
- order.created / order.updated / order.deleted
- event.created / event.updated / event.deleted

Each event is POSTed to ``{AUTOMATION_WEBHOOK_URL}/webhook/{event}`` with an
HMAC-SHA256 signature of the JSON body in ``X-Signature``. Failed deliveries
are retried with exponential backoff, then dropped. Delivery is disabled,
without error, when the URL or secret is not configured.
"""
import aiohttp
import asyncio
import hashlib
import hmac
import json
import logging
import os
from datetime import datetime, timezone
from typing import Dict, Any, Optional, Set, Tuple

logger = logging.getLogger(__name__)

# Retry configuration: one attempt plus MAX_RETRIES retries
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1
REQUEST_TIMEOUT_SECONDS = 10


def sign_payload(secret: str, body: str) -> str:
    """Return the X-Signature header value for a JSON body."""
    digest = hmac.new(secret.encode(), body.encode(), hashlib.sha256).hexdigest()
    return f"sha256={digest}"


class WebhookService:
    """Signed, retried delivery of assistant events."""

    def __init__(self):
        self.timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS)
        self._pending: Set[asyncio.Task] = set()

    def _get_config(self) -> Tuple[Optional[str], Optional[str]]:
        url = os.getenv("AUTOMATION_WEBHOOK_URL") or None
        secret = os.getenv("AUTOMATION_WEBHOOK_SECRET") or None
        return (url.rstrip("/") if url else None), secret

    def is_configured(self) -> bool:
        url, secret = self._get_config()
        return bool(url and secret)

    def build_payload(
        self,
        event: str,
        record: Dict[str, Any],
        user_id: str,
        status_changed: bool = False
    ) -> Dict[str, Any]:
        """
        Body for an event: {action, <resource>: record, userId, timestamp}.

        Order updates also carry statusChanged.
        """
        resource, _, action = event.partition(".")
        payload = {
            "action": action,
            resource: self._sanitize_payload(record or {}),
            "userId": user_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if resource == "order" and action == "updated":
            payload["statusChanged"] = status_changed
        return payload

    async def deliver(self, event: str, payload: Dict[str, Any]) -> bool:
        """
        Deliver one event with retries.

        Returns True on a 2xx response or when delivery is disabled,
        False once every attempt has failed.
        """
        url, secret = self._get_config()
        if not url or not secret:
            logger.debug(f"Automation webhook not configured, skipping {event}")
            return True

        body = json.dumps(payload, default=str, sort_keys=True)
        headers = {
            "Content-Type": "application/json",
            "X-Signature": sign_payload(secret, body),
            "X-Webhook-Event": event,
        }
        target = f"{url}/webhook/{event}"

        for attempt in range(MAX_RETRIES + 1):
            if await self._send(target, body, headers, event, attempt + 1):
                return True

            if attempt < MAX_RETRIES:
                backoff = INITIAL_BACKOFF_SECONDS * (2 ** attempt)
                logger.info(f"Webhook {event} retry in {backoff}s (attempt {attempt + 1})")
                await asyncio.sleep(backoff)

        logger.error(f"Webhook {event} dropped after {MAX_RETRIES + 1} attempts")
        return False

    async def _send(self, target: str, body: str, headers: Dict[str, str], event: str, attempt: int) -> bool:
        """Send a single webhook request."""
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(
                    target,
                    data=body,
                    headers={**headers, "X-Webhook-Attempt": str(attempt)}
                ) as response:
                    if 200 <= response.status < 300:
                        logger.info(f"Webhook {event} delivered: {response.status}")
                        return True
                    logger.warning(f"Webhook {event} failed: HTTP {response.status}")
                    return False
        except aiohttp.ClientError as e:
            logger.error(f"Webhook {event} connection error: {e}")
        except asyncio.TimeoutError:
            logger.error(f"Webhook {event} timeout after {REQUEST_TIMEOUT_SECONDS}s")
        except Exception as e:
            logger.error(f"Webhook {event} unexpected error: {e}")
        return False

    def schedule_delivery(self, event: str, payload: Dict[str, Any]) -> Optional[asyncio.Task]:
        """Fire-and-forget delivery on the running loop."""
        if not self.is_configured():
            return None
        task = asyncio.create_task(self.deliver(event, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def _sanitize_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Remove sensitive data from payload before sending."""
        sensitive_fields = {
            "secret", "token", "password", "api_key", "apikey",
            "credential", "card", "bank", "private_key"
        }

        def sanitize_dict(d: Dict[str, Any]) -> Dict[str, Any]:
            result = {}
            for key, value in d.items():
                if key == "_id" or any(s in key.lower() for s in sensitive_fields):
                    continue
                if isinstance(value, dict):
                    result[key] = sanitize_dict(value)
                elif isinstance(value, list):
                    result[key] = [
                        sanitize_dict(item) if isinstance(item, dict) else item
                        for item in value
                    ]
                else:
                    result[key] = value
            return result

        return sanitize_dict(payload)


webhook_service = WebhookService()
