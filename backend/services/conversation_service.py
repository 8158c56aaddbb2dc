"""Conversation Service - Per-user assistant chat history.

One document per user in ``assistant_conversations`` holding a capped
``messages`` array. All operations are best-effort: failures are logged
and never break the assistant reply.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List
from models import ConversationMessage
from database import database
import logging

logger = logging.getLogger(__name__)

CONVERSATION_COLLECTION = "assistant_conversations"
MAX_STORED_MESSAGES = 100


def _to_doc(message: ConversationMessage) -> Dict[str, Any]:
    return message.model_dump(mode="json")


class ConversationService:
    """Load, append to and clear a user's assistant conversation."""

    async def load(self, user_id: str) -> List[Dict[str, Any]]:
        try:
            db = database.get_db()
            doc = await db[CONVERSATION_COLLECTION].find_one(
                {"user_id": user_id},
                {"_id": 0, "messages": 1}
            )
            if not doc:
                return []
            messages = doc.get("messages")
            return messages if isinstance(messages, list) else []
        except Exception as e:
            logger.error(f"Error loading conversation for {user_id}: {e}")
            return []

    async def append(self, user_id: str, messages: List[ConversationMessage]) -> bool:
        """Append turns, keeping only the newest MAX_STORED_MESSAGES."""
        if not messages:
            return True
        try:
            db = database.get_db()
            now = datetime.now(timezone.utc).isoformat()
            await db[CONVERSATION_COLLECTION].update_one(
                {"user_id": user_id},
                {
                    "$push": {
                        "messages": {
                            "$each": [_to_doc(m) for m in messages],
                            "$slice": -MAX_STORED_MESSAGES,
                        }
                    },
                    "$set": {"updated_at": now},
                    "$setOnInsert": {"user_id": user_id, "created_at": now},
                },
                upsert=True
            )
            return True
        except Exception as e:
            logger.error(f"Error appending conversation for {user_id}: {e}")
            return False

    async def clear(self, user_id: str) -> bool:
        try:
            db = database.get_db()
            await db[CONVERSATION_COLLECTION].delete_one({"user_id": user_id})
            return True
        except Exception as e:
            logger.error(f"Error clearing conversation for {user_id}: {e}")
            return False


conversation_service = ConversationService()
