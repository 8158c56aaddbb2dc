from database import database
from models import AuditEntry
from datetime import datetime
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

AUDIT_COLLECTION = "assistant_actions"

async def record_assistant_action(
    user_id: str,
    intent: str,
    resource: str,
    payload: Optional[Dict[str, Any]] = None,
    result: Optional[Dict[str, Any]] = None
) -> str:
    """Append one assistant_actions row for an executed intent.

    Args:
        user_id: Acting user
        intent: Intent summary, e.g. 'delete:task'
        resource: Resource name
        payload: Validated payload the action ran with
        result: Outcome envelope (success, message, affected ids)

    Returns the action_id, or "" when the write failed.
    """
    try:
        db = database.get_db()

        entry = AuditEntry(
            user_id=user_id,
            intent=intent,
            resource=resource,
            payload_json=payload,
            result_json=result
        )

        doc = entry.model_dump()
        doc["created_at"] = doc["created_at"].isoformat() if isinstance(doc["created_at"], datetime) else doc["created_at"]

        await db[AUDIT_COLLECTION].insert_one(doc)
        logger.info(f"Assistant action recorded: {intent} for {user_id}")
        return entry.action_id
    except Exception as e:
        logger.error(f"Failed to record assistant action: {e}")
        # Never fail the main operation due to audit failure
        return ""
