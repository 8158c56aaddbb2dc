"""Usage Service - Monthly assistant usage ledger.

Each executed assistant action appends one row to ``ai_usage``. Monthly
usage is the sum of ``count`` over the current calendar month (UTC).
"""
from datetime import datetime, timezone
from typing import Optional, Tuple
from models import UsageRecord
from database import database
import logging

logger = logging.getLogger(__name__)

USAGE_COLLECTION = "ai_usage"


def get_month_bounds(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Return [first day of this month, first day of next month)."""
    now = now or datetime.now(timezone.utc)
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


class UsageService:
    """Append and aggregate assistant usage records."""

    async def get_monthly_usage(self, user_id: str, now: Optional[datetime] = None) -> int:
        """Sum of usage counts for the user in the current month."""
        start, end = get_month_bounds(now)
        db = database.get_db()
        pipeline = [
            {"$match": {"user_id": user_id, "created_at": {"$gte": start, "$lt": end}}},
            {"$group": {"_id": None, "total": {"$sum": "$count"}}},
        ]
        result = await db[USAGE_COLLECTION].aggregate(pipeline).to_list(1)
        if not result:
            return 0
        return int(result[0].get("total", 0))

    async def increment(self, user_id: str, action_type: str, resource: str, count: int = 1) -> bool:
        """
        Append a usage row. Never raises; a failed write is logged and
        reported as False so the user-facing action still succeeds.
        """
        try:
            record = UsageRecord(
                user_id=user_id,
                action_type=action_type,
                resource=resource,
                count=count,
            )
            db = database.get_db()
            await db[USAGE_COLLECTION].insert_one(record.model_dump())
            return True
        except Exception as e:
            logger.error(f"Failed to record assistant usage for {user_id}: {e}")
            return False


usage_service = UsageService()
