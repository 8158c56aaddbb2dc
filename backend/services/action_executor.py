"""Action Executor - Run validated assistant intents against the store.

Dispatches on (resource, operation). Every query is scoped with
``owner_id`` taken from the authenticated user, never from the payload.
Backend errors are logged here and surfaced only as a short failure
message. Each executed intent leaves one audit row; successful ones
also add one usage row.
"""
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument

from database import database
from models import DateRange, Intent, Operation, Resource
from services.schema_validator import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT
from services.usage_service import usage_service
from utils.audit import record_assistant_action

logger = logging.getLogger(__name__)

MAX_BULK_TARGETS = 500

RESOURCE_CONFIG = {
    Resource.TASK: {
        "collection": "tasks",
        "label": "Task",
        "plural": "tasks",
        "emoji": "📋",
        "title_field": "title",
        "date_field": "due_date",
        "client_field": "client_id",
    },
    Resource.CLIENT: {
        "collection": "clients",
        "label": "Client",
        "plural": "clients",
        "emoji": "👤",
        "title_field": "name",
        "date_field": "created_at",
        "client_field": "id",
    },
    Resource.ORDER: {
        "collection": "orders",
        "label": "Order",
        "plural": "orders",
        "emoji": "📦",
        "title_field": "title",
        "date_field": "due_date",
        "client_field": "client_id",
    },
    Resource.EVENT: {
        "collection": "events",
        "label": "Event",
        "plural": "events",
        "emoji": "📅",
        "title_field": "title",
        "date_field": "start_at",
        "client_field": "related_client_id",
    },
}

EVENT_VERBS = {
    Operation.CREATE: "created",
    Operation.UPDATE: "updated",
    Operation.DELETE: "deleted",
}

CLOSED_STATUSES = ["completed", "cancelled"]
TARGET_KEYS = ("id", "ids")


@dataclass
class ActionResult:
    success: bool
    message: str
    data: Optional[Any] = None
    event: Optional[str] = None


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def get_date_range_bounds(date_range: DateRange, now: Optional[datetime] = None) -> Dict[str, str]:
    """Mongo range filter for a date bucket, as ISO strings."""
    now = now or now_utc()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if date_range == DateRange.OVERDUE:
        return {"$lt": now.isoformat()}
    if date_range == DateRange.TODAY:
        start, end = today, today + timedelta(days=1)
    elif date_range == DateRange.TOMORROW:
        start, end = today + timedelta(days=1), today + timedelta(days=2)
    elif date_range == DateRange.THIS_WEEK:
        start = today - timedelta(days=today.weekday())
        end = start + timedelta(days=7)
    elif date_range == DateRange.NEXT_WEEK:
        start = today - timedelta(days=today.weekday()) + timedelta(days=7)
        end = start + timedelta(days=7)
    else:
        start = today.replace(day=1)
        end = start.replace(year=start.year + 1, month=1) if start.month == 12 else start.replace(month=start.month + 1)
    return {"$gte": start.isoformat(), "$lt": end.isoformat()}


def _target_ids(payload: Dict[str, Any]) -> List[str]:
    if payload.get("ids"):
        return list(payload["ids"])
    if payload.get("id"):
        return [payload["id"]]
    return []


def _plural(config: Dict[str, Any], count: int) -> str:
    return config["plural"] if count != 1 else config["label"].lower()


class ActionExecutor:
    """Owner-scoped CRUD for tasks, clients, orders and events."""

    def build_filter_query(self, user_id: str, resource: Resource, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Owner-scoped query from list/delete filters."""
        config = RESOURCE_CONFIG[resource]
        query: Dict[str, Any] = {"owner_id": user_id}

        if payload.get("status"):
            query["status"] = payload["status"]
        if payload.get("priority"):
            query["priority"] = payload["priority"]
        if payload.get("client_id"):
            query[config["client_field"]] = payload["client_id"]
        if payload.get("search"):
            query[config["title_field"]] = {"$regex": re.escape(payload["search"]), "$options": "i"}
        if payload.get("date_range"):
            date_range = DateRange(payload["date_range"])
            query[config["date_field"]] = get_date_range_bounds(date_range)
            if date_range == DateRange.OVERDUE:
                query["status"] = {"$nin": CLOSED_STATUSES}

        # Owner scope is applied last so no filter can replace it
        query["owner_id"] = user_id
        return query

    async def resolve_targets(self, user: Dict[str, Any], resource: Resource, payload: Dict[str, Any]) -> List[str]:
        """
        Ids an update/delete would touch.

        Explicit ids are returned as-is; filter-based targets are looked
        up so the confirmation prompt can show a count and the confirmed
        turn acts on exactly this set.
        """
        explicit = _target_ids(payload)
        if explicit:
            return explicit

        db = database.get_db()
        config = RESOURCE_CONFIG[resource]
        query = self.build_filter_query(user["user_id"], resource, payload)
        rows = await db[config["collection"]].find(
            query,
            {"_id": 0, "id": 1}
        ).to_list(length=MAX_BULK_TARGETS)
        return [row["id"] for row in rows if row.get("id")]

    async def execute(self, user: Dict[str, Any], intent: Intent, payload: Dict[str, Any]) -> ActionResult:
        """Run the intent. Never raises for backend failures."""
        config = RESOURCE_CONFIG[intent.resource]
        handlers = {
            Operation.CREATE: self._create,
            Operation.READ: self._read,
            Operation.LIST: self._list,
            Operation.UPDATE: self._update,
            Operation.DELETE: self._delete,
        }

        try:
            result = await handlers[intent.operation](user, intent.resource, payload)
        except Exception as e:
            logger.error(f"Assistant {intent.describe()} failed for {user['user_id']}: {e}")
            result = ActionResult(
                success=False,
                message=f"❌ Failed to {intent.operation.value} {config['label'].lower()}",
            )

        await record_assistant_action(
            user_id=user["user_id"],
            intent=intent.describe(),
            resource=intent.resource.value,
            payload=payload,
            result={"success": result.success, "message": result.message, "event": result.event},
        )
        if result.success:
            await usage_service.increment(user["user_id"], intent.operation.value, intent.resource.value)

        return result

    def _event_name(self, resource: Resource, operation: Operation) -> str:
        return f"{resource.value}.{EVENT_VERBS[operation]}"

    async def _create(self, user, resource, payload) -> ActionResult:
        config = RESOURCE_CONFIG[resource]
        db = database.get_db()

        now = now_utc().isoformat()
        fields = {k: v for k, v in payload.items() if k not in TARGET_KEYS}
        doc = {
            **fields,
            "id": str(uuid.uuid4()),
            "owner_id": user["user_id"],
            "created_at": now,
            "updated_at": now,
        }

        await db[config["collection"]].insert_one(dict(doc))
        logger.info(f"Assistant created {resource.value} {doc['id']} for {user['user_id']}")
        return ActionResult(
            success=True,
            message=f"✅ {config['label']} created: \"{doc.get(config['title_field'], '')}\"",
            data=doc,
            event=self._event_name(resource, Operation.CREATE),
        )

    async def _read(self, user, resource, payload) -> ActionResult:
        config = RESOURCE_CONFIG[resource]
        db = database.get_db()

        row = await db[config["collection"]].find_one(
            {"id": payload["id"], "owner_id": user["user_id"]},
            {"_id": 0}
        )
        if not row:
            return ActionResult(success=False, message=f"❌ {config['label']} not found")

        return ActionResult(
            success=True,
            message=f"{config['emoji']} {config['label']}: \"{row.get(config['title_field'], '')}\"",
            data=row,
        )

    async def _list(self, user, resource, payload) -> ActionResult:
        config = RESOURCE_CONFIG[resource]
        db = database.get_db()

        limit = min(int(payload.get("limit") or DEFAULT_LIST_LIMIT), MAX_LIST_LIMIT)
        offset = int(payload.get("offset") or 0)
        query = self.build_filter_query(user["user_id"], resource, payload)

        rows = await db[config["collection"]].find(
            query,
            {"_id": 0}
        ).sort("created_at", -1).skip(offset).limit(limit).to_list(length=limit)

        if not rows:
            return ActionResult(success=True, message=f"{config['emoji']} No {config['plural']} found", data=[])

        lines = [f"{config['emoji']} {len(rows)} {config['label'].lower()}(s) found"]
        for row in rows:
            line = f"• {row.get(config['title_field'], '')}"
            if row.get("status"):
                line += f" ({row['status']})"
            lines.append(line)
        return ActionResult(success=True, message="\n".join(lines), data=rows)

    async def _update(self, user, resource, payload) -> ActionResult:
        config = RESOURCE_CONFIG[resource]
        db = database.get_db()

        ids = _target_ids(payload)
        changes = {k: v for k, v in payload.items() if k not in TARGET_KEYS}
        if not changes:
            return ActionResult(success=False, message=f"❌ Nothing to update on {config['label'].lower()}")
        changes["updated_at"] = now_utc().isoformat()

        if len(ids) == 1:
            row = await db[config["collection"]].find_one_and_update(
                {"id": ids[0], "owner_id": user["user_id"]},
                {"$set": changes},
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER
            )
            if not row:
                return ActionResult(success=False, message=f"❌ {config['label']} not found")
            return ActionResult(
                success=True,
                message=f"✅ {config['label']} updated: \"{row.get(config['title_field'], '')}\"",
                data=row,
                event=self._event_name(resource, Operation.UPDATE),
            )

        result = await db[config["collection"]].update_many(
            {"id": {"$in": ids}, "owner_id": user["user_id"]},
            {"$set": changes}
        )
        count = result.modified_count
        if count == 0:
            return ActionResult(success=False, message=f"❌ No {config['plural']} found")
        return ActionResult(
            success=True,
            message=f"✅ {count} {_plural(config, count)} updated",
            data={"ids": ids, "updated": count, "changes": changes},
            event=self._event_name(resource, Operation.UPDATE),
        )

    async def _delete(self, user, resource, payload) -> ActionResult:
        config = RESOURCE_CONFIG[resource]
        db = database.get_db()

        ids = await self.resolve_targets(user, resource, payload)
        if not ids:
            return ActionResult(success=False, message=f"❌ No {config['plural']} found")

        if len(ids) == 1:
            row = await db[config["collection"]].find_one_and_delete(
                {"id": ids[0], "owner_id": user["user_id"]},
                projection={"_id": 0}
            )
            if not row:
                return ActionResult(success=False, message=f"❌ {config['label']} not found")
            return ActionResult(
                success=True,
                message=f"✅ {config['label']} deleted",
                data=row,
                event=self._event_name(resource, Operation.DELETE),
            )

        result = await db[config["collection"]].delete_many(
            {"id": {"$in": ids}, "owner_id": user["user_id"]}
        )
        count = result.deleted_count
        if count == 0:
            return ActionResult(success=False, message=f"❌ No {config['plural']} found")
        return ActionResult(
            success=True,
            message=f"✅ {count} {_plural(config, count)} deleted",
            data={"ids": ids, "deleted": count},
            event=self._event_name(resource, Operation.DELETE),
        )


action_executor = ActionExecutor()
