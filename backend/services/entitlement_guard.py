"""Entitlement Guard - Enforce assistant access based on subscription plan.

Three checks run in order before any assistant action touches the store:

1. Entitlement: only the top tier (scale) may use the assistant at all.
2. Quota: monthly usage against the plan ceiling, with a warning at 90%.
3. Permission: non-admins may only update/delete rows they own.

The plan is read from ``profiles`` on every call and never cached.
Quota is read-then-compare, so concurrent bursts can overshoot the ceiling.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional
from models import GuardError, Intent, Operation, SubscriptionPlan, UserRole
from database import database
from services.usage_service import usage_service
import logging
import os

logger = logging.getLogger(__name__)

ASSISTANT_USAGE_LIMIT_SCALE = int(os.getenv("ASSISTANT_USAGE_LIMIT_SCALE", "10000"))
QUOTA_WARNING_RATIO = 0.9

# Legacy plan codes still found on older profiles
PLAN_ALIASES = {
    "teams": SubscriptionPlan.SCALE,
}

ENTITLED_PLANS = {SubscriptionPlan.SCALE}

PLAN_NAMES = {
    SubscriptionPlan.FREE: "Free",
    SubscriptionPlan.BOOST: "Boost",
    SubscriptionPlan.SCALE: "Scale",
}

OWNER_SCOPED_OPERATIONS = {Operation.UPDATE, Operation.DELETE}


@dataclass
class GuardDecision:
    allowed: bool
    reason: Optional[str] = None
    error: Optional[GuardError] = None
    warning: Optional[str] = None
    usage: int = 0
    limit: int = 0


class EntitlementGuard:
    """Plan, quota and ownership checks for assistant intents."""

    def resolve_plan(self, plan_str: Optional[str]) -> SubscriptionPlan:
        """Map a stored plan code to a SubscriptionPlan; unknown means free."""
        if not plan_str:
            return SubscriptionPlan.FREE
        value = str(plan_str).strip().lower()
        if value in PLAN_ALIASES:
            return PLAN_ALIASES[value]
        try:
            return SubscriptionPlan(value)
        except ValueError:
            return SubscriptionPlan.FREE

    def get_plan_limit(self, plan: SubscriptionPlan) -> int:
        """Monthly action ceiling. Lower tiers have no assistant allowance."""
        if plan == SubscriptionPlan.SCALE:
            return ASSISTANT_USAGE_LIMIT_SCALE
        return 0

    async def get_profile(self, user_id: str) -> Dict[str, Any]:
        db = database.get_db()
        profile = await db.profiles.find_one(
            {"id": user_id},
            {"_id": 0, "subscription_plan": 1, "role": 1}
        )
        return profile or {}

    async def get_usage_info(self, user_id: str) -> Dict[str, Any]:
        """Usage summary for the current month."""
        profile = await self.get_profile(user_id)
        plan = self.resolve_plan(profile.get("subscription_plan"))
        limit = self.get_plan_limit(plan)
        usage = await usage_service.get_monthly_usage(user_id)
        remaining = max(0, limit - usage)
        percentage = round(usage / limit * 100, 1) if limit else 100.0
        return {
            "plan": plan.value,
            "usage": usage,
            "limit": limit,
            "remaining": remaining,
            "percentage": percentage,
        }

    async def authorize(
        self,
        user: Dict[str, Any],
        intent: Intent,
        target_owner_id: Optional[str] = None,
    ) -> GuardDecision:
        """
        Decide whether the user may run this intent.

        Returns a GuardDecision; denials carry a GuardError and a
        user-facing reason. Nothing here writes to the store.
        """
        user_id = user["user_id"]
        profile = await self.get_profile(user_id)
        plan = self.resolve_plan(profile.get("subscription_plan"))

        if plan not in ENTITLED_PLANS:
            logger.info(f"Assistant denied for {user_id}: plan {plan.value} not entitled")
            return GuardDecision(
                allowed=False,
                error=GuardError.ENTITLEMENT_DENIED,
                reason=(
                    f"The assistant is available on the {PLAN_NAMES[SubscriptionPlan.SCALE]} plan. "
                    f"Your current plan is {PLAN_NAMES[plan]}. Upgrade to unlock it."
                ),
            )

        limit = self.get_plan_limit(plan)
        usage = await usage_service.get_monthly_usage(user_id)
        remaining = max(0, limit - usage)

        if usage >= limit:
            logger.info(f"Assistant quota exceeded for {user_id}: {usage}/{limit}")
            return GuardDecision(
                allowed=False,
                error=GuardError.QUOTA_EXCEEDED,
                reason=f"Monthly assistant limit reached ({usage}/{limit}). {remaining} actions remaining.",
                usage=usage,
                limit=limit,
            )

        warning = None
        if usage / limit >= QUOTA_WARNING_RATIO:
            warning = f"⚠️ You have used {usage} of {limit} assistant actions this month ({remaining} remaining)."

        is_admin = profile.get("role") == UserRole.ADMIN.value or user.get("role") == UserRole.ADMIN.value
        if (
            intent.operation in OWNER_SCOPED_OPERATIONS
            and not is_admin
            and target_owner_id is not None
            and target_owner_id != user_id
        ):
            logger.warning(f"Assistant permission denied for {user_id} on {intent.describe()} owned by {target_owner_id}")
            return GuardDecision(
                allowed=False,
                error=GuardError.PERMISSION_DENIED,
                reason="You can only modify or delete your own records.",
                usage=usage,
                limit=limit,
            )

        return GuardDecision(allowed=True, warning=warning, usage=usage, limit=limit)


entitlement_guard = EntitlementGuard()
