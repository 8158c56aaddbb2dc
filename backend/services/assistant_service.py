"""Assistant Service - Natural-language command pipeline for freelancers.

Each user message runs one pass of:

    parse -> validate -> guard -> confirm -> execute -> log

PRINCIPLES:
- Stateless between turns: a staged destructive action is returned to the
  caller as pending_confirmation and must be sent back with the next message
- Nothing touches the store before validation and the guard have passed
- Deletes and bulk updates always pause for an explicit "oui"/"yes"
- Business failures come back as a failure reply, never as an exception
- Observable: every turn carries a correlation ID in logs and in the reply
"""
import uuid
import logging
from typing import Any, Dict

from models import (
    AssistantReply,
    AssistantRequest,
    ConfirmationState,
    Intent,
    Language,
    Operation,
)
from services.action_executor import ActionResult, RESOURCE_CONFIG, action_executor
from services.confirmation_gate import confirmation_prompt, is_confirmation, requires_confirmation
from services.entitlement_guard import GuardDecision, entitlement_guard
from services.intent_parser import parse_intent
from services.schema_validator import PayloadValidationError, validate_parameters
from services.webhook_service import webhook_service

logger = logging.getLogger(__name__)

GENERIC_APOLOGY = "Sorry, something went wrong while handling your request. Please try again."

HELP_TEXT = {
    Language.FR: (
        "🤖 Je peux gérer vos tâches, clients, commandes et événements.\n"
        "• Créer une tâche \"Relancer Paul\" pour demain à 14h\n"
        "• Ajouter un client \"Acme\" avec email contact@acme.com\n"
        "• Nouvelle commande \"Site vitrine\" pour 1500€\n"
        "• Montrer toutes les tâches en cours\n"
        "• Supprimer toutes les tâches terminées\n"
        "Commandes : /create, /list, /update, /delete, /help"
    ),
    Language.EN: (
        "🤖 I can manage your tasks, clients, orders and events.\n"
        "• Create task \"Call Paul\" for tomorrow at 2pm\n"
        "• Add client \"Acme\" with email contact@acme.com\n"
        "• New order \"Landing page\" for $1500\n"
        "• Show all pending orders\n"
        "• Delete all completed tasks\n"
        "Commands: /create, /list, /update, /delete, /help"
    ),
}

class AssistantService:
    """Conversation orchestrator for the assistant pipeline."""

    def _generate_correlation_id(self) -> str:
        """Generate a unique correlation ID for request tracing."""
        return f"ast-{uuid.uuid4().hex[:12]}"

    async def handle_message(self, user: Dict[str, Any], request: AssistantRequest) -> AssistantReply:
        """
        Handle one user turn.

        Args:
            user: Authenticated user ({"user_id", "email", "role"})
            request: Message plus the pending confirmation from the previous turn

        Returns:
            AssistantReply; unexpected errors become a generic apology with
            error="internal_error".
        """
        correlation_id = self._generate_correlation_id()
        user_id = user["user_id"]
        logger.info(f"[{correlation_id}] Assistant message from user {user_id[:8]}...")

        try:
            pending = request.pending_confirmation
            if pending and is_confirmation(request.message):
                logger.info(f"[{correlation_id}] Resuming confirmed {pending.operation.value}:{pending.resource.value}")
                return await self._run_confirmed(user, request, pending, correlation_id)

            if pending:
                logger.info(f"[{correlation_id}] Pending confirmation discarded")

            return await self._run_pipeline(user, request, correlation_id)

        except Exception as e:
            logger.error(f"[{correlation_id}] Assistant error: {e}", exc_info=True)
            return AssistantReply(
                success=False,
                text=GENERIC_APOLOGY,
                error="internal_error",
                correlation_id=correlation_id
            )

    async def _run_pipeline(self, user: Dict[str, Any], request: AssistantRequest, correlation_id: str) -> AssistantReply:
        intent = parse_intent(request.message)
        logger.info(f"[{correlation_id}] Parsed {intent.describe()} ({intent.language.value})")

        if intent.parameters.get("help"):
            return AssistantReply(success=True, text=HELP_TEXT[intent.language], correlation_id=correlation_id)

        try:
            payload = validate_parameters(intent.resource, intent.operation, intent.parameters)
        except PayloadValidationError as e:
            logger.info(f"[{correlation_id}] Validation failed on {e.field}")
            return AssistantReply(
                success=False,
                text=f"❌ Invalid {e.field}: {e.reason}",
                error="validation_error",
                correlation_id=correlation_id
            )

        decision = await entitlement_guard.authorize(user, intent, request.target_owner_id)
        if not decision.allowed:
            return self._denied(decision, correlation_id)

        if requires_confirmation(intent):
            targets = await action_executor.resolve_targets(user, intent.resource, payload)
            if not targets:
                config = RESOURCE_CONFIG[intent.resource]
                return AssistantReply(
                    success=True,
                    text=f"{config['emoji']} No {config['plural']} to {intent.operation.value}",
                    correlation_id=correlation_id
                )

            state = ConfirmationState(
                resource=intent.resource,
                target_ids=targets,
                operation=intent.operation,
                changes={k: v for k, v in payload.items() if k not in ("id", "ids")} if intent.operation == Operation.UPDATE else {},
                language=intent.language,
            )
            logger.info(f"[{correlation_id}] Confirmation required for {len(targets)} target(s)")
            return AssistantReply(
                success=True,
                text=confirmation_prompt(intent, count=len(targets)),
                requires_confirmation=True,
                pending_confirmation=state,
                correlation_id=correlation_id
            )

        result = await action_executor.execute(user, intent, payload)
        return self._compose(user, intent, payload, result, decision, correlation_id)

    async def _run_confirmed(
        self,
        user: Dict[str, Any],
        request: AssistantRequest,
        pending: ConfirmationState,
        correlation_id: str
    ) -> AssistantReply:
        intent = Intent(
            operation=pending.operation,
            resource=pending.resource,
            parameters={"ids": list(pending.target_ids)},
            raw_input=request.message,
            language=pending.language,
        )

        decision = await entitlement_guard.authorize(user, intent, request.target_owner_id)
        if not decision.allowed:
            return self._denied(decision, correlation_id)

        if not pending.target_ids:
            config = RESOURCE_CONFIG[pending.resource]
            return AssistantReply(
                success=True,
                text=f"{config['emoji']} No {config['plural']} to {pending.operation.value}",
                correlation_id=correlation_id
            )

        # Staged changes come back from the caller, so they are validated again
        try:
            payload = validate_parameters(
                pending.resource,
                pending.operation,
                {**pending.changes, "ids": list(pending.target_ids)}
            )
        except PayloadValidationError as e:
            return AssistantReply(
                success=False,
                text=f"❌ Invalid {e.field}: {e.reason}",
                error="validation_error",
                correlation_id=correlation_id
            )

        result = await action_executor.execute(user, intent, payload)
        return self._compose(user, intent, payload, result, decision, correlation_id)

    def _denied(self, decision: GuardDecision, correlation_id: str) -> AssistantReply:
        logger.info(f"[{correlation_id}] Guard denied: {decision.error.value}")
        return AssistantReply(
            success=False,
            text=decision.reason,
            error=decision.error.value,
            correlation_id=correlation_id
        )

    def _compose(
        self,
        user: Dict[str, Any],
        intent: Intent,
        payload: Dict[str, Any],
        result: ActionResult,
        decision: GuardDecision,
        correlation_id: str
    ) -> AssistantReply:
        text = result.message
        if result.success and decision.warning:
            text = f"{text}\n\n{decision.warning}"

        reply = AssistantReply(
            success=result.success,
            text=text,
            data=result.data,
            error=None if result.success else "execution_failed",
            correlation_id=correlation_id
        )

        if result.success and result.event:
            record = result.data if isinstance(result.data, dict) else {}
            webhook_payload = webhook_service.build_payload(
                result.event,
                record,
                user["user_id"],
                status_changed="status" in payload,
            )
            webhook_service.schedule_delivery(result.event, webhook_payload)

        logger.info(f"[{correlation_id}] {intent.describe()} completed: success={result.success}")
        return reply


assistant_service = AssistantService()
