"""Confirmation Gate - Pause destructive or bulk intents until the user says yes.

Stateless: the staged action travels with the caller as a ConfirmationState.
"""
from typing import Optional
from models import Intent, Language, Operation, Resource

BULK_THRESHOLD = 5

CONFIRMATION_WORDS = {"oui", "yes", "ok", "confirmer", "confirm", "y", "o"}

SINGULAR_LABELS = {
    Language.FR: {
        Resource.TASK: "cette tâche",
        Resource.CLIENT: "ce client",
        Resource.ORDER: "cette commande",
        Resource.EVENT: "cet événement",
    },
    Language.EN: {
        Resource.TASK: "this task",
        Resource.CLIENT: "this client",
        Resource.ORDER: "this order",
        Resource.EVENT: "this event",
    },
}

PLURAL_LABELS = {
    Language.FR: {
        Resource.TASK: "tâches",
        Resource.CLIENT: "clients",
        Resource.ORDER: "commandes",
        Resource.EVENT: "événements",
    },
    Language.EN: {
        Resource.TASK: "tasks",
        Resource.CLIENT: "clients",
        Resource.ORDER: "orders",
        Resource.EVENT: "events",
    },
}


def requires_confirmation(intent: Intent) -> bool:
    if intent.operation == Operation.DELETE or intent.confirm_required:
        return True
    if intent.operation == Operation.UPDATE:
        count = intent.parameters.get("count")
        return isinstance(count, int) and count > BULK_THRESHOLD
    return False


def confirmation_prompt(intent: Intent, count: Optional[int] = None) -> str:
    """Build the 'are you sure' question in the intent's language."""
    if count is None:
        count = intent.parameters.get("count")
    fr = intent.language == Language.FR

    if count and count > 1:
        target = f"{count} {PLURAL_LABELS[intent.language][intent.resource]}"
    else:
        target = SINGULAR_LABELS[intent.language][intent.resource]

    if intent.operation == Operation.UPDATE:
        verb = "modifier" if fr else "update"
    else:
        verb = "supprimer" if fr else "delete"

    if fr:
        return f"⚠️ Voulez-vous vraiment {verb} {target} ? Répondez « oui » pour confirmer."
    return f"⚠️ Are you sure you want to {verb} {target}? Reply \"yes\" to confirm."


def is_confirmation(text: Optional[str]) -> bool:
    return (text or "").strip().lower() in CONFIRMATION_WORDS
