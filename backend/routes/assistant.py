from fastapi import APIRouter, HTTPException, Request, status
from middleware import assistant_route_guard
from models import AssistantReply, AssistantRequest, ConversationMessage, MessageRole
from services.assistant_service import assistant_service
from services.conversation_service import conversation_service
from services.entitlement_guard import entitlement_guard
from utils.rate_limiter import rate_limiter, ASSISTANT_MESSAGES_PER_MINUTE
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/assistant", tags=["assistant"])

MAX_MESSAGE_LENGTH = 2000


@router.post("/message", response_model=AssistantReply)
async def post_message(request: Request, data: AssistantRequest):
    """Send one message to the assistant.

    Deletes and bulk updates come back with requires_confirmation=True and a
    pending_confirmation object; send that object back with the next message
    ("oui"/"yes") to run the staged action.
    """
    user = await assistant_route_guard(request)

    try:
        # Rate limiting - 30 messages per minute per user
        allowed, error_msg = await rate_limiter.check_rate_limit(
            key=f"assistant_{user['user_id']}",
            max_attempts=ASSISTANT_MESSAGES_PER_MINUTE,
            window_minutes=1
        )

        if not allowed:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=error_msg
            )

        if not data.message or len(data.message.strip()) == 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Message cannot be empty"
            )

        if len(data.message) > MAX_MESSAGE_LENGTH:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Message too long (max {MAX_MESSAGE_LENGTH} characters)"
            )

        reply = await assistant_service.handle_message(user, data)

        await conversation_service.append(user["user_id"], [
            ConversationMessage(role=MessageRole.USER, content=data.message.strip()),
            ConversationMessage(role=MessageRole.ASSISTANT, content=reply.text),
        ])

        return reply

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Assistant message error: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Assistant unavailable. Please try again."
        )


@router.get("/usage")
async def get_usage(request: Request):
    """Current month's assistant usage against the plan limit."""
    user = await assistant_route_guard(request)

    try:
        return await entitlement_guard.get_usage_info(user["user_id"])
    except Exception as e:
        logger.error(f"Assistant usage error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve usage"
        )


@router.get("/conversation")
async def get_conversation(request: Request):
    """Stored chat history for the current user."""
    user = await assistant_route_guard(request)
    messages = await conversation_service.load(user["user_id"])
    return {"messages": messages}


@router.delete("/conversation")
async def clear_conversation(request: Request):
    """Start a new conversation."""
    user = await assistant_route_guard(request)
    cleared = await conversation_service.clear(user["user_id"])
    if not cleared:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to clear conversation"
        )
    return {"success": True}
