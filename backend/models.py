from pydantic import BaseModel, Field, ConfigDict, field_serializer, field_validator
from typing import Optional, Dict, Any, List, Mapping
from types import MappingProxyType
from datetime import datetime, timezone
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class Operation(str, Enum):
    CREATE = "create"
    READ = "read"
    LIST = "list"
    UPDATE = "update"
    DELETE = "delete"

class Resource(str, Enum):
    TASK = "task"
    CLIENT = "client"
    ORDER = "order"
    EVENT = "event"

class Language(str, Enum):
    FR = "fr"
    EN = "en"

class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class DateRange(str, Enum):
    TODAY = "today"
    TOMORROW = "tomorrow"
    THIS_WEEK = "this_week"
    NEXT_WEEK = "next_week"
    THIS_MONTH = "this_month"
    OVERDUE = "overdue"

class SubscriptionPlan(str, Enum):
    FREE = "free"
    BOOST = "boost"
    SCALE = "scale"

class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"

class GuardError(str, Enum):
    ENTITLEMENT_DENIED = "entitlement_denied"
    QUOTA_EXCEEDED = "quota_exceeded"
    PERMISSION_DENIED = "permission_denied"

class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"

# ============================================================================
# PIPELINE MODELS
# ============================================================================

class Intent(BaseModel):
    """Structured result of parsing one user utterance."""
    model_config = ConfigDict(frozen=True)

    operation: Operation
    resource: Resource
    parameters: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)
    confirm_required: bool = False
    raw_input: str = ""
    language: Language = Language.EN

    @field_validator("parameters")
    @classmethod
    def freeze_parameters(cls, v: Mapping[str, Any]) -> Mapping[str, Any]:
        # Own copy behind a read-only view; callers keep their dict
        return MappingProxyType(dict(v))

    @field_serializer("parameters")
    def serialize_parameters(self, v: Mapping[str, Any]) -> Dict[str, Any]:
        return dict(v)

    def describe(self) -> str:
        return f"{self.operation.value}:{self.resource.value}"

class ConfirmationState(BaseModel):
    """Staged destructive/bulk action waiting for an explicit 'yes'.

    The caller stores this between turns and sends it back with the next
    message; the backend keeps no session state.
    """
    resource: Resource
    target_ids: List[str] = Field(default_factory=list)
    operation: Operation = Operation.DELETE
    changes: Dict[str, Any] = Field(default_factory=dict)
    language: Language = Language.EN

class ConversationTurn(BaseModel):
    role: MessageRole
    content: str

class AssistantRequest(BaseModel):
    message: str
    conversation_history: List[ConversationTurn] = Field(default_factory=list)
    pending_confirmation: Optional[ConfirmationState] = None
    target_owner_id: Optional[str] = None

class AssistantReply(BaseModel):
    success: bool
    text: str
    requires_confirmation: bool = False
    pending_confirmation: Optional[ConfirmationState] = None
    error: Optional[str] = None
    data: Optional[Any] = None
    correlation_id: Optional[str] = None

# ============================================================================
# LEDGER MODELS
# ============================================================================

class UsageRecord(BaseModel):
    """Append-only row in the ai_usage ledger."""
    usage_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    action_type: str
    resource: str
    count: int = 1
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class AuditEntry(BaseModel):
    """Append-only row in assistant_actions, one per executed intent."""
    action_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    intent: str
    resource: str
    payload_json: Optional[Dict[str, Any]] = None
    result_json: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class ConversationMessage(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
