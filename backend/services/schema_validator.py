"""
Schema Validator - Declarative payload schemas per resource and operation.

Intent parameters are checked against a pydantic schema picked from
PAYLOAD_SCHEMAS. The first failing field is reported as a
PayloadValidationError; nothing touches the store before this passes.
"""
import logging
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError, field_validator

from models import DateRange, Operation, OrderStatus, Resource, TaskPriority, TaskStatus

logger = logging.getLogger(__name__)

IDENTIFIER_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$"
DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 100
MAX_EMAIL_LENGTH = 100

Identifier = Annotated[str, Field(pattern=IDENTIFIER_PATTERN)]

# Any of these on a delete selects a target set without naming ids
DELETE_FILTER_FIELDS = ("scope", "status", "priority", "client_id", "search")


class PayloadValidationError(Exception):
    """Raised when intent parameters fail the resource schema."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


def _check_email_length(v: Optional[str]) -> Optional[str]:
    if v is not None and len(v) > MAX_EMAIL_LENGTH:
        raise ValueError(f"must be at most {MAX_EMAIL_LENGTH} characters")
    return v


# ============================================
# Create schemas
# ============================================

class TaskCreate(_Payload):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    client_id: Optional[Identifier] = None


class ClientCreate(_Payload):
    name: str = Field(..., min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    company: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("email")
    @classmethod
    def cap_email(cls, v: Optional[str]) -> Optional[str]:
        return _check_email_length(v)


class OrderCreate(_Payload):
    title: str = Field(..., min_length=1, max_length=200)
    client_id: Optional[Identifier] = None
    status: OrderStatus = OrderStatus.PENDING
    amount: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3, pattern=r"^[A-Za-z]{3}$")
    due_date: Optional[datetime] = None

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class EventCreate(_Payload):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    start_at: datetime
    end_at: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=200)
    related_client_id: Optional[Identifier] = None


# ============================================
# Update schemas (same fields, all optional, plus identifiers)
# ============================================

class _Targeted(_Payload):
    id: Optional[Identifier] = None
    ids: Optional[List[Identifier]] = None


class TaskUpdate(_Targeted):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    client_id: Optional[Identifier] = None


class ClientUpdate(_Targeted):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    company: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("email")
    @classmethod
    def cap_email(cls, v: Optional[str]) -> Optional[str]:
        return _check_email_length(v)


class OrderUpdate(_Targeted):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    client_id: Optional[Identifier] = None
    status: Optional[OrderStatus] = None
    amount: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3, pattern=r"^[A-Za-z]{3}$")
    due_date: Optional[datetime] = None

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class EventUpdate(_Targeted):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=200)
    related_client_id: Optional[Identifier] = None


# ============================================
# Read / delete / list schemas (shared across resources)
# ============================================

class ReadPayload(_Payload):
    id: Identifier


class DeletePayload(_Targeted):
    scope: Optional[str] = Field(None, pattern=r"^all$")
    status: Optional[str] = Field(None, max_length=20)
    priority: Optional[TaskPriority] = None
    client_id: Optional[Identifier] = None
    search: Optional[str] = Field(None, max_length=100)


class ListPayload(_Payload):
    status: Optional[str] = Field(None, max_length=20)
    priority: Optional[TaskPriority] = None
    client_id: Optional[Identifier] = None
    date_range: Optional[DateRange] = None
    search: Optional[str] = Field(None, max_length=100)
    limit: int = Field(DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT)
    offset: int = Field(0, ge=0)


PAYLOAD_SCHEMAS: Dict[tuple, Type[_Payload]] = {
    (Resource.TASK, Operation.CREATE): TaskCreate,
    (Resource.CLIENT, Operation.CREATE): ClientCreate,
    (Resource.ORDER, Operation.CREATE): OrderCreate,
    (Resource.EVENT, Operation.CREATE): EventCreate,
    (Resource.TASK, Operation.UPDATE): TaskUpdate,
    (Resource.CLIENT, Operation.UPDATE): ClientUpdate,
    (Resource.ORDER, Operation.UPDATE): OrderUpdate,
    (Resource.EVENT, Operation.UPDATE): EventUpdate,
}


def get_schema(resource: Resource, operation: Operation) -> Type[_Payload]:
    if operation == Operation.READ:
        return ReadPayload
    if operation == Operation.DELETE:
        return DeletePayload
    if operation == Operation.LIST:
        return ListPayload
    return PAYLOAD_SCHEMAS[(resource, operation)]


def _prepare(resource: Resource, operation: Operation, parameters: Dict[str, Any]) -> Dict[str, Any]:
    """Map parser vocabulary onto schema fields before validation."""
    data = dict(parameters)
    if resource == Resource.CLIENT and not data.get("name") and data.get("title"):
        data["name"] = data["title"]
    if operation == Operation.LIST and not data.get("search") and data.get("title"):
        data["search"] = data["title"]
    return data


def _check_target(operation: Operation, data: Dict[str, Any]) -> None:
    has_ids = bool(data.get("id")) or bool(data.get("ids"))
    if operation == Operation.UPDATE and not has_ids:
        raise PayloadValidationError("id", "required")
    if operation == Operation.DELETE and not has_ids:
        if not any(data.get(f) for f in DELETE_FILTER_FIELDS):
            raise PayloadValidationError("id", "required")


def validate_parameters(resource: Resource, operation: Operation, parameters: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate intent parameters for (resource, operation).

    Returns the validated payload with unset optional fields omitted and
    datetimes as ISO-8601 strings. Raises PayloadValidationError on the
    first failing field.
    """
    data = _prepare(resource, operation, parameters)
    _check_target(operation, data)

    schema_class = get_schema(resource, operation)
    try:
        payload = schema_class(**data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "payload"
        reason = first.get("msg", "invalid")
        logger.info(f"Payload rejected for {operation.value}:{resource.value} on {field}: {reason}")
        raise PayloadValidationError(field, reason) from e

    return payload.model_dump(mode="json", exclude_none=True)
