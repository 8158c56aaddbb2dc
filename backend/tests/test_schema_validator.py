"""
Schema validator tests: defaults, constraints, identifier rules and
fail-fast error reporting per resource and operation.
"""
import pytest
import sys
from datetime import datetime, timezone
from pathlib import Path

backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from models import Operation, Resource
from services.schema_validator import PayloadValidationError, validate_parameters


class TestCreate:

    def test_task_defaults_status_and_priority(self):
        due = datetime(2026, 3, 11, 14, 0, tzinfo=timezone.utc)
        payload = validate_parameters(Resource.TASK, Operation.CREATE, {"title": "Test", "due_date": due})
        assert payload["title"] == "Test"
        assert payload["status"] == "pending"
        assert payload["priority"] == "medium"
        assert payload["due_date"].startswith("2026-03-11T14:00:00")

    def test_task_drops_unknown_fields_and_unset_optionals(self):
        payload = validate_parameters(Resource.TASK, Operation.CREATE, {"title": "Test", "amount": 12, "scope": "all"})
        assert set(payload) == {"title", "status", "priority"}

    def test_title_is_trimmed(self):
        payload = validate_parameters(Resource.TASK, Operation.CREATE, {"title": "  Call Paul  "})
        assert payload["title"] == "Call Paul"

    def test_missing_title(self):
        with pytest.raises(PayloadValidationError) as exc:
            validate_parameters(Resource.TASK, Operation.CREATE, {})
        assert exc.value.field == "title"

    def test_blank_title(self):
        with pytest.raises(PayloadValidationError) as exc:
            validate_parameters(Resource.TASK, Operation.CREATE, {"title": "   "})
        assert exc.value.field == "title"

    def test_title_too_long(self):
        with pytest.raises(PayloadValidationError) as exc:
            validate_parameters(Resource.TASK, Operation.CREATE, {"title": "x" * 201})
        assert exc.value.field == "title"

    def test_invalid_priority(self):
        with pytest.raises(PayloadValidationError) as exc:
            validate_parameters(Resource.TASK, Operation.CREATE, {"title": "T", "priority": "whenever"})
        assert exc.value.field == "priority"

    def test_client_name_falls_back_to_title(self):
        payload = validate_parameters(
            Resource.CLIENT, Operation.CREATE, {"title": "Acme Corp", "email": "test@acme.com"}
        )
        assert payload["name"] == "Acme Corp"
        assert payload["email"] == "test@acme.com"

    def test_client_invalid_email(self):
        with pytest.raises(PayloadValidationError) as exc:
            validate_parameters(Resource.CLIENT, Operation.CREATE, {"name": "Acme", "email": "not-an-email"})
        assert exc.value.field == "email"

    def test_client_email_at_length_cap(self):
        email = "a" * 37 + "@" + "b" * 50 + ".example.com"
        assert len(email) == 100
        payload = validate_parameters(Resource.CLIENT, Operation.CREATE, {"name": "Acme", "email": email})
        assert payload["email"] == email

    def test_client_email_over_length_cap(self):
        email = "a" * 38 + "@" + "b" * 50 + ".example.com"
        assert len(email) == 101
        with pytest.raises(PayloadValidationError) as exc:
            validate_parameters(Resource.CLIENT, Operation.CREATE, {"name": "Acme", "email": email})
        assert exc.value.field == "email"
        assert "100" in exc.value.reason

    def test_client_update_email_over_length_cap(self):
        email = "a" * 60 + "@" + "b" * 50 + ".com"
        with pytest.raises(PayloadValidationError) as exc:
            validate_parameters(Resource.CLIENT, Operation.UPDATE, {"id": "c1", "email": email})
        assert exc.value.field == "email"

    def test_order_currency_upper_cased(self):
        payload = validate_parameters(
            Resource.ORDER, Operation.CREATE, {"title": "Logo", "amount": 1500, "currency": "eur"}
        )
        assert payload["currency"] == "EUR"
        assert payload["amount"] == 1500
        assert payload["status"] == "pending"

    def test_order_negative_amount(self):
        with pytest.raises(PayloadValidationError) as exc:
            validate_parameters(Resource.ORDER, Operation.CREATE, {"title": "Logo", "amount": -1})
        assert exc.value.field == "amount"

    def test_order_malformed_client_reference(self):
        with pytest.raises(PayloadValidationError) as exc:
            validate_parameters(Resource.ORDER, Operation.CREATE, {"title": "Logo", "client_id": "../etc"})
        assert exc.value.field == "client_id"

    def test_event_requires_start(self):
        with pytest.raises(PayloadValidationError) as exc:
            validate_parameters(Resource.EVENT, Operation.CREATE, {"title": "Kickoff"})
        assert exc.value.field == "start_at"


class TestTargetedOperations:

    def test_update_requires_identifier(self):
        with pytest.raises(PayloadValidationError) as exc:
            validate_parameters(Resource.TASK, Operation.UPDATE, {"status": "completed"})
        assert exc.value.field == "id"

    def test_update_keeps_only_given_fields(self):
        payload = validate_parameters(Resource.TASK, Operation.UPDATE, {"id": "abc-123", "status": "completed"})
        assert payload == {"id": "abc-123", "status": "completed"}

    def test_update_with_many_ids(self):
        payload = validate_parameters(Resource.ORDER, Operation.UPDATE, {"ids": ["a1", "b2"], "status": "confirmed"})
        assert payload["ids"] == ["a1", "b2"]

    def test_read_requires_id(self):
        with pytest.raises(PayloadValidationError) as exc:
            validate_parameters(Resource.TASK, Operation.READ, {})
        assert exc.value.field == "id"

    def test_delete_by_id(self):
        assert validate_parameters(Resource.ORDER, Operation.DELETE, {"id": "123"}) == {"id": "123"}

    def test_delete_by_filter(self):
        payload = validate_parameters(Resource.TASK, Operation.DELETE, {"scope": "all", "status": "completed"})
        assert payload == {"scope": "all", "status": "completed"}

    def test_delete_without_target(self):
        with pytest.raises(PayloadValidationError) as exc:
            validate_parameters(Resource.TASK, Operation.DELETE, {"title": "anything"})
        assert exc.value.field == "id"


class TestList:

    def test_defaults(self):
        assert validate_parameters(Resource.TASK, Operation.LIST, {}) == {"limit": 20, "offset": 0}

    def test_search_falls_back_to_title(self):
        payload = validate_parameters(Resource.CLIENT, Operation.LIST, {"title": "Acme"})
        assert payload["search"] == "Acme"

    def test_limit_capped(self):
        with pytest.raises(PayloadValidationError) as exc:
            validate_parameters(Resource.TASK, Operation.LIST, {"limit": 101})
        assert exc.value.field == "limit"

    def test_unknown_date_range(self):
        with pytest.raises(PayloadValidationError) as exc:
            validate_parameters(Resource.EVENT, Operation.LIST, {"date_range": "someday"})
        assert exc.value.field == "date_range"
