"""
Pytest configuration and shared fixtures for backend tests.
"""
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

# Ensure backend root is on path
backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

import pytest

# Shared TestClient fixture so tests can use in-process requests without a running server.
from fastapi.testclient import TestClient
from server import app
from utils.rate_limiter import rate_limiter


@pytest.fixture
def client():
    """Return a TestClient for the main FastAPI app (server:app). Lifespan (MongoDB) is not started."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Rate limiter is process-global; start every test with a clean window."""
    rate_limiter.reset()
    yield
    rate_limiter.reset()


@pytest.fixture
def user():
    return {"user_id": "user-1", "email": "freelancer@example.com", "role": "user"}


def aggregate_cursor(rows):
    """Stand-in for a motor aggregation cursor."""
    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=rows)
    return cursor


@pytest.fixture
def mock_db():
    """
    MagicMock database where db["tasks"] and db.tasks are the same collection.

    Defaults: scale plan profile, zero monthly usage, inserts succeed.
    """
    db = MagicMock()
    db.__getitem__.side_effect = lambda name: getattr(db, name)

    db.profiles.find_one = AsyncMock(return_value={"subscription_plan": "scale", "role": "user"})
    db.ai_usage.aggregate = MagicMock(return_value=aggregate_cursor([]))
    db.ai_usage.insert_one = AsyncMock()
    db.assistant_actions.insert_one = AsyncMock()
    db.assistant_conversations.update_one = AsyncMock()
    for name in ("tasks", "clients", "orders", "events"):
        getattr(db, name).insert_one = AsyncMock()
    return db
