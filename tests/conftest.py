"""
Global test configuration - shared fixtures.

Usage:
    Fixtures defined here are available to every test.
    The in-memory Supabase and lock fakes live in tests/fakes.py.
"""

import pytest
from typing import Any
from unittest.mock import AsyncMock, MagicMock

from app.core.tasks import reset_task_failure_counts
from tests.fakes import FakeSupabase, LockFactory, customer_row


# =============================================================================
# MOCK FACTORIES
# =============================================================================


def make_mock_supabase(return_data: list[dict[str, Any]] | None = None) -> MagicMock:
    """
    Supabase mock with the method chain configured.

    Args:
        return_data: List of dicts returned by .execute().data

    Example:
        mock = make_mock_supabase([{"id": "123", "name": "Test"}])
        mock.table("customers").select("*").execute().data
    """
    mock = MagicMock()
    for method in (
        "table", "select", "insert", "update", "eq", "neq", "gt", "gte",
        "lt", "lte", "ilike", "in_", "or_", "order", "limit", "range",
    ):
        getattr(mock, method).return_value = mock
    mock.not_ = mock

    response = MagicMock()
    response.data = return_data if return_data is not None else []
    response.count = len(response.data) if response.data else 0
    mock.execute.return_value = response

    return mock


def make_mock_redis() -> MagicMock:
    """Redis mock with async commands (set, get, eval, exists, ping)."""
    mock = MagicMock()
    mock.get = AsyncMock(return_value=None)
    mock.set = AsyncMock(return_value=True)
    mock.delete = AsyncMock(return_value=1)
    mock.exists = AsyncMock(return_value=0)
    mock.eval = AsyncMock(return_value=1)
    mock.ping = AsyncMock(return_value=True)
    return mock


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def mock_supabase():
    """Supabase mock returning no data."""
    return make_mock_supabase()


@pytest.fixture
def mock_redis():
    return make_mock_redis()


@pytest.fixture
def customers():
    """A small customer base covering every rule field."""
    return [
        customer_row("c1", "Ana Lima", "ana@gmail.com", 15000, 12, last_visit_days=5, created_days=400),
        customer_row("c2", "Bruno Costa", "bruno@yahoo.com", 10000, 3, last_visit_days=45, created_days=200),
        customer_row("c3", "Carla Souza", "carla@gmail.com", 2500, 1, last_visit_days=90, created_days=10),
        customer_row("c4", "Diego Alves", "diego@outlook.com", 0, 0, last_visit_days=1, created_days=2),
    ]


@pytest.fixture
def fake_db(customers):
    """In-memory Supabase seeded with `customers`."""
    return FakeSupabase({"customers": customers})


@pytest.fixture
def lock_factory():
    return LockFactory()


@pytest.fixture(autouse=True)
def clean_task_failures():
    reset_task_failure_counts()
    yield
    reset_task_failure_counts()
