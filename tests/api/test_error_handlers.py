"""
Tests for the FastAPI exception handlers.
"""
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.error_handlers import register_exception_handlers
from app.core.exceptions import (
    CampaignsException,
    ConfigurationError,
    DatabaseError,
    DeliveryInProgressError,
    NotFoundError,
    ValidationError,
)


@pytest.fixture
def app_with_handlers():
    app = FastAPI()
    register_exception_handlers(app)
    return app


def call_raising(app, exc):
    """Mounts a route raising `exc` and calls it."""
    @app.get("/boom")
    async def boom():
        raise exc

    return TestClient(app, raise_server_exceptions=False).get("/boom")


@pytest.mark.parametrize("exc, status", [
    (NotFoundError("Campaign", identifier="123"), 404),
    (ValidationError("Name, rules, and message are required"), 400),
    (DeliveryInProgressError("camp-1"), 409),
    (DatabaseError("Connection lost", details={"table": "customers"}), 503),
    (ConfigurationError("SUPABASE_URL missing"), 500),
    (CampaignsException("Something domain specific"), 500),
])
def test_domain_exception_status(app_with_handlers, exc, status):
    response = call_raising(app_with_handlers, exc)

    assert response.status_code == status
    assert response.json() == exc.to_dict()


def test_not_found_body(app_with_handlers):
    data = call_raising(app_with_handlers, NotFoundError("Campaign", identifier="123")).json()

    assert data == {"error": "NotFoundError", "message": "Campaign not found", "details": {"id": "123"}}


def test_in_progress_details(app_with_handlers):
    data = call_raising(app_with_handlers, DeliveryInProgressError(42)).json()

    assert data["error"] == "DeliveryInProgressError"
    assert data["details"] == {"campaign_id": "42"}


def test_details_default_to_empty(app_with_handlers):
    assert call_raising(app_with_handlers, NotFoundError("Customer")).json()["details"] == {}


def test_unhandled_exception_hides_message(app_with_handlers):
    response = call_raising(app_with_handlers, ValueError("Secret internal error"))

    assert response.status_code == 500
    data = response.json()
    assert data["error"] == "InternalServerError"
    assert data["message"] == "Internal server error"
    assert "Secret" not in response.text


def test_exception_str_includes_details():
    assert str(DatabaseError("Insert failed", details={"table": "campaigns"})) == (
        "Insert failed - {'table': 'campaigns'}"
    )
