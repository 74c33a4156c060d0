"""
Domain exceptions of the campaigns service.

Each exception carries the HTTP status the API answers with; see
app/api/error_handlers.py.
"""
from typing import Any, Dict, Optional


class CampaignsException(Exception):
    """Base exception for all domain errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        self.message = message
        self.details = details or {}
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Error body returned by the API."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class DatabaseError(CampaignsException):
    """Supabase read/write failed."""

    status_code = 503


class ValidationError(CampaignsException):
    """Invalid input data (missing fields, malformed rules)."""

    status_code = 400


class NotFoundError(CampaignsException):
    """Resource missing, or owned by another user."""

    status_code = 404

    def __init__(self, resource: str, identifier: Optional[str] = None):
        details = {"id": identifier} if identifier else {}
        super().__init__(f"{resource} not found", details)


class DeliveryInProgressError(CampaignsException):
    """A delivery run is already in flight for the campaign."""

    status_code = 409

    def __init__(self, campaign_id: str):
        super().__init__(
            "Delivery already in progress",
            {"campaign_id": str(campaign_id)},
        )


class ConfigurationError(CampaignsException):
    """Missing or invalid settings."""
