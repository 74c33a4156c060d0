"""
Exception handlers for FastAPI.

Domain exceptions answer with their own `status_code` and a body of
{"error", "message", "details"}; anything else is a 500 with no detail.
"""

import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.exceptions import CampaignsException

logger = logging.getLogger(__name__)


async def campaigns_exception_handler(request: Request, exc: CampaignsException) -> JSONResponse:
    body = exc.to_dict()
    level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(
        level,
        f"{request.method} {request.url.path} -> {exc.status_code} {body['error']}: {exc.message}",
        extra={"error_type": body["error"], "details": exc.details, "path": request.url.path},
    )
    return JSONResponse(status_code=exc.status_code, content=body)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: logs the traceback, hides the message from the client."""
    logger.exception(
        f"Unhandled error on {request.method} {request.url.path}: {exc}",
        extra={"error_type": type(exc).__name__, "path": request.url.path},
    )
    return JSONResponse(
        status_code=500,
        content={"error": "InternalServerError", "message": "Internal server error", "details": {}},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Registers the handlers on `app`.

    Subclasses of CampaignsException resolve to the base handler.
    """
    app.add_exception_handler(CampaignsException, campaigns_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
