"""
Data ingestion routes.

POST bodies are either one record or an array of records; every record
gets its own entry in `results`.
"""
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query

from app.contexts.ingestion.application import (
    IngestionApplicationService,
    get_ingestion_service,
)
from app.core.auth import CurrentUser, get_current_user

router = APIRouter(prefix="/data", tags=["data"])


@router.post("/customers")
async def ingest_customers(
    payload: Any = Body(...),
    user: CurrentUser = Depends(get_current_user),
    service: IngestionApplicationService = Depends(get_ingestion_service),
):
    """Creates or updates customers, matched by email."""
    return await service.ingest_customers(payload)


@router.post("/orders")
async def ingest_orders(
    payload: Any = Body(...),
    user: CurrentUser = Depends(get_current_user),
    service: IngestionApplicationService = Depends(get_ingestion_service),
):
    """Records orders and updates the customers' spend and visits."""
    return await service.ingest_orders(payload)


@router.get("/customers")
async def list_customers(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    search: Optional[str] = None,
    min_spend: Optional[float] = Query(None, alias="minSpend"),
    max_spend: Optional[float] = Query(None, alias="maxSpend"),
    user: CurrentUser = Depends(get_current_user),
    service: IngestionApplicationService = Depends(get_ingestion_service),
):
    return await service.list_customers(
        page=page, limit=limit, search=search, min_spend=min_spend, max_spend=max_spend
    )


@router.get("/orders")
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    customer_email: Optional[str] = Query(None, alias="customerEmail"),
    user: CurrentUser = Depends(get_current_user),
    service: IngestionApplicationService = Depends(get_ingestion_service),
):
    return await service.list_orders(page=page, limit=limit, customer_email=customer_email)


@router.get("/stats")
async def data_stats(
    user: CurrentUser = Depends(get_current_user),
    service: IngestionApplicationService = Depends(get_ingestion_service),
):
    """Store-wide customer and order totals."""
    return await service.stats()
