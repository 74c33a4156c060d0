"""
Dashboard routes.

Read-only overview: store totals, the user's campaign counters and
daily trends.
"""
from fastapi import APIRouter, Depends, Query

from app.contexts.dashboard.application import (
    DEFAULT_PERIOD_DAYS,
    MAX_PERIOD_DAYS,
    DashboardApplicationService,
    get_dashboard_service,
)
from app.core.auth import CurrentUser, get_current_user

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats")
async def dashboard_stats(
    user: CurrentUser = Depends(get_current_user),
    service: DashboardApplicationService = Depends(get_dashboard_service),
):
    """Totals, the user's campaign counters and recent activity."""
    return await service.stats(user.id)


@router.get("/analytics")
async def dashboard_analytics(
    period: int = Query(DEFAULT_PERIOD_DAYS, ge=1, le=MAX_PERIOD_DAYS),
    user: CurrentUser = Depends(get_current_user),
    service: DashboardApplicationService = Depends(get_dashboard_service),
):
    """Daily customer growth and revenue, top customers, recent campaigns."""
    return await service.analytics(user.id, period=period)
