"""
Campaign routes.

Routes only know HTTP: they validate the request shape, call the
CampaignsApplicationService and return its result. Domain exceptions are
turned into responses by app/api/error_handlers.py.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from app.contexts.campaigns.application import (
    CampaignsApplicationService,
    get_campaigns_service,
)
from app.core.auth import CurrentUser, get_current_user

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


# ---------------------------------------------------------------------------
# Request schemas
# Required fields are checked by the service so a missing one answers 400.
# ---------------------------------------------------------------------------

class PreviewRequest(BaseModel):
    rules: Optional[List[Dict[str, Any]]] = None


class CreateCampaignRequest(BaseModel):
    """Input for campaign creation."""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(None, description="Campaign name")
    rules: Optional[List[Dict[str, Any]]] = Field(None, description="Audience rules")
    message: Optional[str] = Field(None, description="Message template with {name}")
    audience_size: Optional[int] = Field(
        None, alias="audienceSize", description="Client-side count, informational only"
    )


class SuggestRulesRequest(BaseModel):
    text: Optional[str] = None
    prompt: Optional[str] = None


class AnalyzeCampaignRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    campaign_id: Optional[str] = Field(None, alias="campaignId")


class SuggestMessagesRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rules: Optional[List[Dict[str, Any]]] = None
    objective: str = Field("engagement", alias="campaignObjective")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/preview")
async def preview_audience(
    data: PreviewRequest,
    user: CurrentUser = Depends(get_current_user),
    service: CampaignsApplicationService = Depends(get_campaigns_service),
):
    """Counts the customers matching the rules and returns a sample."""
    return await service.preview_audience(data.rules)


@router.post("/suggest-rules")
async def suggest_rules(
    data: SuggestRulesRequest,
    user: CurrentUser = Depends(get_current_user),
    service: CampaignsApplicationService = Depends(get_campaigns_service),
):
    """Turns a free-text audience description into rules."""
    return await service.suggest_rules(data.text or data.prompt)


@router.post("/suggest-messages")
async def suggest_messages(
    data: SuggestMessagesRequest,
    user: CurrentUser = Depends(get_current_user),
    service: CampaignsApplicationService = Depends(get_campaigns_service),
):
    """Message templates for a rule set."""
    return await service.suggest_messages(data.rules, data.objective)


@router.post("/analyze")
async def analyze_campaign(
    data: AnalyzeCampaignRequest,
    user: CurrentUser = Depends(get_current_user),
    service: CampaignsApplicationService = Depends(get_campaigns_service),
):
    """Insights and recommendations from a campaign's delivery."""
    return await service.analyze_campaign(user.id, data.campaign_id)


@router.post("")
async def create_campaign(
    data: CreateCampaignRequest,
    user: CurrentUser = Depends(get_current_user),
    service: CampaignsApplicationService = Depends(get_campaigns_service),
):
    """
    Creates a campaign and starts its delivery.

    The response returns right away; delivery progresses in the background.
    """
    campaign = await service.create_campaign(
        user_id=user.id,
        name=data.name,
        rules=data.rules,
        message=data.message,
        audience_size=data.audience_size,
    )
    return {"success": True, "campaign": campaign.to_dict()}


@router.get("")
async def list_campaigns(
    limit: int = Query(10, ge=1, le=100),
    page: int = Query(1, ge=1),
    user: CurrentUser = Depends(get_current_user),
    service: CampaignsApplicationService = Depends(get_campaigns_service),
):
    """The user's campaigns, newest first."""
    return await service.list_campaigns(user.id, limit=limit, page=page)


@router.get("/{campaign_id}")
async def get_campaign(
    campaign_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: CampaignsApplicationService = Depends(get_campaigns_service),
):
    campaign = await service.get_campaign(user.id, campaign_id)
    return campaign.to_dict()


@router.post("/{campaign_id}/trigger-delivery")
async def trigger_delivery(
    campaign_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: CampaignsApplicationService = Depends(get_campaigns_service),
):
    """Re-runs delivery. 409 while a run is in flight."""
    return await service.trigger_delivery(user.id, campaign_id)


@router.post("/{campaign_id}/reconcile")
async def reconcile_stats(
    campaign_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: CampaignsApplicationService = Depends(get_campaigns_service),
):
    """Recomputes the counters from the communication logs."""
    return await service.reconcile_stats(user.id, campaign_id)


@router.get("/{campaign_id}/logs")
async def list_logs(
    campaign_id: str,
    status: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    user: CurrentUser = Depends(get_current_user),
    service: CampaignsApplicationService = Depends(get_campaigns_service),
):
    return await service.list_logs(user.id, campaign_id, status=status, limit=limit)
