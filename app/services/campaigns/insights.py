"""
Campaign performance insights.

Turns a campaign's delivery counters into short, readable insights and
recommendations. Pure functions: the caller supplies the counters.
"""
from dataclasses import dataclass, field
from typing import List, Optional

from app.services.campaigns.types import CampaignData, CampaignStatus, DeliveryStats

# Delivery rate (%) under which failed recipients need attention
HEALTHY_DELIVERY_RATE = 90.0
SMALL_AUDIENCE = 50
LARGE_AUDIENCE = 1000


@dataclass
class CampaignAnalysis:
    """Metrics plus insights and recommendations for one campaign."""

    campaign_id: str
    stats: DeliveryStats
    audience_size: int
    delivery_rate: Optional[float]
    insights: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": True,
            "campaignId": self.campaign_id,
            "metrics": {
                "audienceSize": self.audience_size,
                "sent": self.stats.sent,
                "failed": self.stats.failed,
                "pending": self.stats.pending,
                "deliveryRate": self.delivery_rate,
            },
            "insights": self.insights,
            "recommendations": self.recommendations,
        }


def delivery_rate(stats: DeliveryStats) -> Optional[float]:
    """Share of attempted messages that were sent, in percent; None before any attempt."""
    attempted = stats.sent + stats.failed
    if attempted == 0:
        return None
    return round(stats.sent / attempted * 100, 1)


def analyze_campaign(campaign: CampaignData, stats: DeliveryStats) -> CampaignAnalysis:
    """
    Builds the analysis of a campaign from its delivery counters.

    Args:
        campaign: The campaign (status, audience, message)
        stats: Counters to analyze, from the logs or the campaign itself
    """
    rate = delivery_rate(stats)
    analysis = CampaignAnalysis(
        campaign_id=campaign.id,
        stats=stats,
        audience_size=campaign.audience_size,
        delivery_rate=rate,
    )

    if rate is None:
        analysis.insights.append("No message has been attempted yet")
    else:
        analysis.insights.append(
            f"Reached {stats.sent} of {campaign.audience_size} customers "
            f"({rate:.1f}% delivery rate)"
        )

    if campaign.status == CampaignStatus.COMPLETED:
        analysis.insights.append("Delivery completed for the whole audience")
    elif campaign.status == CampaignStatus.FAILED:
        analysis.insights.append("Delivery stopped with an error before finishing")
    elif stats.pending:
        analysis.insights.append(f"{stats.pending} messages are still pending")
    elif rate is None:
        analysis.insights.append("Delivery has not started yet")
    else:
        analysis.insights.append("Every message has been attempted")

    if stats.failed:
        analysis.insights.append(f"{stats.failed} messages failed to deliver")
    else:
        analysis.insights.append("No delivery failures so far")

    if campaign.status == CampaignStatus.FAILED:
        analysis.recommendations.append("Trigger the delivery again once the failure is resolved")
    elif rate is not None and rate < HEALTHY_DELIVERY_RATE:
        analysis.recommendations.append(
            "Review the contact details of failed recipients before the next send"
        )
    else:
        analysis.recommendations.append("Reuse this audience for a follow-up campaign")

    if campaign.audience_size < SMALL_AUDIENCE:
        analysis.recommendations.append("Broaden the rules to reach a larger audience")
    elif campaign.audience_size > LARGE_AUDIENCE:
        analysis.recommendations.append(
            "Split the audience into smaller segments with tailored messages"
        )
    else:
        analysis.recommendations.append("Test a message variant on part of the audience")

    if "{name}" not in campaign.message:
        analysis.recommendations.append("Personalise the message with the {name} placeholder")
    else:
        analysis.recommendations.append("Follow up with customers who have not ordered since")

    return analysis
