"""
Campaign delivery.

Structure:
- types: Campaign and communication log types
- repository: Database access
- orchestrator: Staged delivery runs
- stats: Counters derived from communication logs
- insights: Performance insights from delivery counters
"""
from app.services.campaigns.orchestrator import (
    DeliveryOrchestrator,
    DeliveryPlan,
    DeliverySnapshot,
)
from app.services.campaigns.repository import CampaignRepository, CommunicationLogRepository
from app.services.campaigns.stats import StatsAggregator
from app.services.campaigns.types import (
    CampaignData,
    CampaignStatus,
    CommunicationLogData,
    DeliveryStats,
    LogStatus,
)

__all__ = [
    "DeliveryOrchestrator",
    "DeliveryPlan",
    "DeliverySnapshot",
    "CampaignRepository",
    "CommunicationLogRepository",
    "StatsAggregator",
    "CampaignData",
    "CampaignStatus",
    "CommunicationLogData",
    "DeliveryStats",
    "LogStatus",
]
