"""
Campaign stats aggregator.

Recomputes a campaign's counters from its communication logs, which are
the per-recipient record of what was sent or failed. Used to verify or
repair the counters the orchestrator writes while stepping.
"""

import logging

from app.services.campaigns.repository import CampaignRepository, CommunicationLogRepository
from app.services.campaigns.types import DeliveryStats, LogStatus

logger = logging.getLogger(__name__)


class StatsAggregator:
    """Derives delivery counters from communication logs."""

    def __init__(
        self,
        campaign_repository: CampaignRepository,
        log_repository: CommunicationLogRepository,
    ):
        self.campaigns = campaign_repository
        self.logs = log_repository

    async def collect(self, campaign_id: str) -> DeliveryStats:
        """Counts the campaign's logs by status without writing anything."""
        stats = DeliveryStats(
            sent=await self.logs.count(campaign_id, LogStatus.SENT),
            failed=await self.logs.count(campaign_id, LogStatus.FAILED),
            pending=await self.logs.count(campaign_id, LogStatus.PENDING),
        )

        unknown = await self.logs.count(campaign_id) - stats.total
        if unknown > 0:
            logger.warning(f"Campaign {campaign_id}: ignoring {unknown} logs with an unknown status")

        return stats

    async def recompute(self, campaign_id: str) -> DeliveryStats:
        """
        Counts the logs and writes the result to the campaign.

        Updates deliveryStats plus the top-level sent/failed counts.

        Returns:
            The derived stats
        """
        stats = await self.collect(campaign_id)
        await self.campaigns.update_stats(campaign_id, stats)
        logger.info(
            f"Campaign {campaign_id} reconciled from logs: "
            f"sent={stats.sent}, failed={stats.failed}, pending={stats.pending}"
        )
        return stats
