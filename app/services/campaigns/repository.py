"""
Repositories for campaigns and communication logs.

Reads raise DatabaseError on storage failures and return None only when
the record does not exist, so the delivery orchestrator can tell a
missing campaign from an unreachable store.
"""

import logging
from datetime import datetime
from typing import Any, List, Optional, Sequence

from app.core.exceptions import DatabaseError
from app.core.timezone import iso_utc, now_utc
from app.repositories.base import fetch_all
from app.services.campaigns.types import (
    CampaignData,
    CampaignStatus,
    CommunicationLogData,
    DeliveryStats,
    LogStatus,
)

logger = logging.getLogger(__name__)

# Ids per `in.(...)` filter; keeps the request URL short
ID_BATCH_SIZE = 200


class CampaignRepository:
    """Campaign operations."""

    TABLE = "campaigns"

    def __init__(self, db_client: Any):
        self.db = db_client

    async def get_by_id(self, campaign_id: str) -> Optional[CampaignData]:
        """
        Fetches a campaign by id.

        Returns:
            CampaignData or None if not found

        Raises:
            DatabaseError: If the store cannot be queried
        """
        try:
            response = (
                self.db.table(self.TABLE).select("*").eq("id", campaign_id).limit(1).execute()
            )
        except Exception as e:
            logger.error(f"Error fetching campaign {campaign_id}: {e}")
            raise DatabaseError(f"Failed to fetch campaign {campaign_id}", original_error=e)

        if not response.data:
            return None
        return CampaignData.from_db_row(response.data[0])

    async def get_for_user(self, campaign_id: str, user_id: str) -> Optional[CampaignData]:
        """Fetches a campaign only if it belongs to the user."""
        campaign = await self.get_by_id(campaign_id)
        if campaign and campaign.user_id == str(user_id):
            return campaign
        return None

    async def list_for_user(
        self, user_id: str, limit: int = 10, page: int = 1
    ) -> List[CampaignData]:
        """
        Lists a user's campaigns, newest first.

        Args:
            user_id: Owner
            limit: Page size
            page: 1-based page
        """
        offset = max(page - 1, 0) * limit
        try:
            response = (
                self.db.table(self.TABLE)
                .select("*")
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .range(offset, offset + limit - 1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error listing campaigns for {user_id}: {e}")
            raise DatabaseError("Failed to list campaigns", original_error=e)

        return [CampaignData.from_db_row(row) for row in (response.data or [])]

    async def count_for_user(self, user_id: str) -> int:
        try:
            response = (
                self.db.table(self.TABLE)
                .select("id", count="exact")
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error counting campaigns for {user_id}: {e}")
            raise DatabaseError("Failed to count campaigns", original_error=e)
        return response.count or 0

    async def delivery_totals_for_user(self, user_id: str) -> dict:
        """
        Counters summed over every campaign of the user.

        Returns:
            {"sent", "failed", "pending"}; pending is the audience of
            campaigns still in PENDING status
        """
        try:
            rows = fetch_all(
                lambda: self.db.table(self.TABLE)
                .select("id,status,audience_size,sent_count,failed_count")
                .eq("user_id", user_id)
                .order("id")
            )
        except Exception as e:
            logger.error(f"Error summing campaign counters for {user_id}: {e}")
            raise DatabaseError("Failed to sum campaign counters", original_error=e)

        return {
            "sent": sum(int(row.get("sent_count") or 0) for row in rows),
            "failed": sum(int(row.get("failed_count") or 0) for row in rows),
            "pending": sum(
                int(row.get("audience_size") or 0)
                for row in rows
                if row.get("status") == CampaignStatus.PENDING.value
            ),
        }

    async def create(
        self,
        user_id: str,
        name: str,
        rules: List[dict],
        message: str,
        audience_size: int,
        status: CampaignStatus = CampaignStatus.ACTIVE,
    ) -> CampaignData:
        """
        Persists a new campaign with zeroed counters.

        Raises:
            DatabaseError: If the insert fails
        """
        row = {
            "user_id": user_id,
            "name": name,
            "rules": rules,
            "message": message,
            "audience_size": audience_size,
            "status": status.value,
            "sent_count": 0,
            "failed_count": 0,
            "delivery_stats": DeliveryStats(pending=audience_size).to_dict(),
            "created_at": iso_utc(),
        }
        try:
            response = self.db.table(self.TABLE).insert(row).execute()
        except Exception as e:
            logger.error(f"Error creating campaign: {e}")
            raise DatabaseError("Failed to create campaign", original_error=e)

        if not response.data:
            raise DatabaseError("Campaign insert returned no data")

        campaign = CampaignData.from_db_row(response.data[0])
        logger.info(f"Campaign created: {campaign.id} (audience={audience_size})")
        return campaign

    async def update_delivery_progress(
        self,
        campaign_id: str,
        sent: int,
        failed: int,
        pending: int,
        status: CampaignStatus,
    ) -> None:
        """Writes one delivery step: counters, stats and status."""
        self._update(
            campaign_id,
            {
                "sent_count": sent,
                "failed_count": failed,
                "delivery_stats": {"sent": sent, "failed": failed, "pending": pending},
                "status": status.value,
            },
        )

    async def mark_failed(self, campaign_id: str, failed_count: int) -> None:
        """Terminal FAILED status."""
        self._update(
            campaign_id,
            {"status": CampaignStatus.FAILED.value, "failed_count": failed_count},
        )

    async def update_stats(self, campaign_id: str, stats: DeliveryStats) -> None:
        """Writes counters derived from the communication log."""
        self._update(
            campaign_id,
            {
                "delivery_stats": stats.to_dict(),
                "sent_count": stats.sent,
                "failed_count": stats.failed,
            },
        )

    def _update(self, campaign_id: str, data: dict) -> None:
        try:
            self.db.table(self.TABLE).update(data).eq("id", campaign_id).execute()
        except Exception as e:
            logger.error(f"Error updating campaign {campaign_id}: {e}")
            raise DatabaseError(f"Failed to update campaign {campaign_id}", original_error=e)


class CommunicationLogRepository:
    """Per-recipient delivery records."""

    TABLE = "communication_logs"

    def __init__(self, db_client: Any):
        self.db = db_client

    async def create_many(self, rows: Sequence[dict]) -> List[CommunicationLogData]:
        """
        Inserts PENDING logs in one request.

        Raises:
            DatabaseError: If the insert fails
        """
        if not rows:
            return []
        now = iso_utc()
        payload = [
            {**row, "status": LogStatus.PENDING.value, "delivery_attempts": 0, "created_at": now}
            for row in rows
        ]
        try:
            response = self.db.table(self.TABLE).insert(payload).execute()
        except Exception as e:
            logger.error(f"Error creating communication logs: {e}")
            raise DatabaseError("Failed to create communication logs", original_error=e)
        return [CommunicationLogData.from_db_row(row) for row in (response.data or [])]

    async def mark_sent(self, log_ids: Sequence[str], at: Optional[datetime] = None) -> int:
        """PENDING → SENT. Logs already terminal are left untouched."""
        return self._transition(
            log_ids,
            {
                "status": LogStatus.SENT.value,
                "sent_at": iso_utc(at or now_utc()),
                "delivery_attempts": 1,
                "vendor_response": "accepted",
            },
        )

    async def mark_failed(
        self,
        log_ids: Sequence[str],
        error_message: str,
        at: Optional[datetime] = None,
    ) -> int:
        """PENDING → FAILED. Logs already terminal are left untouched."""
        return self._transition(
            log_ids,
            {
                "status": LogStatus.FAILED.value,
                "failed_at": iso_utc(at or now_utc()),
                "delivery_attempts": 1,
                "error_message": error_message,
            },
        )

    def _transition(self, log_ids: Sequence[str], data: dict) -> int:
        ids = list(log_ids)
        updated = 0
        for start in range(0, len(ids), ID_BATCH_SIZE):
            batch = ids[start:start + ID_BATCH_SIZE]
            try:
                response = (
                    self.db.table(self.TABLE)
                    .update(data)
                    .in_("id", batch)
                    .eq("status", LogStatus.PENDING.value)
                    .execute()
                )
            except Exception as e:
                logger.error(f"Error updating communication logs: {e}")
                raise DatabaseError("Failed to update communication logs", original_error=e)
            updated += len(response.data or [])
        return updated

    async def count(self, campaign_id: str, status: Optional[LogStatus] = None) -> int:
        """
        Exact number of the campaign's logs, optionally in one status.

        The status match ignores case. Counted by the store, so the answer
        is not capped by the rows-per-response limit.
        """
        try:
            query = (
                self.db.table(self.TABLE)
                .select("id", count="exact")
                .eq("campaign_id", campaign_id)
            )
            if status:
                query = query.ilike("status", status.value)
            response = query.limit(1).execute()
        except Exception as e:
            logger.error(f"Error counting logs for {campaign_id}: {e}")
            raise DatabaseError("Failed to count communication logs", original_error=e)
        return response.count or 0

    async def list_for_campaign(
        self,
        campaign_id: str,
        status: Optional[LogStatus] = None,
        limit: Optional[int] = 100,
    ) -> List[CommunicationLogData]:
        """Logs of a campaign, oldest first. `limit=None` reads them all."""

        def build_query():
            query = self.db.table(self.TABLE).select("*").eq("campaign_id", campaign_id)
            if status:
                query = query.eq("status", status.value)
            return query.order("created_at").order("id")

        try:
            rows = fetch_all(build_query, limit=limit)
        except Exception as e:
            logger.error(f"Error listing logs for {campaign_id}: {e}")
            raise DatabaseError("Failed to list communication logs", original_error=e)
        return [CommunicationLogData.from_db_row(row) for row in rows]
