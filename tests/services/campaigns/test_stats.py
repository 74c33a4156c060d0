"""
Tests for the stats aggregator.
"""
import pytest

from app.services.campaigns.repository import CampaignRepository, CommunicationLogRepository
from app.services.campaigns.stats import StatsAggregator
from tests.fakes import FakeSupabase


def log_rows(campaign_id, status, count):
    return [
        {"id": f"{campaign_id}-{status}-{i}", "campaign_id": campaign_id, "status": status}
        for i in range(count)
    ]


@pytest.fixture
def db():
    campaign = {
        "id": "camp-1",
        "user_id": "user-1",
        "name": "Winter sale",
        "message": "Hi {name}",
        "audience_size": 10,
        "status": "COMPLETED",
        "sent_count": 0,
        "failed_count": 0,
        "delivery_stats": {"sent": 0, "failed": 0, "pending": 10},
    }
    logs = (
        log_rows("camp-1", "SENT", 7)
        + log_rows("camp-1", "FAILED", 3)
        + log_rows("camp-2", "SENT", 5)
    )
    return FakeSupabase({"campaigns": [campaign], "communication_logs": logs})


@pytest.fixture
def aggregator(db):
    return StatsAggregator(CampaignRepository(db), CommunicationLogRepository(db))


class TestCollect:

    @pytest.mark.asyncio
    async def test_counts_logs_by_status(self, aggregator):
        stats = await aggregator.collect("camp-1")

        assert stats.to_dict() == {"sent": 7, "failed": 3, "pending": 0}
        assert stats.total == 10

    @pytest.mark.asyncio
    async def test_does_not_write(self, aggregator, db):
        await aggregator.collect("camp-1")
        assert ("campaigns", "update") not in db.executed

    @pytest.mark.asyncio
    async def test_campaign_without_logs(self, aggregator):
        stats = await aggregator.collect("camp-unknown")
        assert stats.to_dict() == {"sent": 0, "failed": 0, "pending": 0}

    @pytest.mark.asyncio
    async def test_status_case_is_ignored(self, db, aggregator):
        db.tables["communication_logs"].append(
            {"id": "x", "campaign_id": "camp-1", "status": "pending"}
        )

        stats = await aggregator.collect("camp-1")

        assert stats.pending == 1

    @pytest.mark.asyncio
    async def test_unknown_statuses_are_ignored(self, db, aggregator):
        db.tables["communication_logs"].append(
            {"id": "x", "campaign_id": "camp-1", "status": "BOUNCED"}
        )

        stats = await aggregator.collect("camp-1")

        assert stats.to_dict() == {"sent": 7, "failed": 3, "pending": 0}

    @pytest.mark.asyncio
    async def test_counts_past_max_rows(self):
        db = FakeSupabase(
            {"communication_logs": log_rows("camp-1", "SENT", 1200) + log_rows("camp-1", "FAILED", 300)},
            max_rows=1000,
        )
        aggregator = StatsAggregator(CampaignRepository(db), CommunicationLogRepository(db))

        stats = await aggregator.collect("camp-1")

        assert stats.to_dict() == {"sent": 1200, "failed": 300, "pending": 0}


class TestRecompute:

    @pytest.mark.asyncio
    async def test_writes_counters_to_campaign(self, aggregator, db):
        stats = await aggregator.recompute("camp-1")

        row = db.row("campaigns", "camp-1")
        assert stats.sent == 7
        assert row["sent_count"] == 7
        assert row["failed_count"] == 3
        assert row["delivery_stats"] == {"sent": 7, "failed": 3, "pending": 0}
        assert row["status"] == "COMPLETED"
