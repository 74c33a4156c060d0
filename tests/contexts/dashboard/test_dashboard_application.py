"""
Tests for the Dashboard Application Service over the in-memory Supabase fake.
"""
import pytest
from datetime import timedelta

from app.contexts.dashboard.application import DashboardApplicationService
from app.core.exceptions import DatabaseError, ValidationError
from app.core.timezone import iso_utc, now_utc
from app.repositories.customer import CustomerRepository
from app.repositories.order import OrderRepository
from app.services.campaigns.repository import CampaignRepository
from tests.fakes import FakeSupabase


def days_ago(days):
    return now_utc() - timedelta(days=days)


def order_row(id, email, amount, days):
    return {
        "id": id,
        "customer_id": f"cust-{email}",
        "customer_email": email,
        "order_amount": amount,
        "order_date": iso_utc(days_ago(days)),
        "status": "completed",
        "products": [],
    }


def campaign_row(id, user_id, status, days, audience_size=10, sent=0, failed=0):
    return {
        "id": id,
        "user_id": user_id,
        "name": f"Campaign {id}",
        "message": "Hi {name}",
        "rules": [],
        "audience_size": audience_size,
        "status": status,
        "sent_count": sent,
        "failed_count": failed,
        "delivery_stats": {"sent": sent, "failed": failed, "pending": audience_size - sent - failed},
        "created_at": iso_utc(days_ago(days)),
    }


@pytest.fixture
def db(customers):
    return FakeSupabase({
        "customers": customers,
        "orders": [
            order_row("o1", "ana@gmail.com", 100, 1),
            order_row("o2", "bruno@yahoo.com", 250, 2),
            order_row("o3", "ana@gmail.com", 50, 5),
            order_row("o4", "carla@gmail.com", 999, 60),
        ],
        "campaigns": [
            campaign_row("a", "user-1", "COMPLETED", 2, sent=9, failed=1),
            campaign_row("b", "user-1", "PENDING", 0, audience_size=40),
            campaign_row("z", "user-2", "COMPLETED", 1, sent=500),
        ],
    })


@pytest.fixture
def service(db):
    return DashboardApplicationService(
        CustomerRepository(db), OrderRepository(db), CampaignRepository(db)
    )


class TestStats:

    @pytest.mark.asyncio
    async def test_totals(self, service):
        stats = await service.stats("user-1")

        assert stats["totalCustomers"] == 4
        assert stats["totalOrders"] == 4
        assert stats["totalCampaigns"] == 2
        assert stats["campaignStats"] == {"sent": 9, "failed": 1, "pending": 40}

    @pytest.mark.asyncio
    async def test_recent_activity(self, service):
        activity = (await service.stats("user-1"))["recentActivity"]

        assert [c["name"] for c in activity["customers"]] == [
            "Diego Alves", "Carla Souza", "Bruno Costa", "Ana Lima",
        ]
        assert activity["customers"][0]["totalSpends"] == 0
        assert [o["orderAmount"] for o in activity["orders"]] == [100, 250, 50, 999]
        assert activity["orders"][0]["customerEmail"] == "ana@gmail.com"

    @pytest.mark.asyncio
    async def test_campaigns_are_scoped_to_user(self, service):
        stats = await service.stats("user-3")

        assert stats["totalCampaigns"] == 0
        assert stats["campaignStats"] == {"sent": 0, "failed": 0, "pending": 0}

    @pytest.mark.asyncio
    async def test_store_failure_raises(self, customers):
        db = FakeSupabase({"customers": customers}, failing_tables=["orders"])
        service = DashboardApplicationService(
            CustomerRepository(db), OrderRepository(db), CampaignRepository(db)
        )

        with pytest.raises(DatabaseError):
            await service.stats("user-1")


class TestAnalytics:

    @pytest.mark.asyncio
    async def test_customer_growth_by_day(self, service):
        growth = (await service.analytics("user-1", period=30))["customerGrowth"]

        assert growth == [
            {"date": days_ago(10).date().isoformat(), "count": 1},
            {"date": days_ago(2).date().isoformat(), "count": 1},
        ]

    @pytest.mark.asyncio
    async def test_revenue_by_day_within_period(self, service):
        trends = (await service.analytics("user-1", period=30))["revenueTrends"]

        assert [t["date"] for t in trends] == [
            days_ago(5).date().isoformat(),
            days_ago(2).date().isoformat(),
            days_ago(1).date().isoformat(),
        ]
        assert [t["revenue"] for t in trends] == [50, 250, 100]
        assert sum(t["orders"] for t in trends) == 3

    @pytest.mark.asyncio
    async def test_longer_period_includes_older_orders(self, service):
        trends = (await service.analytics("user-1", period=90))["revenueTrends"]
        assert sum(t["revenue"] for t in trends) == 1399

    @pytest.mark.asyncio
    async def test_top_customers_and_campaigns(self, service):
        result = await service.analytics("user-1")

        assert result["period"] == 30
        assert result["topCustomers"][0] == {
            "name": "Ana Lima", "email": "ana@gmail.com", "totalSpends": 15000, "visits": 12,
        }
        assert [c["name"] for c in result["campaignPerformance"]] == ["Campaign b", "Campaign a"]
        assert result["campaignPerformance"][1]["sentCount"] == 9
        assert result["campaignPerformance"][1]["status"] == "COMPLETED"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("period", [0, -5, 366])
    async def test_invalid_period(self, service, period):
        with pytest.raises(ValidationError, match="period"):
            await service.analytics("user-1", period=period)
