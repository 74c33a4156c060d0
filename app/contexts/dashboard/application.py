"""
Application Service of the Bounded Context: Dashboard

Aggregates customers, orders and the user's campaigns for the overview
screens. Read-only.

IMPORTANT: this module raises domain exceptions (app.core.exceptions),
NEVER HTTP exceptions.
"""

import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any, Dict, List, Optional

from app.core.exceptions import ValidationError
from app.core.timezone import now_utc
from app.repositories.customer import CustomerRepository
from app.repositories.deps import get_campaign_repo, get_customer_repo, get_order_repo
from app.repositories.order import OrderRepository
from app.services.campaigns.repository import CampaignRepository

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_DAYS = 30
MAX_PERIOD_DAYS = 365
RECENT_ACTIVITY_SIZE = 5
TOP_CUSTOMERS_SIZE = 10
CAMPAIGN_PERFORMANCE_SIZE = 10


def _day(moment: datetime) -> str:
    return moment.date().isoformat()


def _iso(moment: Optional[datetime]) -> Optional[str]:
    return moment.isoformat() if moment else None


class DashboardApplicationService:
    """
    Application Service for the Dashboard context.

    Store totals (customers, orders) are global; campaign figures are
    scoped to the calling user.

    Raised exceptions:
        - ValidationError: invalid period
        - DatabaseError: persistence failure
    """

    def __init__(
        self,
        customers: CustomerRepository,
        orders: OrderRepository,
        campaigns: CampaignRepository,
    ):
        self._customers = customers
        self._orders = orders
        self._campaigns = campaigns

    async def stats(self, user_id: str) -> Dict[str, Any]:
        """Use Case: headline totals plus the latest customers and orders."""
        customers = await self._customers.newest(RECENT_ACTIVITY_SIZE)
        orders = await self._orders.latest(RECENT_ACTIVITY_SIZE)

        return {
            "totalCustomers": await self._customers.count(),
            "totalOrders": await self._orders.count(),
            "totalCampaigns": await self._campaigns.count_for_user(user_id),
            "campaignStats": await self._campaigns.delivery_totals_for_user(user_id),
            "recentActivity": {
                "customers": [
                    {
                        "name": customer.name,
                        "email": customer.email,
                        "createdAt": _iso(customer.created_at),
                        "totalSpends": customer.total_spends,
                    }
                    for customer in customers
                ],
                "orders": [
                    {
                        "customerEmail": order.customer_email,
                        "orderAmount": order.order_amount,
                        "orderDate": _iso(order.order_date),
                    }
                    for order in orders
                ],
            },
        }

    async def analytics(self, user_id: str, period: int = DEFAULT_PERIOD_DAYS) -> Dict[str, Any]:
        """
        Use Case: daily trends over the last `period` days.

        Days are UTC calendar days; days without activity are omitted.

        Raises:
            ValidationError: If the period is outside 1..MAX_PERIOD_DAYS.
        """
        if period < 1 or period > MAX_PERIOD_DAYS:
            raise ValidationError(
                f"period must be between 1 and {MAX_PERIOD_DAYS} days", {"period": period}
            )
        since = now_utc() - timedelta(days=period)

        growth = Counter(_day(created) for created in await self._customers.created_since(since))

        revenue: Dict[str, float] = defaultdict(float)
        order_counts: Counter = Counter()
        for order_date, amount in await self._orders.amounts_since(since):
            revenue[_day(order_date)] += amount
            order_counts[_day(order_date)] += 1

        top = await self._customers.top_spenders(TOP_CUSTOMERS_SIZE)
        campaigns = await self._campaigns.list_for_user(user_id, limit=CAMPAIGN_PERFORMANCE_SIZE)

        logger.debug(
            f"[DashboardApplicationService] Analytics over {period} days: "
            f"{sum(growth.values())} new customers, {sum(order_counts.values())} orders"
        )
        return {
            "customerGrowth": [{"date": day, "count": growth[day]} for day in sorted(growth)],
            "revenueTrends": [
                {"date": day, "revenue": revenue[day], "orders": order_counts[day]}
                for day in sorted(revenue)
            ],
            "topCustomers": [
                {
                    "name": customer.name,
                    "email": customer.email,
                    "totalSpends": customer.total_spends,
                    "visits": customer.visits,
                }
                for customer in top
            ],
            "campaignPerformance": [
                {
                    "name": campaign.name,
                    "audienceSize": campaign.audience_size,
                    "sentCount": campaign.sent_count,
                    "failedCount": campaign.failed_count,
                    "status": campaign.status.value,
                    "createdAt": _iso(campaign.created_at),
                }
                for campaign in campaigns
            ],
            "period": period,
        }


@lru_cache()
def get_dashboard_service() -> DashboardApplicationService:
    """
    Returns the DashboardApplicationService.

    For tests, build it with repositories over a fake client:
        service = DashboardApplicationService(
            CustomerRepository(fake_db), OrderRepository(fake_db), CampaignRepository(fake_db)
        )
    """
    return DashboardApplicationService(get_customer_repo(), get_order_repo(), get_campaign_repo())
