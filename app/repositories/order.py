"""
Repository for orders.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from app.core.exceptions import DatabaseError
from app.core.timezone import iso_utc, parse_datetime
from .base import BaseRepository, fetch_all

logger = logging.getLogger(__name__)


class OrderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


@dataclass
class Order:
    """Order entity."""

    id: str
    customer_id: str
    customer_email: str
    order_amount: float
    order_date: Optional[datetime] = None
    status: OrderStatus = OrderStatus.COMPLETED
    products: List[dict] = field(default_factory=list)
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Order":
        """Creates an Order from a database row."""
        try:
            status = OrderStatus(data.get("status", "completed"))
        except ValueError:
            status = OrderStatus.COMPLETED

        return cls(
            id=str(data.get("id", "")),
            customer_id=str(data.get("customer_id", "")),
            customer_email=data.get("customer_email", ""),
            order_amount=float(data.get("order_amount") or 0),
            order_date=parse_datetime(data.get("order_date")),
            status=status,
            products=data.get("products") or [],
            created_at=parse_datetime(data.get("created_at")),
        )

    def to_dict(self) -> dict:
        """API representation."""
        return {
            "_id": self.id,
            "customerId": self.customer_id,
            "customerEmail": self.customer_email,
            "orderAmount": self.order_amount,
            "orderDate": self.order_date.isoformat() if self.order_date else None,
            "status": self.status.value,
            "products": self.products,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class OrderRepository(BaseRepository[Order]):
    """Repository for Order operations."""

    @property
    def table_name(self) -> str:
        return "orders"

    async def create(self, data: dict) -> Order:
        """Creates an order."""
        row = {**data, "created_at": iso_utc()}
        stored = self._insert(row)
        logger.info(f"Order created: {stored.get('id')}")
        return Order.from_dict(stored)

    async def search(
        self,
        page: int = 1,
        limit: int = 50,
        customer_email: Optional[str] = None,
    ) -> Tuple[List[Order], int]:
        """
        Lists orders, most recent order date first.

        Returns:
            (orders, total matching)
        """
        offset = max(page - 1, 0) * limit
        try:
            query = self.db.table(self.table_name).select("*", count="exact")
            if customer_email:
                query = query.eq("customer_email", customer_email.strip().lower())
            response = (
                query.order("order_date", desc=True)
                .range(offset, offset + limit - 1)
                .execute()
            )
            return [Order.from_dict(row) for row in response.data or []], response.count or 0
        except Exception as e:
            logger.error(f"Error listing orders: {e}")
            return [], 0

    async def stats(self) -> dict:
        """Order totals for the dashboard."""
        try:
            rows = fetch_all(
                lambda: self.db.table(self.table_name).select("id,order_amount").order("id")
            )
        except Exception as e:
            logger.error(f"Error computing order stats: {e}")
            raise DatabaseError("Failed to compute order stats", original_error=e)

        revenue = sum(float(row.get("order_amount") or 0) for row in rows)
        return {
            "total": len(rows),
            "totalRevenue": revenue,
            "averageOrderValue": revenue / len(rows) if rows else 0,
        }

    async def count(self) -> int:
        try:
            response = self.db.table(self.table_name).select("id", count="exact").limit(1).execute()
        except Exception as e:
            logger.error(f"Error counting orders: {e}")
            raise DatabaseError("Failed to count orders", original_error=e)
        return response.count or 0

    async def latest(self, limit: int = 5) -> List[Order]:
        """Most recent orders by order date."""
        try:
            response = (
                self.db.table(self.table_name)
                .select("*")
                .order("order_date", desc=True)
                .order("id")
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error listing latest orders: {e}")
            raise DatabaseError("Failed to list latest orders", original_error=e)
        return [Order.from_dict(row) for row in response.data or []]

    async def amounts_since(self, since: datetime) -> List[Tuple[datetime, float]]:
        """(order date, amount) of every order placed at or after `since`."""
        try:
            rows = fetch_all(
                lambda: self.db.table(self.table_name)
                .select("id,order_date,order_amount")
                .gte("order_date", iso_utc(since))
                .order("order_date")
                .order("id")
            )
        except Exception as e:
            logger.error(f"Error listing recent orders: {e}")
            raise DatabaseError("Failed to list recent orders", original_error=e)

        amounts = []
        for row in rows:
            order_date = parse_datetime(row.get("order_date"))
            if order_date is not None:
                amounts.append((order_date, float(row.get("order_amount") or 0)))
        return amounts
