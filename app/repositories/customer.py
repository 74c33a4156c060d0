"""
Repository for customers.
"""

import logging
from typing import List, Optional, Tuple
from dataclasses import dataclass
from datetime import datetime

from app.core.exceptions import DatabaseError, ValidationError
from app.core.timezone import iso_utc, parse_datetime
from .base import BaseRepository, fetch_all

logger = logging.getLogger(__name__)


def _contains_pattern(term: str) -> str:
    """
    `%term%` as a quoted value for an `or=(...)` filter.

    LIKE wildcards in the term are escaped first, then the whole pattern
    is double-quoted so commas, dots and parentheses stay literal.
    """
    like = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    quoted = f"%{like}%".replace("\\", "\\\\").replace('"', '\\"')
    return f'"{quoted}"'


@dataclass
class Customer:
    """
    Customer entity.

    Mutated by order ingestion (spend, visits, last visit) and by direct
    upserts. Never deleted.
    """

    id: str
    email: str
    name: str = ""
    phone: Optional[str] = None
    total_spends: float = 0.0
    visits: int = 0
    last_visit: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Customer":
        """Creates a Customer from a database row."""
        return cls(
            id=str(data.get("id", "")),
            email=data.get("email", ""),
            name=data.get("name") or "",
            phone=data.get("phone"),
            total_spends=float(data.get("total_spends") or 0),
            visits=int(data.get("visits") or 0),
            last_visit=parse_datetime(data.get("last_visit")),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )

    def to_preview(self) -> dict:
        """Fields shown in audience previews."""
        return {
            "_id": self.id,
            "name": self.name,
            "email": self.email,
            "totalSpends": self.total_spends,
            "visits": self.visits,
            "lastVisit": self.last_visit.isoformat() if self.last_visit else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def to_dict(self) -> dict:
        """API representation."""
        data = self.to_preview()
        data["phone"] = self.phone
        data["updatedAt"] = self.updated_at.isoformat() if self.updated_at else None
        return data


class CustomerRepository(BaseRepository[Customer]):
    """
    Repository for Customer operations.

    Usage:
        repo = CustomerRepository(get_supabase_client())
        customer = await repo.get_by_email("ana@example.com")
    """

    @property
    def table_name(self) -> str:
        return "customers"

    async def get_by_email(self, email: str) -> Optional[Customer]:
        """
        Fetches a customer by email.

        Args:
            email: Email (normalised to lower case)
        """
        email_clean = (email or "").strip().lower()
        if not email_clean:
            return None
        try:
            response = (
                self.db.table(self.table_name).select("*").eq("email", email_clean).execute()
            )
            row = self._first(response)
            return Customer.from_dict(row) if row else None
        except Exception as e:
            logger.error(f"Error fetching customer by email: {e}")
            raise DatabaseError("Failed to fetch customer", original_error=e)

    async def search(
        self,
        page: int = 1,
        limit: int = 50,
        search: Optional[str] = None,
        min_spend: Optional[float] = None,
        max_spend: Optional[float] = None,
    ) -> Tuple[List[Customer], int]:
        """
        Lists customers, newest first.

        Args:
            page: 1-based page
            limit: Page size
            search: Case-insensitive match on name or email
            min_spend: Lower bound on total spends
            max_spend: Upper bound on total spends

        Returns:
            (customers, total matching)
        """
        offset = max(page - 1, 0) * limit
        try:
            query = self.db.table(self.table_name).select("*", count="exact")
            if search and search.strip():
                pattern = _contains_pattern(search.strip())
                query = query.or_(f"name.ilike.{pattern},email.ilike.{pattern}")
            if min_spend is not None:
                query = query.gte("total_spends", min_spend)
            if max_spend is not None:
                query = query.lte("total_spends", max_spend)

            response = (
                query.order("created_at", desc=True)
                .range(offset, offset + limit - 1)
                .execute()
            )
            customers = [Customer.from_dict(row) for row in response.data or []]
            return customers, response.count or 0
        except Exception as e:
            logger.error(f"Error listing customers: {e}")
            return [], 0

    async def create(self, data: dict) -> Customer:
        """Creates a customer."""
        now = iso_utc()
        row = {
            "name": data.get("name"),
            "email": data["email"].strip().lower(),
            "phone": data.get("phone"),
            "total_spends": data.get("total_spends") or 0,
            "visits": data.get("visits") or 0,
            "last_visit": data.get("last_visit") or now,
            "created_at": now,
            "updated_at": now,
        }
        stored = self._insert(row)
        logger.info(f"Customer created: {stored.get('id')}")
        return Customer.from_dict(stored)

    async def update(self, id: str, data: dict) -> Optional[Customer]:
        """Updates a customer."""
        data = {**data, "updated_at": iso_utc()}
        try:
            response = self.db.table(self.table_name).update(data).eq("id", id).execute()
        except Exception as e:
            raise DatabaseError(f"Failed to update customer {id}", original_error=e)
        row = self._first(response)
        return Customer.from_dict(row) if row else None

    # Business operations

    async def upsert(self, data: dict) -> Tuple[str, Customer]:
        """
        Creates the customer or updates the one with the same email.

        On update, only the provided (truthy) fields replace stored values.

        Returns:
            ("created" | "updated", customer)

        Raises:
            ValidationError: If a new customer has no name
        """
        existing = await self.get_by_email(data["email"])
        if not existing:
            if not data.get("name"):
                raise ValidationError("name is required for new customers")
            return "created", await self.create(data)

        changes = {
            key: value
            for key, value in {
                "name": data.get("name"),
                "phone": data.get("phone"),
                "total_spends": data.get("total_spends"),
                "visits": data.get("visits"),
                "last_visit": data.get("last_visit"),
            }.items()
            if value
        }
        updated = await self.update(existing.id, changes)
        if not updated:
            raise DatabaseError(f"Customer {existing.id} disappeared during update")
        return "updated", updated

    async def record_order(
        self, customer: Customer, amount: float, order_date: datetime
    ) -> Optional[Customer]:
        """Adds an order to the customer's spend, visits and last visit."""
        return await self.update(
            customer.id,
            {
                "total_spends": customer.total_spends + amount,
                "visits": customer.visits + 1,
                "last_visit": iso_utc(order_date),
            },
        )

    async def stats(self) -> dict:
        """Customer totals for the dashboard."""
        try:
            rows = fetch_all(
                lambda: self.db.table(self.table_name).select("id,total_spends,visits").order("id")
            )
        except Exception as e:
            logger.error(f"Error computing customer stats: {e}")
            raise DatabaseError("Failed to compute customer stats", original_error=e)

        total_spends = sum(float(row.get("total_spends") or 0) for row in rows)
        return {
            "total": len(rows),
            "totalSpends": total_spends,
            "averageSpends": total_spends / len(rows) if rows else 0,
            "totalVisits": sum(int(row.get("visits") or 0) for row in rows),
        }

    # Dashboard reads

    async def count(self) -> int:
        try:
            response = self.db.table(self.table_name).select("id", count="exact").limit(1).execute()
        except Exception as e:
            logger.error(f"Error counting customers: {e}")
            raise DatabaseError("Failed to count customers", original_error=e)
        return response.count or 0

    async def newest(self, limit: int = 5) -> List[Customer]:
        """Most recently created customers."""
        return self._list_ordered("created_at", limit)

    async def top_spenders(self, limit: int = 10) -> List[Customer]:
        """Customers with the highest total spends."""
        return self._list_ordered("total_spends", limit)

    def _list_ordered(self, column: str, limit: int) -> List[Customer]:
        try:
            response = (
                self.db.table(self.table_name)
                .select("*")
                .order(column, desc=True)
                .order("id")
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error listing customers by {column}: {e}")
            raise DatabaseError("Failed to list customers", original_error=e)
        return [Customer.from_dict(row) for row in response.data or []]

    async def created_since(self, since: datetime) -> List[datetime]:
        """Creation time of every customer created at or after `since`."""
        try:
            rows = fetch_all(
                lambda: self.db.table(self.table_name)
                .select("id,created_at")
                .gte("created_at", iso_utc(since))
                .order("created_at")
                .order("id")
            )
        except Exception as e:
            logger.error(f"Error listing new customers: {e}")
            raise DatabaseError("Failed to list new customers", original_error=e)
        return [
            created for created in (parse_datetime(row.get("created_at")) for row in rows)
            if created is not None
        ]
