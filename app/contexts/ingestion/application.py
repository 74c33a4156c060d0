"""
Application Service of the Bounded Context: Data Ingestion

Bulk loads customers and orders. Each record is processed on its own:
a bad record produces an error entry in the results and the batch
carries on.

IMPORTANT: this module raises domain exceptions (app.core.exceptions),
NEVER HTTP exceptions.
"""

import logging
import math
from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as SchemaValidationError

from app.core.exceptions import CampaignsException, ValidationError
from app.core.timezone import iso_utc, now_utc
from app.repositories.customer import CustomerRepository
from app.repositories.deps import get_customer_repo, get_order_repo
from app.repositories.order import OrderRepository
from app.schemas.ingestion import CustomerInput, OrderInput

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 500


def _as_records(payload: Any) -> List[Any]:
    """A single object or an array of objects."""
    return payload if isinstance(payload, list) else [payload]


def _schema_error(error: SchemaValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    )


def _summary(total: int, results: List[Dict[str, Any]]) -> Dict[str, int]:
    return {
        "total": total,
        "created": sum(1 for r in results if r["status"] == "created"),
        "updated": sum(1 for r in results if r["status"] == "updated"),
        "errors": sum(1 for r in results if r["status"] == "error"),
    }


def _pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "current": page,
        "pages": math.ceil(total / limit) if limit else 0,
        "total": total,
        "limit": limit,
    }


class IngestionApplicationService:
    """
    Application Service for the Data Ingestion context.

    Raised exceptions:
        - ValidationError: invalid pagination
        - DatabaseError: store-wide failures (stats)
    """

    def __init__(self, customers: CustomerRepository, orders: OrderRepository):
        self._customers = customers
        self._orders = orders

    # Customers

    async def ingest_customers(self, payload: Any) -> Dict[str, Any]:
        """
        Use Case: create or update customers, matched by email.

        Returns:
            {success, message, results[{status, customer|email,error}], summary}
        """
        records = _as_records(payload)
        results = [await self._ingest_customer(raw) for raw in records]
        summary = _summary(len(records), results)
        logger.info(f"[IngestionApplicationService] Customers processed: {summary}")
        return {
            "success": True,
            "message": f"Processed {len(records)} customer(s)",
            "results": results,
            "summary": summary,
        }

    async def _ingest_customer(self, raw: Any) -> Dict[str, Any]:
        email = raw.get("email") if isinstance(raw, dict) else None
        try:
            data = CustomerInput.model_validate(raw)
            status, customer = await self._customers.upsert({
                "email": data.email,
                "name": data.name,
                "phone": data.phone,
                "total_spends": data.total_spends,
                "visits": data.visits,
                "last_visit": iso_utc(data.last_visit) if data.last_visit else None,
            })
            return {"status": status, "customer": customer.to_dict()}
        except SchemaValidationError as e:
            return {"status": "error", "email": email, "error": _schema_error(e)}
        except CampaignsException as e:
            logger.warning(f"Customer {email} rejected: {e.message}")
            return {"status": "error", "email": email, "error": e.message}

    async def list_customers(
        self,
        page: int = 1,
        limit: int = 50,
        search: Optional[str] = None,
        min_spend: Optional[float] = None,
        max_spend: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Use Case: customers, newest first, with search and spend range."""
        self._check_page(page, limit)
        customers, total = await self._customers.search(
            page=page, limit=limit, search=search, min_spend=min_spend, max_spend=max_spend
        )
        return {
            "customers": [customer.to_dict() for customer in customers],
            "pagination": _pagination(page, limit, total),
        }

    # Orders

    async def ingest_orders(self, payload: Any) -> Dict[str, Any]:
        """
        Use Case: record orders for existing customers.

        Each order adds its amount to the customer's total spends, counts
        one visit and moves the last visit to the order date.
        """
        records = _as_records(payload)
        results = [await self._ingest_order(raw) for raw in records]
        summary = _summary(len(records), results)
        logger.info(f"[IngestionApplicationService] Orders processed: {summary}")
        return {
            "success": True,
            "message": f"Processed {len(records)} order(s)",
            "results": results,
            "summary": summary,
        }

    async def _ingest_order(self, raw: Any) -> Dict[str, Any]:
        email = raw.get("customerEmail") if isinstance(raw, dict) else None
        try:
            data = OrderInput.model_validate(raw)
            customer = await self._customers.get_by_email(data.customer_email)
            if not customer:
                return {"status": "error", "customerEmail": email, "error": "Customer not found"}

            order_date = data.order_date or now_utc()
            order = await self._orders.create({
                "customer_id": customer.id,
                "customer_email": data.customer_email,
                "order_amount": data.order_amount,
                "order_date": iso_utc(order_date),
                "status": data.status.value,
                "products": [product.model_dump() for product in data.products],
            })
            await self._customers.record_order(customer, data.order_amount, order_date)
            return {"status": "created", "order": order.to_dict()}
        except SchemaValidationError as e:
            return {"status": "error", "customerEmail": email, "error": _schema_error(e)}
        except CampaignsException as e:
            logger.warning(f"Order for {email} rejected: {e.message}")
            return {"status": "error", "customerEmail": email, "error": e.message}

    async def list_orders(
        self, page: int = 1, limit: int = 50, customer_email: Optional[str] = None
    ) -> Dict[str, Any]:
        """Use Case: orders, most recent first."""
        self._check_page(page, limit)
        orders, total = await self._orders.search(
            page=page, limit=limit, customer_email=customer_email
        )
        return {
            "orders": [order.to_dict() for order in orders],
            "pagination": _pagination(page, limit, total),
        }

    # Stats

    async def stats(self) -> Dict[str, Any]:
        """Use Case: store-wide customer and order totals."""
        return {
            "customers": await self._customers.stats(),
            "orders": await self._orders.stats(),
        }

    @staticmethod
    def _check_page(page: int, limit: int) -> None:
        if page < 1 or limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(
                f"page must be >= 1 and limit between 1 and {MAX_PAGE_SIZE}",
                {"page": page, "limit": limit},
            )


@lru_cache()
def get_ingestion_service() -> IngestionApplicationService:
    """
    Returns the IngestionApplicationService.

    For tests, build it with repositories over a fake client:
        service = IngestionApplicationService(
            CustomerRepository(fake_db), OrderRepository(fake_db)
        )
    """
    return IngestionApplicationService(get_customer_repo(), get_order_repo())
