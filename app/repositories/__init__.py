"""
Repositories - data access layer.

Decouples business logic from the database. Repositories receive the
database client by injection, so tests run against an in-memory fake
without patching imports.

Usage with dependency injection:
    from fastapi import Depends
    from app.repositories import CustomerRepository
    from app.repositories.deps import get_customer_repo

    @router.get("/customers/lookup")
    async def lookup_customer(
        email: str,
        repo: CustomerRepository = Depends(get_customer_repo)
    ):
        return await repo.get_by_email(email)

Entities:
- Customer: a shopper that campaigns target
- Order: a purchase; ingesting one updates the customer's spend and visits
"""

from .base import BaseRepository
from .customer import CustomerRepository, Customer
from .order import OrderRepository, Order, OrderStatus

__all__ = [
    # Base
    "BaseRepository",
    # Customer
    "CustomerRepository",
    "Customer",
    # Order
    "OrderRepository",
    "Order",
    "OrderStatus",
]
