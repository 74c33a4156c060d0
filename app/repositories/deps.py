"""
Dependency injection for repositories.

Provides dependency functions for FastAPI Depends.

Usage in endpoints:
    from app.repositories.deps import get_customer_repo
    from app.repositories.customer import CustomerRepository

    @router.get("/customers/lookup")
    async def lookup_customer(
        email: str,
        repo: CustomerRepository = Depends(get_customer_repo)
    ):
        return await repo.get_by_email(email)

In tests, build repositories directly:
    repo = CustomerRepository(FakeSupabase())
"""
from functools import lru_cache

from app.services.campaigns.repository import CampaignRepository, CommunicationLogRepository
from app.services.supabase import get_supabase_client
from .customer import CustomerRepository
from .order import OrderRepository


@lru_cache()
def get_customer_repo() -> CustomerRepository:
    """Singleton CustomerRepository bound to the Supabase client."""
    return CustomerRepository(get_supabase_client())


@lru_cache()
def get_order_repo() -> OrderRepository:
    """Singleton OrderRepository bound to the Supabase client."""
    return OrderRepository(get_supabase_client())


@lru_cache()
def get_campaign_repo() -> CampaignRepository:
    return CampaignRepository(get_supabase_client())


@lru_cache()
def get_log_repo() -> CommunicationLogRepository:
    return CommunicationLogRepository(get_supabase_client())

