"""
Base Repository - common interface for all repositories.

Repositories receive the database client by injection so business logic
can be tested against an in-memory fake instead of patched imports.
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, List, Optional, TypeVar

from app.core.exceptions import DatabaseError

# Entity type
T = TypeVar('T')

# PostgREST answers at most `max-rows` rows per request (1000 on Supabase)
PAGE_SIZE = 1000


def fetch_all(
    build_query: Callable[[], Any],
    limit: Optional[int] = None,
    page_size: int = PAGE_SIZE,
) -> List[dict]:
    """
    Reads every row of a query, one `.range()` page at a time.

    Args:
        build_query: Returns a fresh, filtered and ordered query builder;
            called once per page since builders are mutable
        limit: Maximum number of rows (default: all)
        page_size: Rows per request, at most the server's max-rows

    Raises:
        Whatever the client raises; callers map it to DatabaseError.
    """
    rows: List[dict] = []
    while limit is None or len(rows) < limit:
        size = page_size if limit is None else min(page_size, limit - len(rows))
        start = len(rows)
        page = build_query().range(start, start + size - 1).execute().data or []
        rows.extend(page)
        if len(page) < size:
            break
    return rows


class BaseRepository(ABC, Generic[T]):
    """
    Interface for repositories.

    Attributes:
        db: Database client (Supabase or a test fake)
        table_name: Table name

    Example:
        class CustomerRepository(BaseRepository[Customer]):
            @property
            def table_name(self) -> str:
                return "customers"
    """

    def __init__(self, db_client: Any):
        """
        Args:
            db_client: Database client (Supabase, fake, etc.)
        """
        self.db = db_client

    @property
    @abstractmethod
    def table_name(self) -> str:
        """Table name."""
        pass

    @abstractmethod
    async def create(self, data: dict) -> T:
        """
        Creates an entity.

        Raises:
            DatabaseError: If the insert fails
        """
        pass

    # Default helpers

    def _first(self, response) -> Optional[dict]:
        data = response.data
        if isinstance(data, list):
            return data[0] if data else None
        return data or None

    def _insert(self, row: dict) -> dict:
        """Inserts a row and returns it as stored."""
        try:
            response = self.db.table(self.table_name).insert(row).execute()
        except Exception as e:
            raise DatabaseError(f"Failed to insert into {self.table_name}", original_error=e)
        stored = self._first(response)
        if not stored:
            raise DatabaseError(f"Insert into {self.table_name} returned no data")
        return stored
