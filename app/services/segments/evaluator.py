"""
Segment evaluator.

Runs a compiled predicate against the customers table and returns the
matching population size plus a small, stably ordered sample.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from app.core.config import settings
from app.core.exceptions import DatabaseError
from app.repositories.base import fetch_all
from app.repositories.customer import Customer
from app.services.segments.compiler import Predicate

logger = logging.getLogger(__name__)


@dataclass
class SegmentResult:
    """Count and sample of a segment."""

    count: int
    sample: List[Customer] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "preview": [customer.to_preview() for customer in self.sample],
        }


class SegmentEvaluator:
    """Evaluates predicates against the customer store. Read-only."""

    TABLE = "customers"
    PREVIEW_COLUMNS = "id,name,email,total_spends,visits,last_visit,created_at"

    def __init__(self, db_client: Any, sample_size: Optional[int] = None):
        self.db = db_client
        self.sample_size = sample_size if sample_size is not None else settings.PREVIEW_SAMPLE_SIZE

    def _ordered(self, query):
        return query.order("created_at", desc=True).order("id")

    async def count(self, predicate: Predicate) -> int:
        """Number of customers matching the predicate."""
        try:
            query = self.db.table(self.TABLE).select("id", count="exact")
            response = predicate.apply(query).execute()
            return response.count or 0
        except Exception as e:
            logger.error(f"Error counting segment {predicate.to_dict()}: {e}")
            raise DatabaseError("Failed to count segment", original_error=e)

    async def evaluate(self, predicate: Predicate) -> SegmentResult:
        """
        Counts the segment and fetches a preview sample.

        Sample order: newest customers first, ties broken by id.

        Raises:
            DatabaseError: If the store cannot be queried
        """
        total = await self.count(predicate)
        if total == 0 or self.sample_size <= 0:
            return SegmentResult(count=total)

        try:
            query = self.db.table(self.TABLE).select(self.PREVIEW_COLUMNS)
            response = self._ordered(predicate.apply(query)).limit(self.sample_size).execute()
        except Exception as e:
            logger.error(f"Error sampling segment {predicate.to_dict()}: {e}")
            raise DatabaseError("Failed to preview segment", original_error=e)

        sample = [Customer.from_dict(row) for row in (response.data or [])]
        logger.debug(f"Segment {predicate.to_dict()}: {total} customers")
        return SegmentResult(count=total, sample=sample)

    async def fetch_recipients(self, predicate: Predicate, limit: int) -> List[Customer]:
        """
        Matching customers for dispatch, in the same order as the preview.

        Args:
            predicate: Compiled audience predicate
            limit: Maximum number of recipients; read page by page
        """
        if limit <= 0:
            return []
        limit = min(limit, settings.MAX_RECIPIENTS_PER_CAMPAIGN)
        try:
            rows = fetch_all(
                lambda: self._ordered(predicate.apply(self.db.table(self.TABLE).select("*"))),
                limit=limit,
            )
        except Exception as e:
            logger.error(f"Error fetching recipients: {e}")
            raise DatabaseError("Failed to fetch recipients", original_error=e)
        return [Customer.from_dict(row) for row in rows]
