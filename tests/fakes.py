"""
In-memory fakes for the Supabase query chain and the delivery marker.

FakeSupabase implements the subset of the PostgREST builder the
repositories use, with SQL semantics for NULL (a NULL column never
satisfies a comparison).

Usage:
    db = FakeSupabase({"customers": [{"id": "c1", "email": "a@x.com"}]})
    repo = CustomerRepository(db)
"""
import copy
import re
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from app.core.timezone import iso_utc, now_utc, parse_datetime


class FakeResponse:
    def __init__(self, data: List[dict], count: Optional[int] = None):
        self.data = data
        self.count = count


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return parse_datetime(value)
    if isinstance(value, str) and len(value) >= 10 and value[4:5] == "-":
        return parse_datetime(value)
    return None


def _comparable(stored: Any, value: Any):
    """Pair of comparable values, or None when the stored value is NULL."""
    if stored is None or value is None:
        return None
    stored_dt, value_dt = _as_datetime(stored), _as_datetime(value)
    if stored_dt is not None and value_dt is not None:
        return stored_dt, value_dt
    try:
        return float(stored), float(value)
    except (TypeError, ValueError):
        return str(stored), str(value)


def _like_regex(pattern: str) -> "re.Pattern":
    """LIKE pattern (% and _ wildcards, backslash escapes) to a regex."""
    parts = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\" and i + 1 < len(pattern):
            parts.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if char in ("%", "*"):
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
        i += 1
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE | re.DOTALL)


def _make_filter(column: str, op: str, value: Any) -> Callable[[dict], bool]:
    def check(row: dict) -> bool:
        stored = row.get(column)
        if op == "is":
            return stored is None if value in (None, "null") else stored == value
        if op == "in":
            return stored is not None and str(stored) in {str(v) for v in value}
        if op == "ilike":
            return stored is not None and bool(_like_regex(value).match(str(stored)))
        pair = _comparable(stored, value)
        if pair is None:
            return False
        left, right = pair
        return {
            "eq": left == right,
            "neq": left != right,
            "gt": left > right,
            "gte": left >= right,
            "lt": left < right,
            "lte": left <= right,
        }[op]
    return check


def _split_or(expression: str) -> List[str]:
    """Splits on commas outside double quotes."""
    parts, current, quoted, escaped = [], [], False, False
    for char in expression:
        if escaped:
            current.append(char)
            escaped = False
        elif char == "\\":
            current.append(char)
            escaped = True
        elif char == '"':
            current.append(char)
            quoted = not quoted
        elif char == "," and not quoted:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return parts


def _unquote(value: str) -> str:
    """Strips PostgREST double quotes; `\\"` and `\\\\` inside them are literal."""
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return re.sub(r'\\(["\\])', r"\1", value[1:-1])
    return value


class _Negated:
    """`query.not_` proxy."""

    def __init__(self, query: "FakeQuery"):
        self._query = query

    def _negate(self, column: str, op: str, value: Any) -> "FakeQuery":
        positive = _make_filter(column, op, value)
        # NOT over NULL is still NULL
        self._query._filters.append(lambda row: row.get(column) is not None and not positive(row))
        return self._query

    def ilike(self, column: str, pattern: str) -> "FakeQuery":
        return self._negate(column, "ilike", pattern)

    def eq(self, column: str, value: Any) -> "FakeQuery":
        return self._negate(column, "eq", value)


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self._db = db
        self._table = table
        self._action = "select"
        self._columns = "*"
        self._count: Optional[str] = None
        self._payload: Any = None
        self._filters: List[Callable[[dict], bool]] = []
        self._orders: List[tuple] = []
        self._limit: Optional[int] = None
        self._range: Optional[tuple] = None

    # Actions

    def select(self, columns: str = "*", count: Optional[str] = None) -> "FakeQuery":
        self._action = "select"
        self._columns = columns
        self._count = count
        return self

    def insert(self, rows: Any) -> "FakeQuery":
        self._action = "insert"
        self._payload = rows
        return self

    def update(self, data: dict) -> "FakeQuery":
        self._action = "update"
        self._payload = data
        return self

    # Filters

    def _add(self, column: str, op: str, value: Any) -> "FakeQuery":
        self._filters.append(_make_filter(column, op, value))
        return self

    def eq(self, column, value):
        return self._add(column, "eq", value)

    def neq(self, column, value):
        return self._add(column, "neq", value)

    def gt(self, column, value):
        return self._add(column, "gt", value)

    def gte(self, column, value):
        return self._add(column, "gte", value)

    def lt(self, column, value):
        return self._add(column, "lt", value)

    def lte(self, column, value):
        return self._add(column, "lte", value)

    def ilike(self, column, pattern):
        return self._add(column, "ilike", pattern)

    def in_(self, column, values: Iterable[Any]):
        return self._add(column, "in", list(values))

    @property
    def not_(self) -> _Negated:
        return _Negated(self)

    def or_(self, expression: str) -> "FakeQuery":
        """`col.op.value,col.op."quoted, value"` (PostgREST logic tree, one level)."""
        checks = []
        for part in _split_or(expression):
            column, op, value = part.strip().split(".", 2)
            checks.append(_make_filter(column, op, _unquote(value)))
        self._filters.append(lambda row: any(check(row) for check in checks))
        return self

    # Modifiers

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._orders.append((column, desc))
        return self

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self._range = (start, end)
        return self

    # Execution

    def _matching(self) -> List[dict]:
        rows = self._db.tables.setdefault(self._table, [])
        return [row for row in rows if all(check(row) for check in self._filters)]

    def _sorted(self, rows: List[dict]) -> List[dict]:
        for column, desc in reversed(self._orders):
            present = [row for row in rows if row.get(column) is not None]
            missing = [row for row in rows if row.get(column) is None]

            def key(row, column=column):
                value = row[column]
                return _as_datetime(value) or value

            rows = sorted(present, key=key, reverse=desc) + missing
        return rows

    def _project(self, row: dict) -> dict:
        if self._columns.strip() == "*":
            return copy.deepcopy(row)
        columns = [c.strip() for c in self._columns.split(",")]
        return {c: copy.deepcopy(row.get(c)) for c in columns}

    def execute(self) -> FakeResponse:
        if self._table in self._db.failing_tables:
            raise Exception("Database error")
        self._db.executed.append((self._table, self._action))

        if self._action == "insert":
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            stored = []
            for row in payload:
                row = copy.deepcopy(row)
                row.setdefault("id", str(uuid.uuid4()))
                self._db.tables.setdefault(self._table, []).append(row)
                stored.append(copy.deepcopy(row))
            return FakeResponse(stored)

        if self._action == "update":
            updated = []
            for row in self._matching():
                row.update(copy.deepcopy(self._payload))
                updated.append(copy.deepcopy(row))
            return FakeResponse(updated)

        rows = self._sorted(self._matching())
        total = len(rows) if self._count else None
        if self._range is not None:
            start, end = self._range
            rows = rows[start:end + 1]
        if self._limit is not None:
            rows = rows[:self._limit]
        if self._db.max_rows is not None:
            rows = rows[:self._db.max_rows]
        return FakeResponse([self._project(row) for row in rows], total)


class FakeSupabase:
    """
    In-memory Supabase client.

    Args:
        tables: Initial rows per table (copied)
        failing_tables: Tables whose queries raise on execute
        max_rows: Server-side cap on rows per response, like PostgREST `max-rows`
    """

    def __init__(
        self,
        tables: Optional[Dict[str, List[dict]]] = None,
        failing_tables: Iterable[str] = (),
        max_rows: Optional[int] = None,
    ):
        self.tables: Dict[str, List[dict]] = copy.deepcopy(tables or {})
        self.failing_tables = set(failing_tables)
        self.max_rows = max_rows
        self.executed: List[tuple] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, name: str) -> List[dict]:
        return self.tables.get(name, [])

    def row(self, name: str, id: str) -> Optional[dict]:
        for row in self.rows(name):
            if str(row.get("id")) == str(id):
                return row
        return None


class FakeLock:
    """Delivery marker backed by a shared set of held keys."""

    def __init__(self, key: str, held: set):
        self.key = f"lock:{key}"
        self._held = held
        self._acquired = False
        self._expired = False
        self.refreshes = 0

    @property
    def acquired(self) -> bool:
        return self._acquired

    async def acquire(self) -> bool:
        if self.key in self._held:
            return False
        self._held.add(self.key)
        self._acquired = True
        return True

    async def release(self) -> bool:
        if self._acquired and not self._expired:
            self._held.discard(self.key)
        self._acquired = False
        return True

    async def refresh(self, ttl=None) -> bool:
        if not self._acquired or self._expired:
            return False
        self.refreshes += 1
        return True

    def expire(self) -> None:
        """TTL ran out: the key is free and this owner can no longer refresh it."""
        self._expired = True
        self._held.discard(self.key)

    async def is_locked(self) -> bool:
        return self.key in self._held


class LockFactory:
    """Builds FakeLocks sharing one set of held keys."""

    def __init__(self):
        self.held: set = set()
        self.requested: List[str] = []
        self.created: List[FakeLock] = []

    def __call__(self, key: str) -> FakeLock:
        self.requested.append(key)
        lock = FakeLock(key, self.held)
        self.created.append(lock)
        return lock


async def no_sleep(seconds: float) -> None:
    return None


def customer_row(
    id: str,
    name: str,
    email: str,
    total_spends: float = 0,
    visits: int = 0,
    last_visit_days: Optional[int] = 0,
    created_days: int = 0,
) -> dict:
    """Customer table row with dates relative to now."""
    now = now_utc()
    return {
        "id": id,
        "name": name,
        "email": email,
        "phone": None,
        "total_spends": total_spends,
        "visits": visits,
        "last_visit": iso_utc(now - timedelta(days=last_visit_days))
        if last_visit_days is not None else None,
        "created_at": iso_utc(now - timedelta(days=created_days)),
        "updated_at": iso_utc(now),
    }
