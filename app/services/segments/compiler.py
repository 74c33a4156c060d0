"""
Rule compiler.

Turns an ordered list of audience rules into a single predicate over a
customer record.

Grouping: scanning left to right, rules joined by AND accumulate in the
current group and an OR closes it and opens a new one. The predicate is
the conjunction of the groups, including groups opened by OR. This is the
long-standing segment behaviour and callers depend on it: `A OR B`
still requires both A and B.

Every predicate node can:
- `matches(customer)`: evaluate a customer row in memory
- `apply(query)`: add its filters to a PostgREST query builder
- `to_dict()`: render a Mongo-style document for logs and previews
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from app.core.exceptions import ValidationError
from app.core.timezone import TZ_UTC, iso_utc, now_utc, parse_datetime, to_utc
from app.services.segments.rules import (
    ComparisonOperator,
    FieldKind,
    LogicalOperator,
    Rule,
    RuleField,
    TextOperator,
    parse_rules,
)

logger = logging.getLogger(__name__)

DATE_WINDOW = timedelta(days=1)

# Thresholds stay one window inside the datetime range so `=` bounds never overflow
EARLIEST_THRESHOLD = datetime.min.replace(tzinfo=TZ_UTC) + DATE_WINDOW
LATEST_THRESHOLD = datetime.max.replace(tzinfo=TZ_UTC) - DATE_WINDOW


def _parse_number(value: str) -> float:
    """parseFloat-like: leading numeric prefix, anything else is 0."""
    text = (value or "").strip()
    end = len(text)
    while end > 0:
        try:
            number = float(text[:end])
        except ValueError:
            end -= 1
            continue
        return number if math.isfinite(number) else 0.0
    return 0.0


def _parse_int(value: str) -> int:
    """parseInt-like: leading integer prefix, anything else is 0."""
    text = (value or "").strip()
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    digits = ""
    for char in text:
        if not char.isdigit():
            break
        digits += char
    return sign * int(digits) if digits else 0


def _days_before(now: datetime, days: int) -> datetime:
    """`now - days`, clamped to the representable range."""
    try:
        threshold = now - timedelta(days=days)
    except OverflowError:
        return EARLIEST_THRESHOLD if days > 0 else LATEST_THRESHOLD
    return min(max(threshold, EARLIEST_THRESHOLD), LATEST_THRESHOLD)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _require_kind(field: RuleField, kind: FieldKind) -> None:
    if field.kind != kind:
        raise ValidationError(
            f"Field '{field.value}' is not a {kind.value} field",
            details={"field": field.value},
        )


class Predicate:
    """Boolean expression over a customer record."""

    def matches(self, customer: dict) -> bool:
        raise NotImplementedError

    def apply(self, query):
        raise NotImplementedError

    def to_dict(self) -> dict:
        raise NotImplementedError


@dataclass(frozen=True)
class MatchAll(Predicate):
    """Predicate of an empty rule list."""

    def matches(self, customer: dict) -> bool:
        return True

    def apply(self, query):
        return query

    def to_dict(self) -> dict:
        return {}


@dataclass(frozen=True)
class NumericCondition(Predicate):
    field: RuleField
    operator: ComparisonOperator
    value: float

    def __post_init__(self):
        _require_kind(self.field, FieldKind.NUMERIC)
        if not isinstance(self.operator, ComparisonOperator):
            raise ValidationError(f"Invalid numeric operator: {self.operator}")

    def matches(self, customer: dict) -> bool:
        stored = customer.get(self.field.column)
        if stored is None:
            # Missing values only satisfy "not equal"
            return self.operator == ComparisonOperator.NEQ
        stored = float(stored)
        op = self.operator
        if op == ComparisonOperator.GT:
            return stored > self.value
        if op == ComparisonOperator.LT:
            return stored < self.value
        if op == ComparisonOperator.GTE:
            return stored >= self.value
        if op == ComparisonOperator.LTE:
            return stored <= self.value
        if op == ComparisonOperator.NEQ:
            return stored != self.value
        return stored == self.value

    def apply(self, query):
        column = self.field.column
        op = self.operator
        if op == ComparisonOperator.GT:
            return query.gt(column, self.value)
        if op == ComparisonOperator.LT:
            return query.lt(column, self.value)
        if op == ComparisonOperator.GTE:
            return query.gte(column, self.value)
        if op == ComparisonOperator.LTE:
            return query.lte(column, self.value)
        if op == ComparisonOperator.NEQ:
            return query.neq(column, self.value)
        return query.eq(column, self.value)

    def to_dict(self) -> dict:
        mongo = {
            ComparisonOperator.GT: "$gt",
            ComparisonOperator.LT: "$lt",
            ComparisonOperator.GTE: "$gte",
            ComparisonOperator.LTE: "$lte",
            ComparisonOperator.EQ: "$eq",
            ComparisonOperator.NEQ: "$ne",
        }[self.operator]
        return {self.field.value: {mongo: self.value}}


@dataclass(frozen=True)
class RelativeDateCondition(Predicate):
    """
    "N days ago" condition.

    Operators read as "more/less than N days ago", so they compare the
    stored timestamp against `threshold = now - days` inverted:
    `>` means stored before the threshold, `<` stored after it, and `=` a
    one-day window either side.
    """

    field: RuleField
    operator: ComparisonOperator
    days: int
    threshold: datetime

    def __post_init__(self):
        _require_kind(self.field, FieldKind.RELATIVE_DATE)
        if not isinstance(self.operator, ComparisonOperator):
            raise ValidationError(f"Invalid date operator: {self.operator}")
        object.__setattr__(self, "threshold", to_utc(self.threshold))

    def bounds(self) -> Tuple[Optional[Tuple[str, datetime]], Optional[Tuple[str, datetime]]]:
        """(lower, upper) bounds on the stored timestamp as (comparison, instant)."""
        op = self.operator
        if op == ComparisonOperator.GT:
            return None, ("lt", self.threshold)
        if op == ComparisonOperator.LT:
            return ("gt", self.threshold), None
        if op == ComparisonOperator.LTE:
            return ("gte", self.threshold), None
        if op == ComparisonOperator.EQ:
            return ("gte", self.threshold - DATE_WINDOW), ("lte", self.threshold + DATE_WINDOW)
        # ">=", "!=" and unknown operators: on or before the threshold
        return None, ("lte", self.threshold)

    def matches(self, customer: dict) -> bool:
        stored = parse_datetime(customer.get(self.field.column))
        if stored is None:
            return False
        for bound in self.bounds():
            if bound is None:
                continue
            comparison, instant = bound
            if comparison == "lt" and not stored < instant:
                return False
            if comparison == "lte" and not stored <= instant:
                return False
            if comparison == "gt" and not stored > instant:
                return False
            if comparison == "gte" and not stored >= instant:
                return False
        return True

    def apply(self, query):
        for bound in self.bounds():
            if bound is None:
                continue
            comparison, instant = bound
            query = getattr(query, comparison)(self.field.column, iso_utc(instant))
        return query

    def to_dict(self) -> dict:
        condition = {}
        for bound in self.bounds():
            if bound is not None:
                comparison, instant = bound
                condition[f"${comparison}"] = iso_utc(instant)
        return {self.field.value: condition}


@dataclass(frozen=True)
class TextCondition(Predicate):
    field: RuleField
    operator: TextOperator
    value: str

    def __post_init__(self):
        _require_kind(self.field, FieldKind.TEXT)
        if not isinstance(self.operator, TextOperator):
            raise ValidationError(f"Invalid text operator: {self.operator}")

    def matches(self, customer: dict) -> bool:
        stored = customer.get(self.field.column)
        if stored is None:
            return self.operator == TextOperator.NOT_CONTAINS
        stored = str(stored)
        needle = self.value.lower()
        haystack = stored.lower()
        op = self.operator
        if op == TextOperator.EQUALS:
            return stored == self.value
        if op == TextOperator.STARTS_WITH:
            return haystack.startswith(needle)
        if op == TextOperator.ENDS_WITH:
            return haystack.endswith(needle)
        if op == TextOperator.NOT_CONTAINS:
            return needle not in haystack
        return needle in haystack

    def apply(self, query):
        column = self.field.column
        escaped = _escape_like(self.value)
        op = self.operator
        if op == TextOperator.EQUALS:
            return query.eq(column, self.value)
        if op == TextOperator.STARTS_WITH:
            return query.ilike(column, f"{escaped}%")
        if op == TextOperator.ENDS_WITH:
            return query.ilike(column, f"%{escaped}")
        if op == TextOperator.NOT_CONTAINS:
            return query.not_.ilike(column, f"%{escaped}%")
        return query.ilike(column, f"%{escaped}%")

    def to_dict(self) -> dict:
        op = self.operator
        if op == TextOperator.EQUALS:
            return {self.field.value: {"$eq": self.value}}
        if op == TextOperator.STARTS_WITH:
            pattern = f"^{self.value}"
        elif op == TextOperator.ENDS_WITH:
            pattern = f"{self.value}$"
        else:
            pattern = self.value
        regex = {"$regex": pattern, "$options": "i"}
        if op == TextOperator.NOT_CONTAINS:
            return {self.field.value: {"$not": regex}}
        return {self.field.value: regex}


Condition = Union[NumericCondition, RelativeDateCondition, TextCondition]


@dataclass(frozen=True)
class AllOf(Predicate):
    """Conjunction of predicates."""

    members: Tuple[Predicate, ...]

    def matches(self, customer: dict) -> bool:
        return all(member.matches(customer) for member in self.members)

    def apply(self, query):
        for member in self.members:
            query = member.apply(query)
        return query

    def to_dict(self) -> dict:
        return {"$and": [member.to_dict() for member in self.members]}

    def conditions(self) -> List[Predicate]:
        """Leaf conditions, flattened."""
        leaves: List[Predicate] = []
        for member in self.members:
            if isinstance(member, AllOf):
                leaves.extend(member.conditions())
            else:
                leaves.append(member)
        return leaves


def build_condition(rule: Rule, now: datetime) -> Optional[Condition]:
    """Single-field condition for a rule, or None for unknown fields."""
    field = rule.field
    if field is None:
        return None

    if field.kind == FieldKind.NUMERIC:
        if field == RuleField.VISITS:
            value = float(_parse_int(rule.value))
        else:
            value = _parse_number(rule.value)
        return NumericCondition(field, rule.operator, value)

    if field.kind == FieldKind.RELATIVE_DATE:
        days = _parse_int(rule.value)
        return RelativeDateCondition(field, rule.operator, days, _days_before(now, days))

    return TextCondition(field, rule.operator, rule.value)


def _fold(group: Sequence[Predicate]) -> Predicate:
    return group[0] if len(group) == 1 else AllOf(tuple(group))


def compile_rules(
    rules: Iterable[Any],
    now: Optional[datetime] = None,
) -> Predicate:
    """
    Compiles rules into a predicate.

    Args:
        rules: Wire rule dicts or Rule objects, in order
        now: Reference instant for relative dates (default: now, UTC)

    Returns:
        MatchAll for no usable rules, the bare condition for one, otherwise
        AllOf over the groups (each group unwrapped when it has one member).
    """
    now = to_utc(now) if now else now_utc()
    parsed = parse_rules(list(rules or []))

    groups: List[List[Predicate]] = []
    for rule in parsed:
        condition = build_condition(rule, now)
        if condition is None:
            if rule.raw_field is not None:
                logger.debug(f"Ignoring rule on unknown field '{rule.raw_field}'")
            continue
        if not groups or rule.logical_operator == LogicalOperator.OR:
            groups.append([condition])
        else:
            groups[-1].append(condition)

    if not groups:
        return MatchAll()
    if len(groups) == 1 and len(groups[0]) == 1:
        return groups[0][0]
    return AllOf(tuple(_fold(group) for group in groups))
