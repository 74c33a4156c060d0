"""
Audience rule model.

A rule is one field/operator/value triple plus the logical connector to
the previous rule. Each field belongs to a kind (numeric, relative date,
text) and each kind has its own closed operator set; wire operators are
normalised into that set when a rule is parsed, so the compiler never
sees an invalid combination.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Union


class FieldKind(str, Enum):
    """Kind of customer field a rule targets."""

    NUMERIC = "numeric"
    RELATIVE_DATE = "relative_date"
    TEXT = "text"


class RuleField(str, Enum):
    """Customer fields available to audience rules (wire names)."""

    TOTAL_SPENDS = "totalSpends"
    VISITS = "visits"
    LAST_VISIT = "lastVisit"
    CREATED_AT = "createdAt"
    EMAIL = "email"
    NAME = "name"

    @property
    def kind(self) -> FieldKind:
        return FIELD_KINDS[self]

    @property
    def column(self) -> str:
        """Column name in the customers table."""
        return FIELD_COLUMNS[self]


FIELD_KINDS = {
    RuleField.TOTAL_SPENDS: FieldKind.NUMERIC,
    RuleField.VISITS: FieldKind.NUMERIC,
    RuleField.LAST_VISIT: FieldKind.RELATIVE_DATE,
    RuleField.CREATED_AT: FieldKind.RELATIVE_DATE,
    RuleField.EMAIL: FieldKind.TEXT,
    RuleField.NAME: FieldKind.TEXT,
}

FIELD_COLUMNS = {
    RuleField.TOTAL_SPENDS: "total_spends",
    RuleField.VISITS: "visits",
    RuleField.LAST_VISIT: "last_visit",
    RuleField.CREATED_AT: "created_at",
    RuleField.EMAIL: "email",
    RuleField.NAME: "name",
}


class ComparisonOperator(str, Enum):
    """Operators for numeric and relative-date fields."""

    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    EQ = "="
    NEQ = "!="


class TextOperator(str, Enum):
    """Operators for text fields."""

    CONTAINS = "contains"
    EQUALS = "equals"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    NOT_CONTAINS = "notContains"


class LogicalOperator(str, Enum):
    """Connector between a rule and the previous one."""

    AND = "AND"
    OR = "OR"


Operator = Union[ComparisonOperator, TextOperator]

# Fallback when the wire operator is not in the kind's set.
# For relative dates ">=" means "on or before the threshold".
DEFAULT_OPERATORS = {
    FieldKind.NUMERIC: ComparisonOperator.EQ,
    FieldKind.RELATIVE_DATE: ComparisonOperator.GTE,
    FieldKind.TEXT: TextOperator.CONTAINS,
}

OPERATORS_BY_KIND = {
    FieldKind.NUMERIC: ComparisonOperator,
    FieldKind.RELATIVE_DATE: ComparisonOperator,
    FieldKind.TEXT: TextOperator,
}


def normalize_operator(kind: FieldKind, raw: Any) -> Operator:
    """Maps a wire operator into the kind's closed set, falling back to its default."""
    try:
        return OPERATORS_BY_KIND[kind](raw)
    except ValueError:
        return DEFAULT_OPERATORS[kind]


@dataclass(frozen=True)
class Rule:
    """
    One audience rule.

    `field` is None when the wire field is not recognised; such rules are
    kept (the connector still matters for position) but contribute no
    condition.
    """

    id: Optional[int]
    field: Optional[RuleField]
    operator: Optional[Operator]
    value: str
    logical_operator: Optional[LogicalOperator] = None
    raw_field: Optional[str] = None
    raw_operator: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict, position: int = 0) -> "Rule":
        """
        Parses a wire rule `{id, field, operator, value, logicalOperator}`.

        The first rule never carries a connector. Later rules with a missing
        or unknown connector are read as AND.
        """
        raw_field = data.get("field")
        try:
            field = RuleField(raw_field)
        except ValueError:
            field = None

        raw_operator = data.get("operator")
        operator = normalize_operator(field.kind, raw_operator) if field else None

        logical = None
        if position > 0:
            raw_logical = str(data.get("logicalOperator") or "AND").upper()
            logical = LogicalOperator.OR if raw_logical == "OR" else LogicalOperator.AND

        value = data.get("value")
        return cls(
            id=data.get("id"),
            field=field,
            operator=operator,
            value="" if value is None else str(value),
            logical_operator=logical,
            raw_field=raw_field,
            raw_operator=raw_operator,
        )

    def to_dict(self) -> dict:
        """Wire representation."""
        return {
            "id": self.id,
            "field": self.field.value if self.field else self.raw_field,
            "operator": self.operator.value if self.operator else self.raw_operator,
            "value": self.value,
            "logicalOperator": self.logical_operator.value if self.logical_operator else None,
        }


def parse_rules(raw_rules: Optional[List[Any]]) -> List[Rule]:
    """
    Parses a wire rule list, keeping order.

    Accepts already-parsed Rule objects. Entries that are not mappings
    are dropped.
    """
    rules: List[Rule] = []
    for item in raw_rules or []:
        if isinstance(item, Rule):
            rules.append(item)
        elif isinstance(item, dict):
            rules.append(Rule.from_dict(item, position=len(rules)))
    return rules
