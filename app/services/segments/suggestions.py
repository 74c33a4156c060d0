"""
Rule and message suggestions.

Turns a free-text audience description ("customers who spent more than
5000 and haven't visited in 60 days") into wire rules, and proposes
message templates for a rule set.

Rules come from Claude when ANTHROPIC_API_KEY is configured; otherwise,
or when the model answer is unusable, a fixed set of English patterns
is applied. Message suggestions are template based.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, List, Optional, Tuple

import anthropic

from app.core.config import settings
from app.services.segments.rules import parse_rules

logger = logging.getLogger(__name__)

SOURCE_AI = "AI-powered"
SOURCE_PATTERNS = "Pattern-matching"

DEFAULT_RULE = {
    "id": 1,
    "field": "totalSpends",
    "operator": ">",
    "value": "0",
    "logicalOperator": None,
}


@dataclass(frozen=True)
class SuggestionPattern:
    """Regex mapped to one rule."""
    regex: "re.Pattern"
    field: str
    operator: str
    value: Callable[["re.Match"], Any]


def _pattern(expr: str, field: str, operator: str, value: Callable) -> SuggestionPattern:
    return SuggestionPattern(re.compile(expr, re.IGNORECASE), field, operator, value)


def _number(match) -> int:
    return int(match.group(1))


def _months(match) -> int:
    return int(match.group(1)) * 30


# Checked in order; each pattern yields at most one rule
PATTERNS: List[SuggestionPattern] = [
    # Spending
    _pattern(r"spent?\s+(?:more than|over|above|greater than|>)\s*₹?(\d+)", "totalSpends", ">", _number),
    _pattern(r"spent?\s+(?:less than|under|below|smaller than|<)\s*₹?(\d+)", "totalSpends", "<", _number),
    _pattern(r"spent?\s+(?:exactly|equal to|=)\s*₹?(\d+)", "totalSpends", "=", _number),
    _pattern(r"(?:high value|premium|vip)\s+customers?", "totalSpends", ">", lambda m: 15000),
    _pattern(r"(?:low value|budget|economy)\s+customers?", "totalSpends", "<", lambda m: 5000),
    # Visits
    _pattern(r"(?:visited|shopped|ordered)\s+(?:more than|over|above|>)\s*(\d+)", "visits", ">", _number),
    _pattern(r"(?:visited|shopped|ordered)\s+(?:less than|under|below|<)\s*(\d+)", "visits", "<", _number),
    _pattern(r"(?:frequent|loyal|regular)\s+(?:customers?|shoppers?)", "visits", ">", lambda m: 5),
    # Inactivity
    _pattern(
        r"(?:haven't|have not|no).*(?:visited|shopped|bought).*(?:in|for|since)\s*(\d+)\s*days?",
        "lastVisit", ">", _number,
    ),
    _pattern(
        r"(?:haven't|have not|no).*(?:visited|shopped|bought).*(?:in|for|since)\s*(\d+)\s*months?",
        "lastVisit", ">", _months,
    ),
    _pattern(r"(?:inactive|dormant).*(?:for|since)\s*(\d+)\s*days?", "lastVisit", ">", _number),
    _pattern(r"(?:inactive|dormant).*(?:for|since)\s*(\d+)\s*months?", "lastVisit", ">", _months),
    # New customers
    _pattern(r"(?:new|recent)\s+customers?", "createdAt", "<", lambda m: 30),
    _pattern(
        r"customers?\s+(?:joined|registered|signed up)\s+(?:in|within)\s*(?:last\s*)?(\d+)\s*days?",
        "createdAt", "<", _number,
    ),
    _pattern(
        r"customers?\s+(?:joined|registered|signed up)\s+(?:in|within)\s*(?:last\s*)?(\d+)\s*months?",
        "createdAt", "<", _months,
    ),
    # Email / name
    _pattern(r"gmail\s+(?:users?|customers?)", "email", "contains", lambda m: "gmail.com"),
    _pattern(r"email.*contains?\s*['\"]([^'\"]+)['\"]?", "email", "contains", lambda m: m.group(1)),
    _pattern(
        r"(?:customers?|users?)\s+(?:named|called)\s+['\"]([^'\"]+)['\"]?",
        "name", "contains", lambda m: m.group(1),
    ),
]

_OR = re.compile(r"\bor\b", re.IGNORECASE)


def parse_with_patterns(text: str) -> List[dict]:
    """
    Pattern-matches text into wire rules.

    Every rule after the first is joined with OR when the text contains the
    word "or", with AND otherwise. No match yields `totalSpends > 0`.
    """
    connector = "OR" if _OR.search(text or "") else "AND"
    rules: List[dict] = []

    for pattern in PATTERNS:
        match = pattern.regex.search(text or "")
        if not match:
            continue
        rules.append({
            "id": len(rules) + 1,
            "field": pattern.field,
            "operator": pattern.operator,
            "value": str(pattern.value(match)),
            "logicalOperator": connector if rules else None,
        })

    if not rules:
        logger.info("No suggestion pattern matched, using default rule")
        return [dict(DEFAULT_RULE)]
    return rules


RULES_SYSTEM_PROMPT = """You convert natural language into customer segmentation rules for a CRM.

Fields:
- totalSpends (number): total amount spent
- visits (number): number of visits/orders
- lastVisit (days ago): use > for "more than X days ago"
- createdAt (days ago): use < for "within X days"
- email (text)
- name (text)

Operators:
- numbers and days: >, <, >=, <=, =, !=
- text: contains, equals, startsWith, endsWith, notContains

Answer with a JSON array only. Each rule:
{"id": 1, "field": "totalSpends", "operator": ">", "value": "10000", "logicalOperator": null}
logicalOperator is null for the first rule and "AND" or "OR" for the others."""

_JSON_ARRAY = re.compile(r"\[.*\]", re.DOTALL)


@lru_cache()
def get_anthropic_client() -> Optional[anthropic.Anthropic]:
    """Cached Anthropic client, None when no key is configured."""
    if not settings.ANTHROPIC_API_KEY:
        return None
    return anthropic.Anthropic(api_key=settings.ANTHROPIC_API_KEY)


class RuleSuggester:
    """Free text to rules, model first, patterns as fallback."""

    def __init__(self, client: Optional[Any] = None, model: Optional[str] = None):
        self._client = client
        self._model = model or settings.LLM_MODEL

    @property
    def client(self) -> Optional[Any]:
        if self._client is None:
            self._client = get_anthropic_client()
        return self._client

    async def suggest(self, text: str) -> Tuple[List[dict], str]:
        """
        Returns:
            (rules, source) where source is "AI-powered" or "Pattern-matching"
        """
        if self.client is not None:
            try:
                rules = await self._ask_model(text)
                if rules:
                    return rules, SOURCE_AI
                logger.warning("Model returned no usable rules, using patterns")
            except Exception as e:
                logger.warning(f"Rule suggestion via model failed, using patterns: {e}")

        return parse_with_patterns(text), SOURCE_PATTERNS

    async def _ask_model(self, text: str) -> List[dict]:
        def _call():
            return self.client.messages.create(
                model=self._model,
                max_tokens=500,
                temperature=0.1,
                system=RULES_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": text}],
            )

        loop = asyncio.get_event_loop()
        response = await loop.run_in_executor(None, _call)
        return self._parse_answer(response.content[0].text)

    @staticmethod
    def _parse_answer(answer: str) -> List[dict]:
        """Extracts the JSON array and keeps only rules on known fields."""
        match = _JSON_ARRAY.search(answer or "")
        raw = json.loads(match.group(0) if match else answer)
        if not isinstance(raw, list):
            return []

        rules = [rule for rule in parse_rules(raw) if rule.field is not None]
        result = []
        for position, rule in enumerate(rules):
            data = rule.to_dict()
            data["id"] = position + 1
            if position == 0:
                data["logicalOperator"] = None
            elif data["logicalOperator"] is None:
                data["logicalOperator"] = "AND"
            result.append(data)
        return result


# Message templates

HIGH_VALUE_MESSAGES = [
    {"message": "Hi {name}, exclusive VIP offer: 15% off + free shipping on your next premium purchase!",
     "variant": "VIP", "focus": "Exclusivity and premium treatment"},
    {"message": "{name}, thank you for your loyalty! Early access to our new collection with 20% off.",
     "variant": "Loyalty", "focus": "Appreciation and early access"},
    {"message": "Hello {name}, special invitation: Private sale event with up to 25% off luxury items!",
     "variant": "Exclusive", "focus": "Private access and luxury"},
]

WIN_BACK_MESSAGES = [
    {"message": "Hi {name}, we miss you! Come back with 30% off - valid for 48 hours only!",
     "variant": "Win-back", "focus": "Urgency and substantial discount"},
    {"message": "{name}, it's been too long! Here's ₹500 off on orders above ₹2000 to welcome you back.",
     "variant": "Welcome Back", "focus": "Specific monetary incentive"},
    {"message": "We've saved something special for you, {name}! Return and discover 25% off your favorites.",
     "variant": "Personal", "focus": "Personalization and favorites"},
]

FREQUENT_MESSAGES = [
    {"message": "Hi {name}, you're our star customer! Enjoy free express shipping on your next order.",
     "variant": "Recognition", "focus": "Recognition and free service"},
    {"message": "{name}, thanks for your loyalty! Double reward points on all purchases this week.",
     "variant": "Rewards", "focus": "Loyalty program benefits"},
    {"message": "Hello {name}, first access to our flash sale - 15% off everything before anyone else!",
     "variant": "Priority", "focus": "Priority access and timing"},
]

NEW_CUSTOMER_MESSAGES = [
    {"message": "Welcome {name}! Complete your profile and get ₹300 off your next purchase.",
     "variant": "Welcome", "focus": "Onboarding incentive"},
    {"message": "Hi {name}, thanks for joining us! Here's 20% off to get you started - use code WELCOME20.",
     "variant": "Getting Started", "focus": "Easy start with clear code"},
    {"message": "{name}, explore our bestsellers with 25% off - perfect for your first big order!",
     "variant": "Discovery", "focus": "Product discovery and first purchase"},
]

GENERAL_MESSAGES = [
    {"message": "Hi {name}, don't miss our weekend special - 20% off everything!",
     "variant": "General", "focus": "Time-bound general offer"},
    {"message": "{name}, your favorites are back in stock! Shop now before they're gone again.",
     "variant": "Stock Alert", "focus": "Product availability and urgency"},
    {"message": "Hello {name}, flash sale alert! Up to 40% off on trending items - 24 hours only!",
     "variant": "Flash Sale", "focus": "Limited time and trending products"},
]


def _int_value(value: Any) -> Optional[int]:
    match = re.match(r"\s*[+-]?\d+", str(value if value is not None else ""))
    return int(match.group(0)) if match else None


def _has_rule(rules: List[dict], field: str, operator: str, test: Callable[[int], bool]) -> bool:
    for rule in rules:
        if rule.get("field") != field or rule.get("operator") != operator:
            continue
        number = _int_value(rule.get("value"))
        if number is not None and test(number):
            return True
    return False


def suggest_messages(rules: List[dict], objective: str = "engagement", limit: int = 3) -> List[dict]:
    """
    Template messages for the segment the rules describe.

    Segments are checked in order (high value, inactive, frequent, new) and
    the first `limit` templates are returned. `objective` is only logged.
    """
    rules = [rule for rule in rules or [] if isinstance(rule, dict)]
    high_value = _has_rule(rules, "totalSpends", ">", lambda v: v > 10000)
    inactive = _has_rule(rules, "lastVisit", ">", lambda v: v > 30)
    frequent = _has_rule(rules, "visits", ">", lambda v: v > 5)
    new_customer = _has_rule(rules, "createdAt", "<", lambda v: v < 60)

    messages: List[dict] = []
    if high_value:
        messages.extend(HIGH_VALUE_MESSAGES)
    if inactive:
        messages.extend(WIN_BACK_MESSAGES)
    if frequent and not inactive:
        messages.extend(FREQUENT_MESSAGES)
    if new_customer:
        messages.extend(NEW_CUSTOMER_MESSAGES)
    if not messages:
        messages.extend(GENERAL_MESSAGES)

    logger.debug(f"Suggested {min(len(messages), limit)} messages for objective '{objective}'")
    return [dict(message) for message in messages[:limit]]
