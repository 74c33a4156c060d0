"""
Audience segmentation.

Structure:
- rules: Wire rules, fields and operators
- compiler: Rules to predicate
- evaluator: Predicate against the customer store
- suggestions: Free text to rules, message templates
"""
from app.services.segments.compiler import Predicate, compile_rules
from app.services.segments.evaluator import SegmentEvaluator, SegmentResult
from app.services.segments.rules import Rule, RuleField, parse_rules

__all__ = [
    "Predicate",
    "compile_rules",
    "SegmentEvaluator",
    "SegmentResult",
    "Rule",
    "RuleField",
    "parse_rules",
]
