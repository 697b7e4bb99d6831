"""Match rule evaluation for conditional edges.

A rule matches a string-keyed context in the following cases:

1. ``=``, ``==`` or ``In``: the context has the rule's key and its value is
   one of the rule's values.
2. ``!=`` or ``NotIn``: the context lacks the key, or its value is not one of
   the rule's values.
3. ``Exists``: the context has the key (the value is irrelevant).
4. ``DoesNotExist``: the context lacks the key.
5. ``Gt`` or ``Lt``: the context has the key, both the context value and the
   rule's single value are base-10 signed 64-bit integers, and the inequality
   holds.

Evaluation never raises. Malformed operands and unknown operators evaluate
to "not satisfied".
"""

import logging
import re
from collections.abc import Iterable, Mapping

from dagctl.core.models import MatchOperator, MatchRule

logger = logging.getLogger(__name__)

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

# Optional sign followed by ASCII digits only; int() alone would accept
# surrounding whitespace, underscores and non-ASCII digits.
_BASE10_INT = re.compile(r"[+-]?[0-9]+")

_MEMBERSHIP_OPERATORS = {MatchOperator.IN, MatchOperator.EQUAL, MatchOperator.DOUBLE_EQUAL}
_EXCLUSION_OPERATORS = {MatchOperator.NOT_IN, MatchOperator.NOT_EQUAL}
_ORDERING_OPERATORS = {MatchOperator.GREATER_THAN, MatchOperator.LESS_THAN}


def parse_int64(value: str) -> int | None:
    """Parse a base-10 signed 64-bit integer, returning None when invalid."""
    if not _BASE10_INT.fullmatch(value):
        return None
    number = int(value)
    if number < _INT64_MIN or number > _INT64_MAX:
        return None
    return number


def has_value(rule: MatchRule, value: str) -> bool:
    """Exact string membership in the rule's values."""
    return any(candidate == value for candidate in rule.values)


def rule_satisfied(rule: MatchRule, context: Mapping[str, str]) -> bool:
    """Return True if ``rule`` matches ``context``.

    Args:
        rule: Rule to evaluate
        context: Key/value pairs published by upstream vertices

    Returns:
        Whether the rule holds. Never raises.
    """
    operator = _known_operator(rule.operator)

    if operator in _MEMBERSHIP_OPERATORS:
        if rule.key not in context:
            return False
        return has_value(rule, context[rule.key])

    if operator in _EXCLUSION_OPERATORS:
        if rule.key not in context:
            return True
        return not has_value(rule, context[rule.key])

    if operator == MatchOperator.EXISTS:
        return rule.key in context

    if operator == MatchOperator.DOES_NOT_EXIST:
        return rule.key not in context

    if operator in _ORDERING_OPERATORS:
        return _compare(rule, context)

    logger.debug(f"Unsupported operator {rule.operator!r} in match rule for key '{rule.key}'")
    return False


def _known_operator(operator: MatchOperator | str) -> MatchOperator | None:
    """Map a raw operator string onto MatchOperator (None when unknown).

    Plain strings must be converted before set lookups: enum members hash by
    name, not by value.
    """
    try:
        return MatchOperator(operator)
    except ValueError:
        return None


def _compare(rule: MatchRule, context: Mapping[str, str]) -> bool:
    """Evaluate a Gt/Lt rule."""
    if rule.key not in context:
        return False

    raw = context[rule.key]
    actual = parse_int64(raw)
    if actual is None:
        logger.debug(f"Value {raw!r} for key '{rule.key}' is not a 64-bit integer")
        return False

    if len(rule.values) != 1:
        logger.debug(
            f"Match rule for key '{rule.key}' has {len(rule.values)} values; "
            f"'{rule.operator}' requires exactly one"
        )
        return False

    expected = parse_int64(rule.values[0])
    if expected is None:
        logger.debug(
            f"Match rule value {rule.values[0]!r} for key '{rule.key}' is not an integer"
        )
        return False

    if _known_operator(rule.operator) == MatchOperator.GREATER_THAN:
        return actual > expected
    return actual < expected


def rules_satisfied(rules: Iterable[MatchRule], context: Mapping[str, str]) -> bool:
    """Return True if every rule matches (an empty rule list always matches)."""
    return all(rule_satisfied(rule, context) for rule in rules)
