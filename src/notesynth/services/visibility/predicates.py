from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from src.notesynth.errors import PredicateError


# attribute operator literal, e.g.  age >= 18  |  tags contains "diabetic"  |
# category in ["weight_management", "general"]
_RULE_RE = re.compile(
    r"^\s*(?P<attr>[A-Za-z_][A-Za-z0-9_]*)"
    r"\s*(?:(?P<sym>==|!=|>=|<=|>|<)|\s(?P<word>in|contains)\s)"
    r"\s*(?P<literal>.+?)\s*$"
)

_ORDERING_OPS = {">", ">=", "<", "<="}


class PredicateEvaluator(Protocol):
    """Evaluates a patient filter rule against a patient's attribute set.

    Implementations raise :class:`PredicateError` when the rule cannot be
    evaluated; callers treat that as "do not show".
    """

    def evaluate(self, rule: str, attributes: Mapping[str, Any]) -> bool:  # pragma: no cover - interface
        raise NotImplementedError


@dataclass(frozen=True)
class ParsedRule:
    attribute: str
    operator: str
    literal: Any


def parse_rule(rule: str) -> ParsedRule:
    match = _RULE_RE.match(rule or "")
    if match is None:
        raise PredicateError("Rule must have the form 'attribute operator literal'", context={"rule": rule})

    operator = match.group("sym") or match.group("word")
    raw_literal = match.group("literal")
    try:
        literal = json.loads(raw_literal)
    except json.JSONDecodeError as exc:
        raise PredicateError(
            "Rule literal must be JSON (quoted string, number, boolean or list)",
            context={"rule": rule},
        ) from exc

    if operator == "in" and not isinstance(literal, list):
        raise PredicateError("'in' requires a list literal", context={"rule": rule})
    if operator in _ORDERING_OPS and not _is_number(literal):
        raise PredicateError(f"'{operator}' requires a numeric literal", context={"rule": rule})

    return ParsedRule(attribute=match.group("attr"), operator=operator, literal=literal)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class SimplePredicateEvaluator:
    """Default evaluator for the ``attribute operator literal`` grammar.

    List-valued attributes (tags, programs) only support ``contains`` and
    ``in`` (true when any element is in the literal list).
    """

    def evaluate(self, rule: str, attributes: Mapping[str, Any]) -> bool:
        parsed = parse_rule(rule)
        if parsed.attribute not in attributes or attributes[parsed.attribute] is None:
            raise PredicateError("Unknown patient attribute", context={"attribute": parsed.attribute})

        value = attributes[parsed.attribute]
        op = parsed.operator
        literal = parsed.literal

        if op == "contains":
            if isinstance(value, str):
                if not isinstance(literal, str):
                    raise PredicateError(
                        "'contains' on a text attribute needs a string literal",
                        context={"attribute": parsed.attribute},
                    )
                return literal in value
            if isinstance(value, (list, tuple, set)):
                return literal in value
            raise PredicateError("'contains' needs a list or text attribute", context={"attribute": parsed.attribute})

        if op == "in":
            if isinstance(value, (list, tuple, set)):
                return any(item in literal for item in value)
            return value in literal

        if isinstance(value, (list, tuple, set)):
            raise PredicateError(
                f"'{op}' is not supported for list attributes",
                context={"attribute": parsed.attribute},
            )

        if op == "==":
            return value == literal
        if op == "!=":
            return value != literal

        if not _is_number(value):
            raise PredicateError(f"'{op}' needs a numeric attribute", context={"attribute": parsed.attribute})
        if op == ">":
            return value > literal
        if op == ">=":
            return value >= literal
        if op == "<":
            return value < literal
        return value <= literal
