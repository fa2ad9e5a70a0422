"""
Validation utilities for form-mode strategy graphs.

Form graphs are checked fail-fast: the first violation raises with the path of
the offending field (e.g. `conditions[1].rules[0].indicator`).
"""

from __future__ import annotations

import copy
import math
import uuid
from typing import Any, Dict, Mapping, Tuple

from graph_errors import SemanticError, StructuralError
from strategy_graph import INDICATORS, OPERATORS, FormGraph, dump_graph

VALID_INDICATORS = frozenset(INDICATORS)
VALID_OPERATORS = frozenset(OPERATORS)
GROUP_TYPES = ("AND", "OR")
SIGNALS = ("buy", "sell")
OUTCOMES = ("UP", "DOWN")
SIZE_MODES = ("fixed", "proportional")
ORDER_TYPES = ("market", "limit")
OPTIONAL_POSITIVE_RISK_FIELDS = (
    "stoploss_pct",
    "take_profit_pct",
    "daily_loss_limit_usdc",
    "cooldown_seconds",
)


def _is_dict(value: Any) -> bool:
    return isinstance(value, Mapping)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _require_choice(container: Mapping[str, Any], key: str, choices: Tuple[str, ...], path: str) -> None:
    if container.get(key) not in choices:
        raise SemanticError(f"{path}.{key}", f"must be {' or '.join(choices)}")


def _require_at_least_one(container: Mapping[str, Any], key: str, path: str) -> None:
    value = container.get(key)
    if not _is_number(value) or value < 1:
        raise SemanticError(f"{path}.{key}", "must be >= 1")


def _validate_rule(rule: Any, path: str) -> None:
    if not _is_dict(rule):
        raise StructuralError(path, "must be an object")

    if rule.get("indicator") not in VALID_INDICATORS:
        raise SemanticError(f"{path}.indicator", "is invalid")

    operator = rule.get("operator")
    if operator not in VALID_OPERATORS:
        raise SemanticError(f"{path}.operator", "is invalid")

    value = rule.get("value")
    if operator == "between":
        if (
            not isinstance(value, (list, tuple))
            or len(value) != 2
            or not all(_is_number(bound) for bound in value)
        ):
            raise SemanticError(f"{path}.value", "must be [min, max] for between")
    elif not _is_number(value):
        raise SemanticError(f"{path}.value", "must be numeric")


def _validate_condition_group(group: Any, index: int) -> None:
    path = f"conditions[{index}]"
    if not _is_dict(group):
        raise StructuralError(path, "must be an object")

    if group.get("type") not in GROUP_TYPES:
        raise SemanticError(f"{path}.type", "must be AND or OR")

    rules = group.get("rules")
    if not isinstance(rules, list) or len(rules) == 0:
        raise StructuralError(f"{path}.rules", "must be non-empty")

    for rule_index, rule in enumerate(rules):
        _validate_rule(rule, f"{path}.rules[{rule_index}]")


def _validate_action(action: Any) -> None:
    if not _is_dict(action):
        raise StructuralError("action", "must be an object")

    _require_choice(action, "signal", SIGNALS, "action")
    _require_choice(action, "outcome", OUTCOMES, "action")
    _require_choice(action, "size_mode", SIZE_MODES, "action")
    _require_at_least_one(action, "size_usdc", "action")
    _require_choice(action, "order_type", ORDER_TYPES, "action")


def _validate_risk(risk: Any) -> None:
    if not _is_dict(risk):
        raise StructuralError("risk", "must be an object")

    _require_at_least_one(risk, "max_position_usdc", "risk")
    _require_at_least_one(risk, "max_trades_per_slot", "risk")

    for key in OPTIONAL_POSITIVE_RISK_FIELDS:
        value = risk.get(key)
        if value is None:
            continue
        if not _is_number(value) or value <= 0:
            raise SemanticError(f"risk.{key}", "must be > 0 or null")


def validate_form_graph(graph: Any) -> None:
    """Raise GraphValidationError on the first schema violation in `graph`."""
    if isinstance(graph, FormGraph):
        graph = dump_graph(graph)

    if not _is_dict(graph):
        raise StructuralError("graph", "must be an object")

    if graph.get("mode") != "form":
        raise SemanticError("mode", 'must be "form"')

    conditions = graph.get("conditions")
    if not isinstance(conditions, list) or len(conditions) == 0:
        raise StructuralError("conditions", "must be a non-empty array")

    for index, group in enumerate(conditions):
        _validate_condition_group(group, index)

    _validate_action(graph.get("action"))
    _validate_risk(graph.get("risk"))


def normalize_ids(graph: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of `graph` where every condition group and rule has an id.

    Existing ids are kept verbatim, so running this twice is a no-op.
    """
    normalized = copy.deepcopy(dict(graph))
    for group in normalized.get("conditions", []):
        if not group.get("id"):
            group["id"] = str(uuid.uuid4())
        for rule in group.get("rules", []):
            if not rule.get("id"):
                rule["id"] = str(uuid.uuid4())
    return normalized


def assert_valid_form_graph(graph: Any) -> Dict[str, Any]:
    """Validate `graph` and return it with normalized ids."""
    if isinstance(graph, FormGraph):
        graph = dump_graph(graph)
    validate_form_graph(graph)
    return normalize_ids(graph)


def parse_form_graph(graph: Any) -> FormGraph:
    return FormGraph.model_validate(assert_valid_form_graph(graph))

