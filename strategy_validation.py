"""
Mode dispatch for strategy graph validation.

Form graphs go through the fail-fast schema validator and get their ids
normalized; node graphs get a structural check plus the api_fetch safety
validator. A graph that fails here must not be persisted.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

from pydantic import ValidationError

from form_graph_schema import assert_valid_form_graph
from graph_errors import StructuralError
from node_graph_safety import assert_safe_node_graph
from strategy_graph import NODE_TYPES, NodeGraph, graph_mode

logger = logging.getLogger(__name__)


def _pydantic_path(location) -> str:
    path = ""
    for part in location:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path or "graph"


def _validate_node_structure(graph: Mapping[str, Any]) -> Dict[str, Any]:
    try:
        NodeGraph.model_validate(dict(graph))
    except ValidationError as exc:
        first = exc.errors()[0]
        raise StructuralError(_pydantic_path(first["loc"]), first["msg"]) from exc
    return dict(graph)


def validate_strategy_graph(graph: Any) -> Dict[str, Any]:
    """Validate any strategy graph and return the shape to persist.

    Raises:
        GraphValidationError: form graph (or node graph structure) is invalid.
        SecurityValidationError: one or more api_fetch nodes are unsafe.
    """
    mode = graph_mode(graph)

    if mode == "form":
        normalized = assert_valid_form_graph(graph)
        logger.debug("Validated form graph with %d condition groups", len(normalized["conditions"]))
        return normalized

    validated = _validate_node_structure(graph)
    unknown = {node.get("type") for node in validated.get("nodes", [])} - set(NODE_TYPES)
    if unknown:
        logger.info("Node graph uses unrecognized node types: %s", sorted(map(str, unknown)))
    assert_safe_node_graph(validated)
    logger.debug("Validated node graph with %d nodes", len(validated.get("nodes", [])))
    return validated
