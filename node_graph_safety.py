"""
Safety checks for node-mode graphs that embed `api_fetch` nodes.

An `api_fetch` node makes the engine poll an external URL, so the URL is
user-controlled outbound traffic. Unlike the form validator, every violation
is collected and returned together so the editor can flag each node inline.

The private-host check is a blocklist. A public hostname that resolves to a
private address at fetch time is not caught here.
"""

from __future__ import annotations

import ipaddress
from typing import Any, Dict, List, Mapping, Tuple
from urllib.parse import urlsplit

from graph_errors import SecurityValidationError
from strategy_graph import NodeGraph

MAX_API_FETCH_NODES = 5
MIN_INTERVAL_SECS = 30
DEFAULT_INTERVAL_SECS = 60
BLOCKED_HOSTS = {"localhost", "0.0.0.0", "[::1]", "::1"}
BLOCKED_HOST_SUFFIXES = (".local", ".internal")


def _add_error(errors: List[Dict[str, str]], path: str, message: str) -> None:
    errors.append({"path": path, "message": message})


def _parse_ip(host: str):
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        pass
    # Bare integer hosts (https://2130706433/) are dotted-quad shorthand.
    if host.isdigit():
        try:
            return ipaddress.IPv4Address(int(host))
        except ValueError:
            return None
    return None


def _is_public_ip(ip) -> bool:
    if getattr(ip, "ipv4_mapped", None) is not None:
        ip = ip.ipv4_mapped
    return ip.is_global and not (ip.is_multicast or ip.is_reserved)


def is_private_url(url: str) -> bool:
    """Return True when `url` targets a loopback, private or internal host."""
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return True
    if not host:
        return True

    host = host.lower().rstrip(".")
    if host in BLOCKED_HOSTS:
        return True

    ip = _parse_ip(host)
    if ip is not None:
        return not _is_public_ip(ip)

    return host.endswith(BLOCKED_HOST_SUFFIXES)


def _interval_secs(data: Mapping[str, Any]) -> Tuple[bool, int]:
    interval = data.get("interval_secs")
    if interval is None:
        return True, DEFAULT_INTERVAL_SECS
    if isinstance(interval, bool):
        return False, 0
    try:
        return True, int(float(interval))
    except (TypeError, ValueError, OverflowError):
        return False, 0


def _api_fetch_nodes(graph: Any) -> List[Mapping[str, Any]]:
    if isinstance(graph, NodeGraph):
        return [node.model_dump() for node in graph.nodes_of_type("api_fetch")]
    nodes = graph.get("nodes") or []
    return [node for node in nodes if isinstance(node, Mapping) and node.get("type") == "api_fetch"]


def validate_api_fetch_nodes(graph: Any) -> List[Dict[str, str]]:
    """Return every api_fetch violation in `graph` (empty list when safe).

    Graphs that are not in node mode are not checked.
    """
    errors: List[Dict[str, str]] = []

    if isinstance(graph, NodeGraph):
        mode = graph.mode
    elif isinstance(graph, Mapping):
        mode = graph.get("mode")
    else:
        return errors
    if mode != "node":
        return errors

    nodes = _api_fetch_nodes(graph)
    if len(nodes) > MAX_API_FETCH_NODES:
        _add_error(
            errors,
            "graph.nodes",
            f"A strategy may contain at most {MAX_API_FETCH_NODES} API Fetch nodes.",
        )
        return errors

    for idx, node in enumerate(nodes):
        path = f"graph.nodes.{idx}.data"
        data = node.get("data") or {}
        if not isinstance(data, Mapping):
            _add_error(errors, f"{path}.url", "API Fetch nodes require a URL.")
            continue

        url = data.get("url")
        url = url.strip() if isinstance(url, str) else ""
        if not url:
            _add_error(errors, f"{path}.url", "API Fetch nodes require a URL.")
            continue

        if not url.startswith("https://"):
            _add_error(errors, f"{path}.url", "API Fetch URLs must use HTTPS.")

        if is_private_url(url):
            _add_error(
                errors,
                f"{path}.url",
                "API Fetch URLs must not point to private or internal addresses.",
            )

        parsed, interval = _interval_secs(data)
        if not parsed or interval < MIN_INTERVAL_SECS:
            _add_error(
                errors,
                f"{path}.interval_secs",
                f"API Fetch interval must be at least {MIN_INTERVAL_SECS} seconds.",
            )

    return errors


def assert_safe_node_graph(graph: Any) -> Any:
    errors = validate_api_fetch_nodes(graph)
    if errors:
        raise SecurityValidationError(errors)
    return graph
