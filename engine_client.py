"""
Execution engine client.

The orchestrator depends on the `ExecutionEngine` protocol only; the HTTP
client below is the production implementation. Every call carries an explicit
timeout and any non-2xx answer or transport failure raises EngineRequestError.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

import requests

from graph_errors import EngineRequestError

logger = logging.getLogger(__name__)

DEFAULT_ENGINE_TIMEOUT = 10.0  # seconds


class ExecutionEngine(Protocol):
    def activate_strategy(
        self,
        wallet_id: int,
        strategy_id: int,
        graph: Dict[str, Any],
        markets: List[str],
        max_position_usdc: float = 1000.0,
        is_paper: bool = False,
        private_key_enc: str = "",
        safe_address: str = "",
    ) -> None: ...

    def deactivate_strategy(self, wallet_id: int, strategy_id: int) -> None: ...

    def kill_strategy(self, wallet_id: int, strategy_id: int) -> None: ...

    def unkill_strategy(self, wallet_id: int, strategy_id: int) -> None: ...

    def engine_status(self) -> Dict[str, Any]: ...


class HttpEngineClient:
    """Talks to the engine's internal HTTP API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_ENGINE_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        payload: Optional[Dict[str, Any]] = None,
        wallet_id: Optional[int] = None,
        strategy_id: Optional[int] = None,
    ) -> requests.Response:
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Engine %s failed (wallet=%s strategy=%s): %s", operation, wallet_id, strategy_id, exc)
            raise EngineRequestError(
                operation,
                wallet_id=wallet_id,
                strategy_id=strategy_id,
                detail=type(exc).__name__,
            ) from exc

        if not 200 <= response.status_code < 300:
            logger.warning(
                "Engine %s returned %s (wallet=%s strategy=%s)",
                operation, response.status_code, wallet_id, strategy_id,
            )
            raise EngineRequestError(
                operation,
                wallet_id=wallet_id,
                strategy_id=strategy_id,
                status=response.status_code,
            )
        return response

    def activate_strategy(
        self,
        wallet_id: int,
        strategy_id: int,
        graph: Dict[str, Any],
        markets: List[str],
        max_position_usdc: float = 1000.0,
        is_paper: bool = False,
        private_key_enc: str = "",
        safe_address: str = "",
    ) -> None:
        self._request(
            "POST",
            "/internal/strategy/activate",
            "activate",
            payload={
                "wallet_id": wallet_id,
                "strategy_id": strategy_id,
                "graph": graph,
                "markets": markets,
                "max_position_usdc": max_position_usdc,
                "is_paper": is_paper,
                "private_key_enc": private_key_enc,
                "safe_address": safe_address,
            },
            wallet_id=wallet_id,
            strategy_id=strategy_id,
        )

    def _wallet_strategy_call(self, path: str, operation: str, wallet_id: int, strategy_id: int) -> None:
        self._request(
            "POST",
            path,
            operation,
            payload={"wallet_id": wallet_id, "strategy_id": strategy_id},
            wallet_id=wallet_id,
            strategy_id=strategy_id,
        )

    def deactivate_strategy(self, wallet_id: int, strategy_id: int) -> None:
        self._wallet_strategy_call("/internal/strategy/deactivate", "deactivate", wallet_id, strategy_id)

    def kill_strategy(self, wallet_id: int, strategy_id: int) -> None:
        self._wallet_strategy_call("/internal/strategy/kill", "kill", wallet_id, strategy_id)

    def unkill_strategy(self, wallet_id: int, strategy_id: int) -> None:
        self._wallet_strategy_call("/internal/strategy/unkill", "unkill", wallet_id, strategy_id)

    def engine_status(self) -> Dict[str, Any]:
        return self._request("GET", "/internal/engine/status", "status").json()
