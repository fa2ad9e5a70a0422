"""
Error taxonomy for strategy validation, generation and activation.
"""

from __future__ import annotations

from typing import Dict, List, Optional


class StrategyCoreError(Exception):
    """Base class for every error raised by the strategy core."""


# ─── Graph validation ──────────────────────────────────────────────


class GraphValidationError(StrategyCoreError, ValueError):
    """A strategy graph failed validation at a specific field path."""

    def __init__(self, path: str, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")

    def to_dict(self) -> Dict[str, str]:
        return {"path": self.path, "message": self.message}


class StructuralError(GraphValidationError):
    """Graph shape violates the schema (missing key, wrong type)."""


class SemanticError(GraphValidationError):
    """Value present but outside its allowed domain."""


class SecurityValidationError(StrategyCoreError, ValueError):
    """One or more external data sources in a node graph are unsafe.

    Carries every violation found, not just the first.
    """

    def __init__(self, errors: List[Dict[str, str]]):
        self.errors = errors
        detail = "; ".join(f"{item['path']}: {item['message']}" for item in errors)
        super().__init__(f"Unsafe node graph: {detail}")


# ─── Generation ────────────────────────────────────────────────────


class GenerationError(StrategyCoreError):
    """AI strategy generation failed."""


class ApiError(GenerationError):
    def __init__(self, status: Optional[int], detail: str = ""):
        self.status = status
        if status is None:
            message = "AI generation request failed"
            if detail:
                message = f"{message}: {detail}"
        else:
            message = f"AI generation failed with status {status}."
        super().__init__(message)


class InvalidJson(GenerationError):
    SNIPPET_LENGTH = 200

    def __init__(self, raw: str):
        self.snippet = raw[: self.SNIPPET_LENGTH]
        super().__init__(f"AI returned invalid JSON: {self.snippet}")


class ValidationFailed(GenerationError):
    def __init__(self, reason: str, path: Optional[str] = None):
        self.reason = reason
        self.path = path
        super().__init__(f"Generated strategy is invalid: {reason}.")


# ─── Activation ────────────────────────────────────────────────────


class EngineRequestError(StrategyCoreError):
    """The execution engine rejected a call or could not be reached."""

    def __init__(
        self,
        operation: str,
        wallet_id: Optional[int] = None,
        strategy_id: Optional[int] = None,
        status: Optional[int] = None,
        detail: str = "",
    ):
        self.operation = operation
        self.wallet_id = wallet_id
        self.strategy_id = strategy_id
        self.status = status
        self.detail = detail

        target = ""
        if wallet_id is not None and strategy_id is not None:
            target = f" for wallet #{wallet_id}, strategy #{strategy_id}"
        reason = f"status {status}" if status is not None else (detail or "no response")
        super().__init__(f"Engine {operation} failed{target} ({reason})")


class PreconditionError(StrategyCoreError):
    """A precondition failed before any state was mutated."""


class WalletNotDeployed(PreconditionError):
    def __init__(self, wallet_id: int):
        self.wallet_id = wallet_id
        super().__init__(f"Wallet #{wallet_id} Safe is not deployed yet.")


class StrategyNotFound(StrategyCoreError, LookupError):
    def __init__(self, strategy_id: int):
        self.strategy_id = strategy_id
        super().__init__(f"Strategy #{strategy_id} does not exist")


class WalletNotFound(StrategyCoreError, LookupError):
    def __init__(self, wallet_id: int):
        self.wallet_id = wallet_id
        super().__init__(f"Wallet #{wallet_id} does not exist")


class WalletDeploying(PreconditionError):
    def __init__(self, wallet_id: int):
        self.wallet_id = wallet_id
        super().__init__("Cannot delete a wallet while Safe is deploying.")


class AssignmentNotFound(StrategyCoreError, LookupError):
    def __init__(self, wallet_id: int, strategy_id: int):
        self.wallet_id = wallet_id
        self.strategy_id = strategy_id
        super().__init__(f"Strategy #{strategy_id} is not assigned to wallet #{wallet_id}")
