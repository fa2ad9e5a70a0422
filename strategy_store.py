"""
Validated persistence for strategies, wallets and assignments.

A graph is validated before anything is written; a failing graph leaves the
database untouched. Deletes stop the strategy on the engine first and are
aborted if that fails.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from graph_errors import AssignmentNotFound, StrategyNotFound, WalletDeploying, WalletNotFound
from storage_models import StrategyModel, WalletModel, WalletStrategyModel
from strategy_activation import StrategyActivationService
from strategy_validation import validate_strategy_graph

logger = logging.getLogger(__name__)

MIN_ASSIGNMENT_POSITION_USDC = 1
MAX_ASSIGNMENT_POSITION_USDC = 1_000_000
DEFAULT_ASSIGNMENT_POSITION_USDC = 100


def create_strategy(
    session: Session,
    user_id: int,
    name: str,
    graph: Dict[str, Any],
    description: Optional[str] = None,
) -> StrategyModel:
    validated = validate_strategy_graph(graph)

    strategy = StrategyModel(
        user_id=user_id,
        name=name,
        description=description,
        mode=validated["mode"],
        graph=validated,
        is_active=False,
    )
    session.add(strategy)
    session.commit()
    logger.info("Created %s-mode strategy %s", strategy.mode, strategy.id)
    return strategy


def update_strategy(
    session: Session,
    strategy_id: int,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    graph: Optional[Dict[str, Any]] = None,
) -> StrategyModel:
    strategy = session.get(StrategyModel, strategy_id)
    if strategy is None:
        raise StrategyNotFound(strategy_id)

    validated = validate_strategy_graph(graph) if graph is not None else None

    if name is not None:
        strategy.name = name
    if description is not None:
        strategy.description = description
    if validated is not None:
        strategy.graph = validated
        strategy.mode = validated["mode"]
    session.commit()
    return strategy


def _refresh_is_active(
    session: Session, activation: StrategyActivationService, strategy_ids: Iterable[int]
) -> None:
    for strategy_id in strategy_ids:
        strategy = session.get(StrategyModel, strategy_id)
        if strategy is not None:
            strategy.is_active = activation.has_running(session, strategy_id)


def delete_strategy(session: Session, activation: StrategyActivationService, strategy_id: int) -> None:
    activation.deactivate_all_for_strategy(session, strategy_id)
    strategy = session.get(StrategyModel, strategy_id)
    session.delete(strategy)
    session.commit()
    logger.info("Deleted strategy %s", strategy_id)


def delete_wallet(session: Session, activation: StrategyActivationService, wallet_id: int) -> None:
    """Stop the wallet's running strategies on the engine, then delete it.

    Strategies that lose their last running assignment are marked inactive.
    """
    wallet = session.get(WalletModel, wallet_id)
    if wallet is None:
        raise WalletNotFound(wallet_id)
    if wallet.is_deploying():
        raise WalletDeploying(wallet_id)

    activation.deactivate_all_for_wallet(session, wallet_id)
    strategy_ids = sorted({assignment.strategy_id for assignment in wallet.assignments})
    session.delete(wallet)
    session.flush()
    _refresh_is_active(session, activation, strategy_ids)
    session.commit()
    logger.info("Deleted wallet %s", wallet_id)


def _find_assignment(session: Session, wallet_id: int, strategy_id: int) -> Optional[WalletStrategyModel]:
    return session.scalars(
        select(WalletStrategyModel).where(
            WalletStrategyModel.wallet_id == wallet_id,
            WalletStrategyModel.strategy_id == strategy_id,
        )
    ).first()


def assign_strategy(
    session: Session,
    wallet_id: int,
    strategy_id: int,
    markets: Optional[List[str]] = None,
    max_position_usdc: float = DEFAULT_ASSIGNMENT_POSITION_USDC,
    is_paper: bool = False,
) -> WalletStrategyModel:
    """Link a wallet to a strategy as a stopped assignment.

    Assigning a pair that already exists updates its markets, position limit
    and paper flag in place; its run state is left alone.
    """
    if session.get(WalletModel, wallet_id) is None:
        raise WalletNotFound(wallet_id)
    if session.get(StrategyModel, strategy_id) is None:
        raise StrategyNotFound(strategy_id)
    if not MIN_ASSIGNMENT_POSITION_USDC <= max_position_usdc <= MAX_ASSIGNMENT_POSITION_USDC:
        raise ValueError(
            f"max_position_usdc must be between {MIN_ASSIGNMENT_POSITION_USDC} "
            f"and {MAX_ASSIGNMENT_POSITION_USDC}"
        )
    if markets is not None and not all(isinstance(market, str) for market in markets):
        raise ValueError("markets must be a list of strings")

    assignment = _find_assignment(session, wallet_id, strategy_id)
    if assignment is None:
        assignment = WalletStrategyModel(
            wallet_id=wallet_id,
            strategy_id=strategy_id,
            is_running=False,
            started_at=None,
        )
        session.add(assignment)
    else:
        logger.info("Updating assignment of strategy %s on wallet %s", strategy_id, wallet_id)

    assignment.markets = list(markets or [])
    assignment.max_position_usdc = Decimal(str(max_position_usdc))
    assignment.is_paper = is_paper
    session.commit()
    return assignment


def unassign_strategy(
    session: Session,
    activation: StrategyActivationService,
    wallet_id: int,
    strategy_id: int,
) -> None:
    """Remove a strategy from a wallet, stopping it on the engine first if it runs."""
    assignment = _find_assignment(session, wallet_id, strategy_id)
    if assignment is None:
        raise AssignmentNotFound(wallet_id, strategy_id)

    activation.stop_assignment(assignment)
    session.delete(assignment)
    session.flush()
    _refresh_is_active(session, activation, [strategy_id])
    session.commit()
    logger.info("Unassigned strategy %s from wallet %s", strategy_id, wallet_id)
