"""
Strategy activation orchestrator.

Moves wallet assignments between stopped and running, calling the execution
engine once per affected wallet. Local state changes for `activate` and
`deactivate` are committed all-or-nothing; the engine itself is not
transactional, so see `activate` for how earlier engine calls are handled when
a later one fails.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from engine_client import ExecutionEngine
from graph_errors import StrategyNotFound, WalletNotDeployed, WalletNotFound
from storage_models import StrategyModel, WalletModel, WalletStrategyModel

logger = logging.getLogger(__name__)


@contextmanager
def _transaction(session: Session) -> Iterator[None]:
    try:
        yield
        session.commit()
    except Exception:
        session.rollback()
        raise


class StrategyActivationService:
    """Synchronizes assignment run-state between the database and the engine."""

    def __init__(self, engine: ExecutionEngine):
        self.engine = engine

    # ─── lookups ───────────────────────────────────────────────────

    def _get_strategy(self, session: Session, strategy_id: int) -> StrategyModel:
        strategy = session.get(StrategyModel, strategy_id)
        if strategy is None:
            raise StrategyNotFound(strategy_id)
        return strategy

    def _get_wallet(self, session: Session, wallet_id: int) -> WalletModel:
        wallet = session.get(WalletModel, wallet_id)
        if wallet is None:
            raise WalletNotFound(wallet_id)
        return wallet

    def _assignments(self, session: Session, *criteria) -> Sequence[WalletStrategyModel]:
        stmt = (
            select(WalletStrategyModel)
            .where(*criteria)
            .options(selectinload(WalletStrategyModel.wallet))
            .order_by(WalletStrategyModel.id)
        )
        return session.scalars(stmt).all()

    # ─── activate / deactivate ─────────────────────────────────────

    def activate(self, session: Session, strategy_id: int) -> List[int]:
        """Start every stopped assignment of a strategy.

        Already-running assignments are left alone, so calling this twice is
        harmless. If an engine call fails, local state is rolled back and the
        engine is told to deactivate the wallets it had already accepted in
        this call before the original error is re-raised.

        Returns:
            Wallet ids that were started.

        Raises:
            WalletNotDeployed: an assigned wallet has no deployed Safe yet.
            EngineRequestError: the engine rejected or missed a call.
        """
        strategy = self._get_strategy(session, strategy_id)
        assignments = self._assignments(
            session,
            WalletStrategyModel.strategy_id == strategy.id,
            WalletStrategyModel.is_running.is_(False),
        )

        for assignment in assignments:
            if not assignment.wallet.is_deployed():
                raise WalletNotDeployed(assignment.wallet_id)

        started: List[int] = []
        now = datetime.now(timezone.utc)
        try:
            with _transaction(session):
                for assignment in assignments:
                    wallet = assignment.wallet
                    self.engine.activate_strategy(
                        assignment.wallet_id,
                        strategy.id,
                        strategy.graph,
                        list(assignment.markets or []),
                        float(assignment.max_position_usdc),
                        bool(assignment.is_paper),
                        wallet.private_key_enc or "",
                        wallet.safe_address or "",
                    )
                    started.append(assignment.wallet_id)
                    assignment.mark_running(now)
                    logger.info("Activated strategy %s on wallet %s", strategy.id, assignment.wallet_id)

                strategy.is_active = self.has_running(session, strategy.id)
        except Exception:
            self._compensate_activation(strategy_id, started)
            raise

        return started

    def has_running(self, session: Session, strategy_id: int) -> bool:
        """Whether any assignment of the strategy is running, counting unflushed changes."""
        session.flush()
        stmt = select(WalletStrategyModel.id).where(
            WalletStrategyModel.strategy_id == strategy_id,
            WalletStrategyModel.is_running.is_(True),
        )
        return session.scalars(stmt).first() is not None

    def _compensate_activation(self, strategy_id: int, wallet_ids: List[int]) -> None:
        for wallet_id in wallet_ids:
            try:
                self.engine.deactivate_strategy(wallet_id, strategy_id)
            except Exception:
                logger.exception(
                    "Could not roll back engine activation of strategy %s on wallet %s",
                    strategy_id, wallet_id,
                )
            else:
                logger.warning(
                    "Rolled back engine activation of strategy %s on wallet %s",
                    strategy_id, wallet_id,
                )

    def deactivate(self, session: Session, strategy_id: int) -> List[int]:
        """Stop every running assignment of a strategy.

        Local state is rolled back if any engine call fails. Wallets the engine
        already stopped earlier in the loop stay stopped on the engine side.

        Returns:
            Wallet ids that were stopped.
        """
        strategy = self._get_strategy(session, strategy_id)
        assignments = self._assignments(
            session,
            WalletStrategyModel.strategy_id == strategy.id,
            WalletStrategyModel.is_running.is_(True),
        )

        stopped: List[int] = []
        with _transaction(session):
            for assignment in assignments:
                self.engine.deactivate_strategy(assignment.wallet_id, strategy.id)
                assignment.mark_stopped()
                stopped.append(assignment.wallet_id)
                logger.info("Deactivated strategy %s on wallet %s", strategy.id, assignment.wallet_id)

            strategy.is_active = False

        return stopped

    # ─── deletion sweeps ───────────────────────────────────────────

    def deactivate_all_for_strategy(self, session: Session, strategy_id: int) -> None:
        """Stop a strategy on the engine for every running wallet before deletion.

        Local rows are not touched; any engine failure propagates so the caller
        can abort the delete.
        """
        strategy = self._get_strategy(session, strategy_id)
        for assignment in self._assignments(
            session,
            WalletStrategyModel.strategy_id == strategy.id,
            WalletStrategyModel.is_running.is_(True),
        ):
            self.engine.deactivate_strategy(assignment.wallet_id, strategy.id)

    def deactivate_all_for_wallet(self, session: Session, wallet_id: int) -> None:
        wallet = self._get_wallet(session, wallet_id)
        for assignment in self._assignments(
            session,
            WalletStrategyModel.wallet_id == wallet.id,
            WalletStrategyModel.is_running.is_(True),
        ):
            self.engine.deactivate_strategy(wallet.id, assignment.strategy_id)

    def stop_assignment(self, assignment: WalletStrategyModel) -> None:
        """Stop one running assignment on the engine before it is removed.

        Local rows are not touched; an engine failure propagates.
        """
        if not assignment.is_running:
            return
        self.engine.deactivate_strategy(assignment.wallet_id, assignment.strategy_id)
        logger.info(
            "Stopped strategy %s on wallet %s before unassigning",
            assignment.strategy_id, assignment.wallet_id,
        )

    # ─── kill switch ───────────────────────────────────────────────

    def kill(self, session: Session, strategy_id: int) -> None:
        """Halt all evaluation of a strategy on the engine, for every wallet."""
        strategy = self._get_strategy(session, strategy_id)
        for assignment in self._assignments(session, WalletStrategyModel.strategy_id == strategy.id):
            self.engine.kill_strategy(assignment.wallet_id, strategy.id)
        logger.warning("Kill switch engaged for strategy %s", strategy.id)

    def unkill(self, session: Session, strategy_id: int) -> None:
        strategy = self._get_strategy(session, strategy_id)
        for assignment in self._assignments(session, WalletStrategyModel.strategy_id == strategy.id):
            self.engine.unkill_strategy(assignment.wallet_id, strategy.id)
        logger.info("Kill switch released for strategy %s", strategy.id)
