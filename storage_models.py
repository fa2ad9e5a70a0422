"""SQLAlchemy models for strategies, wallets and their assignments.

Only the columns the strategy core reads or writes are mapped here; billing,
trades and the rest of the schema live with the surrounding application.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

WALLET_STATUS_PENDING = "pending"
WALLET_STATUS_DEPLOYING = "deploying"
WALLET_STATUS_DEPLOYED = "deployed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class WalletModel(Base):
    """A trading wallet backed by a Gnosis Safe."""

    __tablename__ = "wallets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    label: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    signer_address: Mapped[str] = mapped_column(String(42), nullable=False)
    safe_address: Mapped[Optional[str]] = mapped_column(String(42), nullable=True, unique=True)
    private_key_enc: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=WALLET_STATUS_PENDING)
    deployed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    assignments: Mapped[List["WalletStrategyModel"]] = relationship(
        back_populates="wallet", cascade="all, delete-orphan"
    )

    def is_deployed(self) -> bool:
        return self.status == WALLET_STATUS_DEPLOYED

    def is_deploying(self) -> bool:
        return self.status == WALLET_STATUS_DEPLOYING

    def __repr__(self) -> str:
        # never render private_key_enc
        return f"<WalletModel id={self.id} status={self.status}>"


class StrategyModel(Base):
    """A user strategy and its graph (form or node mode)."""

    __tablename__ = "strategies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    mode: Mapped[str] = mapped_column(String(10), nullable=False)
    graph: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    assignments: Mapped[List["WalletStrategyModel"]] = relationship(
        back_populates="strategy", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_strategies_user", "user_id"),)


class WalletStrategyModel(Base):
    """Assignment of one strategy to one wallet.

    `started_at` is set exactly while `is_running` is true.
    """

    __tablename__ = "wallet_strategies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(
        ForeignKey("wallets.id", ondelete="CASCADE"), nullable=False
    )
    strategy_id: Mapped[int] = mapped_column(
        ForeignKey("strategies.id", ondelete="CASCADE"), nullable=False
    )
    markets: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    max_position_usdc: Mapped[Decimal] = mapped_column(
        Numeric(18, 6), nullable=False, default=Decimal("100")
    )
    is_running: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_paper: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    wallet: Mapped[WalletModel] = relationship(back_populates="assignments")
    strategy: Mapped[StrategyModel] = relationship(back_populates="assignments")

    __table_args__ = (
        UniqueConstraint("wallet_id", "strategy_id", name="uq_wallet_strategy"),
        Index("idx_wallet_strategies_running", "strategy_id", "is_running"),
    )

    def mark_running(self, now: Optional[datetime] = None) -> None:
        self.is_running = True
        self.started_at = now or _utcnow()

    def mark_stopped(self) -> None:
        self.is_running = False
        self.started_at = None
