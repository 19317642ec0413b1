"""Shared test fixtures for the trust ledger."""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from trust_ledger.config import AppSettings, PnLSettings, TrustSettings
from trust_ledger.models import (
    Position,
    PositionStatus,
    TokenPerformance,
    Transaction,
    TransactionType,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with test defaults."""
    return AppSettings(
        log_level="DEBUG",
        pnl=PnLSettings(),
        trust=TrustSettings(),
    )


@pytest.fixture
def make_position() -> Callable[..., Position]:
    """Factory for positions; defaults to an empty real OPEN position."""

    def _make(
        id: str = "pos_1",
        entity_id: str = "user_1",
        chain: str = "solana",
        token_address: str = "TokenA",
        balance: int = 0,
        status: PositionStatus = PositionStatus.OPEN,
        is_simulation: bool = False,
        initial_price: Decimal = Decimal("1.00"),
        recommendation_id: str = "rec_1",
    ) -> Position:
        return Position(
            id=id,
            entity_id=entity_id,
            chain=chain,
            token_address=token_address,
            wallet_address="wallet_1",
            balance=balance,
            status=status,
            is_simulation=is_simulation,
            initial_price=initial_price,
            recommendation_id=recommendation_id,
            created_at=T0,
        )

    return _make


@pytest.fixture
def make_tx() -> Callable[..., Transaction]:
    """Factory for transactions; ``minute`` offsets the timestamp from T0."""

    def _make(
        id: str,
        type: TransactionType,
        amount: int,
        price: str,
        position_id: str = "pos_1",
        minute: int = 0,
        is_simulation: bool = False,
    ) -> Transaction:
        return Transaction(
            id=id,
            position_id=position_id,
            type=type,
            amount=amount,
            price=Decimal(price),
            timestamp=T0 + timedelta(minutes=minute),
            is_simulation=is_simulation,
        )

    return _make


@pytest.fixture
def make_token() -> Callable[..., TokenPerformance]:
    """Factory for token snapshots with a known price."""

    def _make(
        price: str | None = "2.00",
        chain: str = "solana",
        address: str = "TokenA",
    ) -> TokenPerformance:
        return TokenPerformance(
            chain=chain,
            address=address,
            symbol="TKA",
            price=Decimal(price) if price is not None else None,
        )

    return _make
