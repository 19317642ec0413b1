"""Tests for applying transactions to positions.

Tests verify:
- BUY / TRANSFER_IN increase balance, SELL / TRANSFER_OUT decrease it
- Outflow landing exactly on zero closes the position with closed_at set
- Underflow raises BalanceUnderflow and leaves the input untouched
- Closed positions, foreign transactions and simulation mixing are rejected
- PositionLedger serializes per-entity updates and commits to the store
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from trust_ledger.exceptions import (
    BalanceUnderflow,
    InvalidTransaction,
    PositionClosed,
    SimulationMismatch,
)
from trust_ledger.models import PositionStatus, TransactionType
from trust_ledger.position.ledger import PositionLedger, apply_transaction
from trust_ledger.store.memory import InMemoryStore


class TestApplyTransaction:
    """Tests for the pure apply_transaction function."""

    def test_buy_increases_balance(self, make_position, make_tx) -> None:
        position = make_position()
        updated = apply_transaction(position, make_tx("t1", TransactionType.BUY, 1000, "1.00"))
        assert updated.balance == 1000
        assert updated.status is PositionStatus.OPEN

    def test_transfer_in_increases_balance(self, make_position, make_tx) -> None:
        position = make_position(balance=100)
        updated = apply_transaction(
            position, make_tx("t1", TransactionType.TRANSFER_IN, 50, "0")
        )
        assert updated.balance == 150

    def test_sell_decreases_balance(self, make_position, make_tx) -> None:
        position = make_position(balance=1000)
        updated = apply_transaction(position, make_tx("t1", TransactionType.SELL, 400, "1.50"))
        assert updated.balance == 600
        assert updated.status is PositionStatus.OPEN
        assert updated.closed_at is None

    def test_does_not_mutate_input(self, make_position, make_tx) -> None:
        position = make_position(balance=1000)
        apply_transaction(position, make_tx("t1", TransactionType.SELL, 400, "1.50"))
        assert position.balance == 1000

    def test_outflow_to_zero_closes_position(self, make_position, make_tx) -> None:
        position = make_position(balance=300)
        tx = make_tx("t1", TransactionType.TRANSFER_OUT, 300, "1.00", minute=5)
        updated = apply_transaction(position, tx)
        assert updated.balance == 0
        assert updated.status is PositionStatus.CLOSED
        assert updated.closed_at == tx.timestamp

    def test_underflow_raises_and_keeps_balance(self, make_position, make_tx) -> None:
        """SELL 500 on a balance of 300 is rejected; the input is unchanged."""
        position = make_position(balance=300)
        with pytest.raises(BalanceUnderflow) as exc_info:
            apply_transaction(position, make_tx("t1", TransactionType.SELL, 500, "1.00"))
        assert exc_info.value.balance == 300
        assert exc_info.value.amount == 500
        assert exc_info.value.position_id == "pos_1"
        assert position.balance == 300
        assert position.status is PositionStatus.OPEN

    def test_closed_position_rejects_transactions(self, make_position, make_tx) -> None:
        position = make_position(status=PositionStatus.CLOSED)
        with pytest.raises(PositionClosed):
            apply_transaction(position, make_tx("t1", TransactionType.BUY, 10, "1.00"))

    def test_foreign_transaction_rejected(self, make_position, make_tx) -> None:
        position = make_position()
        tx = make_tx("t1", TransactionType.BUY, 10, "1.00", position_id="other")
        with pytest.raises(InvalidTransaction):
            apply_transaction(position, tx)

    def test_simulation_mismatch_rejected(self, make_position, make_tx) -> None:
        position = make_position(is_simulation=False)
        tx = make_tx("t1", TransactionType.BUY, 10, "1.00", is_simulation=True)
        with pytest.raises(SimulationMismatch):
            apply_transaction(position, tx)

    def test_balance_conservation(self, make_position, make_tx) -> None:
        """Final balance equals sum(inflows) - sum(outflows) when no underflow occurs."""
        position = make_position()
        txs = [
            make_tx("t1", TransactionType.BUY, 500, "1.00", minute=0),
            make_tx("t2", TransactionType.TRANSFER_IN, 250, "0", minute=1),
            make_tx("t3", TransactionType.SELL, 100, "1.20", minute=2),
            make_tx("t4", TransactionType.TRANSFER_OUT, 50, "0", minute=3),
            make_tx("t5", TransactionType.BUY, 10, "0.90", minute=4),
        ]
        for tx in txs:
            position = apply_transaction(position, tx)
        assert position.balance == 500 + 250 - 100 - 50 + 10


class TestPositionLedger:
    """Tests for the stateful PositionLedger."""

    @pytest.mark.asyncio
    async def test_open_position_starts_empty(self) -> None:
        store = InMemoryStore()
        ledger = PositionLedger(store)
        position = await ledger.open_position(
            entity_id="user_1",
            chain="solana",
            token_address="TokenA",
            wallet_address="wallet_1",
            initial_price=Decimal("1.00"),
            recommendation_id="rec_1",
        )
        assert position.balance == 0
        assert position.status is PositionStatus.OPEN
        assert ledger.get_position(position.id) == position
        assert await store.get_positions("user_1") == [position]

    @pytest.mark.asyncio
    async def test_apply_commits_to_store(self, make_position, make_tx) -> None:
        store = InMemoryStore()
        ledger = PositionLedger(store)
        ledger.load([make_position()])

        updated = await ledger.apply(make_tx("t1", TransactionType.BUY, 1000, "1.00"))

        assert updated.balance == 1000
        stored = await store.get_positions("user_1")
        assert stored == [updated]
        assert [t.id for t in await store.get_transactions(["pos_1"])] == ["t1"]

    @pytest.mark.asyncio
    async def test_failed_apply_keeps_previous_state(self, make_position, make_tx) -> None:
        store = InMemoryStore()
        ledger = PositionLedger(store)
        ledger.load([make_position(balance=300)])

        with pytest.raises(BalanceUnderflow):
            await ledger.apply(make_tx("t1", TransactionType.SELL, 500, "1.00"))

        assert ledger.get_position("pos_1").balance == 300
        assert await store.get_positions("user_1") == []
        assert await store.get_transactions(["pos_1"]) == []

    @pytest.mark.asyncio
    async def test_concurrent_applies_are_serialized(self, make_position, make_tx) -> None:
        """Concurrent BUYs for one entity never lose an update."""
        ledger = PositionLedger(InMemoryStore())
        ledger.load([make_position()])

        await asyncio.gather(*(
            ledger.apply(make_tx(f"t{i}", TransactionType.BUY, 10, "1.00", minute=i))
            for i in range(20)
        ))

        assert ledger.get_position("pos_1").balance == 200

    def test_get_positions_filters(self, make_position) -> None:
        ledger = PositionLedger(InMemoryStore())
        ledger.load([
            make_position(id="p1"),
            make_position(id="p2", is_simulation=True),
            make_position(id="p3", status=PositionStatus.CLOSED),
            make_position(id="p4", entity_id="user_2"),
        ])

        assert [p.id for p in ledger.get_positions("user_1")] == ["p1", "p2", "p3"]
        assert [p.id for p in ledger.get_positions("user_1", is_simulation=True)] == ["p2"]
        assert [
            p.id for p in ledger.get_positions("user_1", False, PositionStatus.OPEN)
        ] == ["p1"]

    def test_find_open(self, make_position) -> None:
        ledger = PositionLedger(InMemoryStore())
        ledger.load([
            make_position(id="p1", status=PositionStatus.CLOSED),
            make_position(id="p2"),
        ])

        found = ledger.find_open("user_1", "solana", "TokenA", is_simulation=False)
        assert found is not None
        assert found.id == "p2"
        assert ledger.find_open("user_1", "solana", "TokenB", is_simulation=False) is None

    @pytest.mark.asyncio
    async def test_open_position_uses_given_created_at(self) -> None:
        store = InMemoryStore()
        ledger = PositionLedger(store)
        created = datetime(2024, 5, 1, tzinfo=timezone.utc)
        position = await ledger.open_position(
            entity_id="user_1",
            chain="solana",
            token_address="TokenA",
            wallet_address="wallet_1",
            initial_price=Decimal("1.00"),
            recommendation_id="rec_1",
            is_simulation=True,
            created_at=created,
        )
        assert position.created_at == created
        assert position.is_simulation is True
        assert (await store.get_positions("user_1"))[0].created_at == created
