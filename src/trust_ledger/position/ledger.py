"""Position lifecycle: applying transactions to positions.

``apply_transaction`` is the only way a position's balance or status
changes. It is pure: it returns a new Position and leaves its input
untouched, so a failed application never leaves partial state.

PositionLedger holds positions in memory per actor and serializes
read-modify-write cycles per entity with an asyncio.Lock. Different
entities never contend on the same lock.

Lifecycle:
1. open_position creates and commits a zero-balance OPEN position
2. BUY / TRANSFER_IN add to balance
3. SELL / TRANSFER_OUT subtract; below zero raises BalanceUnderflow
4. An outflow that lands exactly on zero closes the position for good
"""

import asyncio
import dataclasses
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from trust_ledger.exceptions import (
    BalanceUnderflow,
    InvalidTransaction,
    PositionClosed,
    SimulationMismatch,
)
from trust_ledger.logging import get_logger
from trust_ledger.models import Position, PositionStatus, Transaction
from trust_ledger.store.base import Store

logger = get_logger(__name__)


def apply_transaction(position: Position, tx: Transaction) -> Position:
    """Apply one transaction to a position and return the updated copy.

    Args:
        position: Current position state.
        tx: Transaction owned by this position.

    Returns:
        New Position with updated balance. When an outflow brings the
        balance to exactly zero, status is CLOSED and closed_at is set
        to the transaction timestamp.

    Raises:
        InvalidTransaction: If tx belongs to another position or has a
            negative amount.
        SimulationMismatch: If tx and position disagree on is_simulation.
        PositionClosed: If the position is already CLOSED.
        BalanceUnderflow: If an outflow exceeds the current balance.
    """
    if tx.position_id != position.id:
        raise InvalidTransaction(
            f"Transaction {tx.id} belongs to position {tx.position_id}, "
            f"not {position.id}",
            position_id=position.id,
        )
    if tx.amount < 0:
        raise InvalidTransaction(
            f"Transaction {tx.id} has negative amount {tx.amount}",
            position_id=position.id,
        )
    if tx.is_simulation != position.is_simulation:
        raise SimulationMismatch(
            f"Transaction {tx.id} (simulation={tx.is_simulation}) cannot be "
            f"applied to position {position.id} "
            f"(simulation={position.is_simulation})",
            position_id=position.id,
        )
    if position.status is PositionStatus.CLOSED:
        raise PositionClosed(position.id)

    if tx.type.is_inflow:
        return dataclasses.replace(position, balance=position.balance + tx.amount)

    new_balance = position.balance - tx.amount
    if new_balance < 0:
        raise BalanceUnderflow(position.id, position.balance, tx.amount)

    if new_balance == 0:
        return dataclasses.replace(
            position,
            balance=0,
            status=PositionStatus.CLOSED,
            closed_at=tx.timestamp,
        )
    return dataclasses.replace(position, balance=new_balance)


class PositionLedger:
    """In-memory ledger of positions keyed by id, grouped per actor.

    Mutations run under a per-entity lock and are committed to the
    injected Store, together with the transaction, after they succeed.

    Args:
        store: Store that receives every committed position.
    """

    def __init__(self, store: Store) -> None:
        self._store = store
        self._positions: dict[str, Position] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def load(self, positions: list[Position]) -> None:
        """Seed the ledger with positions read from the store."""
        for position in positions:
            self._positions[position.id] = position

    async def open_position(
        self,
        entity_id: str,
        chain: str,
        token_address: str,
        wallet_address: str,
        initial_price: Decimal,
        recommendation_id: str,
        is_simulation: bool = False,
        created_at: datetime | None = None,
    ) -> Position:
        """Create a zero-balance OPEN position and commit it to the store.

        The opening BUY is applied separately through ``apply``.
        """
        position = Position(
            id=uuid4().hex,
            entity_id=entity_id,
            chain=chain,
            token_address=token_address,
            wallet_address=wallet_address,
            balance=0,
            status=PositionStatus.OPEN,
            is_simulation=is_simulation,
            initial_price=initial_price,
            recommendation_id=recommendation_id,
            created_at=created_at or datetime.now(timezone.utc),
        )
        async with self._locks[entity_id]:
            await self._store.commit(position)
            self._positions[position.id] = position

        logger.info(
            "position_opened",
            position_id=position.id,
            entity_id=entity_id,
            chain=chain,
            token_address=token_address,
            is_simulation=is_simulation,
        )
        return position

    async def apply(self, tx: Transaction) -> Position:
        """Apply a transaction to its position under the owner's lock and commit.

        Args:
            tx: Transaction to apply.

        Returns:
            The committed Position.

        Raises:
            KeyError: If tx.position_id is not in the ledger.
            IntegrityError: Any error raised by apply_transaction; the
                ledger keeps the previous position state.
        """
        entity_id = self._positions[tx.position_id].entity_id
        async with self._locks[entity_id]:
            # Re-read inside the lock: another coroutine may have committed
            current = self._positions[tx.position_id]
            updated = apply_transaction(current, tx)
            await self._store.commit(updated)
            await self._store.append_transaction(tx)
            self._positions[updated.id] = updated

        if updated.status is PositionStatus.CLOSED:
            logger.info(
                "position_closed",
                position_id=updated.id,
                entity_id=entity_id,
                closed_at=updated.closed_at.isoformat() if updated.closed_at else None,
            )
        else:
            logger.debug(
                "transaction_applied",
                position_id=updated.id,
                tx_id=tx.id,
                tx_type=tx.type.value,
                amount=tx.amount,
                balance=updated.balance,
            )
        return updated

    def get_position(self, position_id: str) -> Position | None:
        return self._positions.get(position_id)

    def get_positions(
        self,
        entity_id: str,
        is_simulation: bool | None = None,
        status: PositionStatus | None = None,
    ) -> list[Position]:
        """Return an actor's positions, optionally filtered by simulation flag and status."""
        return [
            p for p in self._positions.values()
            if p.entity_id == entity_id
            and (is_simulation is None or p.is_simulation == is_simulation)
            and (status is None or p.status is status)
        ]

    def find_open(
        self,
        entity_id: str,
        chain: str,
        token_address: str,
        is_simulation: bool,
    ) -> Position | None:
        """Return the actor's OPEN position on a token, if any."""
        for position in self.get_positions(entity_id, is_simulation, PositionStatus.OPEN):
            if position.chain == chain and position.token_address == token_address:
                return position
        return None
