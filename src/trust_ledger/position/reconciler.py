"""Transaction reconciliation against positions.

Groups a flat transaction stream by owning position, orders each group by
timestamp and replays it from an empty position to verify the stored
balance. Integrity problems are recorded on the group rather than raised,
so one bad position never aborts a whole report.
"""

import dataclasses
from collections import defaultdict
from dataclasses import dataclass

from trust_ledger.exceptions import BalanceMismatch, IntegrityError
from trust_ledger.logging import get_logger
from trust_ledger.models import Position, PositionStatus, Transaction
from trust_ledger.position.ledger import apply_transaction

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReconciledPosition:
    """A position paired with its ordered transactions and replay outcome."""

    position: Position
    transactions: list[Transaction]
    replayed_balance: int
    error: IntegrityError | None = None

    @property
    def is_consistent(self) -> bool:
        return self.error is None


def order_transactions(transactions: list[Transaction]) -> list[Transaction]:
    """Sort by timestamp; sorted() is stable so same-block trades keep insertion order."""
    return sorted(transactions, key=lambda tx: tx.timestamp)


def replay(position: Position, ordered: list[Transaction]) -> tuple[int, IntegrityError | None]:
    """Replay transactions onto an empty OPEN copy of the position.

    Returns:
        (replayed_balance, error). On error the balance is the one reached
        before the failing transaction.
    """
    state = dataclasses.replace(
        position, balance=0, status=PositionStatus.OPEN, closed_at=None
    )
    for tx in ordered:
        try:
            state = apply_transaction(state, tx)
        except IntegrityError as exc:
            return state.balance, exc
    return state.balance, None


def select_positions(
    positions: list[Position], entity_id: str, is_simulation: bool
) -> list[Position]:
    """Keep only the requested (entity_id, is_simulation) pair, in input order."""
    return [
        p for p in positions
        if p.entity_id == entity_id and p.is_simulation == is_simulation
    ]


def reconcile(
    positions: list[Position],
    transactions: list[Transaction],
    entity_id: str,
    is_simulation: bool,
) -> list[ReconciledPosition]:
    """Match transactions to the requested actor's positions.

    Positions outside the requested (entity_id, is_simulation) pair are
    dropped, along with any transaction not owned by a kept position.
    Inputs are never mutated.

    Args:
        positions: Candidate positions, in caller order.
        transactions: Flat transaction stream in insertion order.
        entity_id: Actor whose positions are wanted.
        is_simulation: Whether simulated or real positions are wanted.

    Returns:
        One ReconciledPosition per kept position, preserving input order.
        Groups may be empty.
    """
    return reconcile_positions(select_positions(positions, entity_id, is_simulation), transactions)


def reconcile_positions(
    kept: list[Position],
    transactions: list[Transaction],
) -> list[ReconciledPosition]:
    """Group, order and replay transactions for an already-selected set of positions."""
    kept_ids = {p.id for p in kept}

    grouped: defaultdict[str, list[Transaction]] = defaultdict(list)
    dropped = 0
    for tx in transactions:
        if tx.position_id in kept_ids:
            grouped[tx.position_id].append(tx)
        else:
            dropped += 1

    if dropped:
        logger.debug(
            "reconcile_dropped_transactions",
            dropped=dropped,
        )

    results: list[ReconciledPosition] = []
    for position in kept:
        ordered = order_transactions(grouped.get(position.id, []))
        replayed_balance, error = replay(position, ordered)

        if error is None and replayed_balance != position.balance:
            error = BalanceMismatch(position.id, position.balance, replayed_balance)

        if error is not None:
            logger.warning(
                "reconcile_inconsistency",
                position_id=position.id,
                error_type=type(error).__name__,
                error=str(error),
            )

        results.append(
            ReconciledPosition(
                position=position,
                transactions=ordered,
                replayed_balance=replayed_balance,
                error=error,
            )
        )

    return results
