"""Trading orchestrator: applies trade-source batches and scores closed positions.

Flow per batch:
1. Order transactions by timestamp (stable on ties)
2. Apply each one through the PositionLedger (per-entity lock, store commit)
3. Record integrity errors per transaction without aborting the batch
4. When a position reaches CLOSED, compute its realized P&L and feed the
   outcome to the RecommenderTrustScorer
"""

from collections import defaultdict
from dataclasses import dataclass, field

from trust_ledger.config import PnLSettings
from trust_ledger.exceptions import IntegrityError, InvalidTransaction
from trust_ledger.logging import get_logger
from trust_ledger.models import (
    ClosedPositionOutcome,
    Position,
    PositionStatus,
    RecommenderMetrics,
    Transaction,
)
from trust_ledger.pnl.calculator import compute_pnl
from trust_ledger.position.ledger import PositionLedger
from trust_ledger.position.reconciler import order_transactions
from trust_ledger.store.base import Store
from trust_ledger.trust.scorer import RecommenderTrustScorer

logger = get_logger(__name__)


@dataclass
class IngestResult:
    """Outcome of applying one trade-source batch."""

    applied: list[Transaction] = field(default_factory=list)
    closed: list[Position] = field(default_factory=list)
    metrics: list[RecommenderMetrics] = field(default_factory=list)
    errors: dict[str, IntegrityError] = field(default_factory=dict)  # tx id -> error


class TradingOrchestrator:
    """Applies transactions to the ledger and keeps recommender scores current.

    Args:
        ledger: Position ledger that owns position state.
        scorer: Trust scorer notified when positions close.
        store: Used to resolve the recommendation behind a closed position.
        pnl_settings: Decimal settings for realized P&L at close.
    """

    def __init__(
        self,
        ledger: PositionLedger,
        scorer: RecommenderTrustScorer,
        store: Store,
        pnl_settings: PnLSettings | None = None,
    ) -> None:
        self._ledger = ledger
        self._scorer = scorer
        self._store = store
        self._pnl_settings = pnl_settings or PnLSettings()
        self._transactions: defaultdict[str, list[Transaction]] = defaultdict(list)

    def load(self, positions: list[Position], transactions: list[Transaction]) -> None:
        """Seed ledger state and per-position history read from the store."""
        self._ledger.load(positions)
        for tx in transactions:
            self._transactions[tx.position_id].append(tx)

    async def ingest(self, transactions: list[Transaction]) -> IngestResult:
        """Apply a batch of transactions from the trade source.

        Args:
            transactions: Transactions already attributed to a position_id.

        Returns:
            IngestResult listing applied transactions, closed positions,
            updated recommender metrics and per-transaction errors.
        """
        result = IngestResult()

        for tx in order_transactions(transactions):
            if self._ledger.get_position(tx.position_id) is None:
                result.errors[tx.id] = InvalidTransaction(
                    f"Transaction {tx.id} references unknown position {tx.position_id}",
                    position_id=tx.position_id,
                )
                logger.warning(
                    "transaction_unknown_position",
                    tx_id=tx.id,
                    position_id=tx.position_id,
                )
                continue

            try:
                updated = await self._ledger.apply(tx)
            except IntegrityError as exc:
                result.errors[tx.id] = exc
                logger.warning(
                    "transaction_rejected",
                    tx_id=tx.id,
                    position_id=tx.position_id,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                continue

            self._transactions[tx.position_id].append(tx)
            result.applied.append(tx)

            if updated.status is PositionStatus.CLOSED:
                result.closed.append(updated)
                metrics = await self._score_closed(updated)
                if metrics is not None:
                    result.metrics.append(metrics)

        logger.info(
            "batch_ingested",
            received=len(transactions),
            applied=len(result.applied),
            closed=len(result.closed),
            rejected=len(result.errors),
        )
        return result

    async def _score_closed(self, position: Position) -> RecommenderMetrics | None:
        """Feed a closed position's realized result to the trust scorer."""
        recommendation = await self._store.get_recommendation(position.recommendation_id)
        if recommendation is None:
            logger.warning(
                "closed_position_without_recommendation",
                position_id=position.id,
                recommendation_id=position.recommendation_id,
            )
            return None

        history = order_transactions(self._transactions[position.id])
        try:
            pnl = compute_pnl(position, history, None, self._pnl_settings)
        except IntegrityError as exc:
            # Seeded history incomplete: the ledger balance cannot be replayed
            logger.error(
                "closed_position_unscorable",
                position_id=position.id,
                error=str(exc),
            )
            return None

        outcome = ClosedPositionOutcome(
            position_id=position.id,
            recommendation_id=recommendation.id,
            recommender_id=recommendation.entity_id,
            platform=recommendation.platform,
            realized_pnl=pnl.realized,
            realized_pct=pnl.realized_pct,
            closed_at=position.closed_at or history[-1].timestamp,
        )
        return await self._scorer.record_outcome(outcome)
