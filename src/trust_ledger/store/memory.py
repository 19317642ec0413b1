"""In-memory Store adapter.

Holds records in dicts guarded by an asyncio.Lock. Used by tests and local
runs; production deployments inject their own Store implementation.
"""

import asyncio

from trust_ledger.logging import get_logger
from trust_ledger.models import (
    Entity,
    Position,
    Recommendation,
    RecommenderMetrics,
    RecommenderMetricsHistory,
    Transaction,
)
from trust_ledger.store.base import Store
from trust_ledger.store.schemas import (
    EntityRow,
    PositionRow,
    RecommendationRow,
    TransactionRow,
)

logger = get_logger(__name__)


class InMemoryStore(Store):
    """Dict-backed Store with append-only metrics history."""

    def __init__(self) -> None:
        self._entities: dict[str, Entity] = {}
        self._positions: dict[str, Position] = {}
        self._transactions: list[Transaction] = []
        self._recommendations: dict[str, Recommendation] = {}
        self._metrics: dict[tuple[str, str], RecommenderMetrics] = {}
        self._history: list[RecommenderMetricsHistory] = []
        self._lock = asyncio.Lock()

    # ──────────────────────────────────────────────
    # Loading
    # ──────────────────────────────────────────────

    def add_entity(self, entity: Entity) -> None:
        self._entities[entity.id] = entity

    def add_position(self, position: Position) -> None:
        self._positions[position.id] = position

    def add_transaction(self, transaction: Transaction) -> None:
        self._transactions.append(transaction)

    def add_recommendation(self, recommendation: Recommendation) -> None:
        self._recommendations[recommendation.id] = recommendation

    def load_rows(self, rows: dict) -> None:
        """Load raw store rows, validating each through its schema.

        Args:
            rows: Dict with optional keys "entities", "positions",
                "transactions" and "recommendations", each a list of
                camelCase row dicts.

        Raises:
            pydantic.ValidationError: If any row fails validation.
        """
        for row in rows.get("entities", []):
            self.add_entity(EntityRow.model_validate(row).to_model())
        for row in rows.get("positions", []):
            self.add_position(PositionRow.model_validate(row).to_model())
        for row in rows.get("transactions", []):
            self.add_transaction(TransactionRow.model_validate(row).to_model())
        for row in rows.get("recommendations", []):
            self.add_recommendation(RecommendationRow.model_validate(row).to_model())

        logger.info(
            "store_rows_loaded",
            entities=len(self._entities),
            positions=len(self._positions),
            transactions=len(self._transactions),
            recommendations=len(self._recommendations),
        )

    # ──────────────────────────────────────────────
    # Store interface
    # ──────────────────────────────────────────────

    async def get_entity(self, entity_id: str) -> Entity | None:
        async with self._lock:
            return self._entities.get(entity_id)

    async def get_positions(self, entity_id: str) -> list[Position]:
        async with self._lock:
            return [p for p in self._positions.values() if p.entity_id == entity_id]

    async def get_transactions(self, position_ids: list[str]) -> list[Transaction]:
        wanted = set(position_ids)
        async with self._lock:
            return [t for t in self._transactions if t.position_id in wanted]

    async def get_recommendation(self, recommendation_id: str) -> Recommendation | None:
        async with self._lock:
            return self._recommendations.get(recommendation_id)

    async def get_recommender_metrics(
        self, entity_id: str, platform: str
    ) -> RecommenderMetrics | None:
        async with self._lock:
            return self._metrics.get((entity_id, platform))

    async def commit(self, record: Position | RecommenderMetrics) -> None:
        async with self._lock:
            if isinstance(record, Position):
                self._positions[record.id] = record
            elif isinstance(record, RecommenderMetrics):
                self._metrics[(record.entity_id, record.platform)] = record
            else:
                raise TypeError(f"Cannot commit {type(record).__name__}")

    async def append_transaction(self, transaction: Transaction) -> None:
        async with self._lock:
            self._transactions.append(transaction)

    async def append_metrics_history(self, snapshot: RecommenderMetricsHistory) -> None:
        async with self._lock:
            self._history.append(snapshot)

    async def get_metrics_history(
        self, entity_id: str, platform: str
    ) -> list[RecommenderMetricsHistory]:
        async with self._lock:
            return [
                h for h in self._history
                if h.entity_id == entity_id and h.platform == platform
            ]
