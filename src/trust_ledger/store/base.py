"""Abstract store interface.

The core never touches persistence directly. Every component that needs
records receives a Store at construction time; the concrete store (an
in-memory adapter for tests and local runs, or an external database
adapter) is injected at startup.
"""

from abc import ABC, abstractmethod

from trust_ledger.models import (
    Entity,
    Position,
    Recommendation,
    RecommenderMetrics,
    RecommenderMetricsHistory,
    Transaction,
)


class Store(ABC):
    """Abstract base class for record stores."""

    @abstractmethod
    async def get_entity(self, entity_id: str) -> Entity | None:
        """Return the entity record, or None if the actor is unknown."""
        ...

    @abstractmethod
    async def get_positions(self, entity_id: str) -> list[Position]:
        """Return every position (open and closed) owned by an entity."""
        ...

    @abstractmethod
    async def get_transactions(self, position_ids: list[str]) -> list[Transaction]:
        """Return transactions for the given positions in insertion order."""
        ...

    @abstractmethod
    async def get_recommendation(self, recommendation_id: str) -> Recommendation | None:
        """Return a recommendation by id, or None."""
        ...

    @abstractmethod
    async def get_recommender_metrics(
        self, entity_id: str, platform: str
    ) -> RecommenderMetrics | None:
        """Return current metrics for a recommender on a platform, or None."""
        ...

    @abstractmethod
    async def commit(self, record: Position | RecommenderMetrics) -> None:
        """Persist a mutated Position or RecommenderMetrics record."""
        ...

    @abstractmethod
    async def append_transaction(self, transaction: Transaction) -> None:
        """Append an applied transaction. Never rewrites existing rows."""
        ...

    @abstractmethod
    async def append_metrics_history(self, snapshot: RecommenderMetricsHistory) -> None:
        """Append an immutable metrics snapshot. Never rewrites existing rows."""
        ...

    @abstractmethod
    async def get_metrics_history(
        self, entity_id: str, platform: str
    ) -> list[RecommenderMetricsHistory]:
        """Return metrics snapshots oldest-first."""
        ...
