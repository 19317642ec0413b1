"""Price feed interface and an in-memory implementation.

The aggregator depends ONLY on the PriceFeed interface. Concrete feeds
(market-data APIs, on-chain indexers) are injected at startup; a feed
returns None when it has nothing for a token rather than raising.
"""

import asyncio
import time
from abc import ABC, abstractmethod

from trust_ledger.logging import get_logger
from trust_ledger.models import TokenKey, TokenPerformance

logger = get_logger(__name__)


class PriceFeed(ABC):
    """Abstract base class for token market-data sources."""

    @abstractmethod
    async def get_token_performance(
        self, chain: str, address: str
    ) -> TokenPerformance | None:
        """Return the latest market snapshot for a token, or None if unknown."""
        ...


class StaticPriceFeed(PriceFeed):
    """Shared in-memory token snapshot cache.

    Stores the latest TokenPerformance and its update time per
    (chain, address). Uses asyncio.Lock for safe concurrent reads/writes.

    Args:
        max_age_seconds: Snapshots older than this are withheld (the feed
            answers None, which the aggregator reports as a data gap).
            None keeps snapshots forever.
    """

    def __init__(self, max_age_seconds: float | None = None) -> None:
        self._snapshots: dict[TokenKey, tuple[TokenPerformance, float]] = {}
        self._max_age_seconds = max_age_seconds
        self._lock = asyncio.Lock()

    async def update(self, performance: TokenPerformance, timestamp: float | None = None) -> None:
        """Store the latest snapshot for a token (last write wins)."""
        async with self._lock:
            self._snapshots[performance.key] = (
                performance,
                timestamp if timestamp is not None else time.time(),
            )

    async def get_token_performance(
        self, chain: str, address: str
    ) -> TokenPerformance | None:
        async with self._lock:
            entry = self._snapshots.get(TokenKey(chain, address))
        if entry is None:
            return None

        performance, updated_at = entry
        if self._max_age_seconds is not None:
            age = time.time() - updated_at
            if age > self._max_age_seconds:
                logger.debug(
                    "token_snapshot_stale",
                    chain=chain,
                    address=address,
                    age_seconds=round(age, 1),
                )
                return None
        return performance
