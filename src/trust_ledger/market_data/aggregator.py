"""Token performance aggregation for portfolio reports.

Collapses positions to their distinct (chain, address) tokens, fetches one
market snapshot per token concurrently and merges it over any static
metadata already known. A missing snapshot is a data gap, not an error:
the token is still reported with its static fields so the position behind
it is never hidden by a feed outage.

Fan-out is bounded by an asyncio.Semaphore and every feed call by
asyncio.wait_for, so a slow feed turns into a gap instead of a hang.
"""

import asyncio
import dataclasses

from trust_ledger.config import AggregatorSettings
from trust_ledger.exceptions import DataGap
from trust_ledger.logging import get_logger
from trust_ledger.market_data.price_feed import PriceFeed
from trust_ledger.models import Position, TokenKey, TokenMetadata, TokenPerformance

logger = get_logger(__name__)


def dedupe_token_keys(positions: list[Position]) -> list[TokenKey]:
    """Return distinct (chain, token_address) keys in order of first appearance."""
    return list(dict.fromkeys(p.token_key for p in positions))


def merge_performance(
    key: TokenKey,
    live: TokenPerformance | None,
    static: TokenMetadata | None,
) -> TokenPerformance:
    """Join a live snapshot with static metadata.

    Live fields win; static name/symbol/decimals fill whatever the feed left
    empty. With no live snapshot the result carries only static fields and
    ``has_market_data=False``.
    """
    if live is None:
        return TokenPerformance(
            chain=key.chain,
            address=key.address,
            name=static.name if static else None,
            symbol=static.symbol if static else None,
            decimals=static.decimals if static else None,
            has_market_data=False,
        )

    merged = dataclasses.replace(
        live, chain=key.chain, address=key.address, has_market_data=True
    )
    if static is not None:
        merged = dataclasses.replace(
            merged,
            name=merged.name if merged.name is not None else static.name,
            symbol=merged.symbol if merged.symbol is not None else static.symbol,
            decimals=merged.decimals if merged.decimals is not None else static.decimals,
        )
    return merged


class TokenPerformanceAggregator:
    """Fetches and caches one TokenPerformance per distinct token.

    Args:
        price_feed: Source of live market snapshots.
        settings: Concurrency and timeout limits.
        metadata: Static token metadata known up front.
    """

    def __init__(
        self,
        price_feed: PriceFeed,
        settings: AggregatorSettings | None = None,
        metadata: list[TokenMetadata] | None = None,
    ) -> None:
        self._price_feed = price_feed
        self._settings = settings or AggregatorSettings()
        self._metadata: dict[TokenKey, TokenMetadata] = {
            TokenKey(m.chain, m.address): m for m in (metadata or [])
        }
        self._performance: dict[TokenKey, TokenPerformance] = {}

    def add_metadata(self, metadata: TokenMetadata) -> None:
        self._metadata[TokenKey(metadata.chain, metadata.address)] = metadata

    def get_cached(self, chain: str, address: str) -> TokenPerformance | None:
        """Return the last aggregated record for a token, if any."""
        return self._performance.get(TokenKey(chain, address))

    async def _fetch_live(self, key: TokenKey) -> TokenPerformance:
        """Call the price feed with a timeout.

        Raises:
            DataGap: If the feed returns None, times out or fails.
        """
        try:
            live = await asyncio.wait_for(
                self._price_feed.get_token_performance(key.chain, key.address),
                timeout=self._settings.fetch_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise DataGap(
                f"Price feed timed out after "
                f"{self._settings.fetch_timeout_seconds}s for {key.chain}:{key.address}"
            ) from exc
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise DataGap(
                f"Price feed failed for {key.chain}:{key.address}: {exc}"
            ) from exc

        if live is None:
            raise DataGap(f"No market data for {key.chain}:{key.address}")
        return live

    async def fetch_or_join(self, chain: str, address: str) -> TokenPerformance:
        """Fetch the live snapshot for a token and join it with static metadata.

        Never raises for missing data: a gap yields a static-only record.
        """
        key = TokenKey(chain, address)
        try:
            live: TokenPerformance | None = await self._fetch_live(key)
        except DataGap as exc:
            logger.warning(
                "token_data_gap",
                chain=chain,
                address=address,
                reason=str(exc),
            )
            live = None

        performance = merge_performance(key, live, self._metadata.get(key))
        self._performance[key] = performance
        return performance

    async def aggregate(self, positions: list[Position]) -> dict[TokenKey, TokenPerformance]:
        """Fetch one TokenPerformance per distinct token, concurrently.

        Args:
            positions: Positions whose tokens should be resolved.

        Returns:
            Dict keyed by (chain, address), in order of first appearance.
        """
        keys = dedupe_token_keys(positions)
        semaphore = asyncio.Semaphore(self._settings.max_concurrency)

        async def _bounded(key: TokenKey) -> TokenPerformance:
            async with semaphore:
                return await self.fetch_or_join(key.chain, key.address)

        results = await asyncio.gather(*(_bounded(key) for key in keys))

        gaps = sum(1 for r in results if not r.has_market_data)
        logger.info(
            "tokens_aggregated",
            token_count=len(keys),
            gaps=gaps,
        )
        return dict(zip(keys, results))
