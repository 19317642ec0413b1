"""Tests for the in-memory StaticPriceFeed."""

import time
from decimal import Decimal

import pytest

from trust_ledger.market_data.price_feed import StaticPriceFeed


@pytest.fixture
def feed() -> StaticPriceFeed:
    """Empty StaticPriceFeed for testing."""
    return StaticPriceFeed()


class TestStaticPriceFeed:
    """Tests for update / get_token_performance / max age."""

    @pytest.mark.asyncio
    async def test_unknown_token_returns_none(self, feed: StaticPriceFeed) -> None:
        assert await feed.get_token_performance("solana", "A") is None

    @pytest.mark.asyncio
    async def test_update_then_read(self, feed: StaticPriceFeed, make_token) -> None:
        await feed.update(make_token("1.25", address="A"))
        token = await feed.get_token_performance("solana", "A")
        assert token is not None
        assert token.price == Decimal("1.25")

    @pytest.mark.asyncio
    async def test_old_snapshot_kept_without_max_age(
        self, feed: StaticPriceFeed, make_token
    ) -> None:
        await feed.update(make_token("1.25", address="A"), timestamp=time.time() - 120)
        assert await feed.get_token_performance("solana", "A") is not None

    @pytest.mark.asyncio
    async def test_old_snapshot_withheld(self, make_token) -> None:
        feed = StaticPriceFeed(max_age_seconds=60)
        await feed.update(make_token("1.25", address="A"), timestamp=time.time() - 120)
        await feed.update(make_token("2.00", address="B"))

        assert await feed.get_token_performance("solana", "A") is None
        fresh = await feed.get_token_performance("solana", "B")
        assert fresh is not None
        assert fresh.price == Decimal("2.00")

    @pytest.mark.asyncio
    async def test_keyed_by_chain_and_address(self, feed: StaticPriceFeed, make_token) -> None:
        await feed.update(make_token("1", chain="solana", address="A"))
        assert await feed.get_token_performance("base", "A") is None
