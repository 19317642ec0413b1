"""Market data layer -- price feeds and token performance aggregation."""

from trust_ledger.market_data.aggregator import TokenPerformanceAggregator
from trust_ledger.market_data.price_feed import PriceFeed, StaticPriceFeed

__all__ = ["PriceFeed", "StaticPriceFeed", "TokenPerformanceAggregator"]
