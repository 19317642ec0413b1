"""Shared data models for the trust ledger.

CRITICAL: All prices and money values use Decimal. Never use float for prices,
PnL or scores. Amounts and balances are ints in the token's smallest unit.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import NamedTuple


class PositionStatus(str, Enum):
    """Position lifecycle state. CLOSED is terminal."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"


class TransactionType(str, Enum):
    """Transaction direction. Amount sign never encodes direction."""

    BUY = "buy"
    SELL = "sell"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"

    @property
    def is_inflow(self) -> bool:
        return self in (TransactionType.BUY, TransactionType.TRANSFER_IN)


class Conviction(str, Enum):
    """Conviction level attached to a recommendation."""

    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    VERY_HIGH = "VERY_HIGH"


class RecommendationType(str, Enum):
    """What the recommender told the actor to do."""

    BUY = "buy"
    DONT_BUY = "DONT_BUY"
    SELL = "sell"
    DONT_SELL = "DONT_SELL"
    NONE = "NONE"
    HOLD = "HOLD"


class TokenKey(NamedTuple):
    """Deduplication key for token data: the literal (chain, address) pair."""

    chain: str
    address: str


@dataclass(frozen=True)
class Entity:
    """An actor known to the store (user or recommender)."""

    id: str
    name: str = ""
    username: str = ""


@dataclass(frozen=True)
class Position:
    """A tracked holding of one token by one actor.

    Frozen: every mutation goes through the ledger, which returns a new copy.
    """

    id: str
    entity_id: str
    chain: str
    token_address: str
    wallet_address: str
    balance: int
    status: PositionStatus
    is_simulation: bool
    initial_price: Decimal
    recommendation_id: str
    created_at: datetime
    current_price: Decimal | None = None
    closed_at: datetime | None = None
    amount: int = 0  # initial bought amount

    @property
    def token_key(self) -> TokenKey:
        return TokenKey(self.chain, self.token_address)


@dataclass(frozen=True)
class Transaction:
    """A single balance-changing event owned by one position."""

    id: str
    position_id: str
    type: TransactionType
    amount: int
    price: Decimal
    timestamp: datetime
    is_simulation: bool
    transaction_hash: str | None = None
    token_address: str | None = None
    chain: str | None = None
    value_usd: Decimal | None = None


@dataclass(frozen=True)
class TokenMetadata:
    """Static token metadata known independently of the price feed."""

    chain: str
    address: str
    name: str | None = None
    symbol: str | None = None
    decimals: int | None = None


@dataclass(frozen=True)
class TokenPerformance:
    """Market snapshot and risk flags for one (chain, address) asset.

    ``has_market_data`` is False when the price feed had nothing for the
    token; the record then carries only static metadata.
    """

    chain: str
    address: str
    name: str | None = None
    symbol: str | None = None
    decimals: int | None = None
    price: Decimal | None = None
    price_24h_change: Decimal | None = None
    volume: Decimal | None = None
    volume_24h_change: Decimal | None = None
    trades: int | None = None
    trades_24h_change: Decimal | None = None
    liquidity: Decimal | None = None
    holders: int | None = None
    holders_24h_change: Decimal | None = None
    initial_market_cap: Decimal | None = None
    current_market_cap: Decimal | None = None
    rug_pull: bool = False
    is_scam: bool = False
    sustained_growth: bool = False
    rapid_dump: bool = False
    suspicious_volume: bool = False
    validation_trust: Decimal | None = None
    has_market_data: bool = True
    updated_at: datetime | None = None

    @property
    def key(self) -> TokenKey:
        return TokenKey(self.chain, self.address)


@dataclass(frozen=True)
class Recommendation:
    """A recommendation that led an actor to open a position."""

    id: str
    entity_id: str  # the recommender
    chain: str
    token_address: str
    platform: str = "default"
    conviction: Conviction = Conviction.NONE
    type: RecommendationType = RecommendationType.BUY
    initial_price: Decimal | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class RecommenderMetrics:
    """Aggregated track record of one recommender on one platform."""

    entity_id: str
    platform: str
    created_at: datetime
    last_updated: datetime
    total_recommendations: int = 0
    successful_recs: int = 0
    failed_trades: int = 0
    total_profit: Decimal = Decimal("0")
    avg_token_performance: Decimal = Decimal("0")
    consistency_score: Decimal = Decimal("0")
    trust_score: Decimal = Decimal("0")
    risk_score: Decimal = Decimal("0")
    last_recommendation_at: datetime | None = None


@dataclass(frozen=True)
class RecommenderMetricsHistory:
    """Immutable point-in-time snapshot of RecommenderMetrics."""

    entity_id: str
    platform: str
    metrics: RecommenderMetrics
    timestamp: datetime


@dataclass(frozen=True)
class ClosedPositionOutcome:
    """Result of a closed position, fed to the trust scorer."""

    position_id: str
    recommendation_id: str
    recommender_id: str
    platform: str
    realized_pnl: Decimal
    realized_pct: Decimal
    closed_at: datetime


@dataclass(frozen=True)
class RecommenderAnalytics:
    """Scores for one recommender, as exposed to ranking consumers."""

    entity_id: str
    trust_score: Decimal
    risk_score: Decimal
    consistency_score: Decimal
    metrics: RecommenderMetrics


@dataclass(frozen=True)
class TokenRecommendationSummary:
    """Average recommender scores across everyone who recommended a token."""

    chain: str
    token_address: str
    average_trust_score: Decimal
    average_risk_score: Decimal
    average_consistency_score: Decimal
    recommenders: list[RecommenderAnalytics] = field(default_factory=list)
