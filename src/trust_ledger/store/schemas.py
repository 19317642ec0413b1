"""Row schemas validated at the Store boundary.

Store rows arrive as camelCase dicts with decimals and big integers encoded
as text (the way SQLite-backed stores keep them). Each row kind has an
explicit pydantic model that validates the row and converts it into the
frozen domain dataclass, so the core never branches on untyped data.

CRITICAL: Prices must arrive as decimal text or integers. Binary floats are
rejected rather than silently rounded.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from trust_ledger.models import (
    Conviction,
    Entity,
    Position,
    PositionStatus,
    Recommendation,
    RecommendationType,
    TokenMetadata,
    TokenPerformance,
    Transaction,
    TransactionType,
)


def _reject_float(value: Any) -> Any:
    if isinstance(value, float):
        raise ValueError("decimal values must be passed as text, not float")
    return value


class _Row(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class EntityRow(_Row):
    id: str
    name: str = ""
    username: str = ""

    def to_model(self) -> Entity:
        return Entity(id=self.id, name=self.name, username=self.username)


class PositionRow(_Row):
    id: str
    entity_id: str
    chain: str
    token_address: str
    wallet_address: str
    balance: int = Field(ge=0)
    status: PositionStatus
    is_simulation: bool
    initial_price: Decimal
    current_price: Decimal | None = None
    recommendation_id: str
    created_at: datetime
    closed_at: datetime | None = None
    amount: int = Field(default=0, ge=0)

    @field_validator("initial_price", "current_price", mode="before")
    @classmethod
    def _decimal_text(cls, value: Any) -> Any:
        return _reject_float(value)

    @field_validator("status", mode="before")
    @classmethod
    def _upper_status(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    def to_model(self) -> Position:
        return Position(
            id=self.id,
            entity_id=self.entity_id,
            chain=self.chain,
            token_address=self.token_address,
            wallet_address=self.wallet_address,
            balance=self.balance,
            status=self.status,
            is_simulation=self.is_simulation,
            initial_price=self.initial_price,
            current_price=self.current_price,
            recommendation_id=self.recommendation_id,
            created_at=self.created_at,
            closed_at=self.closed_at,
            amount=self.amount,
        )


class TransactionRow(_Row):
    id: str
    position_id: str
    type: TransactionType
    amount: int = Field(ge=0)
    price: Decimal
    timestamp: datetime
    is_simulation: bool
    transaction_hash: str | None = None
    token_address: str | None = None
    chain: str | None = None
    value_usd: Decimal | None = None

    @field_validator("price", "value_usd", mode="before")
    @classmethod
    def _decimal_text(cls, value: Any) -> Any:
        return _reject_float(value)

    @field_validator("type", mode="before")
    @classmethod
    def _lower_type(cls, value: Any) -> Any:
        # Some trade sources upper-case the type ("BUY", "TRANSFER_IN")
        return value.lower() if isinstance(value, str) else value

    def to_model(self) -> Transaction:
        return Transaction(
            id=self.id,
            position_id=self.position_id,
            type=self.type,
            amount=self.amount,
            price=self.price,
            timestamp=self.timestamp,
            is_simulation=self.is_simulation,
            transaction_hash=self.transaction_hash,
            token_address=self.token_address,
            chain=self.chain,
            value_usd=self.value_usd,
        )


class RecommendationRow(_Row):
    id: str
    entity_id: str
    chain: str
    token_address: str
    platform: str = "default"
    conviction: Conviction = Conviction.NONE
    type: RecommendationType = RecommendationType.BUY
    initial_price: Decimal | None = None
    created_at: datetime | None = None

    @field_validator("initial_price", mode="before")
    @classmethod
    def _decimal_text(cls, value: Any) -> Any:
        return _reject_float(value)

    def to_model(self) -> Recommendation:
        return Recommendation(
            id=self.id,
            entity_id=self.entity_id,
            chain=self.chain,
            token_address=self.token_address,
            platform=self.platform,
            conviction=self.conviction,
            type=self.type,
            initial_price=self.initial_price,
            created_at=self.created_at,
        )


class TokenPerformanceRow(_Row):
    chain: str
    address: str
    name: str | None = None
    symbol: str | None = None
    decimals: int | None = None
    price: Decimal | None = None
    # to_camel would upper-case the "h" after the digits
    price_24h_change: Decimal | None = Field(default=None, alias="price24hChange")
    volume: Decimal | None = None
    volume_24h_change: Decimal | None = Field(default=None, alias="volume24hChange")
    trades: int | None = None
    trades_24h_change: Decimal | None = Field(default=None, alias="trades24hChange")
    liquidity: Decimal | None = None
    holders: int | None = None
    holders_24h_change: Decimal | None = Field(default=None, alias="holders24hChange")
    initial_market_cap: Decimal | None = None
    current_market_cap: Decimal | None = None
    rug_pull: bool = False
    is_scam: bool = False
    sustained_growth: bool = False
    rapid_dump: bool = False
    suspicious_volume: bool = False
    validation_trust: Decimal | None = None
    updated_at: datetime | None = None

    @field_validator("price", mode="before")
    @classmethod
    def _decimal_text(cls, value: Any) -> Any:
        return _reject_float(value)

    def to_model(self) -> TokenPerformance:
        return TokenPerformance(**self.model_dump(), has_market_data=True)


class TokenMetadataRow(_Row):
    chain: str
    address: str
    name: str | None = None
    symbol: str | None = None
    decimals: int | None = Field(default=None, ge=0)

    def to_model(self) -> TokenMetadata:
        return TokenMetadata(
            chain=self.chain,
            address=self.address,
            name=self.name,
            symbol=self.symbol,
            decimals=self.decimals,
        )
