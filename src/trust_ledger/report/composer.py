"""Portfolio report composition.

Combines reconciled positions, their P&L and resolved token data into one
report. Pure: the same inputs always produce the same report, and
``PortfolioReport.to_json`` is byte-stable.

Totals only include positions whose P&L is fully known. A position with
an integrity error or an unknown current price is still listed, but it is
left out of every total, so the sum of included items always equals the
stated totals.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from decimal import Context, Decimal, localcontext
from enum import Enum
from typing import Any

from trust_ledger.config import PnLSettings
from trust_ledger.exceptions import IntegrityError
from trust_ledger.logging import get_logger
from trust_ledger.models import Position, TokenKey, TokenPerformance, Transaction
from trust_ledger.pnl.calculator import PnLResult, compute_pnl
from trust_ledger.position.reconciler import reconcile_positions

logger = get_logger(__name__)

_ZERO = Decimal("0")

UNKNOWN = "unknown"


def decimal_text(value: Decimal | None) -> str:
    """Render a Decimal as plain text (no exponent), "unknown" for None.

    Exact: every digit of ``value`` is kept, only trailing fractional zeros
    are dropped.
    """
    if value is None:
        return UNKNOWN
    if value == 0:
        return "0"
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _plain(value: Any) -> Any:
    """Convert report values to JSON-safe text/primitive values."""
    if isinstance(value, Decimal):
        return decimal_text(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


@dataclass(frozen=True)
class PositionReport:
    """One position line: the position, its token, transactions and P&L.

    ``pnl`` is None when an integrity error stopped processing; ``error``
    then names the error class.
    """

    position: Position
    token: TokenPerformance
    transactions: list[Transaction]
    pnl: PnLResult | None
    error: str | None = None
    error_message: str | None = None

    @property
    def included_in_totals(self) -> bool:
        return self.pnl is not None and self.pnl.unrealized is not None

    def to_dict(self) -> dict[str, Any]:
        p = self.position
        pnl = self.pnl
        return {
            "position_id": p.id,
            "entity_id": p.entity_id,
            "chain": p.chain,
            "token_address": p.token_address,
            "wallet_address": p.wallet_address,
            "status": _plain(p.status),
            "is_simulation": p.is_simulation,
            "balance": str(p.balance),
            "initial_price": decimal_text(p.initial_price),
            "current_price": decimal_text(self.token.price),
            "created_at": _plain(p.created_at),
            "closed_at": _plain(p.closed_at),
            "transaction_count": len(self.transactions),
            "realized_pnl": decimal_text(pnl.realized) if pnl else UNKNOWN,
            "unrealized_pnl": decimal_text(pnl.unrealized) if pnl else UNKNOWN,
            "current_value": decimal_text(pnl.current_value) if pnl else UNKNOWN,
            "avg_cost": decimal_text(pnl.avg_cost) if pnl else UNKNOWN,
            "price_change_pct": decimal_text(pnl.price_change_pct) if pnl else UNKNOWN,
            "included_in_totals": self.included_in_totals,
            "error": self.error,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class TokenReport:
    """One distinct (chain, address) token referenced by the report."""

    token: TokenPerformance
    position_count: int
    total_balance: int

    def to_dict(self) -> dict[str, Any]:
        t = self.token
        return {
            "chain": t.chain,
            "address": t.address,
            "name": t.name,
            "symbol": t.symbol,
            "decimals": t.decimals,
            "price": decimal_text(t.price),
            "price_24h_change": decimal_text(t.price_24h_change),
            "volume": decimal_text(t.volume),
            "volume_24h_change": decimal_text(t.volume_24h_change),
            "liquidity": decimal_text(t.liquidity),
            "holders": t.holders,
            "holders_24h_change": decimal_text(t.holders_24h_change),
            "rug_pull": t.rug_pull,
            "is_scam": t.is_scam,
            "sustained_growth": t.sustained_growth,
            "rapid_dump": t.rapid_dump,
            "suspicious_volume": t.suspicious_volume,
            "validation_trust": decimal_text(t.validation_trust),
            "has_market_data": t.has_market_data,
            "position_count": self.position_count,
            "total_balance": str(self.total_balance),
        }


@dataclass(frozen=True)
class PortfolioReport:
    """Per-position lines, per-token lines and aggregate totals."""

    position_reports: list[PositionReport]
    token_reports: list[TokenReport]
    total_current_value: Decimal
    total_pnl: Decimal
    total_realized_pnl: Decimal
    total_unrealized_pnl: Decimal
    positions_with_balance: list[PositionReport]

    def to_dict(self) -> dict[str, Any]:
        """Render the report with every decimal as text."""
        return {
            "position_reports": [r.to_dict() for r in self.position_reports],
            "token_reports": [t.to_dict() for t in self.token_reports],
            "total_current_value": decimal_text(self.total_current_value),
            "total_pnl": decimal_text(self.total_pnl),
            "total_realized_pnl": decimal_text(self.total_realized_pnl),
            "total_unrealized_pnl": decimal_text(self.total_unrealized_pnl),
            "positions_with_balance": [
                r.position.id for r in self.positions_with_balance
            ],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))


def _gap_token(key: TokenKey) -> TokenPerformance:
    return TokenPerformance(chain=key.chain, address=key.address, has_market_data=False)


def compose(
    tokens: list[TokenPerformance],
    positions: list[Position],
    transactions: list[Transaction],
    settings: PnLSettings | None = None,
) -> PortfolioReport:
    """Build a portfolio report from already-selected positions.

    Args:
        tokens: Resolved token data; tokens missing here are reported as gaps.
        positions: Positions to report, in display order.
        transactions: Transactions for those positions, insertion order.
        settings: Decimal settings for the P&L calculator.

    Returns:
        PortfolioReport. Integrity errors are recorded per position, never raised.
    """
    settings = settings or PnLSettings()
    token_map: dict[TokenKey, TokenPerformance] = {t.key: t for t in tokens}

    position_reports: list[PositionReport] = []
    for group in reconcile_positions(positions, transactions):
        position = group.position
        token = token_map.get(position.token_key) or _gap_token(position.token_key)

        if group.error is not None:
            position_reports.append(
                PositionReport(
                    position=position,
                    token=token,
                    transactions=group.transactions,
                    pnl=None,
                    error=type(group.error).__name__,
                    error_message=str(group.error),
                )
            )
            continue

        try:
            pnl = compute_pnl(position, group.transactions, token.price, settings)
        except IntegrityError as exc:
            logger.warning(
                "position_pnl_failed",
                position_id=position.id,
                error=str(exc),
            )
            position_reports.append(
                PositionReport(
                    position=position,
                    token=token,
                    transactions=group.transactions,
                    pnl=None,
                    error=type(exc).__name__,
                    error_message=str(exc),
                )
            )
            continue

        position_reports.append(
            PositionReport(
                position=position,
                token=token,
                transactions=group.transactions,
                pnl=pnl,
            )
        )

    positions_with_balance = [
        r for r in position_reports
        if r.position.balance > 0 or (r.pnl is not None and r.pnl.realized != _ZERO)
    ]

    # Same precision as the calculator, so totals equal the sum of their items
    with localcontext(Context(prec=settings.precision)):
        total_value = _ZERO
        total_realized = _ZERO
        total_unrealized = _ZERO
        for report in positions_with_balance:
            if not report.included_in_totals:
                continue
            total_value += report.pnl.current_value  # type: ignore[union-attr,operator]
            total_realized += report.pnl.realized  # type: ignore[union-attr]
            total_unrealized += report.pnl.unrealized  # type: ignore[union-attr,operator]
        total_pnl = total_realized + total_unrealized

    token_reports: list[TokenReport] = []
    by_key: dict[TokenKey, list[PositionReport]] = {}
    for report in position_reports:
        by_key.setdefault(report.position.token_key, []).append(report)
    for reports in by_key.values():
        token_reports.append(
            TokenReport(
                token=reports[0].token,
                position_count=len(reports),
                total_balance=sum(r.position.balance for r in reports),
            )
        )

    logger.debug(
        "portfolio_report_composed",
        position_count=len(position_reports),
        token_count=len(token_reports),
        with_balance=len(positions_with_balance),
        total_current_value=str(total_value),
    )

    return PortfolioReport(
        position_reports=position_reports,
        token_reports=token_reports,
        total_current_value=total_value,
        total_pnl=total_pnl,
        total_realized_pnl=total_realized,
        total_unrealized_pnl=total_unrealized,
        positions_with_balance=positions_with_balance,
    )
