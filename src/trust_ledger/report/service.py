"""Portfolio report entry point for callers.

Reads an actor's positions and transactions from the injected Store,
resolves token data through the aggregator and hands everything to the
pure composer. Nothing is written back: the report is built entirely on
in-memory copies, so abandoning it midway leaves no partial state.
"""

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import TypeVar

from trust_ledger.config import PnLSettings, ReportSettings
from trust_ledger.exceptions import ActorNotFound, StoreUnavailable
from trust_ledger.logging import actor_context, get_logger
from trust_ledger.market_data.aggregator import TokenPerformanceAggregator
from trust_ledger.models import PositionStatus
from trust_ledger.position.reconciler import select_positions
from trust_ledger.report.composer import PortfolioReport, compose
from trust_ledger.store.base import Store

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class NoPositionsFound:
    """Returned instead of a report when the actor has no open positions."""

    actor_id: str
    is_simulation: bool


class PortfolioService:
    """Builds portfolio reports for one actor at a time.

    Reports for different actors share no mutable state and can run
    concurrently.

    Args:
        store: Read access to entities, positions and transactions.
        aggregator: Resolves token performance for the actor's positions.
        settings: Store timeout.
        pnl_settings: Decimal settings for the P&L calculator.
    """

    def __init__(
        self,
        store: Store,
        aggregator: TokenPerformanceAggregator,
        settings: ReportSettings | None = None,
        pnl_settings: PnLSettings | None = None,
    ) -> None:
        self._store = store
        self._aggregator = aggregator
        self._settings = settings or ReportSettings()
        self._pnl_settings = pnl_settings or PnLSettings()

    async def _read(self, call: Awaitable[T], operation: str) -> T:
        """Await a store read, bounded by the configured timeout."""
        try:
            return await asyncio.wait_for(
                call, timeout=self._settings.store_timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            logger.error(
                "store_read_timeout",
                operation=operation,
                timeout=self._settings.store_timeout_seconds,
            )
            raise StoreUnavailable(
                f"Store {operation} timed out after "
                f"{self._settings.store_timeout_seconds}s"
            ) from exc

    async def build_portfolio_report(
        self, actor_id: str, is_simulation: bool = False
    ) -> PortfolioReport | NoPositionsFound:
        """Build the portfolio report for an actor.

        Args:
            actor_id: The entity whose positions are reported.
            is_simulation: Report simulated positions instead of real ones.
                The two are never mixed.

        Returns:
            PortfolioReport, or NoPositionsFound when the actor has no OPEN
            positions for the requested simulation flag.

        Raises:
            ActorNotFound: If the store has no entity for actor_id.
            StoreUnavailable: If a store read times out.
        """
        with actor_context(actor_id, is_simulation):
            entity = await self._read(self._store.get_entity(actor_id), "get_entity")
            if entity is None:
                logger.error("actor_not_found")
                raise ActorNotFound(actor_id)

            positions = await self._read(
                self._store.get_positions(actor_id), "get_positions"
            )
            selected = select_positions(positions, actor_id, is_simulation)

            if not any(p.status is PositionStatus.OPEN for p in selected):
                logger.info("no_open_positions", position_count=len(selected))
                return NoPositionsFound(actor_id=actor_id, is_simulation=is_simulation)

            transactions = await self._read(
                self._store.get_transactions([p.id for p in selected]),
                "get_transactions",
            )
            tokens = await self._aggregator.aggregate(selected)

            report = compose(
                list(tokens.values()), selected, transactions, self._pnl_settings
            )

            logger.info(
                "portfolio_report_built",
                position_count=len(report.position_reports),
                token_count=len(report.token_reports),
                total_current_value=str(report.total_current_value),
                total_pnl=str(report.total_pnl),
            )
            return report
