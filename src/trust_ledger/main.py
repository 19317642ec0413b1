"""Entry point for the trust ledger API.

Wires all components together and serves the JSON API with uvicorn.

Component wiring order (in build_components):
1. AppSettings (configuration)
2. Logging setup (LOG_LEVEL, LOG_FORMAT)
3. Store (in-memory, optionally seeded from API_SEED_PATH)
4. StaticPriceFeed (token snapshots from the seed file, max age from settings)
5. TokenPerformanceAggregator (bounded concurrent token lookups, seeded metadata)
6. PositionLedger (per-entity serialized position mutation)
7. RecommenderTrustScorer (metrics + append-only history)
8. TradingOrchestrator (ingest batches, score closed positions)
9. PortfolioService (caller-facing report builder)
"""

import asyncio
import json
from pathlib import Path
from typing import Any

import uvicorn

from trust_ledger.api import create_app
from trust_ledger.config import AppSettings
from trust_ledger.logging import get_logger, setup_logging
from trust_ledger.market_data.aggregator import TokenPerformanceAggregator
from trust_ledger.market_data.price_feed import StaticPriceFeed
from trust_ledger.orchestrator import TradingOrchestrator
from trust_ledger.position.ledger import PositionLedger
from trust_ledger.report.service import PortfolioService
from trust_ledger.store.memory import InMemoryStore
from trust_ledger.store.schemas import TokenMetadataRow, TokenPerformanceRow
from trust_ledger.trust.scorer import RecommenderTrustScorer


async def build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all components from settings.

    Args:
        settings: Application-wide settings.

    Returns:
        Dict mapping component names to instances.
    """
    logger = get_logger("trust_ledger.main")

    # 3. Store
    rows: dict = {}
    store = InMemoryStore()
    if settings.api.seed_path:
        rows = json.loads(Path(settings.api.seed_path).read_text(encoding="utf-8"))
        store.load_rows(rows)
    else:
        logger.warning(
            "no_seed_configured",
            note="Store starts empty; set API_SEED_PATH to load rows.",
        )

    # 4. Price feed
    price_feed = StaticPriceFeed(settings.aggregator.price_max_age_seconds)
    for row in rows.get("tokens", []):
        performance = TokenPerformanceRow.model_validate(row).to_model()
        updated_at = performance.updated_at
        await price_feed.update(
            performance, updated_at.timestamp() if updated_at else None
        )

    # 5. Aggregator
    metadata = [
        TokenMetadataRow.model_validate(row).to_model()
        for row in rows.get("tokenMetadata", [])
    ]
    aggregator = TokenPerformanceAggregator(
        price_feed, settings.aggregator, metadata=metadata
    )

    # 6. Ledger
    ledger = PositionLedger(store)

    # 7. Trust scorer
    trust_scorer = RecommenderTrustScorer(store, settings.trust)

    # 8. Orchestrator, seeded with every known actor's positions
    orchestrator = TradingOrchestrator(ledger, trust_scorer, store, settings.pnl)
    for entity_row in rows.get("entities", []):
        positions = await store.get_positions(entity_row["id"])
        transactions = await store.get_transactions([p.id for p in positions])
        orchestrator.load(positions, transactions)

    # 9. Portfolio service
    portfolio_service = PortfolioService(
        store, aggregator, settings.report, settings.pnl
    )

    logger.info(
        "components_built",
        seed_path=settings.api.seed_path,
        tokens=len(rows.get("tokens", [])),
        token_metadata=len(metadata),
    )

    return {
        "store": store,
        "price_feed": price_feed,
        "aggregator": aggregator,
        "ledger": ledger,
        "trust_scorer": trust_scorer,
        "orchestrator": orchestrator,
        "portfolio_service": portfolio_service,
    }


async def run(settings: AppSettings) -> None:
    """Build components and serve the API until interrupted."""
    components = await build_components(settings)
    app = create_app(
        components["portfolio_service"],
        components["trust_scorer"],
        components["orchestrator"],
    )
    config = uvicorn.Config(
        app,
        host=settings.api.host,
        port=settings.api.port,
        log_config=None,  # structlog owns the root logger
    )
    await uvicorn.Server(config).serve()


def main() -> None:
    settings = AppSettings()
    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("trust_ledger.main")

    if not settings.api.enabled:
        logger.info("api_disabled")
        return

    logger.info("api_starting", host=settings.api.host, port=settings.api.port)
    asyncio.run(run(settings))


if __name__ == "__main__":
    main()
