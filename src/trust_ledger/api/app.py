"""FastAPI application factory for the portfolio and recommender JSON API."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from trust_ledger.api import routes
from trust_ledger.orchestrator import TradingOrchestrator
from trust_ledger.report.service import PortfolioService
from trust_ledger.trust.scorer import RecommenderTrustScorer


def create_app(
    portfolio_service: PortfolioService,
    trust_scorer: RecommenderTrustScorer,
    orchestrator: TradingOrchestrator,
    lifespan: Any = None,
) -> FastAPI:
    """Create the API application with its services on app.state.

    Args:
        portfolio_service: Builds portfolio reports.
        trust_scorer: Serves recommender metrics and history.
        orchestrator: Applies ingested transaction batches.
        lifespan: Optional async context manager for startup/shutdown.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(title="Trust Ledger", lifespan=lifespan)
    app.state.portfolio_service = portfolio_service
    app.state.trust_scorer = trust_scorer
    app.state.orchestrator = orchestrator
    app.include_router(routes.router, prefix="/api")
    return app
