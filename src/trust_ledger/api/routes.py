"""JSON endpoints for portfolio reports and recommender metrics.

Every decimal leaves the API as text, never as a JSON number.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from trust_ledger.exceptions import ActorNotFound, StoreUnavailable
from trust_ledger.report.composer import decimal_text
from trust_ledger.report.service import NoPositionsFound
from trust_ledger.store.schemas import TransactionRow

log = structlog.get_logger(__name__)

router = APIRouter()


def _to_text(obj: Any) -> Any:
    """Recursively convert dataclasses, Decimals, enums and datetimes to JSON-safe values."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: _to_text(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    if isinstance(obj, Decimal):
        return decimal_text(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {k: _to_text(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_to_text(item) for item in obj]
    return obj


@router.get("/portfolio/{actor_id}")
async def get_portfolio(
    request: Request, actor_id: str, simulation: bool = False
) -> JSONResponse:
    """Portfolio report for an actor; real positions unless simulation=true."""
    service = request.app.state.portfolio_service
    try:
        result = await service.build_portfolio_report(actor_id, is_simulation=simulation)
    except ActorNotFound as exc:
        return JSONResponse(status_code=404, content={"error": str(exc)})
    except StoreUnavailable as exc:
        log.error("portfolio_store_unavailable", actor_id=actor_id, exc_info=True)
        return JSONResponse(status_code=503, content={"error": str(exc)})

    if isinstance(result, NoPositionsFound):
        return JSONResponse(
            content={
                "status": "no_positions",
                "actor_id": result.actor_id,
                "is_simulation": result.is_simulation,
            }
        )

    return JSONResponse(content={"status": "ok", "report": result.to_dict()})


@router.get("/recommenders/{entity_id}/{platform}")
async def get_recommender(request: Request, entity_id: str, platform: str) -> JSONResponse:
    """Current trust/risk/consistency scores for a recommender."""
    scorer = request.app.state.trust_scorer
    analytics = await scorer.get_analytics(entity_id, platform)
    if analytics is None:
        return JSONResponse(status_code=404, content={"error": "recommender not found"})
    return JSONResponse(content=_to_text(analytics))


@router.get("/recommenders/{entity_id}/{platform}/history")
async def get_recommender_history(
    request: Request, entity_id: str, platform: str
) -> JSONResponse:
    """Append-only metrics snapshots, oldest first."""
    scorer = request.app.state.trust_scorer
    history = await scorer.get_history(entity_id, platform)
    return JSONResponse(content=[_to_text(h) for h in history])


@router.post("/transactions")
async def post_transactions(request: Request) -> JSONResponse:
    """Ingest a trade-source batch of camelCase transaction rows."""
    orchestrator = request.app.state.orchestrator
    payload = await request.json()
    if not isinstance(payload, list):
        return JSONResponse(status_code=422, content={"error": "expected a list of transactions"})

    try:
        transactions = [TransactionRow.model_validate(row).to_model() for row in payload]
    except ValidationError as exc:
        return JSONResponse(
            status_code=422,
            content={
                "error": "invalid transaction",
                "detail": exc.errors(include_url=False, include_context=False),
            },
        )

    result = await orchestrator.ingest(transactions)
    return JSONResponse(
        content={
            "applied": [tx.id for tx in result.applied],
            "closed": [p.id for p in result.closed],
            "errors": {tx_id: type(err).__name__ for tx_id, err in result.errors.items()},
        }
    )
