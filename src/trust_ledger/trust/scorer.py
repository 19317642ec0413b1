"""Recommender trust, consistency and risk scoring.

Each time a position tied to a recommendation closes, the recommender's
metrics are updated and re-scored:

    consistency = successful_recs / total_recommendations            [0, 1]
    performance = (clamp(avg_pct, -cap, cap) + cap) / (2 * cap)       [0, 1]
    decay       = 1 inside the horizon, then 0.5 ** (overdue / half_life)
    trust       = w_c * consistency + w_p * performance + w_d * decay

    risk        = w_fail * failed / total + w_down * clamp(-avg_pct, 0, cap) / cap

Weights live in TrustSettings. Trust is monotonically non-decreasing in
successful_recs with everything else fixed, because only the consistency
term depends on it.

Every update appends an immutable RecommenderMetricsHistory snapshot; the
history is never rewritten.

CRITICAL: All computations use Decimal. Never use float for scores.
"""

import asyncio
import dataclasses
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal

from trust_ledger.config import TrustSettings
from trust_ledger.logging import get_logger
from trust_ledger.models import (
    ClosedPositionOutcome,
    Recommendation,
    RecommenderAnalytics,
    RecommenderMetrics,
    RecommenderMetricsHistory,
    TokenRecommendationSummary,
)
from trust_ledger.store.base import Store

logger = get_logger(__name__)

_ZERO = Decimal("0")
_ONE = Decimal("1")
_SCORE_QUANTUM = Decimal("0.000001")
_PCT_QUANTUM = Decimal("0.00000001")
_SECONDS_PER_DAY = Decimal("86400")


def _clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(value, high))


def _mean(values: list[Decimal]) -> Decimal:
    return (sum(values, _ZERO) / Decimal(len(values))).quantize(_SCORE_QUANTUM)


def compute_consistency_score(successful_recs: int, total_recommendations: int) -> Decimal:
    """Share of successful recommendations, 0 when there are none."""
    if total_recommendations <= 0:
        return _ZERO
    score = Decimal(successful_recs) / Decimal(total_recommendations)
    return _clamp(score, _ZERO, _ONE).quantize(_SCORE_QUANTUM)


def normalize_performance(avg_pct: Decimal, cap: Decimal) -> Decimal:
    """Map an average realized-PnL percentage onto [0, 1].

    The cap keeps one outlier trade from dominating: anything at or beyond
    +cap scores 1, anything at or beyond -cap scores 0, break-even is 0.5.
    """
    clamped = _clamp(avg_pct, -cap, cap)
    return (clamped + cap) / (cap * 2)


def compute_decay(
    last_recommendation_at: datetime | None,
    now: datetime,
    horizon_days: int,
    half_life_days: int,
) -> Decimal:
    """Recency weight of a recommender's latest activity.

    Returns 1 while the latest recommendation is within the horizon, then
    halves every ``half_life_days`` beyond it. 0 when there is no activity.
    """
    if last_recommendation_at is None:
        return _ZERO

    age = now - last_recommendation_at
    age_days = (Decimal(age.days) + Decimal(age.seconds) / _SECONDS_PER_DAY)
    overdue = age_days - Decimal(horizon_days)
    if overdue <= _ZERO:
        return _ONE

    decay = Decimal("0.5") ** (overdue / Decimal(half_life_days))
    return decay.quantize(_SCORE_QUANTUM)


def compute_trust_score(
    consistency: Decimal,
    avg_token_performance: Decimal,
    decay: Decimal,
    settings: TrustSettings,
) -> Decimal:
    """Weighted blend of consistency, bounded performance and recency decay.

    Returns:
        Trust score in [0, 1] quantized to 6 decimal places.
    """
    performance = normalize_performance(avg_token_performance, settings.performance_cap)
    score = (
        settings.weight_consistency * consistency
        + settings.weight_performance * performance
        + settings.weight_decay * decay
    )
    return _clamp(score, _ZERO, _ONE).quantize(_SCORE_QUANTUM)


def compute_risk_score(
    failed_trades: int,
    total_recommendations: int,
    avg_token_performance: Decimal,
    settings: TrustSettings,
) -> Decimal:
    """Blend of failure ratio and downside performance, in [0, 1]."""
    if total_recommendations <= 0:
        return _ZERO

    failure_ratio = Decimal(failed_trades) / Decimal(total_recommendations)
    cap = settings.performance_cap
    downside = _clamp(-avg_token_performance, _ZERO, cap) / cap
    score = (
        settings.risk_weight_failures * failure_ratio
        + settings.risk_weight_downside * downside
    )
    return _clamp(score, _ZERO, _ONE).quantize(_SCORE_QUANTUM)


def new_metrics(entity_id: str, platform: str, now: datetime) -> RecommenderMetrics:
    """Empty metrics for a recommender seen for the first time."""
    return RecommenderMetrics(
        entity_id=entity_id,
        platform=platform,
        created_at=now,
        last_updated=now,
    )


def update_metrics(
    metrics: RecommenderMetrics,
    outcome: ClosedPositionOutcome,
    settings: TrustSettings,
    now: datetime,
) -> RecommenderMetrics:
    """Fold one closed-position outcome into a recommender's metrics.

    Break-even (realized == 0) counts as a success.

    Args:
        metrics: Current metrics (not mutated).
        outcome: The closed position's realized result.
        settings: Score weights and bounds.
        now: Time of the update, used for decay and last_updated.

    Returns:
        New RecommenderMetrics with recomputed scores.
    """
    total = metrics.total_recommendations + 1
    successful = metrics.successful_recs
    failed = metrics.failed_trades
    if outcome.realized_pnl >= _ZERO:
        successful += 1
    else:
        failed += 1

    avg_pct = (
        (metrics.avg_token_performance * Decimal(metrics.total_recommendations)
         + outcome.realized_pct)
        / Decimal(total)
    ).quantize(_PCT_QUANTUM)

    last_at = outcome.closed_at
    if metrics.last_recommendation_at is not None and metrics.last_recommendation_at > last_at:
        last_at = metrics.last_recommendation_at

    consistency = compute_consistency_score(successful, total)
    decay = compute_decay(
        last_at, now, settings.decay_horizon_days, settings.decay_half_life_days
    )

    return dataclasses.replace(
        metrics,
        total_recommendations=total,
        successful_recs=successful,
        failed_trades=failed,
        total_profit=metrics.total_profit + outcome.realized_pnl,
        avg_token_performance=avg_pct,
        consistency_score=consistency,
        trust_score=compute_trust_score(consistency, avg_pct, decay, settings),
        risk_score=compute_risk_score(failed, total, avg_pct, settings),
        last_recommendation_at=last_at,
        last_updated=now,
    )


def build_analytics(
    metrics: RecommenderMetrics,
    settings: TrustSettings,
    now: datetime,
) -> RecommenderAnalytics:
    """Scores for ranking, with trust re-decayed to ``now``."""
    decay = compute_decay(
        metrics.last_recommendation_at,
        now,
        settings.decay_horizon_days,
        settings.decay_half_life_days,
    )
    if metrics.total_recommendations > 0:
        trust = compute_trust_score(
            metrics.consistency_score, metrics.avg_token_performance, decay, settings
        )
    else:
        trust = _ZERO
    return RecommenderAnalytics(
        entity_id=metrics.entity_id,
        trust_score=trust,
        risk_score=metrics.risk_score,
        consistency_score=metrics.consistency_score,
        metrics=metrics,
    )


def summarize_token(
    chain: str,
    token_address: str,
    recommendations: list[Recommendation],
    metrics_by_entity: dict[str, RecommenderMetrics],
    settings: TrustSettings,
    now: datetime,
) -> TokenRecommendationSummary:
    """Average recommender scores across everyone who recommended a token.

    Recommenders without metrics yet are skipped. Each recommender counts
    once, however many times they recommended the token.
    """
    seen: dict[str, RecommenderAnalytics] = {}
    for rec in recommendations:
        if rec.chain != chain or rec.token_address != token_address:
            continue
        if rec.entity_id in seen:
            continue
        metrics = metrics_by_entity.get(rec.entity_id)
        if metrics is None:
            continue
        seen[rec.entity_id] = build_analytics(metrics, settings, now)

    analytics = list(seen.values())
    if not analytics:
        return TokenRecommendationSummary(
            chain=chain,
            token_address=token_address,
            average_trust_score=_ZERO,
            average_risk_score=_ZERO,
            average_consistency_score=_ZERO,
        )

    return TokenRecommendationSummary(
        chain=chain,
        token_address=token_address,
        average_trust_score=_mean([a.trust_score for a in analytics]),
        average_risk_score=_mean([a.risk_score for a in analytics]),
        average_consistency_score=_mean([a.consistency_score for a in analytics]),
        recommenders=analytics,
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecommenderTrustScorer:
    """Keeps recommender metrics current as positions close.

    Updates for the same recommender are serialized with a per-entity
    asyncio.Lock (read-modify-write against the store); updates for
    different recommenders run in parallel.

    Args:
        store: Source and sink of RecommenderMetrics and their history.
        settings: Score weights, caps and decay constants.
        clock: Returns the current time. Injected for deterministic tests.
    """

    def __init__(
        self,
        store: Store,
        settings: TrustSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or TrustSettings()
        self._clock = clock or _utcnow
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def settings(self) -> TrustSettings:
        return self._settings

    async def record_outcome(self, outcome: ClosedPositionOutcome) -> RecommenderMetrics:
        """Fold a closed position into its recommender's metrics.

        Commits the new metrics and appends a history snapshot.

        Args:
            outcome: Realized result of the closed position.

        Returns:
            The committed RecommenderMetrics.
        """
        async with self._locks[outcome.recommender_id]:
            now = self._clock()
            current = await self._store.get_recommender_metrics(
                outcome.recommender_id, outcome.platform
            )
            if current is None:
                current = new_metrics(outcome.recommender_id, outcome.platform, now)

            updated = update_metrics(current, outcome, self._settings, now)
            await self._store.commit(updated)
            await self._store.append_metrics_history(
                RecommenderMetricsHistory(
                    entity_id=updated.entity_id,
                    platform=updated.platform,
                    metrics=updated,
                    timestamp=now,
                )
            )

        logger.info(
            "recommender_metrics_updated",
            entity_id=updated.entity_id,
            platform=updated.platform,
            position_id=outcome.position_id,
            realized_pnl=str(outcome.realized_pnl),
            total_recommendations=updated.total_recommendations,
            consistency_score=str(updated.consistency_score),
            trust_score=str(updated.trust_score),
            risk_score=str(updated.risk_score),
        )
        return updated

    async def get_metrics(self, entity_id: str, platform: str) -> RecommenderMetrics | None:
        return await self._store.get_recommender_metrics(entity_id, platform)

    async def get_history(
        self, entity_id: str, platform: str
    ) -> list[RecommenderMetricsHistory]:
        """Return the append-only metrics history, oldest first."""
        return await self._store.get_metrics_history(entity_id, platform)

    async def get_analytics(self, entity_id: str, platform: str) -> RecommenderAnalytics | None:
        """Current scores for a recommender with decay applied as of now."""
        metrics = await self._store.get_recommender_metrics(entity_id, platform)
        if metrics is None:
            return None
        return build_analytics(metrics, self._settings, self._clock())
