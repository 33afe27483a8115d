# analysis/trust_score.py
"""
Recommender trust scoring.

Trust blends a token's risk penalties with how far its 24h move strayed from
the recommender's running average:

    consistency = |price_change_24h - avg_token_performance|
    trust       = (risk_score + consistency) / 2

Both inputs grow with "badness", so a higher trust number is not simply
better; callers must look at which component dominates. The previous trust
score decays by DECAY_RATE per inactive day, capped at MAX_DECAY_DAYS.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional

from analysis.token_scorer import (
    calculate_risk_score,
    has_sustained_growth,
    is_rapid_dump,
    is_suspicious_volume,
)
from data.models import ProcessedTokenData, TokenSecurityData
from data.storage.database import TrustScoreStore
from data.storage.models import RecommenderMetrics, TokenPerformance
from utils.constants import TRUST_DECAY_RATE, TRUST_MAX_DECAY_DAYS, VIRTUAL_CONFIDENCE_DIVISOR
from utils.helpers import days_between, to_decimal, utc_now

if TYPE_CHECKING:
    from data.collectors.helius import HeliusCollector
    from data.processors.aggregator import TokenDataAggregator

logger = logging.getLogger(__name__)


# ============= Pure scoring =============

def calculate_decay_factor(days_inactive: int, decay_rate: float = TRUST_DECAY_RATE,
                           max_decay_days: int = TRUST_MAX_DECAY_DAYS) -> float:
    return decay_rate ** min(max(days_inactive, 0), max_decay_days)


def apply_decay(trust_score: float, days_inactive: int, decay_rate: float = TRUST_DECAY_RATE,
                max_decay_days: int = TRUST_MAX_DECAY_DAYS) -> float:
    """Trust after inactivity; no further decay past max_decay_days"""
    return trust_score * calculate_decay_factor(days_inactive, decay_rate, max_decay_days)


def calculate_consistency_score(performance: TokenPerformance, metrics: RecommenderMetrics) -> float:
    return abs(performance.price_change_24h - metrics.avg_token_performance)


def calculate_trust_score(performance: TokenPerformance, metrics: RecommenderMetrics) -> float:
    risk_score = calculate_risk_score(performance)
    consistency_score = calculate_consistency_score(performance, metrics)
    return (risk_score + consistency_score) / 2


def calculate_overall_risk_score(performance: TokenPerformance, metrics: RecommenderMetrics) -> float:
    # Same blend as the trust score; stored separately on the metrics record
    return calculate_trust_score(performance, metrics)


def build_token_performance(snapshot: ProcessedTokenData, balance: float = 0.0,
                            validation_trust: float = 0.0, symbol: Optional[str] = None) -> TokenPerformance:
    """Token performance view of an aggregated snapshot"""
    trade = snapshot.trade_data
    pair = snapshot.canonical_pair

    def _f(value) -> float:
        return float(value) if value is not None else 0.0

    return TokenPerformance(
        token_address=pair.base_token_address if pair else snapshot.token_address,
        symbol=symbol if symbol is not None else snapshot.token_codex.symbol,
        price_change_24h=_f(trade.price_change_24h_percent),
        volume_change_24h=_f(trade.volume_24h),
        trade_24h_change=_f(trade.trade_24h_change_percent),
        liquidity=_f(pair.liquidity_usd) if pair else 0.0,
        holder_change_24h=_f(trade.unique_wallet_24h_change_percent),
        rug_pull=False,
        is_scam=snapshot.token_codex.is_scam,
        sustained_growth=has_sustained_growth(trade),
        rapid_dump=is_rapid_dump(trade),
        suspicious_volume=is_suspicious_volume(trade),
        validation_trust=validation_trust,
        balance=balance,
        initial_market_cap=_f(pair.market_cap) if pair else 0.0,
    )


@dataclass(frozen=True)
class TrustScoreResult:
    token_performance: TokenPerformance
    recommender_metrics: RecommenderMetrics


@dataclass(frozen=True)
class RecommenderScore:
    recommender_id: str
    trust_score: float
    risk_score: float
    consistency_score: float
    recommender_metrics: RecommenderMetrics


@dataclass(frozen=True)
class TokenRecommendationSummary:
    token_address: str
    average_trust_score: float
    average_risk_score: float
    average_consistency_score: float
    recommenders: List[RecommenderScore] = field(default_factory=list)


class TrustScoreManager:
    """
    Recommender trust bookkeeping on top of a TrustScoreStore.

    Metric updates are read-modify-write; a per-recommender lock serializes
    them so concurrent outcomes for one recommender are never lost.
    """

    def __init__(
        self,
        aggregator: "TokenDataAggregator",
        store: TrustScoreStore,
        balance_source: Optional["HeliusCollector"] = None,
        config: Optional[Dict] = None,
    ):
        config = config or {}
        self.aggregator = aggregator
        self.store = store
        self.balance_source = balance_source
        self.decay_rate = float(config.get('decay_rate', TRUST_DECAY_RATE))
        self.max_decay_days = int(config.get('max_decay_days', TRUST_MAX_DECAY_DAYS))
        self.base_mint = config.get('base_mint', '')
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get_recommender_balance(self, recommender_wallet: str) -> float:
        """Recommender's base-mint balance; zero when unknown"""
        if not recommender_wallet or self.balance_source is None or not self.base_mint:
            return 0.0
        balance = await self.balance_source.fetch_owner_token_balance(recommender_wallet, self.base_mint)
        return float(balance)

    def _virtual_confidence(self, balance: float) -> float:
        return float(to_decimal(balance) / VIRTUAL_CONFIDENCE_DIVISOR)

    def _decayed(self, metrics: RecommenderMetrics, now: datetime) -> float:
        inactive_days = days_between(metrics.last_active_date, now)
        return apply_decay(metrics.trust_score, inactive_days, self.decay_rate, self.max_decay_days)

    async def _load_metrics(self, recommender_id: str) -> RecommenderMetrics:
        metrics = await self.store.get_recommender_metrics(recommender_id)
        if metrics is None:
            await self.store.get_or_create_recommender(recommender_id)
            metrics = await self.store.get_recommender_metrics(recommender_id)
        return metrics or RecommenderMetrics(recommender_id=recommender_id)

    async def generate_trust_score(self, token_address: str, recommender_id: str,
                                   recommender_wallet: str = "") -> TrustScoreResult:
        """Token performance plus a decayed view of the recommender's metrics; nothing is persisted"""
        snapshot = await self.aggregator.get_processed_token_data(token_address)
        metrics = await self._load_metrics(recommender_id)
        balance = await self.get_recommender_balance(recommender_wallet)
        validation_trust = await self.store.calculate_validation_trust(token_address)
        now = utc_now()

        performance = build_token_performance(snapshot, balance=balance, validation_trust=validation_trust,
                                              symbol="")
        view = replace(
            metrics,
            virtual_confidence=self._virtual_confidence(balance),
            last_active_date=now,
            trust_decay=self._decayed(metrics, now),
            last_updated=now,
        )
        return TrustScoreResult(token_performance=performance, recommender_metrics=view)

    async def update_recommender_metrics(self, recommender_id: str, performance: TokenPerformance,
                                         recommender_wallet: str = "") -> RecommenderMetrics:
        """Fold one recommendation outcome into the recommender's metrics"""
        balance = await self.get_recommender_balance(recommender_wallet)

        async with self._locks[recommender_id]:
            metrics = await self._load_metrics(recommender_id)
            now = utc_now()

            total = metrics.total_recommendations + 1
            successful = metrics.successful_recs if performance.rug_pull else metrics.successful_recs + 1
            avg_performance = (
                metrics.avg_token_performance * metrics.total_recommendations + performance.price_change_24h
            ) / total

            updated = RecommenderMetrics(
                recommender_id=recommender_id,
                trust_score=calculate_trust_score(performance, metrics),
                total_recommendations=total,
                successful_recs=successful,
                avg_token_performance=avg_performance,
                risk_score=calculate_overall_risk_score(performance, metrics),
                consistency_score=calculate_consistency_score(performance, metrics),
                virtual_confidence=self._virtual_confidence(balance),
                last_active_date=now,
                trust_decay=self._decayed(metrics, now),
                last_updated=now,
            )
            await self.store.update_recommender_metrics(updated)

        logger.info(
            f"Updated metrics for recommender {recommender_id}: trust={updated.trust_score:.2f} "
            f"total={updated.total_recommendations}"
        )
        return updated

    async def get_recommendations(self, start: datetime, end: datetime) -> List[TokenRecommendationSummary]:
        """Per-token averages over recommendations in [start, end], best average trust first"""
        recommendations = await self.store.get_recommendations_by_date_range(start, end)

        grouped: Dict[str, list] = defaultdict(list)
        for recommendation in recommendations:
            grouped[recommendation.token_address].append(recommendation)

        summaries = []
        for token_address, token_recommendations in grouped.items():
            performance = await self.store.get_token_performance(token_address)
            if performance is None:
                logger.warning(f"No token performance recorded for {token_address}, skipping")
                continue

            scores = []
            for recommendation in token_recommendations:
                metrics = await self._load_metrics(recommendation.recommender_id)
                scores.append(RecommenderScore(
                    recommender_id=recommendation.recommender_id,
                    trust_score=calculate_trust_score(performance, metrics),
                    risk_score=calculate_risk_score(performance),
                    consistency_score=calculate_consistency_score(performance, metrics),
                    recommender_metrics=metrics,
                ))

            count = len(scores)
            summaries.append(TokenRecommendationSummary(
                token_address=token_address,
                average_trust_score=sum(s.trust_score for s in scores) / count,
                average_risk_score=sum(s.risk_score for s in scores) / count,
                average_consistency_score=sum(s.consistency_score for s in scores) / count,
                recommenders=scores,
            ))

        summaries.sort(key=lambda s: s.average_trust_score, reverse=True)
        return summaries

    async def check_trust_score(self, token_address: str) -> TokenSecurityData:
        """Ownership and supply subset of the token snapshot"""
        snapshot = await self.aggregator.get_processed_token_data(token_address)
        return snapshot.security

    async def is_rapid_dump(self, token_address: str) -> bool:
        snapshot = await self.aggregator.get_processed_token_data(token_address)
        return is_rapid_dump(snapshot.trade_data)

    async def sustained_growth(self, token_address: str) -> bool:
        snapshot = await self.aggregator.get_processed_token_data(token_address)
        return has_sustained_growth(snapshot.trade_data)

    async def suspicious_volume(self, token_address: str) -> bool:
        snapshot = await self.aggregator.get_processed_token_data(token_address)
        return is_suspicious_volume(snapshot.trade_data)
