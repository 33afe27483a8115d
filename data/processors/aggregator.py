"""
Token Data Aggregator - Builds one reconciled snapshot per token
Fans out to every source collector, defaults failed sources and derives holder signals
"""

import asyncio
import copy
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger

from analysis.market_analyzer import MarketAnalyzer, MarketMetrics
from analysis.risk_analyzer import RiskAnalyzer, RiskMetrics
from analysis.token_scorer import (
    GemCriteria,
    assess_risk,
    calculate_gem_score,
    evaluate_gem_criteria,
    provide_deeper_analysis,
    provide_recommendation,
)
from data.collectors.birdeye import BirdeyeCollector
from data.collectors.codex import CodexCollector
from data.collectors.dexscreener import DexScreenerCollector
from data.collectors.helius import HeliusCollector
from data.models import (
    DataSource,
    HighValueHolder,
    HolderRecord,
    HolderTrend,
    ProcessedTokenData,
    TokenCodex,
    TokenSecurityData,
    TokenTradeData,
    select_canonical_pair,
)
from data.storage.cache import MISS, TwoTierCache
from monitoring.report import FALLBACK_REPORT, TokenReportFormatter
from utils.constants import (
    BUY_IMPACT_PERCENTAGES,
    HIGH_SUPPLY_HOLDER_FRACTION,
    HIGH_VALUE_HOLDER_FLOOR_USD,
    HOLDER_TREND_INCREASE_THRESHOLD,
    CacheNamespace,
)
from utils.errors import MalformedTokenError
from utils.helpers import normalize_token_address, to_decimal, utc_now

CENTS = Decimal("0.01")


# ============= Holder signals =============

def calculate_holder_trend(trade_data: TokenTradeData,
                           threshold: float = HOLDER_TREND_INCREASE_THRESHOLD) -> HolderTrend:
    """Average unique-wallet change across buckets; unknown buckets are ignored"""
    changes = [change for change in trade_data.unique_wallet_change_percents() if change is not None]
    if not changes:
        return HolderTrend.STABLE

    average = sum(changes, Decimal(0)) / len(changes)
    limit = to_decimal(threshold)
    if average > limit:
        return HolderTrend.INCREASING
    if average < -limit:
        return HolderTrend.DECREASING
    return HolderTrend.STABLE


def filter_high_value_holders(holders: List[HolderRecord], price: Decimal,
                              floor_usd: Decimal = HIGH_VALUE_HOLDER_FLOOR_USD) -> List[HighValueHolder]:
    if price <= 0:
        return []

    result = []
    for holder in holders:
        balance_usd = holder.balance * price
        if balance_usd > floor_usd:
            result.append(HighValueHolder(
                holder_address=holder.address,
                balance_usd=balance_usd.quantize(CENTS),
            ))
    return result


def count_high_supply_holders(holders: List[HolderRecord], total_supply: Decimal,
                              fraction: Decimal = HIGH_SUPPLY_HOLDER_FRACTION) -> int:
    if total_supply <= 0:
        return 0
    return sum(1 for holder in holders if holder.balance / total_supply > fraction)


# ============= Trend helpers =============

def timeframe_metrics(trade_data: TokenTradeData, timeframe: str) -> Dict[str, float]:
    """Price, volume and holder change for the '1h' or '24h' bucket"""
    if timeframe not in ('1h', '24h'):
        raise ValueError(f"Unsupported timeframe: {timeframe}")

    bucket = trade_data.bucket(timeframe)

    def _f(value: Optional[Decimal]) -> float:
        return float(value) if value is not None else 0.0

    return {
        'price_change': _f(bucket.price_change_percent),
        'volume_change': _f(bucket.volume_change_percent),
        'holder_change': _f(bucket.unique_wallet_change_percent),
    }


def analyze_trend(metrics: Dict[str, float]) -> str:
    price_change = metrics['price_change']
    volume_change = metrics['volume_change']

    if price_change > 5 and volume_change > 0:
        return "bullish"
    if price_change < -5 and volume_change > 0:
        return "bearish"
    if abs(price_change) <= 5:
        return "sideways"
    return "uncertain"


def calculate_momentum(hourly: Dict[str, float], daily: Dict[str, float]) -> float:
    # Recent activity weighs more
    hourly_momentum = hourly['price_change'] * hourly['volume_change']
    daily_momentum = daily['price_change'] * daily['volume_change']
    return hourly_momentum * 0.6 + daily_momentum * 0.4


def generate_trend_summary(hourly: Dict[str, float], daily: Dict[str, float]) -> str:
    momentum = calculate_momentum(hourly, daily)
    summary = (
        f"{analyze_trend(hourly).upper()} short-term trend, "
        f"{analyze_trend(daily).upper()} long-term trend. "
    )

    direction = "upward" if momentum > 0 else "downward"
    if abs(momentum) > 1000:
        summary += f"Strong {direction} momentum."
    elif abs(momentum) > 500:
        summary += f"Moderate {direction} momentum."
    else:
        summary += "Weak or neutral momentum."
    return summary


# ============= Enhanced analysis summary =============

def format_risk_concerns(risk: RiskMetrics) -> str:
    concerns = []
    if risk.volatility_score > 70:
        concerns.append("high volatility")
    if risk.liquidity_risk > 70:
        concerns.append("low liquidity")
    if risk.holder_concentration > 70:
        concerns.append("concentrated holdings")
    if risk.security_score > 70:
        concerns.append("security risks")
    if risk.market_stability > 70:
        concerns.append("market instability")

    if risk.overall_risk > 80:
        concerns.append("extreme risk level")
    elif risk.overall_risk > 60:
        concerns.append("elevated risk level")

    return ", ".join(concerns) if concerns else "No major concerns identified"


def generate_analysis_summary(market: Optional[MarketMetrics], risk: Optional[RiskMetrics]) -> str:
    parts = []
    if market is not None:
        parts.append(
            f"Market Overview: {market.momentum.trend} trend with "
            f"{market.momentum.strength:.1f} strength."
        )
        parts.append(
            f"Volume: {market.volume_profile.volume_trend} with "
            f"{market.volume_profile.buy_volume_ratio:.1f}% buy ratio."
        )
        parts.append(f"Market Structure: {market.market_structure.price_discovery} price discovery.")
    if risk is not None:
        parts.append(f"Overall Risk Score: {risk.overall_risk}/100")
        parts.append(f"Key Concerns: {format_risk_concerns(risk)}")
    return " ".join(parts)


class TokenDataAggregator:
    """
    Fans out to the source collectors concurrently and reconciles the results
    into a ProcessedTokenData snapshot.

    A failing source never fails the aggregation: its documented default is
    substituted and the source name is recorded in defaulted_sources.
    """

    def __init__(
        self,
        birdeye: BirdeyeCollector,
        dexscreener: DexScreenerCollector,
        helius: HeliusCollector,
        codex: CodexCollector,
        cache: TwoTierCache,
        config: Optional[Dict] = None,
    ):
        config = config or {}
        self.birdeye = birdeye
        self.dexscreener = dexscreener
        self.helius = helius
        self.codex = codex
        self.cache = cache

        self.high_value_floor = to_decimal(
            config.get('high_value_holder_floor_usd'), HIGH_VALUE_HOLDER_FLOOR_USD
        )
        self.high_supply_fraction = to_decimal(
            config.get('high_supply_holder_fraction'), HIGH_SUPPLY_HOLDER_FRACTION
        )
        self.trend_threshold = float(config.get('holder_trend_threshold') or HOLDER_TREND_INCREASE_THRESHOLD)
        self.deadline: Optional[float] = config.get('aggregation_deadline')

        self.market_analyzer = MarketAnalyzer(self)
        self.risk_analyzer = RiskAnalyzer(self)
        self.report_formatter = TokenReportFormatter()

        self.stats = {
            'aggregations': 0,
            'cache_hits': 0,
            'defaulted_sources': 0,
            'timeouts': 0,
        }

        logger.info("TokenDataAggregator initialized")

    # ============= Snapshot =============

    async def _bounded(self, awaitable: Awaitable[Any], deadline: Optional[float]) -> Any:
        if deadline is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=deadline)

    def _source_defaults(self, token_address: str) -> Dict[DataSource, Any]:
        return {
            DataSource.SECURITY: TokenSecurityData(),
            DataSource.TRADE: TokenTradeData.default(token_address),
            DataSource.DEX: [],
            DataSource.HOLDERS: [],
            DataSource.CODEX: TokenCodex.default(token_address),
        }

    async def _collect(self, token_address: str, deadline: Optional[float]) -> tuple:
        """Settle every source; returns (values by source, defaulted source names)"""
        loaders = {
            DataSource.SECURITY: self.birdeye.load_token_security(token_address),
            DataSource.TRADE: self.birdeye.load_token_trade_data(token_address),
            DataSource.DEX: self.dexscreener.load_pairs(token_address),
            DataSource.HOLDERS: self.helius.load_holder_list(token_address),
            DataSource.CODEX: self.codex.load_token_codex(token_address),
        }
        results = await asyncio.gather(
            *(self._bounded(loader, deadline) for loader in loaders.values()),
            return_exceptions=True,
        )

        defaults = self._source_defaults(token_address)
        values: Dict[DataSource, Any] = {}
        defaulted = set()
        for source, result in zip(loaders, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                if isinstance(result, asyncio.TimeoutError):
                    self.stats['timeouts'] += 1
                    logger.warning(f"{source.value} source timed out for {token_address} after {deadline}s, using default")
                else:
                    logger.warning(f"{source.value} source failed for {token_address}, using default: {result}")
                self.stats['defaulted_sources'] += 1
                values[source] = defaults[source]
                defaulted.add(source.value)
            else:
                values[source] = result
        return values, frozenset(defaulted)

    async def get_processed_token_data(self, token_address: str,
                                       deadline: Optional[float] = None) -> ProcessedTokenData:
        """
        Aggregate every source into one snapshot

        Args:
            token_address: Token mint address
            deadline: Per-source timeout in seconds; a slow source is defaulted

        Raises:
            MalformedTokenError: if the address cannot be normalized
        """
        token = normalize_token_address(token_address)

        cached = await self.cache.get_decoded(CacheNamespace.PROCESSED, token, ProcessedTokenData.from_dict)
        if cached is not MISS:
            self.stats['cache_hits'] += 1
            return cached

        self.stats['aggregations'] += 1
        values, defaulted = await self._collect(token, deadline if deadline is not None else self.deadline)

        security: TokenSecurityData = values[DataSource.SECURITY]
        trade_data: TokenTradeData = values[DataSource.TRADE]
        pairs = tuple(values[DataSource.DEX])
        holders: List[HolderRecord] = values[DataSource.HOLDERS]

        snapshot = ProcessedTokenData(
            token_address=token,
            security=security,
            trade_data=trade_data,
            pairs=pairs,
            canonical_pair=select_canonical_pair(list(pairs)),
            holder_distribution_trend=calculate_holder_trend(trade_data, self.trend_threshold),
            high_value_holders=tuple(filter_high_value_holders(holders, trade_data.price, self.high_value_floor)),
            high_supply_holders_count=count_high_supply_holders(
                holders, security.total_supply, self.high_supply_fraction
            ),
            recent_trades=(trade_data.volume_24h_usd or Decimal(0)) > 0,
            is_listed=len(pairs) > 0,
            is_boosted=any(pair.is_boosted for pair in pairs),
            token_codex=values[DataSource.CODEX],
            defaulted_sources=defaulted,
            fetched_at=utc_now().isoformat(),
        )

        if snapshot.insufficient_data:
            logger.info(f"Snapshot for {token} lacks {', '.join(snapshot.missing_data())} data, not caching")
        else:
            await self.cache.set(CacheNamespace.PROCESSED, token, snapshot.to_dict())
        return snapshot

    # ============= Buy sizing =============

    async def calculate_buy_amounts(self, token_address: str) -> Dict[str, Decimal]:
        """SOL amounts moving 1%, 5% and 10% of the canonical pair's liquidity"""
        zeros = {'none': Decimal(0), **{name: Decimal(0) for name in BUY_IMPACT_PERCENTAGES}}

        snapshot = await self.get_processed_token_data(token_address)
        pair = snapshot.canonical_pair
        if pair is None or pair.liquidity_usd <= 0:
            logger.warning(f"No DEX liquidity for {snapshot.token_address}, buy amounts are zero")
            return zeros

        prices = await self.birdeye.fetch_prices()
        sol_price = prices.get('solana', Decimal(0))
        if sol_price <= 0:
            logger.warning("SOL price unavailable, buy amounts are zero")
            return zeros

        amounts = {'none': Decimal(0)}
        for name, percentage in BUY_IMPACT_PERCENTAGES.items():
            amounts[name] = pair.liquidity_usd * percentage / sol_price
        return amounts

    # ============= Gem discovery =============

    async def find_gem_tokens(self, criteria: GemCriteria, limit: int = 20) -> List[Dict[str, Any]]:
        """Trending tokens matching at least one gem criterion, best score first"""
        trending = await self.birdeye.fetch_trending_tokens(limit)
        summaries = await asyncio.gather(
            *(self.dexscreener.fetch_token_summary(token['address']) for token in trending)
        )

        gems = []
        for pair in summaries:
            if pair is None:
                continue
            matches = evaluate_gem_criteria(pair, criteria)
            if not matches:
                continue

            score = calculate_gem_score(pair, criteria)
            gems.append({
                'token_address': pair.base_token_address,
                'symbol': pair.base_token_symbol,
                'name': pair.base_token_name,
                'gem_score': score,
                'matched_criteria': matches,
                'liquidity_usd': str(pair.liquidity_usd),
                'volume_24h': str(pair.volume_24h),
                'price_change_24h': str(pair.price_change_24h),
                'market_cap': str(pair.market_cap),
                'analysis': provide_deeper_analysis(pair, criteria),
                'recommendation': provide_recommendation(pair, score),
                'risk': assess_risk(pair, criteria),
                'url': pair.url,
            })

        gems.sort(key=lambda gem: gem['gem_score'], reverse=True)
        logger.info(f"Found {len(gems)} gem candidates among {len(trending)} trending tokens")
        return gems

    # ============= Trend analysis =============

    async def get_trend_analysis(self, token_address: str) -> Dict[str, Any]:
        snapshot = await self.get_processed_token_data(token_address)
        hourly = timeframe_metrics(snapshot.trade_data, '1h')
        daily = timeframe_metrics(snapshot.trade_data, '24h')

        return {
            'token_address': snapshot.token_address,
            'short_term': analyze_trend(hourly),
            'long_term': analyze_trend(daily),
            'momentum': calculate_momentum(hourly, daily),
            'summary': generate_trend_summary(hourly, daily),
            'trade_data_available': snapshot.has_trade_data,
        }

    # ============= Enhanced analysis =============

    @staticmethod
    def _tolerant(compute: Callable[[ProcessedTokenData], Any], snapshot: ProcessedTokenData) -> Any:
        try:
            return compute(snapshot)
        except Exception as e:
            logger.error(f"{compute.__qualname__} failed for {snapshot.token_address}: {e}")
            return None

    async def get_enhanced_analysis(self, token_address: str) -> Dict[str, Any]:
        """Snapshot plus market and risk metrics and a one-paragraph summary"""
        token = normalize_token_address(token_address)

        cached = await self.cache.get(CacheNamespace.ANALYSIS, token)
        if cached is not MISS:
            self.stats['cache_hits'] += 1
            return copy.deepcopy(cached)

        snapshot = await self.get_processed_token_data(token)
        market = self._tolerant(self.market_analyzer.compute, snapshot)
        risk = self._tolerant(self.risk_analyzer.compute, snapshot)

        analysis = {
            **snapshot.to_dict(),
            'enhanced_metrics': {
                'market': market.to_dict() if market is not None else None,
                'risk': risk.to_dict() if risk is not None else None,
            },
            'summary': generate_analysis_summary(market, risk),
        }

        if market is not None or risk is not None:
            await self.cache.set(CacheNamespace.ANALYSIS, token, analysis)
        return copy.deepcopy(analysis)

    # ============= Report =============

    async def get_formatted_token_report(self, token_address: str) -> str:
        """Markdown report; a legible fallback sentence on any failure except a malformed address"""
        try:
            snapshot = await self.get_processed_token_data(token_address)
            return self.report_formatter.format(snapshot)
        except MalformedTokenError:
            raise
        except Exception as e:
            logger.error(f"Error generating report for {token_address}: {e}")
            return FALLBACK_REPORT

    def get_stats(self) -> Dict:
        """Get aggregator statistics"""
        return self.stats.copy()
