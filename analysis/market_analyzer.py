# analysis/market_analyzer.py

import logging
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

import numpy as np

from data.models import ProcessedTokenData
from utils.errors import MalformedTokenError

if TYPE_CHECKING:
    from data.processors.aggregator import TokenDataAggregator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MomentumMetrics:
    trend: str = "neutral"  # 'bullish', 'bearish', 'neutral'
    strength: float = 0
    volatility: float = 0
    rsi: float = 50


@dataclass(frozen=True)
class VolumeProfile:
    volume_24h: float = 0
    volume_change: float = 0
    buy_volume_ratio: float = 50
    volume_trend: str = "stable"  # 'increasing', 'decreasing', 'stable'


@dataclass(frozen=True)
class MarketStructure:
    market_cap: float = 0
    fully_diluted_value: float = 0
    liquidity_usd: float = 0
    price_discovery: str = "insufficient_data"  # 'high', 'medium', 'low'


@dataclass(frozen=True)
class TradingPattern:
    buy_pressure: str = "neutral"
    trader_diversity: str = "low"
    intensity: str = "low"


@dataclass(frozen=True)
class TradingActivity:
    unique_traders_24h: float = 0
    trade_count_24h: float = 0
    average_trade_size: float = 0
    trading_pattern: TradingPattern = field(default_factory=TradingPattern)


@dataclass(frozen=True)
class LiquidityMetrics:
    liquidity_depth: float = 0
    liquidity_score: float = 0
    liquidity_change_24h: float = 0
    liquidity_concentration: float = 100


@dataclass(frozen=True)
class MarketMetrics:
    """Auxiliary market description; every section has its own default"""
    momentum: MomentumMetrics = field(default_factory=MomentumMetrics)
    volume_profile: VolumeProfile = field(default_factory=VolumeProfile)
    market_structure: MarketStructure = field(default_factory=MarketStructure)
    trading_activity: TradingActivity = field(default_factory=TradingActivity)
    liquidity_metrics: LiquidityMetrics = field(default_factory=LiquidityMetrics)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _num(value: Optional[Decimal]) -> float:
    return float(value) if value is not None else 0.0


class MarketAnalyzer:
    """Momentum, volume, structure, activity and liquidity descriptors"""

    def __init__(self, aggregator: "TokenDataAggregator"):
        self.aggregator = aggregator

    async def analyze_token_metrics(self, token_address: str) -> MarketMetrics:
        """
        Raises:
            ValueError: if no token address is given
            MalformedTokenError: if the address cannot be normalized
        """
        if not token_address:
            raise ValueError("Token address is required for market analysis")

        try:
            snapshot = await self.aggregator.get_processed_token_data(token_address)
        except MalformedTokenError:
            raise
        except Exception as e:
            logger.error(f"Market analysis failed for {token_address}: {e}")
            return MarketMetrics()
        return self.compute(snapshot)

    def compute(self, snapshot: ProcessedTokenData) -> MarketMetrics:
        return MarketMetrics(
            momentum=self._safe(self.analyze_momentum, snapshot, MomentumMetrics()),
            volume_profile=self._safe(self.analyze_volume_profile, snapshot, VolumeProfile()),
            market_structure=self._safe(self.analyze_market_structure, snapshot, MarketStructure()),
            trading_activity=self._safe(self.analyze_trading_activity, snapshot, TradingActivity()),
            liquidity_metrics=self._safe(self.analyze_liquidity_metrics, snapshot, LiquidityMetrics()),
        )

    @staticmethod
    def _safe(analyze: Callable[[ProcessedTokenData], Any], snapshot: ProcessedTokenData, default: Any) -> Any:
        try:
            return analyze(snapshot)
        except (ArithmeticError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Analysis component {analyze.__name__} failed: {e}")
            return default

    # ============= Sections =============

    def analyze_momentum(self, data: ProcessedTokenData) -> MomentumMetrics:
        change_1h = _num(data.trade_data.price_change_1h_percent)
        change_24h = _num(data.trade_data.price_change_24h_percent)
        return MomentumMetrics(
            trend=self.calculate_trend(change_1h, change_24h),
            strength=min(100.0, abs(change_1h + change_24h) / 2),
            volatility=self.calculate_volatility(data),
            rsi=self.calculate_simple_rsi(data),
        )

    def analyze_volume_profile(self, data: ProcessedTokenData) -> VolumeProfile:
        volume_change = _num(data.trade_data.volume_24h_change_percent)
        if volume_change > 20:
            volume_trend = "increasing"
        elif volume_change < -20:
            volume_trend = "decreasing"
        else:
            volume_trend = "stable"

        return VolumeProfile(
            volume_24h=_num(data.trade_data.volume_24h),
            volume_change=volume_change,
            buy_volume_ratio=self.calculate_buy_volume_ratio(data),
            volume_trend=volume_trend,
        )

    def analyze_market_structure(self, data: ProcessedTokenData) -> MarketStructure:
        pair = data.canonical_pair
        if pair is None:
            return MarketStructure()
        return MarketStructure(
            market_cap=float(pair.market_cap),
            fully_diluted_value=float(pair.fdv),
            liquidity_usd=float(pair.liquidity_usd),
            price_discovery=self.assess_price_discovery(data),
        )

    def analyze_trading_activity(self, data: ProcessedTokenData) -> TradingActivity:
        trade = data.trade_data
        return TradingActivity(
            unique_traders_24h=_num(trade.unique_wallet_24h),
            trade_count_24h=_num(trade.trade_24h),
            average_trade_size=self.calculate_average_trade_size(data),
            trading_pattern=self.analyze_trading_pattern(data),
        )

    def analyze_liquidity_metrics(self, data: ProcessedTokenData) -> LiquidityMetrics:
        pair = data.canonical_pair
        return LiquidityMetrics(
            liquidity_depth=float(pair.liquidity_usd) if pair else 0.0,
            liquidity_score=self.calculate_liquidity_score(data),
            liquidity_change_24h=self.calculate_liquidity_change(data),
            liquidity_concentration=self.calculate_liquidity_concentration(data),
        )

    # ============= Helpers =============

    @staticmethod
    def calculate_trend(change_1h: float, change_24h: float) -> str:
        weighted_change = change_1h * 0.3 + change_24h * 0.7
        if weighted_change > 5:
            return "bullish"
        if weighted_change < -5:
            return "bearish"
        return "neutral"

    @staticmethod
    def _known_price_changes(data: ProcessedTokenData) -> List[float]:
        changes = (data.trade_data.price_change_1h_percent, data.trade_data.price_change_24h_percent)
        return [float(change) for change in changes if change is not None]

    def calculate_volatility(self, data: ProcessedTokenData) -> float:
        changes = self._known_price_changes(data)
        if not changes:
            return 0.0
        return min(100.0, float(np.mean(np.abs(changes))))

    def calculate_simple_rsi(self, data: ProcessedTokenData) -> float:
        changes = np.array(self._known_price_changes(data))
        gains = changes[changes > 0]
        losses = changes[changes < 0]

        avg_gain = float(gains.mean()) if gains.size else 0.0
        avg_loss = float(abs(losses.mean())) if losses.size else 0.0

        if avg_loss == 0:
            return 100.0
        rs = avg_gain / avg_loss
        return 100 - (100 / (1 + rs))

    @staticmethod
    def calculate_buy_volume_ratio(data: ProcessedTokenData) -> float:
        total_volume = data.trade_data.volume_24h
        if not total_volume:
            return 0.0
        buy_volume = data.trade_data.volume_buy_24h or Decimal(0)
        return float(buy_volume / total_volume * 100)

    @staticmethod
    def assess_price_discovery(data: ProcessedTokenData) -> str:
        pair = data.canonical_pair
        liquidity = pair.liquidity_usd if pair else Decimal(0)
        if not liquidity:
            return "insufficient_data"

        ratio = (data.trade_data.volume_24h or Decimal(0)) / liquidity
        if ratio > 1:
            return "high"
        if ratio > Decimal("0.1"):
            return "medium"
        return "low"

    @staticmethod
    def calculate_average_trade_size(data: ProcessedTokenData) -> float:
        volume = data.trade_data.volume_24h or Decimal(0)
        trades = data.trade_data.trade_24h
        if not trades:
            return 0.0
        return float(volume / trades)

    def analyze_trading_pattern(self, data: ProcessedTokenData) -> TradingPattern:
        buy_ratio = self.calculate_buy_volume_ratio(data)
        unique_wallets = _num(data.trade_data.unique_wallet_24h)
        trade_count = _num(data.trade_data.trade_24h)

        if buy_ratio > 60:
            buy_pressure = "high"
        elif buy_ratio < 40:
            buy_pressure = "low"
        else:
            buy_pressure = "neutral"

        if unique_wallets > 100:
            trader_diversity = "high"
        elif unique_wallets > 50:
            trader_diversity = "medium"
        else:
            trader_diversity = "low"

        if trade_count > 1000:
            intensity = "high"
        elif trade_count > 500:
            intensity = "medium"
        else:
            intensity = "low"

        return TradingPattern(buy_pressure=buy_pressure, trader_diversity=trader_diversity, intensity=intensity)

    @staticmethod
    def calculate_liquidity_score(data: ProcessedTokenData) -> float:
        pair = data.canonical_pair
        if pair is None or not pair.market_cap:
            return 0.0
        return min(100.0, float(pair.liquidity_usd / pair.market_cap * 100))

    @staticmethod
    def calculate_liquidity_change(data: ProcessedTokenData) -> float:
        pair = data.canonical_pair
        if pair is None:
            return 0.0

        # No liquidity history is available; the previous value is approximated
        current = pair.liquidity_usd
        previous = current * Decimal("0.95")
        if not previous:
            return 0.0
        return float((current - previous) / previous * 100)

    @staticmethod
    def calculate_liquidity_concentration(data: ProcessedTokenData) -> float:
        pairs = data.pairs
        if len(pairs) <= 1:
            return 100.0

        total_liquidity = sum((pair.liquidity_usd for pair in pairs), Decimal(0))
        if not total_liquidity:
            return 0.0

        main_liquidity = data.canonical_pair.liquidity_usd if data.canonical_pair else Decimal(0)
        return float(main_liquidity / total_liquidity * 100)
