# analysis/token_scorer.py

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from data.models import DexPair, ProcessedTokenData, TokenTradeData
from data.storage.models import TokenPerformance
from utils.constants import (
    GEM_WEIGHTS,
    MAX_RISK_SCORE,
    RAPID_DUMP_PENALTY,
    RAPID_DUMP_THRESHOLD,
    RUG_PULL_PENALTY,
    SCAM_PENALTY,
    SUSPICIOUS_VOLUME_PENALTY,
    SUSPICIOUS_VOLUME_RATIO,
    SUSTAINED_GROWTH_THRESHOLD,
)
from utils.errors import InsufficientData
from utils.helpers import format_large_number, normalize, round_half_up

logger = logging.getLogger(__name__)


class GemCriteria(BaseModel):
    """Caller-supplied thresholds for gem scoring"""
    volume_threshold: float = Field(default=1_000_000, gt=0)
    liquidity_threshold: float = Field(default=100_000, gt=0)
    price_surge_threshold: float = Field(default=50, gt=0)
    max_market_cap: float = Field(default=10_000_000, gt=0)

    @classmethod
    def from_config(cls, scoring_config) -> "GemCriteria":
        return cls(
            volume_threshold=scoring_config.volume_threshold,
            liquidity_threshold=scoring_config.liquidity_threshold,
            price_surge_threshold=scoring_config.price_surge_threshold,
            max_market_cap=scoring_config.max_market_cap,
        )


@dataclass(frozen=True)
class GemSignals:
    """The four signals a gem score is built from"""
    volume_24h_usd: float
    liquidity_usd: float
    price_change_24h_percent: float
    market_cap: float
    symbol: str = ""
    name: str = ""

    @classmethod
    def from_snapshot(cls, snapshot: ProcessedTokenData) -> "GemSignals":
        """
        Raises:
            InsufficientData: if the snapshot lacks pair or trade data
        """
        if snapshot.insufficient_data:
            raise InsufficientData(snapshot.token_address, snapshot.missing_data())

        trade = snapshot.trade_data
        pair = snapshot.canonical_pair
        return cls(
            volume_24h_usd=float(trade.volume_24h_usd or 0),
            liquidity_usd=float(pair.liquidity_usd),
            price_change_24h_percent=float(trade.price_change_24h_percent or 0),
            market_cap=float(pair.market_cap),
            symbol=snapshot.token_codex.symbol or pair.base_token_symbol,
            name=snapshot.token_codex.name or pair.base_token_name,
        )

    @classmethod
    def from_pair(cls, pair: DexPair) -> "GemSignals":
        return cls(
            volume_24h_usd=float(pair.volume_24h),
            liquidity_usd=float(pair.liquidity_usd),
            price_change_24h_percent=float(pair.price_change_24h),
            market_cap=float(pair.market_cap),
            symbol=pair.base_token_symbol,
            name=pair.base_token_name,
        )


GemSource = Union[ProcessedTokenData, DexPair, GemSignals]


def _as_signals(source: GemSource) -> GemSignals:
    if isinstance(source, GemSignals):
        return source
    if isinstance(source, ProcessedTokenData):
        return GemSignals.from_snapshot(source)
    if isinstance(source, DexPair):
        return GemSignals.from_pair(source)
    raise TypeError(f"Cannot score {type(source).__name__}")


# ============= Gem scoring =============

def calculate_gem_score(source: GemSource, criteria: GemCriteria) -> int:
    """
    Weighted 0-100 opportunity score.

    Non-decreasing in volume, liquidity and absolute price change; a larger
    market cap lowers it.
    """
    signals = _as_signals(source)

    score = 0.0
    score += normalize(signals.volume_24h_usd, 0, criteria.volume_threshold) * GEM_WEIGHTS['volume']
    score += normalize(signals.liquidity_usd, 0, criteria.liquidity_threshold) * GEM_WEIGHTS['liquidity']
    score += normalize(
        abs(signals.price_change_24h_percent), 0, criteria.price_surge_threshold
    ) * GEM_WEIGHTS['price_change']
    score += (1 - normalize(signals.market_cap, 0, criteria.max_market_cap)) * GEM_WEIGHTS['market_cap']

    return round_half_up(score * 100)


def evaluate_gem_criteria(source: GemSource, criteria: GemCriteria) -> List[str]:
    """Criteria the token independently matches; reported beside the score"""
    signals = _as_signals(source)
    matches = []
    if signals.liquidity_usd > criteria.liquidity_threshold:
        matches.append('High Liquidity')
    if signals.volume_24h_usd > criteria.volume_threshold:
        matches.append('High Volume')
    if abs(signals.price_change_24h_percent) > criteria.price_surge_threshold:
        matches.append('Recent Price Surge')
    if signals.market_cap < criteria.max_market_cap:
        matches.append('Low Market Cap')
    return matches


def provide_deeper_analysis(source: GemSource, criteria: GemCriteria) -> str:
    signals = _as_signals(source)
    symbol = signals.symbol or 'This token'
    analysis = []

    if signals.volume_24h_usd > criteria.volume_threshold:
        analysis.append(
            f"**{symbol}** has seen a **{format_large_number(signals.volume_24h_usd)} USD** volume "
            f"in the last 24 hours, indicating strong market interest."
        )
    if signals.liquidity_usd > criteria.liquidity_threshold:
        analysis.append(
            f"With **{format_large_number(signals.liquidity_usd)} USD** in liquidity, **{symbol}** "
            f"has robust market support, reducing slippage risks."
        )
    if abs(signals.price_change_24h_percent) > criteria.price_surge_threshold:
        direction = 'increase' if signals.price_change_24h_percent > 0 else 'decrease'
        analysis.append(
            f"**{symbol}** has experienced a **{abs(signals.price_change_24h_percent):.1f}% {direction}** "
            f"in price over the last 24 hours."
        )
    if signals.market_cap < criteria.max_market_cap:
        analysis.append(
            f"**{symbol}** has a **low market cap** of approximately "
            f"{format_large_number(signals.market_cap)} USD, suggesting room for growth if fundamentals are strong."
        )

    return '\n- '.join(analysis)


def provide_recommendation(source: GemSource, gem_score: int) -> str:
    signals = _as_signals(source)
    label = f"**{signals.name or 'Unknown'} ({signals.symbol or '?'})**"
    if gem_score > 80:
        return (f"{label} is showing **strong gem indicators**. **Consider for short-term trade** due to "
                f"current momentum. Monitor for price stabilization before long-term investment.")
    if gem_score > 50:
        return (f"{label} looks promising with moderate gem signals. **Good for portfolio diversification** "
                f"if the project's fundamentals are solid.")
    return (f"{label} has some gem-like traits but **approach with caution**; further research into the "
            f"project's fundamentals is necessary.")


def assess_risk(source: GemSource, criteria: GemCriteria) -> str:
    signals = _as_signals(source)
    if abs(signals.price_change_24h_percent) > 50:
        level, reason = 'High', 'recent extreme volatility'
    elif signals.liquidity_usd < criteria.liquidity_threshold / 2:
        level, reason = 'Moderate', 'low liquidity'
    else:
        level, reason = 'Low', 'stable market conditions'
    return f"**Risk:** {level}, due to {reason}"


# ============= Risk flags =============

def is_rapid_dump(trade: TokenTradeData) -> bool:
    """24h trade count dropped by more than half"""
    change = trade.trade_24h_change_percent
    return change is not None and float(change) < RAPID_DUMP_THRESHOLD


def is_suspicious_volume(trade: TokenTradeData) -> bool:
    """Many wallets moving little volume; zero or unknown volume is not suspicious"""
    volume = trade.volume_24h
    wallets = trade.unique_wallet_24h
    if not volume or wallets is None:
        return False
    return wallets / volume > Decimal(str(SUSPICIOUS_VOLUME_RATIO))


def has_sustained_growth(trade: TokenTradeData) -> bool:
    change = trade.volume_24h_change_percent
    return change is not None and float(change) > SUSTAINED_GROWTH_THRESHOLD


def calculate_risk_score(performance: TokenPerformance) -> int:
    """Additive penalties; bounded by MAX_RISK_SCORE when every flag fires"""
    risk_score = 0
    if performance.rug_pull:
        risk_score += RUG_PULL_PENALTY
    if performance.is_scam:
        risk_score += SCAM_PENALTY
    if performance.rapid_dump:
        risk_score += RAPID_DUMP_PENALTY
    if performance.suspicious_volume:
        risk_score += SUSPICIOUS_VOLUME_PENALTY
    return min(risk_score, MAX_RISK_SCORE)


# ============= Trade gate =============

def should_trade_token(snapshot: ProcessedTokenData) -> bool:
    """Coarse pre-trade gate; any matching signal admits the token"""
    pair: Optional[DexPair] = snapshot.canonical_pair
    if pair is None:
        logger.warning(f"Missing DEX data for {snapshot.token_address}")
        return False
    if not snapshot.has_trade_data:
        logger.warning(f"No trade data available for {snapshot.token_address}")
        return False

    trade = snapshot.trade_data
    top10_holder_percent = snapshot.security.top10_holder_percent
    price_change_24h = trade.price_change_24h_percent or Decimal(0)
    price_change_12h = trade.price_change_12h_percent or Decimal(0)
    unique_wallet_24h = trade.unique_wallet_24h or Decimal(0)
    volume_24h_usd = trade.volume_24h_usd or Decimal(0)

    return any((
        top10_holder_percent >= Decimal("0.05"),
        volume_24h_usd >= 1000,
        price_change_24h >= 10,
        price_change_12h >= 5,
        unique_wallet_24h >= 100,
        pair.liquidity_usd < 1000,
        pair.market_cap < 100_000,
    ))
