# analysis/risk_analyzer.py

import logging
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Callable, Dict

from data.models import ProcessedTokenData
from utils.errors import MalformedTokenError
from utils.helpers import round_half_up

if TYPE_CHECKING:
    from data.processors.aggregator import TokenDataAggregator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiskMetrics:
    """Risk sub-scores on a 0-100 scale, higher is riskier"""
    volatility_score: float = 50
    liquidity_risk: float = 75
    holder_concentration: float = 50
    security_score: float = 70
    market_stability: float = 50
    overall_risk: int = 65

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


DEFAULT_RISK_METRICS = RiskMetrics()

OVERALL_RISK_WEIGHTS: Dict[str, float] = {
    'volatility_score': 0.25,
    'liquidity_risk': 0.25,
    'holder_concentration': 0.2,
    'security_score': 0.2,
    'market_stability': 0.1,
}


def _as_float(value) -> float:
    return float(value) if value is not None else 0.0


class RiskAnalyzer:
    """Descriptive risk metrics over an aggregated token snapshot"""

    def __init__(self, aggregator: "TokenDataAggregator"):
        self.aggregator = aggregator

    async def calculate_risk_metrics(self, token_address: str) -> RiskMetrics:
        """
        Risk metrics for a token; falls back to the defaults when the snapshot
        cannot be built

        Raises:
            ValueError: if no token address is given
            MalformedTokenError: if the address cannot be normalized
        """
        if not token_address:
            raise ValueError("Token address is required for risk analysis")

        try:
            snapshot = await self.aggregator.get_processed_token_data(token_address)
        except MalformedTokenError:
            raise
        except Exception as e:
            logger.error(f"Risk analysis failed for {token_address}: {e}")
            return DEFAULT_RISK_METRICS
        return self.compute(snapshot)

    def compute(self, snapshot: ProcessedTokenData) -> RiskMetrics:
        metrics = {
            'volatility_score': self._safe(
                self.calculate_volatility, snapshot, DEFAULT_RISK_METRICS.volatility_score),
            'liquidity_risk': self._safe(
                self.calculate_liquidity_risk, snapshot, DEFAULT_RISK_METRICS.liquidity_risk),
            'holder_concentration': self._safe(
                self.calculate_holder_concentration, snapshot, DEFAULT_RISK_METRICS.holder_concentration),
            'security_score': self._safe(
                self.calculate_security_score, snapshot, DEFAULT_RISK_METRICS.security_score),
            'market_stability': self._safe(
                self.calculate_market_stability, snapshot, DEFAULT_RISK_METRICS.market_stability),
        }
        return RiskMetrics(**metrics, overall_risk=self.calculate_overall_risk(metrics))

    @staticmethod
    def _safe(calculate: Callable[[ProcessedTokenData], float], snapshot: ProcessedTokenData,
              default: float) -> float:
        try:
            return calculate(snapshot)
        except (ArithmeticError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Risk calculation {calculate.__name__} failed: {e}")
            return default

    # ============= Sub-metrics =============

    @staticmethod
    def calculate_volatility(data: ProcessedTokenData) -> float:
        weighted = (
            abs(_as_float(data.trade_data.price_change_1h_percent)) * 0.3
            + abs(_as_float(data.trade_data.price_change_24h_percent)) * 0.7
        )
        return min(100.0, weighted)

    @staticmethod
    def calculate_liquidity_risk(data: ProcessedTokenData) -> float:
        pair = data.canonical_pair
        liquidity = pair.liquidity_usd if pair else 0
        market_cap = pair.market_cap if pair else 0
        if not market_cap:
            return 100.0

        liquidity_ratio = float(liquidity / market_cap * 100)
        return min(100.0, max(0.0, 100 - liquidity_ratio))

    @staticmethod
    def calculate_holder_concentration(data: ProcessedTokenData) -> float:
        concentration = float(data.security.top10_holder_percent)
        return min(100.0, concentration / 80 * 100)

    @staticmethod
    def calculate_security_score(data: ProcessedTokenData) -> float:
        factors = (
            (0 if data.token_codex.blue_checkmark else 100, 0.3),
            (float(data.security.creator_percentage), 0.4),
            (100 if data.token_codex.is_scam else 0, 0.3),
        )
        return min(100.0, sum(value * weight for value, weight in factors))

    @staticmethod
    def calculate_market_stability(data: ProcessedTokenData) -> float:
        trade = data.trade_data
        factors = (
            (_as_float(trade.trade_24h_change_percent), 0.4),
            (_as_float(trade.volume_24h_change_percent), 0.3),
            (_as_float(trade.unique_wallet_24h_change_percent), 0.3),
        )
        score = sum(min(100.0, abs(value)) * weight for value, weight in factors)
        return min(100.0, score)

    @staticmethod
    def calculate_overall_risk(metrics: Dict[str, float]) -> int:
        overall = sum(metrics[key] * weight for key, weight in OVERALL_RISK_WEIGHTS.items())
        return min(100, round_half_up(overall))
