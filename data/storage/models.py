# data/storage/models.py

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from utils.errors import TradeStateError
from utils.helpers import utc_now


class TradeSide(Enum):
    """Trade side enumeration."""
    BUY = "buy"
    SELL = "sell"


class PositionStatus(Enum):
    """Position status enumeration. A closed position is never reopened."""
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class Recommender:
    """A source of token recommendations."""
    id: str
    address: str = ""
    created_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class RecommenderMetrics:
    """Per-recommender trust state."""
    recommender_id: str
    trust_score: float = 0.0
    total_recommendations: int = 0
    successful_recs: int = 0
    avg_token_performance: float = 0.0
    risk_score: float = 0.0
    consistency_score: float = 0.0
    virtual_confidence: float = 0.0
    last_active_date: datetime = field(default_factory=utc_now)
    trust_decay: float = 0.0
    last_updated: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['last_active_date'] = self.last_active_date.isoformat()
        data['last_updated'] = self.last_updated.isoformat()
        return data


@dataclass(frozen=True)
class TokenPerformance:
    """Observed market behaviour of a recommended token."""
    token_address: str
    symbol: str = ""
    price_change_24h: float = 0.0
    volume_change_24h: float = 0.0
    trade_24h_change: float = 0.0
    liquidity: float = 0.0
    liquidity_change_24h: float = 0.0
    holder_change_24h: float = 0.0
    rug_pull: bool = False
    is_scam: bool = False
    market_cap_change_24h: float = 0.0
    sustained_growth: bool = False
    rapid_dump: bool = False
    suspicious_volume: bool = False
    validation_trust: float = 0.0
    balance: float = 0.0
    initial_market_cap: float = 0.0
    last_updated: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['last_updated'] = self.last_updated.isoformat()
        return data


@dataclass(frozen=True)
class TokenRecommendation:
    """A single recommendation of a token by a recommender."""
    id: str
    recommender_id: str
    token_address: str
    timestamp: datetime
    initial_market_cap: Decimal = Decimal(0)
    initial_liquidity: Decimal = Decimal(0)
    initial_price: Decimal = Decimal(0)


@dataclass(frozen=True)
class SellDetails:
    """Realized outcome of closing a position."""
    sell_price: Decimal
    sell_timestamp: datetime
    sell_amount: Decimal
    received_sol: Decimal
    sell_value_usd: Decimal
    profit_usd: Decimal
    profit_percent: Decimal
    sell_market_cap: Decimal
    market_cap_change: Decimal
    sell_liquidity: Decimal
    liquidity_change: Decimal
    rapid_dump: bool = False
    sell_recommender_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {k: (str(v) if isinstance(v, Decimal) else v) for k, v in asdict(self).items()}
        data['sell_timestamp'] = self.sell_timestamp.isoformat()
        return data


@dataclass(frozen=True)
class TradePerformance:
    """
    One opened position.

    Created OPEN with buy-side fields; `close` returns the CLOSED copy with
    sell-side fields populated. Closed records are immutable.
    """
    token_address: str
    recommender_id: str
    buy_price: Decimal
    buy_timestamp: datetime
    buy_amount: Decimal
    buy_sol: Decimal
    buy_value_usd: Decimal
    buy_market_cap: Decimal
    buy_liquidity: Decimal
    is_simulation: bool = False
    status: PositionStatus = PositionStatus.OPEN
    sell_price: Decimal = Decimal(0)
    sell_timestamp: Optional[datetime] = None
    sell_amount: Decimal = Decimal(0)
    received_sol: Decimal = Decimal(0)
    sell_value_usd: Decimal = Decimal(0)
    profit_usd: Decimal = Decimal(0)
    profit_percent: Decimal = Decimal(0)
    sell_market_cap: Decimal = Decimal(0)
    market_cap_change: Decimal = Decimal(0)
    sell_liquidity: Decimal = Decimal(0)
    liquidity_change: Decimal = Decimal(0)
    rapid_dump: bool = False
    sell_recommender_id: Optional[str] = None
    last_updated: datetime = field(default_factory=utc_now)
    replication_degraded: bool = False

    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.OPEN

    def close(self, details: SellDetails) -> "TradePerformance":
        """Transition OPEN -> CLOSED"""
        if not self.is_open:
            raise TradeStateError(
                f"Position for {self.token_address} opened at {self.buy_timestamp.isoformat()} is already closed"
            )
        return replace(
            self,
            status=PositionStatus.CLOSED,
            sell_price=details.sell_price,
            sell_timestamp=details.sell_timestamp,
            sell_amount=details.sell_amount,
            received_sol=details.received_sol,
            sell_value_usd=details.sell_value_usd,
            profit_usd=details.profit_usd,
            profit_percent=details.profit_percent,
            sell_market_cap=details.sell_market_cap,
            market_cap_change=details.market_cap_change,
            sell_liquidity=details.sell_liquidity,
            liquidity_change=details.liquidity_change,
            rapid_dump=details.rapid_dump,
            sell_recommender_id=details.sell_recommender_id,
            last_updated=utc_now(),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        for key, value in asdict(self).items():
            if isinstance(value, Decimal):
                value = str(value)
            elif isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, PositionStatus):
                value = value.value
            data[key] = value
        return data


@dataclass(frozen=True)
class SimulationTransaction:
    """Immutable log entry for a simulated buy or sell."""
    token_address: str
    type: TradeSide
    transaction_hash: str
    amount: Decimal
    price: Decimal
    is_simulation: bool = True
    timestamp: datetime = field(default_factory=utc_now)
