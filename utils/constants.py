"""
System-wide Constants for the Solana token intelligence service
Centralized identifiers, time buckets, cache namespaces and scoring thresholds
"""

from decimal import Decimal
from enum import Enum
from typing import Dict, Tuple


# ============= Chain Configuration =============

SOLANA_CHAIN_ID = "solana"
CODEX_SOLANA_NETWORK_ID = 1399811149

class TokenMint(str, Enum):
    """Well-known Solana mints"""
    SOL = "So11111111111111111111111111111111111111112"
    BTC = "3NZ9JMVBmGAqocybic2c7LQCJScmgsAZ6vQqTDzcqmJh"
    ETH = "7vfCXTUXx5WJV5JADk17DUJ4ksgau7utNKj4b963voxs"

PRICE_KEYS: Dict[TokenMint, str] = {
    TokenMint.SOL: "solana",
    TokenMint.BTC: "bitcoin",
    TokenMint.ETH: "ethereum",
}

# ============= Trade Data Buckets =============

# Buckets carrying full trade statistics, oldest-granularity last
TRADE_BUCKETS: Tuple[str, ...] = ("30m", "1h", "2h", "4h", "8h", "24h")

# Buckets where the source may have no history and reports null
NULLABLE_BUCKETS: Tuple[str, ...] = ("8h", "24h")

# ============= Cache Namespaces =============

class CacheNamespace(str, Enum):
    """Logical cache namespaces, each with its own TTL"""
    SECURITY = "security"
    TRADE = "trade"
    DEX = "dex"
    DEX_SEARCH = "dex_search"
    HOLDERS = "holders"
    CODEX = "codex"
    PRICES = "prices"
    PROCESSED = "processed"
    ANALYSIS = "analysis"

DEFAULT_CACHE_TTLS: Dict[str, int] = {
    CacheNamespace.SECURITY.value: 600,
    CacheNamespace.TRADE.value: 600,
    CacheNamespace.DEX.value: 60,
    CacheNamespace.DEX_SEARCH.value: 300,
    CacheNamespace.HOLDERS.value: 3600,
    CacheNamespace.CODEX.value: 600,
    CacheNamespace.PRICES.value: 600,
    CacheNamespace.PROCESSED.value: 300,
    CacheNamespace.ANALYSIS.value: 600,
}

CACHE_KEY_PREFIX = "solana/tokens"

# ============= Holder Signals =============

HIGH_VALUE_HOLDER_FLOOR_USD = Decimal("5")
HIGH_SUPPLY_HOLDER_FRACTION = Decimal("0.02")
HOLDER_TREND_INCREASE_THRESHOLD = 10.0

# ============= Risk Flags =============

RUG_PULL_PENALTY = 10
SCAM_PENALTY = 10
RAPID_DUMP_PENALTY = 5
SUSPICIOUS_VOLUME_PENALTY = 5
MAX_RISK_SCORE = RUG_PULL_PENALTY + SCAM_PENALTY + RAPID_DUMP_PENALTY + SUSPICIOUS_VOLUME_PENALTY

RAPID_DUMP_THRESHOLD = -50.0
SUSPICIOUS_VOLUME_RATIO = 0.5
SUSTAINED_GROWTH_THRESHOLD = 50.0

# ============= Trust Decay =============

TRUST_DECAY_RATE = 0.95
TRUST_MAX_DECAY_DAYS = 30
VIRTUAL_CONFIDENCE_DIVISOR = Decimal("1000000")

# ============= Gem Scoring Weights =============

GEM_WEIGHTS: Dict[str, float] = {
    "volume": 0.30,
    "liquidity": 0.25,
    "price_change": 0.25,
    "market_cap": 0.20,
}

# ============= Buy Sizing =============

BUY_IMPACT_PERCENTAGES: Dict[str, Decimal] = {
    "low": Decimal("0.01"),
    "medium": Decimal("0.05"),
    "high": Decimal("0.10"),
}

UNAVAILABLE = "unavailable"
