# data/models.py
"""
Typed records produced by the source collectors and the token aggregator.

All monetary and supply quantities are Decimals. Every record converts to a
JSON-safe dict (Decimals as strings) and back, so cached values compare equal
to the ones stored.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from utils.constants import NULLABLE_BUCKETS, TRADE_BUCKETS
from utils.helpers import decimal_to_str, optional_decimal, to_decimal


class HolderTrend(str, Enum):
    """Direction of unique-wallet growth across time buckets"""
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class DataSource(str, Enum):
    """Source collectors feeding one aggregation"""
    SECURITY = "security"
    TRADE = "trade"
    DEX = "dex"
    HOLDERS = "holders"
    CODEX = "codex"


def _dec(value: Decimal) -> str:
    return str(value)


@dataclass(frozen=True)
class TokenSecurityData:
    """Ownership and supply figures for a token"""
    owner_balance: Decimal = Decimal(0)
    creator_balance: Decimal = Decimal(0)
    owner_percentage: Decimal = Decimal(0)
    creator_percentage: Decimal = Decimal(0)
    top10_holder_balance: Decimal = Decimal(0)
    top10_holder_percent: Decimal = Decimal(0)
    total_supply: Decimal = Decimal(0)
    is_token_2022: Optional[bool] = None
    mutable_metadata: Optional[bool] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "TokenSecurityData":
        """Map a BirdEye token_security payload; owner falls back to creator"""
        owner_balance = data.get('ownerBalance')
        if owner_balance is None:
            owner_balance = data.get('creatorBalance')
        owner_percentage = data.get('ownerPercentage')
        if owner_percentage is None:
            owner_percentage = data.get('creatorPercentage')

        return cls(
            owner_balance=to_decimal(owner_balance),
            creator_balance=to_decimal(data.get('creatorBalance')),
            owner_percentage=to_decimal(owner_percentage),
            creator_percentage=to_decimal(data.get('creatorPercentage')),
            top10_holder_balance=to_decimal(data.get('top10HolderBalance')),
            top10_holder_percent=to_decimal(data.get('top10HolderPercent')),
            total_supply=to_decimal(data.get('totalSupply')),
            is_token_2022=data.get('isToken2022'),
            mutable_metadata=data.get('mutableMetadata'),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            result[f.name] = _dec(value) if isinstance(value, Decimal) else value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenSecurityData":
        kwargs = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            if f.name in ('is_token_2022', 'mutable_metadata'):
                kwargs[f.name] = value
            else:
                kwargs[f.name] = to_decimal(value)
        return cls(**kwargs)


# Source key templates for each bucket statistic, {b} is the bucket label
BUCKET_FIELD_KEYS: Dict[str, str] = {
    'history_price': 'history{b}Price',
    'price_change_percent': 'priceChange{b}Percent',
    'unique_wallet': 'uniqueWallet{b}',
    'unique_wallet_history': 'uniqueWalletHistory{b}',
    'unique_wallet_change_percent': 'uniqueWallet{b}ChangePercent',
    'trade': 'trade{b}',
    'trade_history': 'tradeHistory{b}',
    'trade_change_percent': 'trade{b}ChangePercent',
    'sell': 'sell{b}',
    'sell_history': 'sellHistory{b}',
    'sell_change_percent': 'sell{b}ChangePercent',
    'buy': 'buy{b}',
    'buy_history': 'buyHistory{b}',
    'buy_change_percent': 'buy{b}ChangePercent',
    'volume': 'v{b}',
    'volume_usd': 'v{b}USD',
    'volume_history': 'vHistory{b}',
    'volume_history_usd': 'vHistory{b}USD',
    'volume_change_percent': 'v{b}ChangePercent',
    'volume_buy': 'vBuy{b}',
    'volume_buy_usd': 'vBuy{b}USD',
    'volume_buy_history': 'vBuyHistory{b}',
    'volume_buy_history_usd': 'vBuyHistory{b}USD',
    'volume_buy_change_percent': 'vBuy{b}ChangePercent',
    'volume_sell': 'vSell{b}',
    'volume_sell_usd': 'vSell{b}USD',
    'volume_sell_history': 'vSellHistory{b}',
    'volume_sell_history_usd': 'vSellHistory{b}USD',
    'volume_sell_change_percent': 'vSell{b}ChangePercent',
}


@dataclass(frozen=True)
class TradeBucket:
    """Trade statistics for one time bucket.

    None means the source had no value (unknown); Decimal(0) is a known zero.
    """
    history_price: Optional[Decimal] = None
    price_change_percent: Optional[Decimal] = None
    unique_wallet: Optional[Decimal] = None
    unique_wallet_history: Optional[Decimal] = None
    unique_wallet_change_percent: Optional[Decimal] = None
    trade: Optional[Decimal] = None
    trade_history: Optional[Decimal] = None
    trade_change_percent: Optional[Decimal] = None
    sell: Optional[Decimal] = None
    sell_history: Optional[Decimal] = None
    sell_change_percent: Optional[Decimal] = None
    buy: Optional[Decimal] = None
    buy_history: Optional[Decimal] = None
    buy_change_percent: Optional[Decimal] = None
    volume: Optional[Decimal] = None
    volume_usd: Optional[Decimal] = None
    volume_history: Optional[Decimal] = None
    volume_history_usd: Optional[Decimal] = None
    volume_change_percent: Optional[Decimal] = None
    volume_buy: Optional[Decimal] = None
    volume_buy_usd: Optional[Decimal] = None
    volume_buy_history: Optional[Decimal] = None
    volume_buy_history_usd: Optional[Decimal] = None
    volume_buy_change_percent: Optional[Decimal] = None
    volume_sell: Optional[Decimal] = None
    volume_sell_usd: Optional[Decimal] = None
    volume_sell_history: Optional[Decimal] = None
    volume_sell_history_usd: Optional[Decimal] = None
    volume_sell_change_percent: Optional[Decimal] = None

    @classmethod
    def from_overview(cls, overview: Dict[str, Any], bucket: str) -> "TradeBucket":
        """Map camelCase overview keys; absent values stay unknown only where
        the source is allowed to lack history"""
        nullable = bucket in NULLABLE_BUCKETS
        kwargs = {}
        for name, template in BUCKET_FIELD_KEYS.items():
            raw = overview.get(template.format(b=bucket))
            value = optional_decimal(raw)
            if value is None and not nullable:
                value = Decimal(0)
            kwargs[name] = value
        return cls(**kwargs)

    @classmethod
    def zeroed(cls) -> "TradeBucket":
        return cls(**{name: Decimal(0) for name in BUCKET_FIELD_KEYS})

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {f.name: decimal_to_str(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradeBucket":
        return cls(**{
            f.name: optional_decimal(data.get(f.name)) for f in fields(cls)
        })


@dataclass(frozen=True)
class TokenTradeData:
    """Price plus per-bucket trade statistics"""
    address: str
    price: Decimal = Decimal(0)
    holder: int = 0
    market: int = 0
    last_trade_unix_time: int = 0
    last_trade_human_time: str = ""
    price_change_6h_percent: Optional[Decimal] = None
    price_change_12h_percent: Optional[Decimal] = None
    buckets: Dict[str, TradeBucket] = field(default_factory=dict)

    @classmethod
    def from_overview(cls, address: str, overview: Dict[str, Any]) -> "TokenTradeData":
        """Map a BirdEye token_overview payload"""
        return cls(
            address=address,
            price=to_decimal(overview.get('price')),
            holder=int(overview.get('holder') or 0),
            market=int(overview.get('numberMarkets') or 0),
            last_trade_unix_time=int(overview.get('lastTradeUnixTime') or 0),
            last_trade_human_time=overview.get('lastTradeHumanTime') or "",
            price_change_6h_percent=optional_decimal(overview.get('priceChange6hPercent')),
            price_change_12h_percent=optional_decimal(overview.get('priceChange12hPercent')),
            buckets={b: TradeBucket.from_overview(overview, b) for b in TRADE_BUCKETS},
        )

    @classmethod
    def default(cls, address: str) -> "TokenTradeData":
        """Zeroed record served when the trade source fails"""
        return cls(
            address=address,
            last_trade_human_time=datetime.now(timezone.utc).isoformat(),
            buckets={b: TradeBucket.zeroed() for b in TRADE_BUCKETS},
        )

    def bucket(self, name: str) -> TradeBucket:
        return self.buckets.get(name) or TradeBucket()

    def unique_wallet_change_percents(self) -> List[Optional[Decimal]]:
        return [self.bucket(b).unique_wallet_change_percent for b in TRADE_BUCKETS]

    @property
    def price_change_1h_percent(self) -> Optional[Decimal]:
        return self.bucket('1h').price_change_percent

    @property
    def price_change_24h_percent(self) -> Optional[Decimal]:
        return self.bucket('24h').price_change_percent

    @property
    def volume_24h(self) -> Optional[Decimal]:
        return self.bucket('24h').volume

    @property
    def volume_24h_usd(self) -> Optional[Decimal]:
        return self.bucket('24h').volume_usd

    @property
    def volume_buy_24h(self) -> Optional[Decimal]:
        return self.bucket('24h').volume_buy

    @property
    def volume_24h_change_percent(self) -> Optional[Decimal]:
        return self.bucket('24h').volume_change_percent

    @property
    def volume_1h_change_percent(self) -> Optional[Decimal]:
        return self.bucket('1h').volume_change_percent

    @property
    def unique_wallet_24h(self) -> Optional[Decimal]:
        return self.bucket('24h').unique_wallet

    @property
    def unique_wallet_1h_change_percent(self) -> Optional[Decimal]:
        return self.bucket('1h').unique_wallet_change_percent

    @property
    def unique_wallet_24h_change_percent(self) -> Optional[Decimal]:
        return self.bucket('24h').unique_wallet_change_percent

    @property
    def trade_24h(self) -> Optional[Decimal]:
        return self.bucket('24h').trade

    @property
    def trade_24h_change_percent(self) -> Optional[Decimal]:
        return self.bucket('24h').trade_change_percent

    @property
    def buy_24h(self) -> Optional[Decimal]:
        return self.bucket('24h').buy

    @property
    def sell_24h(self) -> Optional[Decimal]:
        return self.bucket('24h').sell

    def to_dict(self) -> Dict[str, Any]:
        return {
            'address': self.address,
            'price': _dec(self.price),
            'holder': self.holder,
            'market': self.market,
            'last_trade_unix_time': self.last_trade_unix_time,
            'last_trade_human_time': self.last_trade_human_time,
            'price_change_6h_percent': decimal_to_str(self.price_change_6h_percent),
            'price_change_12h_percent': decimal_to_str(self.price_change_12h_percent),
            'buckets': {name: bucket.to_dict() for name, bucket in self.buckets.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenTradeData":
        return cls(
            address=data['address'],
            price=to_decimal(data.get('price')),
            holder=int(data.get('holder') or 0),
            market=int(data.get('market') or 0),
            last_trade_unix_time=int(data.get('last_trade_unix_time') or 0),
            last_trade_human_time=data.get('last_trade_human_time') or "",
            price_change_6h_percent=optional_decimal(data.get('price_change_6h_percent')),
            price_change_12h_percent=optional_decimal(data.get('price_change_12h_percent')),
            buckets={
                name: TradeBucket.from_dict(bucket)
                for name, bucket in (data.get('buckets') or {}).items()
            },
        )


@dataclass(frozen=True)
class DexPair:
    """One DEX liquidity pool listing for the token"""
    chain_id: str
    dex_id: str
    pair_address: str
    base_token_address: str
    base_token_symbol: str = ""
    base_token_name: str = ""
    quote_token_symbol: str = ""
    url: str = ""
    price_usd: Decimal = Decimal(0)
    liquidity_usd: Decimal = Decimal(0)
    market_cap: Decimal = Decimal(0)
    fdv: Decimal = Decimal(0)
    volume_24h: Decimal = Decimal(0)
    price_change_24h: Decimal = Decimal(0)
    boosts_active: int = 0
    pair_created_at: Optional[int] = None

    @classmethod
    def from_api(cls, pair: Dict[str, Any]) -> "DexPair":
        """Parse a DexScreener pair object"""
        base_token = pair.get('baseToken') or {}
        quote_token = pair.get('quoteToken') or {}
        liquidity = pair.get('liquidity') or {}
        volume = pair.get('volume') or {}
        price_change = pair.get('priceChange') or {}
        boosts = pair.get('boosts') or {}

        return cls(
            chain_id=pair.get('chainId', ''),
            dex_id=pair.get('dexId', ''),
            pair_address=pair.get('pairAddress', ''),
            base_token_address=base_token.get('address', ''),
            base_token_symbol=base_token.get('symbol', ''),
            base_token_name=base_token.get('name', ''),
            quote_token_symbol=quote_token.get('symbol', ''),
            url=pair.get('url', ''),
            price_usd=to_decimal(pair.get('priceUsd')),
            liquidity_usd=to_decimal(liquidity.get('usd')),
            market_cap=to_decimal(pair.get('marketCap')),
            fdv=to_decimal(pair.get('fdv')),
            volume_24h=to_decimal(volume.get('h24')),
            price_change_24h=to_decimal(price_change.get('h24')),
            boosts_active=int(boosts.get('active') or 0),
            pair_created_at=pair.get('pairCreatedAt'),
        )

    @property
    def is_boosted(self) -> bool:
        return self.boosts_active > 0

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            result[f.name] = _dec(value) if isinstance(value, Decimal) else value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DexPair":
        kwargs = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            kwargs[f.name] = to_decimal(value) if f.type in (Decimal, 'Decimal') else value
        return cls(**kwargs)


def select_canonical_pair(pairs: List[DexPair]) -> Optional[DexPair]:
    """Highest liquidity wins, ties broken by market cap; input is not reordered"""
    if not pairs:
        return None
    return max(pairs, key=lambda p: (p.liquidity_usd, p.market_cap))


@dataclass(frozen=True)
class HolderRecord:
    """Largest-account entry from the ledger RPC"""
    address: str
    balance: Decimal

    def to_dict(self) -> Dict[str, str]:
        return {'address': self.address, 'balance': _dec(self.balance)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HolderRecord":
        return cls(address=data['address'], balance=to_decimal(data.get('balance')))


@dataclass(frozen=True)
class HighValueHolder:
    """Holder whose position exceeds the USD floor"""
    holder_address: str
    balance_usd: Decimal

    def to_dict(self) -> Dict[str, str]:
        return {'holder_address': self.holder_address, 'balance_usd': _dec(self.balance_usd)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HighValueHolder":
        return cls(holder_address=data['holder_address'], balance_usd=to_decimal(data.get('balance_usd')))


@dataclass(frozen=True)
class TokenCodex:
    """Token metadata from the Codex registry"""
    address: str
    id: str = ""
    cmc_id: int = 0
    decimals: int = 9
    name: str = ""
    symbol: str = ""
    total_supply: str = "0"
    circulating_supply: str = "0"
    image_thumb_url: str = ""
    blue_checkmark: bool = False
    is_scam: bool = False

    @classmethod
    def from_api(cls, token: Dict[str, Any]) -> "TokenCodex":
        info = token.get('info') or {}
        explorer = token.get('explorerData') or {}
        return cls(
            address=token.get('address', ''),
            id=token.get('id') or "",
            cmc_id=int(token.get('cmcId') or 0),
            decimals=int(token.get('decimals') if token.get('decimals') is not None else 9),
            name=token.get('name') or "",
            symbol=token.get('symbol') or "",
            total_supply=str(token.get('totalSupply') or "0"),
            circulating_supply=str(info.get('circulatingSupply') or "0"),
            image_thumb_url=info.get('imageThumbUrl') or "",
            blue_checkmark=bool(explorer.get('blueCheckmark')),
            is_scam=bool(token.get('isScam')),
        )

    @classmethod
    def default(cls, address: str) -> "TokenCodex":
        return cls(address=address)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenCodex":
        return cls(**{f.name: data[f.name] for f in fields(cls) if f.name in data})


@dataclass(frozen=True)
class ProcessedTokenData:
    """Reconciled snapshot of one token; built fresh per aggregation"""
    token_address: str
    security: TokenSecurityData
    trade_data: TokenTradeData
    pairs: Tuple[DexPair, ...]
    canonical_pair: Optional[DexPair]
    holder_distribution_trend: HolderTrend
    high_value_holders: Tuple[HighValueHolder, ...]
    high_supply_holders_count: int
    recent_trades: bool
    is_listed: bool
    is_boosted: bool
    token_codex: TokenCodex
    defaulted_sources: FrozenSet[str] = frozenset()
    fetched_at: str = ""

    @property
    def has_trade_data(self) -> bool:
        return DataSource.TRADE.value not in self.defaulted_sources and self.trade_data.price > 0

    @property
    def has_pair_data(self) -> bool:
        return self.canonical_pair is not None

    @property
    def insufficient_data(self) -> bool:
        """No usable pair or trade data; scoring must refuse this snapshot"""
        return not (self.has_trade_data and self.has_pair_data)

    def missing_data(self) -> List[str]:
        missing = []
        if not self.has_pair_data:
            missing.append('pair')
        if not self.has_trade_data:
            missing.append('trade')
        return missing

    def is_defaulted(self, source: DataSource) -> bool:
        return source.value in self.defaulted_sources

    def to_dict(self) -> Dict[str, Any]:
        return {
            'token_address': self.token_address,
            'security': self.security.to_dict(),
            'trade_data': self.trade_data.to_dict(),
            'pairs': [pair.to_dict() for pair in self.pairs],
            'canonical_pair': self.canonical_pair.to_dict() if self.canonical_pair else None,
            'holder_distribution_trend': self.holder_distribution_trend.value,
            'high_value_holders': [holder.to_dict() for holder in self.high_value_holders],
            'high_supply_holders_count': self.high_supply_holders_count,
            'recent_trades': self.recent_trades,
            'is_listed': self.is_listed,
            'is_boosted': self.is_boosted,
            'token_codex': self.token_codex.to_dict(),
            'defaulted_sources': sorted(self.defaulted_sources),
            'fetched_at': self.fetched_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProcessedTokenData":
        canonical = data.get('canonical_pair')
        return cls(
            token_address=data['token_address'],
            security=TokenSecurityData.from_dict(data['security']),
            trade_data=TokenTradeData.from_dict(data['trade_data']),
            pairs=tuple(DexPair.from_dict(p) for p in data.get('pairs', [])),
            canonical_pair=DexPair.from_dict(canonical) if canonical else None,
            holder_distribution_trend=HolderTrend(data['holder_distribution_trend']),
            high_value_holders=tuple(
                HighValueHolder.from_dict(h) for h in data.get('high_value_holders', [])
            ),
            high_supply_holders_count=int(data.get('high_supply_holders_count', 0)),
            recent_trades=bool(data.get('recent_trades')),
            is_listed=bool(data.get('is_listed')),
            is_boosted=bool(data.get('is_boosted')),
            token_codex=TokenCodex.from_dict(data['token_codex']),
            defaulted_sources=frozenset(data.get('defaulted_sources', [])),
            fetched_at=data.get('fetched_at', ""),
        )
