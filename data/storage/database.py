# data/storage/database.py

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import asyncpg
from asyncpg.pool import Pool

from data.storage.models import (
    PositionStatus,
    Recommender,
    RecommenderMetrics,
    SellDetails,
    SimulationTransaction,
    TokenPerformance,
    TokenRecommendation,
    TradePerformance,
    TradeSide,
)
from utils.errors import DatabaseError, TradeStateError

logger = logging.getLogger(__name__)


class TrustScoreStore(ABC):
    """
    Narrow read/write contract for long-term trust history.
    Implementations must be safe to call from a single event loop.
    """

    # ---- recommenders ----

    @abstractmethod
    async def get_or_create_recommender(self, recommender_id: str, address: str = "") -> Recommender:
        ...

    @abstractmethod
    async def get_recommender_metrics(self, recommender_id: str) -> Optional[RecommenderMetrics]:
        ...

    @abstractmethod
    async def update_recommender_metrics(self, metrics: RecommenderMetrics) -> None:
        ...

    # ---- trade performance ----

    @abstractmethod
    async def add_trade_performance(self, trade: TradePerformance) -> None:
        ...

    @abstractmethod
    async def get_latest_trade_performance(
        self, token_address: str, recommender_id: str, is_simulation: bool
    ) -> Optional[TradePerformance]:
        ...

    @abstractmethod
    async def update_trade_performance_on_sell(
        self,
        token_address: str,
        recommender_id: str,
        buy_timestamp: datetime,
        details: SellDetails,
        is_simulation: bool,
    ) -> TradePerformance:
        ...

    # ---- recommendations and token performance ----

    @abstractmethod
    async def add_token_recommendation(self, recommendation: TokenRecommendation) -> None:
        ...

    @abstractmethod
    async def get_recommendations_by_date_range(
        self, start: datetime, end: datetime
    ) -> List[TokenRecommendation]:
        ...

    @abstractmethod
    async def upsert_token_performance(self, performance: TokenPerformance) -> None:
        ...

    @abstractmethod
    async def get_token_performance(self, token_address: str) -> Optional[TokenPerformance]:
        ...

    # ---- simulation ledger ----

    @abstractmethod
    async def get_token_balance(self, token_address: str) -> Decimal:
        ...

    @abstractmethod
    async def update_token_balance(self, token_address: str, balance: Decimal) -> None:
        ...

    @abstractmethod
    async def add_transaction(self, transaction: SimulationTransaction) -> None:
        ...

    @abstractmethod
    async def get_transactions(self, token_address: str) -> List[SimulationTransaction]:
        ...

    @abstractmethod
    async def calculate_validation_trust(self, token_address: str) -> float:
        """Average trust score of every recommender who recommended the token"""
        ...


class InMemoryTrustScoreStore(TrustScoreStore):
    """Process-local store for tests and simulations."""

    def __init__(self):
        self.recommenders: Dict[str, Recommender] = {}
        self.metrics: Dict[str, RecommenderMetrics] = {}
        self.trades: Dict[bool, List[TradePerformance]] = {True: [], False: []}
        self.recommendations: List[TokenRecommendation] = []
        self.token_performance: Dict[str, TokenPerformance] = {}
        self.balances: Dict[str, Decimal] = {}
        self.transactions: List[SimulationTransaction] = []

    async def get_or_create_recommender(self, recommender_id: str, address: str = "") -> Recommender:
        recommender = self.recommenders.get(recommender_id)
        if recommender is None:
            recommender = Recommender(id=recommender_id, address=address)
            self.recommenders[recommender_id] = recommender
            self.metrics.setdefault(recommender_id, RecommenderMetrics(recommender_id=recommender_id))
            logger.info(f"Created recommender {recommender_id}")
        return recommender

    async def get_recommender_metrics(self, recommender_id: str) -> Optional[RecommenderMetrics]:
        return self.metrics.get(recommender_id)

    async def update_recommender_metrics(self, metrics: RecommenderMetrics) -> None:
        self.metrics[metrics.recommender_id] = metrics

    async def add_trade_performance(self, trade: TradePerformance) -> None:
        self.trades[trade.is_simulation].append(trade)

    async def get_latest_trade_performance(
        self, token_address: str, recommender_id: str, is_simulation: bool
    ) -> Optional[TradePerformance]:
        matches = [
            t for t in self.trades[is_simulation]
            if t.token_address == token_address and t.recommender_id == recommender_id
        ]
        if not matches:
            return None
        return max(matches, key=lambda t: t.buy_timestamp)

    async def update_trade_performance_on_sell(
        self,
        token_address: str,
        recommender_id: str,
        buy_timestamp: datetime,
        details: SellDetails,
        is_simulation: bool,
    ) -> TradePerformance:
        trades = self.trades[is_simulation]
        for index, trade in enumerate(trades):
            if (trade.token_address == token_address
                    and trade.recommender_id == recommender_id
                    and trade.buy_timestamp == buy_timestamp):
                closed = trade.close(details)
                trades[index] = closed
                return closed
        raise TradeStateError(f"No position for {token_address} opened at {buy_timestamp.isoformat()}")

    async def add_token_recommendation(self, recommendation: TokenRecommendation) -> None:
        self.recommendations.append(recommendation)

    async def get_recommendations_by_date_range(
        self, start: datetime, end: datetime
    ) -> List[TokenRecommendation]:
        return [r for r in self.recommendations if start <= r.timestamp <= end]

    async def upsert_token_performance(self, performance: TokenPerformance) -> None:
        self.token_performance[performance.token_address] = performance

    async def get_token_performance(self, token_address: str) -> Optional[TokenPerformance]:
        return self.token_performance.get(token_address)

    async def get_token_balance(self, token_address: str) -> Decimal:
        return self.balances.get(token_address, Decimal(0))

    async def update_token_balance(self, token_address: str, balance: Decimal) -> None:
        self.balances[token_address] = balance

    async def add_transaction(self, transaction: SimulationTransaction) -> None:
        self.transactions.append(transaction)

    async def get_transactions(self, token_address: str) -> List[SimulationTransaction]:
        return [t for t in self.transactions if t.token_address == token_address]

    async def calculate_validation_trust(self, token_address: str) -> float:
        scores = [
            self.metrics[r.recommender_id].trust_score
            for r in self.recommendations
            if r.token_address == token_address and r.recommender_id in self.metrics
        ]
        if not scores:
            return 0.0
        return sum(scores) / len(scores)


TRADE_COLUMNS = (
    "token_address", "recommender_id", "buy_price", "buy_timestamp", "buy_amount",
    "buy_sol", "buy_value_usd", "buy_market_cap", "buy_liquidity", "is_simulation",
    "status", "sell_price", "sell_timestamp", "sell_amount", "received_sol",
    "sell_value_usd", "profit_usd", "profit_percent", "sell_market_cap",
    "market_cap_change", "sell_liquidity", "liquidity_change", "rapid_dump",
    "sell_recommender_id", "last_updated",
)

TOKEN_PERFORMANCE_COLUMNS = (
    "token_address", "symbol", "price_change_24h", "volume_change_24h", "trade_24h_change",
    "liquidity", "liquidity_change_24h", "holder_change_24h", "rug_pull", "is_scam",
    "market_cap_change_24h", "sustained_growth", "rapid_dump", "suspicious_volume",
    "validation_trust", "balance", "initial_market_cap", "last_updated",
)

METRICS_COLUMNS = (
    "recommender_id", "trust_score", "total_recommendations", "successful_recs",
    "avg_token_performance", "risk_score", "consistency_score", "virtual_confidence",
    "last_active_date", "trust_decay", "last_updated",
)


def _trade_table(is_simulation: bool) -> str:
    return "simulation_trade" if is_simulation else "trade"


class PostgresTrustScoreStore(TrustScoreStore):
    """
    PostgreSQL trust store on an asyncpg pool.
    Real and simulated trades live in separate tables.
    """

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.pool: Optional[Pool] = None
        self.is_connected = False

    async def connect(self) -> None:
        """Establish connection pool to PostgreSQL database."""
        database_url = self.config.get('database_url')
        if not database_url:
            raise DatabaseError("database_url is not configured")

        try:
            self.pool = await asyncpg.create_pool(
                dsn=database_url,
                min_size=self.config.get('db_pool_min', 1),
                max_size=self.config.get('db_pool_max', 10),
                command_timeout=self.config.get('db_command_timeout', 60),
            )
            await self._create_tables()
            self.is_connected = True
            logger.info("Successfully connected to PostgreSQL trust store")
        except (OSError, asyncpg.PostgresError) as e:
            logger.error(f"Failed to connect to database: {e}")
            raise DatabaseError(f"Failed to connect to trust store: {e}") from e

    async def disconnect(self) -> None:
        """Close database connection pool."""
        if self.pool:
            await self.pool.close()
            self.is_connected = False
            logger.info("Disconnected from database")

    @asynccontextmanager
    async def acquire(self):
        """Acquire a connection from the pool."""
        if not self.pool:
            raise DatabaseError("Trust store is not connected")
        async with self.pool.acquire() as connection:
            yield connection

    async def _create_tables(self) -> None:
        """Create all required database tables."""
        async with self.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS recommenders (
                    id TEXT PRIMARY KEY,
                    address TEXT NOT NULL DEFAULT '',
                    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                );

                CREATE TABLE IF NOT EXISTS recommender_metrics (
                    recommender_id TEXT PRIMARY KEY REFERENCES recommenders(id),
                    trust_score DOUBLE PRECISION NOT NULL DEFAULT 0,
                    total_recommendations INTEGER NOT NULL DEFAULT 0,
                    successful_recs INTEGER NOT NULL DEFAULT 0,
                    avg_token_performance DOUBLE PRECISION NOT NULL DEFAULT 0,
                    risk_score DOUBLE PRECISION NOT NULL DEFAULT 0,
                    consistency_score DOUBLE PRECISION NOT NULL DEFAULT 0,
                    virtual_confidence DOUBLE PRECISION NOT NULL DEFAULT 0,
                    last_active_date TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                    trust_decay DOUBLE PRECISION NOT NULL DEFAULT 0,
                    last_updated TIMESTAMPTZ NOT NULL DEFAULT NOW()
                );

                CREATE TABLE IF NOT EXISTS token_performance (
                    token_address TEXT PRIMARY KEY,
                    symbol TEXT NOT NULL DEFAULT '',
                    price_change_24h DOUBLE PRECISION NOT NULL DEFAULT 0,
                    volume_change_24h DOUBLE PRECISION NOT NULL DEFAULT 0,
                    trade_24h_change DOUBLE PRECISION NOT NULL DEFAULT 0,
                    liquidity DOUBLE PRECISION NOT NULL DEFAULT 0,
                    liquidity_change_24h DOUBLE PRECISION NOT NULL DEFAULT 0,
                    holder_change_24h DOUBLE PRECISION NOT NULL DEFAULT 0,
                    rug_pull BOOLEAN NOT NULL DEFAULT FALSE,
                    is_scam BOOLEAN NOT NULL DEFAULT FALSE,
                    market_cap_change_24h DOUBLE PRECISION NOT NULL DEFAULT 0,
                    sustained_growth BOOLEAN NOT NULL DEFAULT FALSE,
                    rapid_dump BOOLEAN NOT NULL DEFAULT FALSE,
                    suspicious_volume BOOLEAN NOT NULL DEFAULT FALSE,
                    validation_trust DOUBLE PRECISION NOT NULL DEFAULT 0,
                    balance DOUBLE PRECISION NOT NULL DEFAULT 0,
                    initial_market_cap DOUBLE PRECISION NOT NULL DEFAULT 0,
                    last_updated TIMESTAMPTZ NOT NULL DEFAULT NOW()
                );

                CREATE TABLE IF NOT EXISTS token_recommendations (
                    id TEXT PRIMARY KEY,
                    recommender_id TEXT NOT NULL REFERENCES recommenders(id),
                    token_address TEXT NOT NULL,
                    timestamp TIMESTAMPTZ NOT NULL,
                    initial_market_cap NUMERIC NOT NULL DEFAULT 0,
                    initial_liquidity NUMERIC NOT NULL DEFAULT 0,
                    initial_price NUMERIC NOT NULL DEFAULT 0
                );

                CREATE INDEX IF NOT EXISTS idx_token_recommendations_timestamp
                    ON token_recommendations(timestamp);

                CREATE TABLE IF NOT EXISTS token_balances (
                    token_address TEXT PRIMARY KEY,
                    balance NUMERIC NOT NULL DEFAULT 0
                );

                CREATE TABLE IF NOT EXISTS simulation_transactions (
                    id SERIAL PRIMARY KEY,
                    token_address TEXT NOT NULL,
                    type TEXT NOT NULL CHECK (type IN ('buy', 'sell')),
                    transaction_hash TEXT NOT NULL,
                    amount NUMERIC NOT NULL,
                    price NUMERIC NOT NULL,
                    is_simulation BOOLEAN NOT NULL DEFAULT TRUE,
                    timestamp TIMESTAMPTZ NOT NULL
                );
            """)

            for table in ("trade", "simulation_trade"):
                await conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        token_address TEXT NOT NULL,
                        recommender_id TEXT NOT NULL,
                        buy_price NUMERIC NOT NULL,
                        buy_timestamp TIMESTAMPTZ NOT NULL,
                        buy_amount NUMERIC NOT NULL,
                        buy_sol NUMERIC NOT NULL,
                        buy_value_usd NUMERIC NOT NULL,
                        buy_market_cap NUMERIC NOT NULL,
                        buy_liquidity NUMERIC NOT NULL,
                        is_simulation BOOLEAN NOT NULL,
                        status TEXT NOT NULL DEFAULT 'open' CHECK (status IN ('open', 'closed')),
                        sell_price NUMERIC NOT NULL DEFAULT 0,
                        sell_timestamp TIMESTAMPTZ,
                        sell_amount NUMERIC NOT NULL DEFAULT 0,
                        received_sol NUMERIC NOT NULL DEFAULT 0,
                        sell_value_usd NUMERIC NOT NULL DEFAULT 0,
                        profit_usd NUMERIC NOT NULL DEFAULT 0,
                        profit_percent NUMERIC NOT NULL DEFAULT 0,
                        sell_market_cap NUMERIC NOT NULL DEFAULT 0,
                        market_cap_change NUMERIC NOT NULL DEFAULT 0,
                        sell_liquidity NUMERIC NOT NULL DEFAULT 0,
                        liquidity_change NUMERIC NOT NULL DEFAULT 0,
                        rapid_dump BOOLEAN NOT NULL DEFAULT FALSE,
                        sell_recommender_id TEXT,
                        last_updated TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                        PRIMARY KEY (token_address, recommender_id, buy_timestamp)
                    );
                """)

    # ---- row mapping ----

    @staticmethod
    def _trade_from_row(row: asyncpg.Record) -> TradePerformance:
        data = {column: row[column] for column in TRADE_COLUMNS}
        data['status'] = PositionStatus(data['status'])
        return TradePerformance(**data)

    @staticmethod
    def _trade_values(trade: TradePerformance) -> Tuple:
        values = []
        for column in TRADE_COLUMNS:
            value = getattr(trade, column)
            if isinstance(value, PositionStatus):
                value = value.value
            values.append(value)
        return tuple(values)

    # ---- recommenders ----

    async def get_or_create_recommender(self, recommender_id: str, address: str = "") -> Recommender:
        async with self.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    "SELECT id, address, created_at FROM recommenders WHERE id = $1", recommender_id
                )
                if row is None:
                    row = await conn.fetchrow(
                        "INSERT INTO recommenders (id, address) VALUES ($1, $2) "
                        "RETURNING id, address, created_at",
                        recommender_id, address,
                    )
                    await conn.execute(
                        "INSERT INTO recommender_metrics (recommender_id) VALUES ($1) "
                        "ON CONFLICT (recommender_id) DO NOTHING",
                        recommender_id,
                    )
                    logger.info(f"Created recommender {recommender_id}")
        return Recommender(id=row['id'], address=row['address'], created_at=row['created_at'])

    async def get_recommender_metrics(self, recommender_id: str) -> Optional[RecommenderMetrics]:
        async with self.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {', '.join(METRICS_COLUMNS)} FROM recommender_metrics WHERE recommender_id = $1",
                recommender_id,
            )
        if row is None:
            return None
        return RecommenderMetrics(**{column: row[column] for column in METRICS_COLUMNS})

    async def update_recommender_metrics(self, metrics: RecommenderMetrics) -> None:
        placeholders = ', '.join(f"${i}" for i in range(1, len(METRICS_COLUMNS) + 1))
        updates = ', '.join(f"{c} = EXCLUDED.{c}" for c in METRICS_COLUMNS[1:])
        async with self.acquire() as conn:
            await conn.execute(
                f"INSERT INTO recommender_metrics ({', '.join(METRICS_COLUMNS)}) VALUES ({placeholders}) "
                f"ON CONFLICT (recommender_id) DO UPDATE SET {updates}",
                *(getattr(metrics, c) for c in METRICS_COLUMNS),
            )

    # ---- trade performance ----

    async def add_trade_performance(self, trade: TradePerformance) -> None:
        table = _trade_table(trade.is_simulation)
        placeholders = ', '.join(f"${i}" for i in range(1, len(TRADE_COLUMNS) + 1))
        async with self.acquire() as conn:
            await conn.execute(
                f"INSERT INTO {table} ({', '.join(TRADE_COLUMNS)}) VALUES ({placeholders})",
                *self._trade_values(trade),
            )
        logger.info(f"Saved trade performance for {trade.token_address} ({table})")

    async def get_latest_trade_performance(
        self, token_address: str, recommender_id: str, is_simulation: bool
    ) -> Optional[TradePerformance]:
        table = _trade_table(is_simulation)
        async with self.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {', '.join(TRADE_COLUMNS)} FROM {table} "
                "WHERE token_address = $1 AND recommender_id = $2 "
                "ORDER BY buy_timestamp DESC LIMIT 1",
                token_address, recommender_id,
            )
        return self._trade_from_row(row) if row else None

    async def update_trade_performance_on_sell(
        self,
        token_address: str,
        recommender_id: str,
        buy_timestamp: datetime,
        details: SellDetails,
        is_simulation: bool,
    ) -> TradePerformance:
        table = _trade_table(is_simulation)
        async with self.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    f"SELECT {', '.join(TRADE_COLUMNS)} FROM {table} "
                    "WHERE token_address = $1 AND recommender_id = $2 AND buy_timestamp = $3 "
                    "FOR UPDATE",
                    token_address, recommender_id, buy_timestamp,
                )
                if row is None:
                    raise TradeStateError(
                        f"No position for {token_address} opened at {buy_timestamp.isoformat()}"
                    )
                closed = self._trade_from_row(row).close(details)
                await conn.execute(
                    f"""
                    UPDATE {table} SET
                        status = $4, sell_price = $5, sell_timestamp = $6, sell_amount = $7,
                        received_sol = $8, sell_value_usd = $9, profit_usd = $10,
                        profit_percent = $11, sell_market_cap = $12, market_cap_change = $13,
                        sell_liquidity = $14, liquidity_change = $15, rapid_dump = $16,
                        sell_recommender_id = $17, last_updated = $18
                    WHERE token_address = $1 AND recommender_id = $2 AND buy_timestamp = $3
                    """,
                    token_address, recommender_id, buy_timestamp,
                    closed.status.value, closed.sell_price, closed.sell_timestamp, closed.sell_amount,
                    closed.received_sol, closed.sell_value_usd, closed.profit_usd,
                    closed.profit_percent, closed.sell_market_cap, closed.market_cap_change,
                    closed.sell_liquidity, closed.liquidity_change, closed.rapid_dump,
                    closed.sell_recommender_id, closed.last_updated,
                )
        return closed

    # ---- recommendations and token performance ----

    async def add_token_recommendation(self, recommendation: TokenRecommendation) -> None:
        async with self.acquire() as conn:
            await conn.execute(
                "INSERT INTO token_recommendations (id, recommender_id, token_address, timestamp, "
                "initial_market_cap, initial_liquidity, initial_price) VALUES ($1, $2, $3, $4, $5, $6, $7)",
                recommendation.id, recommendation.recommender_id, recommendation.token_address,
                recommendation.timestamp, recommendation.initial_market_cap,
                recommendation.initial_liquidity, recommendation.initial_price,
            )

    async def get_recommendations_by_date_range(
        self, start: datetime, end: datetime
    ) -> List[TokenRecommendation]:
        async with self.acquire() as conn:
            rows = await conn.fetch(
                "SELECT id, recommender_id, token_address, timestamp, initial_market_cap, "
                "initial_liquidity, initial_price FROM token_recommendations "
                "WHERE timestamp BETWEEN $1 AND $2 ORDER BY timestamp",
                start, end,
            )
        return [TokenRecommendation(**dict(row)) for row in rows]

    async def upsert_token_performance(self, performance: TokenPerformance) -> None:
        placeholders = ', '.join(f"${i}" for i in range(1, len(TOKEN_PERFORMANCE_COLUMNS) + 1))
        updates = ', '.join(f"{c} = EXCLUDED.{c}" for c in TOKEN_PERFORMANCE_COLUMNS[1:])
        async with self.acquire() as conn:
            await conn.execute(
                f"INSERT INTO token_performance ({', '.join(TOKEN_PERFORMANCE_COLUMNS)}) "
                f"VALUES ({placeholders}) ON CONFLICT (token_address) DO UPDATE SET {updates}",
                *(getattr(performance, c) for c in TOKEN_PERFORMANCE_COLUMNS),
            )

    async def get_token_performance(self, token_address: str) -> Optional[TokenPerformance]:
        async with self.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {', '.join(TOKEN_PERFORMANCE_COLUMNS)} FROM token_performance "
                "WHERE token_address = $1",
                token_address,
            )
        if row is None:
            return None
        return TokenPerformance(**{c: row[c] for c in TOKEN_PERFORMANCE_COLUMNS})

    # ---- simulation ledger ----

    async def get_token_balance(self, token_address: str) -> Decimal:
        async with self.acquire() as conn:
            balance = await conn.fetchval(
                "SELECT balance FROM token_balances WHERE token_address = $1", token_address
            )
        return balance if balance is not None else Decimal(0)

    async def update_token_balance(self, token_address: str, balance: Decimal) -> None:
        async with self.acquire() as conn:
            await conn.execute(
                "INSERT INTO token_balances (token_address, balance) VALUES ($1, $2) "
                "ON CONFLICT (token_address) DO UPDATE SET balance = EXCLUDED.balance",
                token_address, balance,
            )

    async def add_transaction(self, transaction: SimulationTransaction) -> None:
        async with self.acquire() as conn:
            await conn.execute(
                "INSERT INTO simulation_transactions (token_address, type, transaction_hash, "
                "amount, price, is_simulation, timestamp) VALUES ($1, $2, $3, $4, $5, $6, $7)",
                transaction.token_address, transaction.type.value, transaction.transaction_hash,
                transaction.amount, transaction.price, transaction.is_simulation,
                transaction.timestamp,
            )

    async def get_transactions(self, token_address: str) -> List[SimulationTransaction]:
        async with self.acquire() as conn:
            rows = await conn.fetch(
                "SELECT token_address, type, transaction_hash, amount, price, is_simulation, timestamp "
                "FROM simulation_transactions WHERE token_address = $1 ORDER BY id",
                token_address,
            )
        return [
            SimulationTransaction(
                token_address=row['token_address'],
                type=TradeSide(row['type']),
                transaction_hash=row['transaction_hash'],
                amount=row['amount'],
                price=row['price'],
                is_simulation=row['is_simulation'],
                timestamp=row['timestamp'],
            )
            for row in rows
        ]

    async def calculate_validation_trust(self, token_address: str) -> float:
        async with self.acquire() as conn:
            value = await conn.fetchval(
                "SELECT AVG(m.trust_score) FROM token_recommendations r "
                "JOIN recommender_metrics m ON m.recommender_id = r.recommender_id "
                "WHERE r.token_address = $1",
                token_address,
            )
        return float(value) if value is not None else 0.0
