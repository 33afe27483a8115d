# tests/unit/test_trust_store.py
"""
Unit tests for trust history storage and the position records
"""
from datetime import timedelta
from decimal import Decimal

import pytest

from data.storage.database import TRADE_COLUMNS, PostgresTrustScoreStore
from data.storage.models import (
    PositionStatus,
    RecommenderMetrics,
    SellDetails,
    SimulationTransaction,
    TokenRecommendation,
    TradePerformance,
    TradeSide,
)
from tests.fixtures.mock_data import OTHER_TOKEN_ADDRESS, TOKEN_ADDRESS
from utils.errors import DatabaseError, TradeStateError
from utils.helpers import utc_now


def _open_trade(buy_timestamp=None, is_simulation=False):
    return TradePerformance(
        token_address=TOKEN_ADDRESS,
        recommender_id="r1",
        buy_price=Decimal("1.0"),
        buy_timestamp=buy_timestamp or utc_now(),
        buy_amount=Decimal("100"),
        buy_sol=Decimal("0.5"),
        buy_value_usd=Decimal("100"),
        buy_market_cap=Decimal("1000"),
        buy_liquidity=Decimal("500"),
        is_simulation=is_simulation,
    )


def _sell_details():
    return SellDetails(
        sell_price=Decimal("1.5"),
        sell_timestamp=utc_now(),
        sell_amount=Decimal("100"),
        received_sol=Decimal("0.75"),
        sell_value_usd=Decimal("150"),
        profit_usd=Decimal("50"),
        profit_percent=Decimal("50"),
        sell_market_cap=Decimal("1500"),
        market_cap_change=Decimal("500"),
        sell_liquidity=Decimal("600"),
        liquidity_change=Decimal("100"),
    )


@pytest.mark.unit
class TestTradePerformance:
    """Test cases for the position lifecycle"""

    def test_close_transitions_once(self):
        trade = _open_trade()

        closed = trade.close(_sell_details())

        assert trade.is_open
        assert closed.status == PositionStatus.CLOSED
        assert closed.profit_usd == Decimal("50")
        with pytest.raises(TradeStateError):
            closed.close(_sell_details())

    def test_serializes_decimals_as_strings(self):
        data = _open_trade().to_dict()

        assert data["buy_price"] == "1.0"
        assert data["status"] == "open"
        assert isinstance(data["buy_timestamp"], str)


@pytest.mark.unit
class TestInMemoryTrustScoreStore:
    """Test cases for InMemoryTrustScoreStore"""

    @pytest.mark.asyncio
    async def test_recommender_created_once(self, store):
        first = await store.get_or_create_recommender("r1", "addr")
        second = await store.get_or_create_recommender("r1")

        assert first is second
        metrics = await store.get_recommender_metrics("r1")
        assert metrics.total_recommendations == 0
        assert metrics.trust_score == 0.0

    @pytest.mark.asyncio
    async def test_latest_trade_per_book(self, store):
        older = _open_trade(utc_now() - timedelta(hours=2))
        newer = _open_trade(utc_now())
        simulated = _open_trade(utc_now() + timedelta(hours=1), is_simulation=True)
        for trade in (older, newer, simulated):
            await store.add_trade_performance(trade)

        assert await store.get_latest_trade_performance(TOKEN_ADDRESS, "r1", False) == newer
        assert await store.get_latest_trade_performance(TOKEN_ADDRESS, "r1", True) == simulated
        assert await store.get_latest_trade_performance(OTHER_TOKEN_ADDRESS, "r1", False) is None

    @pytest.mark.asyncio
    async def test_sell_closes_matching_position(self, store):
        trade = _open_trade()
        await store.add_trade_performance(trade)

        closed = await store.update_trade_performance_on_sell(
            TOKEN_ADDRESS, "r1", trade.buy_timestamp, _sell_details(), False
        )

        assert closed.status == PositionStatus.CLOSED
        assert (await store.get_latest_trade_performance(TOKEN_ADDRESS, "r1", False)) == closed
        with pytest.raises(TradeStateError):
            await store.update_trade_performance_on_sell(
                TOKEN_ADDRESS, "r1", trade.buy_timestamp, _sell_details(), False
            )

    @pytest.mark.asyncio
    async def test_sell_without_position(self, store):
        with pytest.raises(TradeStateError):
            await store.update_trade_performance_on_sell(TOKEN_ADDRESS, "r1", utc_now(), _sell_details(), True)

    @pytest.mark.asyncio
    async def test_recommendations_by_date_range(self, store):
        now = utc_now()
        for i, offset in enumerate((-48, -1, 0)):
            await store.add_token_recommendation(TokenRecommendation(
                id=str(i), recommender_id="r1", token_address=TOKEN_ADDRESS,
                timestamp=now + timedelta(hours=offset),
            ))

        found = await store.get_recommendations_by_date_range(now - timedelta(hours=2), now)

        assert [r.id for r in found] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_simulation_ledger(self, store):
        assert await store.get_token_balance(TOKEN_ADDRESS) == Decimal(0)

        await store.update_token_balance(TOKEN_ADDRESS, Decimal("42"))
        await store.add_transaction(SimulationTransaction(
            token_address=TOKEN_ADDRESS, type=TradeSide.BUY, transaction_hash="abc",
            amount=Decimal("42"), price=Decimal("1"),
        ))

        assert await store.get_token_balance(TOKEN_ADDRESS) == Decimal("42")
        assert [t.type for t in await store.get_transactions(TOKEN_ADDRESS)] == [TradeSide.BUY]
        assert await store.get_transactions(OTHER_TOKEN_ADDRESS) == []

    @pytest.mark.asyncio
    async def test_validation_trust_averages_recommenders(self, store):
        now = utc_now()
        await store.update_recommender_metrics(RecommenderMetrics(recommender_id="a", trust_score=10.0))
        await store.update_recommender_metrics(RecommenderMetrics(recommender_id="b", trust_score=30.0))
        for rid in ("a", "b"):
            await store.add_token_recommendation(TokenRecommendation(
                id=rid, recommender_id=rid, token_address=TOKEN_ADDRESS, timestamp=now,
            ))

        assert await store.calculate_validation_trust(TOKEN_ADDRESS) == 20.0
        assert await store.calculate_validation_trust(OTHER_TOKEN_ADDRESS) == 0.0


@pytest.mark.unit
class TestPostgresTrustScoreStore:
    """Test cases for the asyncpg-backed store that need no server"""

    @pytest.mark.asyncio
    async def test_connect_requires_url(self):
        with pytest.raises(DatabaseError):
            await PostgresTrustScoreStore({}).connect()

    @pytest.mark.asyncio
    async def test_acquire_requires_connection(self):
        store = PostgresTrustScoreStore({"database_url": "postgresql://localhost/test"})

        with pytest.raises(DatabaseError):
            async with store.acquire():
                pass

    def test_trade_row_mapping(self):
        trade = _open_trade()

        values = PostgresTrustScoreStore._trade_values(trade)
        row = dict(zip(TRADE_COLUMNS, values))

        assert row["status"] == "open"
        assert PostgresTrustScoreStore._trade_from_row(row) == trade
