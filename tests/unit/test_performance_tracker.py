# tests/unit/test_performance_tracker.py
"""
Unit tests for TradePerformanceTracker and WalletProvider
"""
from decimal import Decimal

import pytest

from analysis.trust_score import TrustScoreManager
from data.http_client import RetryingFetchClient
from data.storage.models import PositionStatus, TradeSide
from tests.fixtures.mock_data import WALLET_ADDRESS, MockDataGenerator
from trading.performance_tracker import TradePerformanceTracker
from trading.wallet import WalletProvider
from utils.errors import MalformedTokenError, SourceUnavailable, TradeStateError

BACKEND_URL = "https://backend.example.com"


@pytest.fixture
def wallet(birdeye):
    return WalletProvider(WALLET_ADDRESS, birdeye)


@pytest.fixture
def tracker(aggregator, store, wallet):
    return TradePerformanceTracker(aggregator, store, wallet, trust_manager=TrustScoreManager(aggregator, store))


@pytest.fixture
def backend_client(fake_session):
    return RetryingFetchClient(
        {"max_retries": 3, "retry_delay": 0, "exponential_backoff": False}, session=fake_session
    )


def _price(fake_session, clock, price):
    """Move the token price and let every cached view of it expire"""
    fake_session.routes["/defi/token_overview"] = MockDataGenerator.overview_payload(price=price)
    clock.advance(700)


@pytest.mark.unit
class TestWalletProvider:
    """Test cases for WalletProvider"""

    def test_key_is_normalized(self, birdeye):
        assert WalletProvider(f" {WALLET_ADDRESS} ", birdeye).public_key == WALLET_ADDRESS

    def test_invalid_key(self, birdeye):
        with pytest.raises(MalformedTokenError):
            WalletProvider("nope", birdeye)

    @pytest.mark.asyncio
    async def test_sol_price(self, wallet):
        assert await wallet.get_sol_price() == Decimal("150.0")

    @pytest.mark.asyncio
    async def test_missing_sol_price_raises(self, wallet, fake_session):
        fake_session.routes["/defi/price"] = (500, "down")

        with pytest.raises(SourceUnavailable):
            await wallet.get_sol_price()


@pytest.mark.unit
class TestTradePerformanceTracker:
    """Test cases for the position lifecycle"""

    @pytest.mark.asyncio
    async def test_open_position(self, tracker, store, token_address):
        trade = await tracker.create_trade_performance(token_address, "r1", "100")

        assert trade.status == PositionStatus.OPEN
        assert trade.buy_price == Decimal("1.5")
        assert trade.buy_value_usd == Decimal("150.0")
        assert trade.buy_sol == Decimal("100") / Decimal("150.0")
        assert trade.buy_liquidity == Decimal("80000.0")
        assert trade.buy_market_cap == Decimal("400000.0")
        assert not trade.replication_degraded
        assert store.trades[False] == [trade]
        assert [r.token_address for r in store.recommendations] == [token_address]
        assert store.token_performance[token_address].balance == 100.0

    @pytest.mark.asyncio
    async def test_round_trip_profit(self, tracker, fake_session, clock, token_address):
        _price(fake_session, clock, 1.0)
        await tracker.create_trade_performance(token_address, "r1", 100)
        _price(fake_session, clock, 1.5)

        details = await tracker.update_sell_details(token_address, "r1", 100)

        assert details.sell_price == Decimal("1.5")
        assert details.sell_value_usd == Decimal("150")
        assert details.profit_usd == Decimal("50")
        assert details.profit_percent == Decimal("50")
        assert details.received_sol == Decimal("100") / Decimal("150.0")
        assert details.market_cap_change == Decimal(0)

    @pytest.mark.asyncio
    async def test_sell_feeds_trust_metrics(self, tracker, store, token_address):
        await tracker.create_trade_performance(token_address, "r1", 10)
        await tracker.update_sell_details(token_address, "r1", 10)

        assert store.metrics["r1"].total_recommendations == 1

    @pytest.mark.asyncio
    async def test_closed_position_cannot_be_reclosed(self, tracker, store, token_address):
        await tracker.create_trade_performance(token_address, "r1", 10)
        await tracker.update_sell_details(token_address, "r1", 10)

        with pytest.raises(TradeStateError):
            await tracker.update_sell_details(token_address, "r1", 10)
        assert store.trades[False][0].status == PositionStatus.CLOSED

    @pytest.mark.asyncio
    async def test_sell_without_position(self, tracker, token_address):
        with pytest.raises(TradeStateError):
            await tracker.update_sell_details(token_address, "r1", 10)

    @pytest.mark.asyncio
    async def test_new_buy_after_close_opens_new_position(self, tracker, store, token_address):
        await tracker.create_trade_performance(token_address, "r1", 10)
        await tracker.update_sell_details(token_address, "r1", 10)

        reopened = await tracker.create_trade_performance(token_address, "r1", 20)

        assert reopened.is_open
        assert len(store.trades[False]) == 2

    @pytest.mark.asyncio
    async def test_simulation_moves_virtual_balance(self, tracker, store, token_address):
        await tracker.create_trade_performance(token_address, "r1", 100, is_simulation=True)
        assert await store.get_token_balance(token_address) == Decimal(100)

        await tracker.update_sell_details(token_address, "r1", 40, is_simulation=True)

        assert await store.get_token_balance(token_address) == Decimal(60)
        assert [t.type for t in await store.get_transactions(token_address)] == [TradeSide.BUY, TradeSide.SELL]
        assert store.trades[False] == []

    @pytest.mark.asyncio
    async def test_no_sol_price_opens_nothing(self, tracker, store, fake_session, token_address):
        fake_session.routes["/defi/price"] = (500, "down")

        with pytest.raises(SourceUnavailable):
            await tracker.create_trade_performance(token_address, "r1", 10)
        assert store.trades[False] == []

    @pytest.mark.asyncio
    async def test_malformed_token(self, tracker):
        with pytest.raises(MalformedTokenError):
            await tracker.create_trade_performance("???", "r1", 10)


@pytest.mark.unit
class TestBackendReplication:
    """Test cases for best-effort backend replication"""

    @pytest.mark.asyncio
    async def test_replicates_trade(self, aggregator, store, wallet, backend_client, fake_session, token_address):
        fake_session.routes["backend.example.com"] = {"ok": True}
        tracker = TradePerformanceTracker(
            aggregator, store, wallet, backend_client=backend_client,
            config={"backend_url": f"{BACKEND_URL}/", "backend_token": "tok"},
        )

        trade = await tracker.create_trade_performance(token_address, "r1", 100)

        call = fake_session.calls_to("backend.example.com")[0]
        assert call["url"] == f"{BACKEND_URL}/api/updaters/createTradePerformance"
        assert call["headers"]["Authorization"] == "Bearer tok"
        assert call["json"] == {
            "tokenAddress": token_address,
            "tradeData": {"buy_amount": "100", "is_simulation": False},
            "recommenderId": "r1",
        }
        assert not trade.replication_degraded

    @pytest.mark.asyncio
    async def test_failed_replication_keeps_local_position(
        self, aggregator, store, wallet, backend_client, fake_session, token_address
    ):
        fake_session.routes["backend.example.com"] = (503, "maintenance")
        tracker = TradePerformanceTracker(
            aggregator, store, wallet, backend_client=backend_client, config={"backend_url": BACKEND_URL},
        )

        trade = await tracker.create_trade_performance(token_address, "r1", 100)

        assert trade.replication_degraded
        assert len(fake_session.calls_to("backend.example.com")) == 3
        assert len(store.trades[False]) == 1

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self, aggregator, store, wallet, backend_client, fake_session):
        tracker = TradePerformanceTracker(aggregator, store, wallet, backend_client=backend_client)

        await tracker.close()

        assert backend_client.session is fake_session
