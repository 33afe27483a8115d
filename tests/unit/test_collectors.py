# tests/unit/test_collectors.py
"""
Unit tests for the source collectors
"""
from decimal import Decimal

import aiohttp
import pytest

from data.models import TokenCodex, TokenSecurityData
from tests.fixtures.mock_data import (
    HOLDER_A,
    HOLDER_B,
    OTHER_TOKEN_ADDRESS,
    TOKEN_ADDRESS,
    WALLET_ADDRESS,
    MockDataGenerator,
)
from utils.constants import CacheNamespace
from utils.errors import SourceUnavailable


@pytest.mark.unit
class TestBirdeyeCollector:
    """Test cases for BirdeyeCollector"""

    @pytest.mark.asyncio
    async def test_security_mapping(self, birdeye, token_address):
        security = await birdeye.load_token_security(token_address)

        assert security.total_supply == Decimal("1000000")
        assert security.top10_holder_percent == Decimal("0.4")
        assert security.owner_balance == Decimal("1000")
        assert security.mutable_metadata is True

    @pytest.mark.asyncio
    async def test_owner_falls_back_to_creator(self, birdeye, fake_session, token_address):
        fake_session.routes["/defi/token_security"] = MockDataGenerator.security_payload(
            ownerBalance=None, ownerPercentage=None
        )

        security = await birdeye.load_token_security(token_address)

        assert security.owner_balance == Decimal("500")
        assert security.owner_percentage == Decimal("0.005")

    @pytest.mark.asyncio
    async def test_security_is_cached(self, birdeye, fake_session, token_address):
        first = await birdeye.load_token_security(token_address)
        second = await birdeye.load_token_security(token_address)

        assert first == second
        assert len(fake_session.calls_to("/defi/token_security")) == 1
        assert birdeye.get_stats()["cache_hits"] == 1

    @pytest.mark.asyncio
    async def test_unsuccessful_envelope_serves_default(self, birdeye, fake_session, token_address):
        fake_session.routes["/defi/token_security"] = {"success": False, "data": None}

        with pytest.raises(SourceUnavailable):
            await birdeye.load_token_security(token_address)
        security = await birdeye.fetch_token_security(token_address)

        assert security == TokenSecurityData()
        assert birdeye.get_stats()["defaults_served"] == 1

    @pytest.mark.asyncio
    async def test_trade_buckets(self, birdeye, token_address):
        trade = await birdeye.load_token_trade_data(token_address)

        assert trade.price == Decimal("1.5")
        assert trade.holder == 1234
        assert trade.volume_24h == Decimal("10000.0")
        assert trade.price_change_1h_percent == Decimal("6.0")
        assert trade.unique_wallet_24h_change_percent == Decimal("15.0")
        assert trade.price_change_12h_percent == Decimal("8.0")

    @pytest.mark.asyncio
    async def test_missing_long_bucket_stays_unknown(self, birdeye, fake_session, token_address):
        fake_session.routes["/defi/token_overview"] = MockDataGenerator.overview_payload(drop_buckets=("24h", "1h"))

        trade = await birdeye.load_token_trade_data(token_address)

        assert trade.volume_24h is None
        assert trade.unique_wallet_24h_change_percent is None
        # short buckets always carry a known value
        assert trade.bucket("1h").volume == Decimal(0)
        assert trade.price_change_1h_percent == Decimal(0)

    @pytest.mark.asyncio
    async def test_trade_failure_serves_zeroed_default(self, birdeye, fake_session, token_address):
        fake_session.routes["/defi/token_overview"] = (500, "boom")

        trade = await birdeye.fetch_token_trade_data(token_address)

        assert trade.price == Decimal(0)
        assert trade.volume_24h == Decimal(0)
        assert len(fake_session.calls_to("/defi/token_overview")) == 3

    @pytest.mark.asyncio
    async def test_prices(self, birdeye, fake_session):
        prices = await birdeye.fetch_prices()
        again = await birdeye.fetch_prices()

        assert prices == again
        assert prices["solana"] == Decimal("150.0")
        assert prices["bitcoin"] == Decimal("30000.0")
        assert len(fake_session.calls_to("/defi/price")) == 3

    @pytest.mark.asyncio
    async def test_prices_all_failing_are_zero_and_not_cached(self, birdeye, fake_session):
        fake_session.routes["/defi/price"] = aiohttp.ClientConnectionError("down")

        prices = await birdeye.fetch_prices()
        fake_session.routes["/defi/price"] = MockDataGenerator.price_payload(10.0)
        recovered = await birdeye.fetch_prices()

        assert set(prices.values()) == {Decimal(0)}
        assert recovered["solana"] == Decimal("10.0")

    @pytest.mark.asyncio
    async def test_trending_respects_limit(self, birdeye, fake_session):
        fake_session.routes["/defi/token_trending"] = MockDataGenerator.trending_payload(
            [TOKEN_ADDRESS, OTHER_TOKEN_ADDRESS]
        )

        tokens = await birdeye.fetch_trending_tokens(limit=1)

        assert [t["address"] for t in tokens] == [TOKEN_ADDRESS]


@pytest.mark.unit
class TestDexScreenerCollector:
    """Test cases for DexScreenerCollector"""

    @pytest.mark.asyncio
    async def test_foreign_pairs_are_filtered(self, dexscreener, fake_session, token_address):
        fake_session.routes["dex/tokens/"] = MockDataGenerator.pairs_payload([
            MockDataGenerator.pair(pair_address="keep"),
            MockDataGenerator.pair(chain_id="ethereum", pair_address="eth"),
            MockDataGenerator.pair(base_address=OTHER_TOKEN_ADDRESS, pair_address="quote"),
        ])

        pairs = await dexscreener.load_pairs(token_address)

        assert [p.pair_address for p in pairs] == ["keep"]
        assert dexscreener.get_stats()["pairs_filtered"] == 2

    @pytest.mark.asyncio
    async def test_pair_fields(self, dexscreener, token_address):
        pairs = await dexscreener.load_pairs(token_address)

        boosted = pairs[1]
        assert boosted.liquidity_usd == Decimal("80000.0")
        assert boosted.market_cap == Decimal("400000.0")
        assert boosted.is_boosted
        assert not pairs[0].is_boosted

    @pytest.mark.asyncio
    async def test_empty_answer_is_not_cached(self, dexscreener, fake_session, token_address):
        fake_session.routes["dex/tokens/"] = MockDataGenerator.pairs_payload([])

        assert await dexscreener.load_pairs(token_address) == []
        assert await dexscreener.load_pairs(token_address) == []
        assert len(fake_session.calls_to("dex/tokens/")) == 2

    @pytest.mark.asyncio
    async def test_null_pairs_payload(self, dexscreener, fake_session, token_address):
        fake_session.routes["dex/tokens/"] = {"schemaVersion": "1.0.0", "pairs": None}

        assert await dexscreener.fetch_pairs(token_address) == []

    @pytest.mark.asyncio
    async def test_failure_yields_no_pairs(self, dexscreener, fake_session, token_address):
        fake_session.routes["dex/tokens/"] = aiohttp.ClientConnectionError("down")

        assert await dexscreener.fetch_pairs(token_address) == []
        with pytest.raises(SourceUnavailable):
            await dexscreener.load_pairs(token_address)

    @pytest.mark.asyncio
    async def test_summary_picks_deepest_pair(self, dexscreener, fake_session, token_address):
        fake_session.routes["dex/search"] = MockDataGenerator.pairs_payload([
            MockDataGenerator.pair(liquidity=10.0, pair_address="shallow"),
            MockDataGenerator.pair(liquidity=99.0, pair_address="deep"),
        ])

        summary = await dexscreener.fetch_token_summary(token_address)

        assert summary.pair_address == "deep"


@pytest.mark.unit
class TestHeliusCollector:
    """Test cases for HeliusCollector"""

    @pytest.mark.asyncio
    async def test_holders_sorted_by_balance(self, helius, fake_session, token_address):
        fake_session.routes["helius-rpc.com"] = MockDataGenerator.holders_payload([
            (HOLDER_B, "10"),
            (HOLDER_A, "250.5"),
        ])

        holders = await helius.load_holder_list(token_address)

        assert [h.address for h in holders] == [HOLDER_A, HOLDER_B]
        assert holders[0].balance == Decimal("250.5")

    @pytest.mark.asyncio
    async def test_request_is_json_rpc(self, helius, fake_session, token_address):
        await helius.load_holder_list(token_address)

        body = fake_session.calls_to("helius-rpc.com")[0]["json"]
        assert body["method"] == "getTokenLargestAccounts"
        assert body["params"] == [token_address]

    @pytest.mark.asyncio
    async def test_empty_holder_list_is_cached(self, helius, fake_session, token_address):
        fake_session.routes["helius-rpc.com"] = MockDataGenerator.holders_payload([])

        assert await helius.load_holder_list(token_address) == []
        assert await helius.load_holder_list(token_address) == []
        assert len(fake_session.calls_to("helius-rpc.com")) == 1

    @pytest.mark.asyncio
    async def test_wrong_shape_cached_holders_are_refetched(self, helius, cache, fake_session, token_address):
        await cache.set(CacheNamespace.HOLDERS, token_address, [{"addr": HOLDER_A, "bal": "5"}])
        fake_session.routes["helius-rpc.com"] = MockDataGenerator.holders_payload([(HOLDER_B, "10")])

        holders = await helius.load_holder_list(token_address)

        assert [h.address for h in holders] == [HOLDER_B]
        assert len(fake_session.calls_to("helius-rpc.com")) == 1
        assert helius.stats["cache_hits"] == 0
        assert await cache.get(CacheNamespace.HOLDERS, token_address) == [h.to_dict() for h in holders]

    @pytest.mark.asyncio
    async def test_rpc_error_yields_empty(self, helius, fake_session, token_address):
        fake_session.routes["helius-rpc.com"] = {"jsonrpc": "2.0", "id": 1, "error": {"code": -32602}}

        assert await helius.fetch_holder_list(token_address) == []

    @pytest.mark.asyncio
    async def test_owner_balance_sums_accounts(self, helius, token_address):
        balance = await helius.fetch_owner_token_balance(WALLET_ADDRESS, token_address)

        assert balance == Decimal("2000000")

    @pytest.mark.asyncio
    async def test_owner_balance_failure_is_zero(self, helius, fake_session, token_address):
        fake_session.routes["api.mainnet-beta.solana.com"] = (503, "unavailable")

        assert await helius.fetch_owner_token_balance(WALLET_ADDRESS, token_address) == Decimal(0)


@pytest.mark.unit
class TestCodexCollector:
    """Test cases for CodexCollector"""

    @pytest.mark.asyncio
    async def test_metadata_mapping(self, codex, fake_session, token_address):
        token = await codex.load_token_codex(token_address)

        assert token.symbol == "USDC"
        assert token.blue_checkmark is True
        assert token.circulating_supply == "900000"
        variables = fake_session.calls_to("graph.codex.io")[0]["json"]["variables"]
        assert variables == {"address": token_address, "networkId": 1399811149}

    @pytest.mark.asyncio
    async def test_graphql_errors_serve_default(self, codex, fake_session, token_address):
        fake_session.routes["graph.codex.io"] = {"errors": [{"message": "bad query"}]}

        with pytest.raises(SourceUnavailable, match="bad query"):
            await codex.load_token_codex(token_address)
        assert await codex.fetch_token_codex(token_address) == TokenCodex.default(token_address)

    @pytest.mark.asyncio
    async def test_unknown_token_serves_default(self, codex, fake_session, token_address):
        fake_session.routes["graph.codex.io"] = {"data": {"token": None}}

        token = await codex.fetch_token_codex(token_address)

        assert token.symbol == ""
        assert token.decimals == 9
