# tests/unit/test_risk_analyzer.py
"""
Unit tests for RiskAnalyzer
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from analysis.risk_analyzer import DEFAULT_RISK_METRICS, RiskAnalyzer
from tests.fixtures.mock_data import MockDataGenerator
from utils.errors import MalformedTokenError


@pytest.fixture
def analyzer():
    return RiskAnalyzer(aggregator=MagicMock())


@pytest.mark.unit
class TestRiskAnalyzer:
    """Test cases for RiskAnalyzer"""

    def test_sub_metrics(self, analyzer):
        metrics = analyzer.compute(MockDataGenerator.snapshot())

        assert metrics.volatility_score == pytest.approx(15.8)
        assert metrics.liquidity_risk == pytest.approx(90.0)
        assert metrics.holder_concentration == pytest.approx(0.5)
        assert metrics.security_score == pytest.approx(0.002)
        assert metrics.market_stability == pytest.approx(14.0)
        assert metrics.overall_risk == 28

    def test_no_pair_is_full_liquidity_risk(self, analyzer):
        metrics = analyzer.compute(MockDataGenerator.snapshot(pairs=[]))

        assert metrics.liquidity_risk == 100.0
        assert 0 <= metrics.overall_risk <= 100

    def test_unverified_scam_token(self, analyzer):
        codex = MockDataGenerator.codex_payload(isScam=True, explorerData={"blueCheckmark": False})

        metrics = analyzer.compute(MockDataGenerator.snapshot(codex=codex))

        assert metrics.security_score == pytest.approx(60.002)

    def test_all_defaulted_sources(self, analyzer):
        snapshot = MockDataGenerator.snapshot(pairs=[], defaulted=("security", "trade", "dex", "holders", "codex"))

        metrics = analyzer.compute(snapshot)

        assert metrics.volatility_score == 0
        assert metrics.security_score == pytest.approx(30.0)
        assert metrics.market_stability == 0

    def test_scores_are_capped(self, analyzer):
        overview = MockDataGenerator.overview_payload(
            priceChange1hPercent=900.0, priceChange24hPercent=900.0, trade24hChangePercent=5000.0,
        )

        metrics = analyzer.compute(MockDataGenerator.snapshot(overview=overview))

        assert metrics.volatility_score == 100.0
        assert metrics.market_stability <= 100.0
        assert metrics.overall_risk <= 100

    def test_failing_component_uses_default(self, analyzer, monkeypatch):
        def broken(data):
            raise ArithmeticError("bad input")

        monkeypatch.setattr(analyzer, "calculate_volatility", broken)

        metrics = analyzer.compute(MockDataGenerator.snapshot())

        assert metrics.volatility_score == DEFAULT_RISK_METRICS.volatility_score

    @pytest.mark.asyncio
    async def test_address_required(self, analyzer):
        with pytest.raises(ValueError):
            await analyzer.calculate_risk_metrics("")

    @pytest.mark.asyncio
    async def test_snapshot_failure_returns_defaults(self):
        aggregator = MagicMock()
        aggregator.get_processed_token_data = AsyncMock(side_effect=RuntimeError("down"))

        metrics = await RiskAnalyzer(aggregator).calculate_risk_metrics("token")

        assert metrics == DEFAULT_RISK_METRICS

    @pytest.mark.asyncio
    async def test_malformed_address_propagates(self, aggregator, fake_session):
        with pytest.raises(MalformedTokenError):
            await RiskAnalyzer(aggregator).calculate_risk_metrics("not-a-token!!")
        assert fake_session.calls == []

    @pytest.mark.asyncio
    async def test_uses_aggregated_snapshot(self):
        aggregator = MagicMock()
        aggregator.get_processed_token_data = AsyncMock(return_value=MockDataGenerator.snapshot())

        metrics = await RiskAnalyzer(aggregator).calculate_risk_metrics("token")

        assert metrics.overall_risk == 28
