# trading/performance_tracker.py
"""
Position lifecycle for recommended trades.

A buy opens a TradePerformance in the OPEN state; the matching sell closes
it with realized profit and market deltas. Closed positions are never
reopened: the next buy always opens a new position. Simulated trades also
move a virtual token balance and append to the transaction log.
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Optional

from analysis.token_scorer import is_rapid_dump
from analysis.trust_score import build_token_performance
from config.settings import Endpoints
from data.http_client import RetryingFetchClient
from data.storage.database import TrustScoreStore
from data.storage.models import (
    SellDetails,
    SimulationTransaction,
    TokenRecommendation,
    TradePerformance,
    TradeSide,
)
from trading.wallet import WalletProvider
from utils.errors import BackendReplicationError, SourceUnavailable, TradeStateError
from utils.helpers import (
    calculate_percentage_change,
    generate_transaction_hash,
    normalize_token_address,
    to_decimal,
    utc_now,
)

if TYPE_CHECKING:
    from analysis.trust_score import TrustScoreManager
    from data.processors.aggregator import TokenDataAggregator

logger = logging.getLogger(__name__)


class TradePerformanceTracker:
    """Opens and closes positions and replicates them to the backend"""

    def __init__(
        self,
        aggregator: "TokenDataAggregator",
        store: TrustScoreStore,
        wallet: WalletProvider,
        trust_manager: Optional["TrustScoreManager"] = None,
        backend_client: Optional[RetryingFetchClient] = None,
        config: Optional[Dict] = None,
    ):
        """
        Args:
            aggregator: Token snapshot source
            store: Trust history store
            wallet: Session wallet used for SOL pricing
            trust_manager: Receives closed-position outcomes when given
            backend_client: Client used for backend replication
            config: backend_url, backend_token, replication_attempts, replication_delay
        """
        config = config or {}
        self.aggregator = aggregator
        self.store = store
        self.wallet = wallet
        self.trust_manager = trust_manager

        self.backend_url = (config.get('backend_url') or '').rstrip('/')
        self.backend_token = config.get('backend_token', '')
        self.backend_client = backend_client or RetryingFetchClient({
            'max_retries': config.get('replication_attempts', 3),
            'retry_delay': config.get('replication_delay', 2.0),
            'exponential_backoff': False,
        })
        self._owns_client = backend_client is None

    async def close(self):
        if self._owns_client:
            await self.backend_client.close()

    # ============= Open =============

    async def create_trade_performance(
        self,
        token_address: str,
        recommender_id: str,
        buy_amount: Any,
        is_simulation: bool = False,
    ) -> TradePerformance:
        """
        Open a position at the current token price

        Raises:
            MalformedTokenError: if the token address is invalid
            SourceUnavailable: if no SOL price is available
        """
        token = normalize_token_address(token_address)
        recommender = await self.store.get_or_create_recommender(recommender_id)
        snapshot = await self.aggregator.get_processed_token_data(token)
        sol_price = await self.wallet.get_sol_price()

        amount = to_decimal(buy_amount)
        price = snapshot.trade_data.price
        pair = snapshot.canonical_pair
        market_cap = pair.market_cap if pair else Decimal(0)
        liquidity = pair.liquidity_usd if pair else Decimal(0)
        now = utc_now()

        trade = TradePerformance(
            token_address=token,
            recommender_id=recommender.id,
            buy_price=price,
            buy_timestamp=now,
            buy_amount=amount,
            buy_sol=amount / sol_price,
            buy_value_usd=amount * price,
            buy_market_cap=market_cap,
            buy_liquidity=liquidity,
            is_simulation=is_simulation,
            last_updated=now,
        )
        await self.store.add_trade_performance(trade)
        logger.info(
            f"Opened {'simulated ' if is_simulation else ''}position on {token} for {recommender.id}: "
            f"amount={amount} price={price}"
        )

        await self.store.add_token_recommendation(TokenRecommendation(
            id=str(uuid.uuid4()),
            recommender_id=recommender.id,
            token_address=token,
            timestamp=now,
            initial_market_cap=market_cap,
            initial_liquidity=liquidity,
            initial_price=price,
        ))

        validation_trust = await self.store.calculate_validation_trust(token)
        await self.store.upsert_token_performance(
            build_token_performance(snapshot, balance=float(amount), validation_trust=validation_trust)
        )

        if is_simulation:
            balance = await self.store.get_token_balance(token)
            await self.store.update_token_balance(token, balance + amount)
            await self.store.add_transaction(SimulationTransaction(
                token_address=token,
                type=TradeSide.BUY,
                transaction_hash=generate_transaction_hash(),
                amount=amount,
                price=price,
            ))

        replicated = await self.replicate_trade(token, recommender.id, {
            'buy_amount': str(amount),
            'is_simulation': is_simulation,
        })
        if not replicated:
            trade = replace(trade, replication_degraded=True)
        return trade

    # ============= Close =============

    async def update_sell_details(
        self,
        token_address: str,
        recommender_id: str,
        sell_amount: Any,
        sell_timestamp: Optional[datetime] = None,
        sell_recommender_id: Optional[str] = None,
        is_simulation: bool = False,
    ) -> SellDetails:
        """
        Close the recommender's latest open position on the token

        Raises:
            TradeStateError: if there is no open position to close
            SourceUnavailable: if no SOL price is available
        """
        token = normalize_token_address(token_address)
        recommender = await self.store.get_or_create_recommender(recommender_id)

        trade = await self.store.get_latest_trade_performance(token, recommender.id, is_simulation)
        if trade is None or not trade.is_open:
            raise TradeStateError(f"No open position on {token} for recommender {recommender.id}")

        snapshot = await self.aggregator.get_processed_token_data(token)
        sol_price = await self.wallet.get_sol_price()

        amount = to_decimal(sell_amount)
        sell_price = snapshot.trade_data.price
        sell_value_usd = amount * sell_price
        profit_usd = sell_value_usd - trade.buy_value_usd
        profit_percent = calculate_percentage_change(trade.buy_value_usd, sell_value_usd)

        pair = snapshot.canonical_pair
        market_cap = pair.market_cap if pair else Decimal(0)
        liquidity = pair.liquidity_usd if pair else Decimal(0)

        details = SellDetails(
            sell_price=sell_price,
            sell_timestamp=sell_timestamp or utc_now(),
            sell_amount=amount,
            received_sol=amount / sol_price,
            sell_value_usd=sell_value_usd,
            profit_usd=profit_usd,
            profit_percent=profit_percent,
            sell_market_cap=market_cap,
            market_cap_change=market_cap - trade.buy_market_cap,
            sell_liquidity=liquidity,
            liquidity_change=liquidity - trade.buy_liquidity,
            rapid_dump=is_rapid_dump(snapshot.trade_data),
            sell_recommender_id=sell_recommender_id,
        )

        await self.store.update_trade_performance_on_sell(
            token, recommender.id, trade.buy_timestamp, details, is_simulation
        )
        logger.info(
            f"Closed position on {token} for {recommender.id}: "
            f"profit_usd={profit_usd} profit_percent={profit_percent}"
        )

        balance = Decimal(0)
        if is_simulation:
            balance = await self.store.get_token_balance(token) - amount
            await self.store.update_token_balance(token, balance)
            await self.store.add_transaction(SimulationTransaction(
                token_address=token,
                type=TradeSide.SELL,
                transaction_hash=generate_transaction_hash(),
                amount=amount,
                price=sell_price,
            ))

        if self.trust_manager is not None:
            validation_trust = await self.store.calculate_validation_trust(token)
            performance = build_token_performance(
                snapshot, balance=float(balance), validation_trust=validation_trust
            )
            await self.store.upsert_token_performance(performance)
            await self.trust_manager.update_recommender_metrics(recommender.id, performance)

        return details

    # ============= Backend replication =============

    async def _post_trade(self, body: Dict[str, Any]) -> None:
        url = f"{self.backend_url}{Endpoints.BACKEND_CREATE_TRADE_PATH}"
        try:
            await self.backend_client.post_json(
                url,
                body,
                headers={
                    'Content-Type': 'application/json',
                    'Authorization': f"Bearer {self.backend_token}",
                },
                source="backend.trade",
            )
        except SourceUnavailable as e:
            raise BackendReplicationError(f"Could not replicate trade for {body['tokenAddress']}: {e}") from e

    async def replicate_trade(self, token_address: str, recommender_id: str, trade_data: Dict[str, Any]) -> bool:
        """Best-effort copy of the trade to the backend; False means degraded"""
        if not self.backend_url:
            logger.debug("No backend configured, skipping trade replication")
            return True

        try:
            await self._post_trade({
                'tokenAddress': token_address,
                'tradeData': trade_data,
                'recommenderId': recommender_id,
            })
        except BackendReplicationError as e:
            logger.warning(f"Backend replication degraded, local position kept: {e}")
            return False
        return True
