# trading/wallet.py

import logging
from decimal import Decimal
from typing import Dict

from data.collectors.birdeye import BirdeyeCollector
from utils.errors import SourceUnavailable
from utils.helpers import normalize_token_address

logger = logging.getLogger(__name__)


class WalletProvider:
    """
    Public-key wallet view owned by one session.

    Holds no keys and signs nothing; it only prices the base asset for
    position accounting. Construct one per logical wallet and pass it along.
    """

    def __init__(self, public_key: str, birdeye: BirdeyeCollector):
        self.public_key = normalize_token_address(public_key)
        self.birdeye = birdeye

    async def fetch_prices(self) -> Dict[str, Decimal]:
        return await self.birdeye.fetch_prices()

    async def get_sol_price(self) -> Decimal:
        """
        Raises:
            SourceUnavailable: when no SOL price could be fetched
        """
        prices = await self.fetch_prices()
        sol_price = prices.get('solana', Decimal(0))
        if sol_price <= 0:
            raise SourceUnavailable("SOL price unavailable", source="birdeye.price")
        return sol_price

    def __repr__(self) -> str:
        return f"WalletProvider({self.public_key})"
