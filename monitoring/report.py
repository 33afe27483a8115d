"""
Token Report Formatter
Markdown report over an aggregated token snapshot
"""

import logging
from decimal import Decimal
from typing import Any, Callable, List, Optional

from data.models import DataSource, ProcessedTokenData
from utils.constants import UNAVAILABLE
from utils.helpers import format_currency, format_number

logger = logging.getLogger(__name__)

FALLBACK_REPORT = "Unable to format token data. Some metrics may be unavailable."


class TokenReportFormatter:
    """
    Renders ProcessedTokenData as a markdown report.

    Anything that comes from a defaulted source, or that the source reported
    as unknown, is shown as "unavailable" rather than as a number.
    """

    def format(self, data: ProcessedTokenData) -> str:
        try:
            sections = [
                self._header(data),
                self._market_overview(data),
                self._price_performance(data),
                self._trading_activity(data),
                self._liquidity(data),
                self._holder_analysis(data),
                self._risk_metrics(data),
            ]
            if len(data.pairs) > 1:
                sections.append(self._market_depth(data))
            return "\n\n".join(sections) + "\n"
        except Exception as e:
            logger.error(f"Error formatting token data for {data.token_address}: {e}")
            return FALLBACK_REPORT

    # ============= Value rendering =============

    @staticmethod
    def _render(value: Optional[Any], render: Callable[[Any], str], available: bool = True) -> str:
        if not available or value is None:
            return UNAVAILABLE
        return render(value)

    @staticmethod
    def _percent(value: Decimal) -> str:
        return f"{format_number(value, 2)}%"

    @staticmethod
    def _flag(value: Optional[bool], yes: str, no: str) -> str:
        if value is None:
            return UNAVAILABLE
        return yes if value else no

    # ============= Sections =============

    def _header(self, data: ProcessedTokenData) -> str:
        codex_ok = not data.is_defaulted(DataSource.CODEX)
        pair = data.canonical_pair
        symbol = (data.token_codex.symbol if codex_ok else "") or (pair.base_token_symbol if pair else "")
        name = (data.token_codex.name if codex_ok else "") or (pair.base_token_name if pair else "")
        return "\n".join([
            f"**Token Analysis Report for {symbol or 'Unknown Token'}**",
            f"Address: {data.token_address}",
            f"Name: {name or UNAVAILABLE}",
        ])

    def _market_overview(self, data: ProcessedTokenData) -> str:
        trade_ok = data.has_trade_data
        security_ok = not data.is_defaulted(DataSource.SECURITY)
        pair = data.canonical_pair
        verified = (
            self._flag(data.token_codex.blue_checkmark, "✅", "❌")
            if not data.is_defaulted(DataSource.CODEX) else UNAVAILABLE
        )
        return "\n".join([
            "**📊 Market Overview**",
            f"Current Price: {self._render(data.trade_data.price, lambda v: format_currency(v, decimals=4), trade_ok)}",
            f"Market Cap: {self._render(pair.market_cap if pair else None, format_currency)}",
            f"Total Supply: {self._render(data.security.total_supply, format_number, security_ok)}",
            f"Verified: {verified}",
        ])

    def _price_performance(self, data: ProcessedTokenData) -> str:
        trade_ok = data.has_trade_data
        trade = data.trade_data
        return "\n".join([
            "**💰 Price Performance**",
            f"1h: {self._render(trade.price_change_1h_percent, self._percent, trade_ok)}",
            f"24h: {self._render(trade.price_change_24h_percent, self._percent, trade_ok)}",
        ])

    def _trading_activity(self, data: ProcessedTokenData) -> str:
        trade_ok = data.has_trade_data
        trade = data.trade_data

        buy_sell_ratio = None
        if trade.buy_24h is not None and trade.sell_24h is not None:
            buy_sell_ratio = trade.buy_24h / (trade.sell_24h or Decimal(1))

        return "\n".join([
            "**📈 Trading Activity (24h)**",
            f"Volume: {self._render(trade.volume_24h_usd, format_currency, trade_ok)}",
            f"Volume Change: {self._render(trade.volume_24h_change_percent, self._percent, trade_ok)}",
            f"Trades: {self._render(trade.trade_24h, lambda v: format_number(v, 0), trade_ok)}",
            f"Buy/Sell Ratio: {self._render(buy_sell_ratio, format_number, trade_ok)}",
        ])

    def _liquidity(self, data: ProcessedTokenData) -> str:
        pair = data.canonical_pair
        lines = ["**💧 Liquidity**"]
        if pair is None:
            lines.extend([
                f"Total Liquidity: {UNAVAILABLE}",
                f"Liquidity/MCap Ratio: {UNAVAILABLE}",
                f"DEX: {UNAVAILABLE}",
            ])
            return "\n".join(lines)

        ratio = pair.liquidity_usd / pair.market_cap * 100 if pair.market_cap else None
        lines.extend([
            f"Total Liquidity: {format_currency(pair.liquidity_usd)}",
            f"Liquidity/MCap Ratio: {self._render(ratio, self._percent)}",
            f"DEX: {pair.dex_id or UNAVAILABLE}",
        ])
        return "\n".join(lines)

    def _holder_analysis(self, data: ProcessedTokenData) -> str:
        trade_ok = data.has_trade_data
        security_ok = not data.is_defaulted(DataSource.SECURITY)
        top10 = data.security.top10_holder_percent * 100
        return "\n".join([
            "**👥 Holder Analysis**",
            f"Total Holders: {self._render(data.trade_data.holder, lambda v: format_number(v, 0), trade_ok)}",
            f"Active Wallets (24h): "
            f"{self._render(data.trade_data.unique_wallet_24h, lambda v: format_number(v, 0), trade_ok)}",
            f"Top 10 Holders %: {self._render(top10, self._percent, security_ok)}",
        ])

    def _risk_metrics(self, data: ProcessedTokenData) -> str:
        security = data.security
        security_ok = not data.is_defaulted(DataSource.SECURITY)
        holders_ok = not data.is_defaulted(DataSource.HOLDERS)

        token_type = self._flag(security.is_token_2022, "Token-2022", "SPL") if security_ok else UNAVAILABLE
        mutable = self._flag(security.mutable_metadata, "⚠️ Yes", "✅ No") if security_ok else UNAVAILABLE

        lines: List[str] = [
            "**⚠️ Risk Metrics**",
            f"Owner %: {self._render(security.owner_percentage, self._percent, security_ok)}",
            f"Creator %: {self._render(security.creator_percentage, self._percent, security_ok)}",
            f"High Concentration Holders: {self._render(data.high_supply_holders_count, str, holders_ok)}",
            f"Token Type: {token_type}",
            f"Mutable Metadata: {mutable}",
        ]
        return "\n".join(lines)

    def _market_depth(self, data: ProcessedTokenData) -> str:
        total_liquidity = sum((pair.liquidity_usd for pair in data.pairs), Decimal(0))
        return "\n".join([
            "**🌊 Market Depth**",
            f"Total DEX Pairs: {len(data.pairs)}",
            f"Combined Liquidity: {format_currency(total_liquidity)}",
        ])
