"""
Utility Helper Functions for the Solana token intelligence service
Address normalization plus decimal and formatting helpers
"""

import logging
import secrets
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, Union

from solders.pubkey import Pubkey

from utils.errors import MalformedTokenError

logger = logging.getLogger(__name__)

Number = Union[int, float, str, Decimal]

# ============= Solana Utilities =============

def normalize_token_address(address: Any) -> str:
    """Normalize a Solana address to its canonical base58 form.

    Raises:
        MalformedTokenError: if the value is not a 32-byte base58 public key
    """
    if not isinstance(address, str):
        raise MalformedTokenError(address, "expected a string")

    candidate = address.strip()
    if not candidate:
        raise MalformedTokenError(address, "empty identifier")

    try:
        return str(Pubkey.from_string(candidate))
    except Exception as e:
        raise MalformedTokenError(address, str(e) or "not a valid Solana address") from e

def generate_transaction_hash() -> str:
    """Random identifier for simulated transactions"""
    return secrets.token_hex(16)

# ============= Math & Financial Utilities =============

def to_decimal(value: Any, default: Decimal = Decimal(0)) -> Decimal:
    """Convert API value to Decimal, falling back to default"""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default
    if not result.is_finite():
        return default
    return result

def optional_decimal(value: Any) -> Optional[Decimal]:
    """Convert to Decimal while keeping None (unknown) distinct from zero"""
    return to_decimal(value, default=None)

def decimal_to_str(value: Optional[Decimal]) -> Optional[str]:
    """Serialize Decimal without float conversion"""
    if value is None:
        return None
    return str(value)

def normalize(value: Number, min_value: Number, max_value: Number) -> float:
    """Clamp (value - min) / (max - min) into [0, 1]"""
    value, min_value, max_value = float(value), float(min_value), float(max_value)
    span = max_value - min_value
    if span == 0:
        return 1.0 if value > min_value else 0.0
    return max(0.0, min(1.0, (value - min_value) / span))

def round_half_up(value: Number) -> int:
    """Round to the nearest integer, halves away from zero"""
    return int(to_decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))

def calculate_percentage_change(old_value: Decimal, new_value: Decimal) -> Decimal:
    """Calculate percentage change between two values"""
    if old_value == 0:
        return Decimal(0)
    return ((new_value - old_value) / old_value) * 100

# ============= Time Utilities =============

def utc_now() -> datetime:
    """Timezone-aware current time"""
    return datetime.now(timezone.utc)

def days_between(earlier: datetime, later: Optional[datetime] = None) -> int:
    """Whole days elapsed, never negative"""
    later = later or utc_now()
    if earlier.tzinfo is None:
        earlier = earlier.replace(tzinfo=timezone.utc)
    if later.tzinfo is None:
        later = later.replace(tzinfo=timezone.utc)
    return max(0, int((later - earlier).total_seconds() // 86400))

# ============= Data Formatting =============

def format_number(value: Number, decimals: int = 2) -> str:
    """Format number with thousands separator and decimal places"""
    if not isinstance(value, Decimal):
        value = to_decimal(value)
    return f"{value:,.{decimals}f}"

def format_currency(value: Number, symbol: str = "$", decimals: int = 2) -> str:
    """Format value as currency"""
    return f"{symbol}{format_number(value, decimals)}"

def format_large_number(value: Number) -> str:
    """Compact K/M/B notation"""
    num = float(value)
    abs_num = abs(num)
    if abs_num >= 1_000_000_000:
        return f"{num / 1_000_000_000:.1f} B"
    if abs_num >= 1_000_000:
        return f"{num / 1_000_000:.1f} M"
    if abs_num >= 1_000:
        return f"{num / 1_000:.1f} K"
    return f"{num:g}"

def mask_sensitive_data(data: str, visible_chars: int = 4) -> str:
    """Mask sensitive data showing only first and last few characters"""
    if not data:
        return ""
    if len(data) <= visible_chars * 2:
        return '*' * len(data)

    return f"{data[:visible_chars]}{'*' * (len(data) - visible_chars * 2)}{data[-visible_chars:]}"

# ============= Export All Utilities =============

__all__ = [
    # Solana
    'normalize_token_address', 'generate_transaction_hash',

    # Math & Financial
    'to_decimal', 'optional_decimal', 'decimal_to_str', 'normalize',
    'round_half_up', 'calculate_percentage_change',

    # Time
    'utc_now', 'days_between',

    # Formatting
    'format_number', 'format_currency', 'format_large_number',
    'mask_sensitive_data',
]
