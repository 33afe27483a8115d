"""
Typed Exception Classes for the Solana token intelligence service

Specific exception types keep source failures, identifier failures, cache
degradation and scoring refusals apart so every layer can decide locally
whether to recover or propagate.
"""

from typing import Optional


# ============================================================================
# Network & API Exceptions
# ============================================================================

class NetworkError(Exception):
    """Base exception for network-related errors"""
    pass


class SourceUnavailable(NetworkError):
    """External data source still failing after all retry attempts"""

    def __init__(self, message: str, source: Optional[str] = None, attempts: int = 0):
        super().__init__(message)
        self.source = source
        self.attempts = attempts


class HTTPStatusError(NetworkError):
    """Non-2xx response from an external source"""

    def __init__(self, status: int, url: str, body: str = ""):
        super().__init__(f"HTTP {status} from {url}: {body[:200]}")
        self.status = status
        self.url = url
        self.body = body


class BackendReplicationError(NetworkError):
    """Trade record could not be replicated to the backend"""
    pass


# ============================================================================
# Configuration & Validation Exceptions
# ============================================================================

class ConfigurationError(Exception):
    """Configuration validation errors"""
    pass


class ValidationError(Exception):
    """Data validation errors"""
    pass


class MalformedTokenError(ValidationError):
    """Token identifier failed normalization"""

    def __init__(self, value: object, reason: str = "not a valid Solana address"):
        super().__init__(f"Malformed token identifier {value!r}: {reason}")
        self.value = value
        self.reason = reason


# ============================================================================
# Cache Exceptions
# ============================================================================

class CacheError(Exception):
    """Base exception for cache layer errors"""
    pass


class CacheDegraded(CacheError):
    """Durable cache tier unusable; reads degrade to misses"""
    pass


# ============================================================================
# Trading State Exceptions
# ============================================================================

class TradeStateError(Exception):
    """Illegal position lifecycle transition"""
    pass


# ============================================================================
# Database Exceptions
# ============================================================================

class DatabaseError(Exception):
    """Database operation errors"""
    pass


# ============================================================================
# Analysis Exceptions
# ============================================================================

class AnalysisError(Exception):
    """Analysis or scoring errors"""
    pass


class InsufficientData(AnalysisError):
    """Snapshot carries no usable pair or trade data and cannot be scored"""

    def __init__(self, token_address: str, missing: Optional[list] = None):
        missing = missing or []
        detail = f" (missing: {', '.join(missing)})" if missing else ""
        super().__init__(f"Insufficient data to score {token_address}{detail}")
        self.token_address = token_address
        self.missing = missing
