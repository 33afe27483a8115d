"""
Global Settings and Constants for the Solana token intelligence service
Endpoint definitions and environment-aware defaults
"""

import os
from enum import Enum
from typing import Any, Dict


class Environment(Enum):
    """Runtime environments"""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class Endpoints:
    """External data source endpoints"""
    BIRDEYE_API = "https://public-api.birdeye.so"
    TOKEN_SECURITY_ENDPOINT = "/defi/token_security?address="
    TOKEN_OVERVIEW_ENDPOINT = "/defi/token_overview?address="
    TOKEN_PRICE_ENDPOINT = "/defi/price?address="
    TOKEN_TRENDING_ENDPOINT = "/defi/token_trending?sort_by=rank&sort_type=asc&offset=0&limit=20"
    DEX_SCREENER_API = "https://api.dexscreener.com/latest/dex/tokens/"
    DEX_SCREENER_SEARCH = "https://api.dexscreener.com/latest/dex/search?q="
    HELIUS_RPC = "https://mainnet.helius-rpc.com/?api-key="
    CODEX_GRAPHQL = "https://graph.codex.io/graphql"
    DEFAULT_RPC = "https://api.mainnet-beta.solana.com"
    BACKEND_CREATE_TRADE_PATH = "/api/updaters/createTradePerformance"


class Settings:
    """Process-wide defaults read from the environment"""

    ENVIRONMENT = Environment(os.getenv('ENVIRONMENT', 'development'))
    APP_VERSION = "1.0.0"

    # Retry policy for outbound source requests
    MAX_RETRIES = int(os.getenv('MAX_RETRIES', '3'))
    RETRY_DELAY = float(os.getenv('RETRY_DELAY', '2.0'))  # seconds, doubled per attempt
    REQUEST_TIMEOUT = int(os.getenv('REQUEST_TIMEOUT', '30'))  # seconds

    @classmethod
    def get_environment_info(cls) -> Dict[str, Any]:
        """Summary of the runtime environment with secrets omitted"""
        return {
            'environment': cls.ENVIRONMENT.value,
            'app_version': cls.APP_VERSION,
            'birdeye_configured': bool(os.getenv('BIRDEYE_API_KEY')),
            'helius_configured': bool(os.getenv('HELIUS_API_KEY')),
            'codex_configured': bool(os.getenv('CODEX_API_KEY')),
            'redis_configured': bool(os.getenv('REDIS_URL')),
            'backend_configured': bool(os.getenv('BACKEND_URL')),
            'database_configured': bool(os.getenv('DATABASE_URL')),
        }
