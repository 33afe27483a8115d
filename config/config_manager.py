"""
Configuration manager for the Solana token intelligence service
Pydantic-validated sections layered from defaults, YAML file and environment
"""

from __future__ import annotations

import logging
import os
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from config.settings import Endpoints
from utils.constants import (
    DEFAULT_CACHE_TTLS,
    HIGH_SUPPLY_HOLDER_FRACTION,
    HIGH_VALUE_HOLDER_FLOOR_USD,
    TRUST_DECAY_RATE,
    TRUST_MAX_DECAY_DAYS,
    TokenMint,
)
from utils.errors import ConfigurationError

logger = logging.getLogger(__name__)


class ConfigType(Enum):
    """Configuration types"""
    API = "api"
    CACHE = "cache"
    SCORING = "scoring"
    TRUST = "trust"
    BACKEND = "backend"
    DATABASE = "database"
    LOGGING = "logging"


class ApiConfig(BaseModel):
    birdeye_api_key: str = ""
    helius_api_key: str = ""
    codex_api_key: str = ""
    birdeye_api: str = Endpoints.BIRDEYE_API
    dexscreener_api: str = Endpoints.DEX_SCREENER_API
    dexscreener_search_api: str = Endpoints.DEX_SCREENER_SEARCH
    helius_rpc: str = Endpoints.HELIUS_RPC
    codex_graphql: str = Endpoints.CODEX_GRAPHQL
    rpc_url: str = Endpoints.DEFAULT_RPC
    request_timeout: int = 30
    max_retries: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=2.0, ge=0)


class CacheConfig(BaseModel):
    redis_url: Optional[str] = None
    cache_ttls: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_CACHE_TTLS))

    @field_validator('cache_ttls')
    @classmethod
    def merge_with_defaults(cls, value: Dict[str, int]) -> Dict[str, int]:
        merged = dict(DEFAULT_CACHE_TTLS)
        merged.update(value or {})
        for namespace, ttl in merged.items():
            if int(ttl) <= 0:
                raise ValueError(f"TTL for namespace '{namespace}' must be positive")
        return merged


class ScoringConfig(BaseModel):
    # Default gem criteria, callers may override per request
    volume_threshold: float = 1_000_000
    liquidity_threshold: float = 100_000
    price_surge_threshold: float = 50
    max_market_cap: float = 10_000_000

    high_value_holder_floor_usd: Decimal = HIGH_VALUE_HOLDER_FLOOR_USD
    high_supply_holder_fraction: Decimal = HIGH_SUPPLY_HOLDER_FRACTION
    holder_trend_threshold: float = 10.0

    # Overall deadline in seconds for one aggregation; None waits for the slowest source
    aggregation_deadline: Optional[float] = None


class TrustConfig(BaseModel):
    decay_rate: float = Field(default=TRUST_DECAY_RATE, gt=0, le=1)
    max_decay_days: int = Field(default=TRUST_MAX_DECAY_DAYS, ge=0)
    base_mint: str = TokenMint.SOL.value


class BackendConfig(BaseModel):
    backend_url: str = ""
    backend_token: str = ""
    replication_attempts: int = Field(default=3, ge=1)
    replication_delay: float = Field(default=2.0, ge=0)


class DatabaseConfig(BaseModel):
    database_url: str = ""
    db_pool_min: int = 1
    db_pool_max: int = 10


class LoggingConfig(BaseModel):
    log_level: str = "INFO"
    log_file: str = ""

    @field_validator('log_level')
    @classmethod
    def upper_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f"Unknown log level: {value}")
        return level


class ConfigManager:
    """
    Centralized configuration management with:
    - Schema validation using Pydantic
    - Optional YAML file overrides
    - Environment variable override (FIELD_NAME upper-cased)
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path) if config_path else None
        self.configs: Dict[ConfigType, BaseModel] = {}
        self.config_schemas: Dict[ConfigType, type] = {
            ConfigType.API: ApiConfig,
            ConfigType.CACHE: CacheConfig,
            ConfigType.SCORING: ScoringConfig,
            ConfigType.TRUST: TrustConfig,
            ConfigType.BACKEND: BackendConfig,
            ConfigType.DATABASE: DatabaseConfig,
            ConfigType.LOGGING: LoggingConfig,
        }
        self._file_config: Dict[str, Any] = {}

        logger.info("ConfigManager initialized")

    async def initialize(self) -> None:
        """Load every configuration section"""
        self._file_config = await self._load_file_config()

        for config_type in ConfigType:
            self._load_config(config_type)

        logger.info("Configuration manager initialized successfully")

    async def _load_file_config(self) -> Dict[str, Any]:
        """Read the optional YAML configuration file"""
        if not self.config_path:
            return {}
        if not self.config_path.exists():
            logger.warning(f"Config file {self.config_path} not found, using defaults")
            return {}

        try:
            async with aiofiles.open(self.config_path, 'r') as f:
                content = await f.read()
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {self.config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {self.config_path} must contain a mapping")
        return data

    def _load_config(self, config_type: ConfigType) -> None:
        """Merge defaults, file values and environment values for one section"""
        schema_class = self.config_schemas[config_type]
        config_data: Dict[str, Any] = {}

        file_data = self._file_config.get(config_type.value)
        if isinstance(file_data, dict):
            config_data.update(file_data)

        config_data.update(self._load_config_from_env(schema_class))

        try:
            self.configs[config_type] = schema_class(**config_data)
        except ValidationError as e:
            logger.error(f"Validation error in {config_type.value} config: {e}")
            raise ConfigurationError(f"Invalid {config_type.value} configuration: {e}") from e

    def _load_config_from_env(self, schema_class: type) -> Dict[str, Any]:
        """Load configuration from environment variables"""
        env_data = {}
        for field_name in schema_class.model_fields:
            value = os.getenv(field_name.upper())
            if value is not None and value not in ('', 'null', 'None'):
                env_data[field_name] = value
        return env_data

    def get(self, key: str, default: Any = None) -> Any:
        """
        Dictionary-style lookup supporting dotted keys (e.g. 'api.birdeye_api_key')
        and bare field names searched across all sections
        """
        if '.' in key:
            section, _, field_name = key.partition('.')
            try:
                config_obj = self.configs.get(ConfigType(section))
            except ValueError:
                return default
            return getattr(config_obj, field_name, default) if config_obj else default

        for config_obj in self.configs.values():
            if key in type(config_obj).model_fields:
                return getattr(config_obj, key)
        return default

    def __getitem__(self, key: str) -> Any:
        result = self.get(key)
        if result is None:
            raise KeyError(f"Configuration key '{key}' not found")
        return result

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get_config(self, config_type: ConfigType) -> BaseModel:
        """Get configuration for specified type, defaulting when not loaded"""
        config_obj = self.configs.get(config_type)
        if config_obj is None:
            config_obj = self.config_schemas[config_type]()
        return config_obj

    def get_api_config(self) -> ApiConfig:
        return self.get_config(ConfigType.API)

    def get_cache_config(self) -> CacheConfig:
        return self.get_config(ConfigType.CACHE)

    def get_scoring_config(self) -> ScoringConfig:
        return self.get_config(ConfigType.SCORING)

    def get_trust_config(self) -> TrustConfig:
        return self.get_config(ConfigType.TRUST)

    def get_backend_config(self) -> BackendConfig:
        return self.get_config(ConfigType.BACKEND)

    def get_database_config(self) -> DatabaseConfig:
        return self.get_config(ConfigType.DATABASE)

    def get_logging_config(self) -> LoggingConfig:
        return self.get_config(ConfigType.LOGGING)

    def validate_environment(self) -> List[str]:
        """Names of API keys that are unset; their sources will serve defaults"""
        api = self.get_api_config()
        missing = [
            name.upper() for name in ('birdeye_api_key', 'helius_api_key', 'codex_api_key')
            if not getattr(api, name)
        ]
        if missing:
            logger.warning(f"Missing environment variables: {', '.join(missing)}")
        return missing
