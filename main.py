#!/usr/bin/env python3
"""
Solana Token Intel - command line entry point

Commands:
- report <address>   markdown token report
- risk <address>     risk metrics
- gem <address>      gem score against the given criteria
- trend <address>    short/long trend and momentum
- analysis <address> snapshot plus market and risk metrics
- buy-amounts <address>
- gems               scan trending tokens for gem candidates
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional

from dotenv import load_dotenv
from loguru import logger as loguru_logger
from redis.exceptions import RedisError

from analysis.token_scorer import (
    GemCriteria,
    calculate_gem_score,
    evaluate_gem_criteria,
    provide_recommendation,
)
from config.config_manager import ConfigManager
from config.settings import Settings
from data.collectors.birdeye import BirdeyeCollector
from data.collectors.codex import CodexCollector
from data.collectors.dexscreener import DexScreenerCollector
from data.collectors.helius import HeliusCollector
from data.http_client import RetryingFetchClient
from data.processors.aggregator import TokenDataAggregator
from data.storage.cache import MemoryTTLCache, RedisCacheStore, TwoTierCache
from utils.errors import ConfigurationError, InsufficientData, MalformedTokenError

logger = logging.getLogger("TokenIntel")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    """Configure stdlib logging and route loguru to the same level and file"""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    loguru_logger.remove()
    loguru_logger.add(sys.stderr, level=level)
    if log_file:
        loguru_logger.add(log_file, level=level)


class TokenIntelSession:
    """
    Owns every resource one CLI run needs: HTTP client, cache, collectors and
    the aggregator. Use as an async context manager so they are closed.
    """

    def __init__(self, config: ConfigManager):
        self.config = config
        self.client: Optional[RetryingFetchClient] = None
        self.durable: Optional[RedisCacheStore] = None
        self.cache: Optional[TwoTierCache] = None
        self.birdeye: Optional[BirdeyeCollector] = None
        self.aggregator: Optional[TokenDataAggregator] = None

    async def __aenter__(self) -> "TokenIntelSession":
        api = self.config.get_api_config()
        cache_config = self.config.get_cache_config()
        scoring = self.config.get_scoring_config()

        self.client = RetryingFetchClient({
            'max_retries': api.max_retries,
            'retry_delay': api.retry_delay,
            'request_timeout': api.request_timeout,
        })
        await self.client.initialize()

        if cache_config.redis_url:
            durable = RedisCacheStore(cache_config.redis_url)
            try:
                await durable.connect()
                self.durable = durable
            except (RedisError, OSError) as e:
                logger.warning(f"Redis unavailable, running with the in-process cache only: {e}")

        self.cache = TwoTierCache(MemoryTTLCache(), self.durable, cache_config.cache_ttls)

        api_settings = api.model_dump()
        self.birdeye = BirdeyeCollector(self.client, self.cache, api_settings)
        self.aggregator = TokenDataAggregator(
            birdeye=self.birdeye,
            dexscreener=DexScreenerCollector(self.client, self.cache, api_settings),
            helius=HeliusCollector(self.client, self.cache, api_settings),
            codex=CodexCollector(self.client, self.cache, api_settings),
            cache=self.cache,
            config=scoring.model_dump(),
        )
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self.client:
            await self.client.close()
        if self.durable:
            await self.durable.disconnect()


def parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        prog="token-intel",
        description="Solana token intelligence: aggregation, scoring and reports"
    )
    parser.add_argument(
        '--config',
        default=None,
        help='Path to YAML configuration file'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    for name, help_text in (
        ('report', 'Markdown token report'),
        ('risk', 'Risk metrics'),
        ('trend', 'Trend analysis'),
        ('analysis', 'Snapshot with market and risk metrics'),
        ('buy-amounts', 'SOL buy sizes by liquidity impact'),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument('address', help='Token mint address')

    gem = subparsers.add_parser('gem', help='Gem score for one token')
    gem.add_argument('address', help='Token mint address')
    gems = subparsers.add_parser('gems', help='Scan trending tokens for gem candidates')
    gems.add_argument('--limit', type=int, default=20, help='Trending tokens to scan')
    for sub in (gem, gems):
        sub.add_argument('--volume', type=float, default=None, help='24h volume threshold (USD)')
        sub.add_argument('--liquidity', type=float, default=None, help='Liquidity threshold (USD)')
        sub.add_argument('--surge', type=float, default=None, help='24h price surge threshold (%%)')
        sub.add_argument('--max-mcap', type=float, default=None, help='Maximum market cap (USD)')

    return parser.parse_args(argv)


def build_criteria(args, config: ConfigManager) -> GemCriteria:
    """Gem criteria from the scoring config, overridden by CLI flags"""
    criteria = GemCriteria.from_config(config.get_scoring_config())
    overrides = {
        'volume_threshold': args.volume,
        'liquidity_threshold': args.liquidity,
        'price_surge_threshold': args.surge,
        'max_market_cap': args.max_mcap,
    }
    return criteria.model_copy(update={k: v for k, v in overrides.items() if v is not None})


def _print_json(data: Any):
    print(json.dumps(data, indent=2, default=str))


async def run_command(args, config: ConfigManager) -> int:
    async with TokenIntelSession(config) as session:
        aggregator = session.aggregator

        if args.command == 'report':
            print(await aggregator.get_formatted_token_report(args.address))

        elif args.command == 'risk':
            metrics = await aggregator.risk_analyzer.calculate_risk_metrics(args.address)
            _print_json(metrics.to_dict())

        elif args.command == 'trend':
            _print_json(await aggregator.get_trend_analysis(args.address))

        elif args.command == 'analysis':
            _print_json(await aggregator.get_enhanced_analysis(args.address))

        elif args.command == 'buy-amounts':
            _print_json(await aggregator.calculate_buy_amounts(args.address))

        elif args.command == 'gem':
            criteria = build_criteria(args, config)
            snapshot = await aggregator.get_processed_token_data(args.address)
            try:
                score = calculate_gem_score(snapshot, criteria)
            except InsufficientData as e:
                print(f"❌ {e}")
                return 2
            _print_json({
                'token_address': snapshot.token_address,
                'gem_score': score,
                'matched_criteria': evaluate_gem_criteria(snapshot, criteria),
                'recommendation': provide_recommendation(snapshot, score),
            })

        elif args.command == 'gems':
            criteria = build_criteria(args, config)
            _print_json(await aggregator.find_gem_tokens(criteria, limit=args.limit))

    return 0


async def async_main(argv=None) -> int:
    args = parse_arguments(argv)

    config = ConfigManager(args.config)
    try:
        await config.initialize()
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}")
        return 1

    logging_config = config.get_logging_config()
    setup_logging('DEBUG' if args.debug else logging_config.log_level, logging_config.log_file or None)
    logger.debug(f"Environment: {Settings.get_environment_info()}")
    config.validate_environment()

    try:
        return await run_command(args, config)
    except MalformedTokenError as e:
        print(f"❌ {e}")
        return 2


def main():
    """Console script entry point"""
    load_dotenv()
    try:
        sys.exit(asyncio.run(async_main()))
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
        sys.exit(130)


if __name__ == "__main__":
    main()
