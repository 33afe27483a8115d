"""
Retrying Fetch Client
Outbound JSON requests with bounded exponential-backoff retry
"""

import asyncio
from typing import Any, Dict, Optional

import aiohttp
from loguru import logger

from config.settings import Settings
from utils.constants import SOLANA_CHAIN_ID
from utils.errors import HTTPStatusError, SourceUnavailable
from utils.helpers import mask_sensitive_data

RETRYABLE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, HTTPStatusError, ValueError)


class RetryingFetchClient:
    """
    Single owner of retry policy for every external source.

    Callers never retry on their own; a failure surfacing from this client has
    already exhausted all attempts.
    """

    def __init__(self, config: Optional[Dict] = None, session: Optional[aiohttp.ClientSession] = None):
        """
        Initialize fetch client

        Args:
            config: Configuration dictionary (api_key, max_retries, retry_delay,
                request_timeout, exponential_backoff)
            session: Optional externally owned aiohttp session
        """
        config = config or {}
        self.api_key = config.get('api_key', '')
        self.max_retries = max(1, int(config.get('max_retries', Settings.MAX_RETRIES)))
        self.retry_delay = float(config.get('retry_delay', Settings.RETRY_DELAY))
        self.request_timeout = int(config.get('request_timeout', Settings.REQUEST_TIMEOUT))
        self.exponential_backoff = bool(config.get('exponential_backoff', True))

        self.session = session
        self._owns_session = session is None

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'retries': 0,
        }

    async def initialize(self):
        """Create the HTTP session if one was not injected"""
        if not self.session:
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            self.session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def close(self):
        """Close the session when owned by this client"""
        if self.session and self._owns_session:
            await self.session.close()
        self.session = None

    async def __aenter__(self) -> "RetryingFetchClient":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _build_headers(self, headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        merged = {
            'Accept': 'application/json',
            'x-chain': SOLANA_CHAIN_ID,
        }
        if self.api_key:
            merged['X-API-KEY'] = self.api_key
        if headers:
            merged.update(headers)
        return merged

    async def _request_once(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        json: Any = None,
        params: Optional[Dict] = None,
    ) -> Any:
        async with self.session.request(method, url, headers=headers, json=json, params=params) as response:
            if 200 <= response.status < 300:
                return await response.json(content_type=None)
            body = await response.text()
            raise HTTPStatusError(response.status, url, body)

    async def fetch_json(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        json: Any = None,
        params: Optional[Dict] = None,
        source: Optional[str] = None,
    ) -> Any:
        """
        Perform a request and decode the JSON body

        Raises:
            SourceUnavailable: after the final attempt, chained to the last error
        """
        if not self.session:
            await self.initialize()

        request_headers = self._build_headers(headers)
        last_error: Optional[BaseException] = None

        for attempt in range(self.max_retries):
            self.stats['total_requests'] += 1
            try:
                result = await self._request_once(method, url, request_headers, json=json, params=params)
                self.stats['successful_requests'] += 1
                return result
            except RETRYABLE_ERRORS as e:
                self.stats['failed_requests'] += 1
                last_error = e
                if attempt == self.max_retries - 1:
                    break
                wait_time = self.retry_delay * (2 ** attempt) if self.exponential_backoff else self.retry_delay
                self.stats['retries'] += 1
                logger.warning(
                    f"Request to {self._safe_url(url)} failed (attempt {attempt + 1}/{self.max_retries}): "
                    f"{e}. Retrying in {wait_time}s..."
                )
                await asyncio.sleep(wait_time)

        logger.error(f"Request to {self._safe_url(url)} failed after {self.max_retries} attempts: {last_error}")
        raise SourceUnavailable(
            f"{source or url} unavailable after {self.max_retries} attempts: {last_error}",
            source=source,
            attempts=self.max_retries,
        ) from last_error

    async def post_json(self, url: str, payload: Any, headers: Optional[Dict[str, str]] = None,
                        source: Optional[str] = None) -> Any:
        """POST a JSON body with the same retry policy"""
        return await self.fetch_json(url, method="POST", headers=headers, json=payload, source=source)

    def _safe_url(self, url: str) -> str:
        # Helius carries its key in the query string
        if 'api-key=' in url:
            base, _, key = url.partition('api-key=')
            return f"{base}api-key={mask_sensitive_data(key)}"
        return url

    def get_stats(self) -> Dict:
        """Get client statistics"""
        return self.stats.copy()
