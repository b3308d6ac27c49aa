import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
from redis.asyncio import Redis

from app.core.errors import UpstreamError, UpstreamProtocolError, UpstreamTransportError
from app.services.cookies import CookiePrimer
from app.services.identity import IdentityProvider
from app.utils.http_retry import RetryPolicy

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

ERROR_BODY_MAX_CHARS = 200


@dataclass(frozen=True)
class Credential:
    """Upstream access key and the instant it stops being usable"""
    value: str
    expires_at: float


class CredentialStore:
    """Single-slot holder for the current credential"""

    def __init__(self, clock: Clock = time.time):
        self.clock = clock
        self._current: Optional[Credential] = None

    def get(self) -> Optional[Credential]:
        return self._current

    def set(self, value: str, ttl: float) -> Credential:
        self._current = Credential(value=value, expires_at=self.clock() + ttl)
        return self._current

    def is_expired(self) -> bool:
        return self._current is None or self.clock() >= self._current.expires_at

    def fresh_value(self) -> Optional[str]:
        if self.is_expired():
            return None
        return self._current.value


class CredentialFetcher:
    """Acquires a fresh key from the upstream credential endpoint"""

    def __init__(
        self,
        client: httpx.AsyncClient,
        identity: IdentityProvider,
        cookies: CookiePrimer,
        retry: RetryPolicy,
        api_base: str,
        key_path: str = "/v2/sanity/key",
        timeout: float = 5.0,
    ):
        self.client = client
        self.identity = identity
        self.cookies = cookies
        self.retry = retry
        self.url = f"{api_base}{key_path}"
        self.timeout = timeout

    async def fetch(self) -> str:
        """
        Fetch a key, retrying on any upstream failure.
        Cookies are primed once and shared by all attempts.
        Raises the last attempt's error once all attempts fail.
        """
        cookies = await self.cookies.prime()

        async def attempt(n: int) -> str:
            return await self._attempt(n, cookies)

        return await self.retry.run(attempt, label="Key fetch")

    async def _attempt(self, attempt: int, cookies: str) -> str:
        headers = self.identity.headers(cookies=cookies)
        try:
            # client.get reads the whole body, so the timeout bounds the full exchange
            resp = await asyncio.wait_for(
                self.client.get(self.url, headers=headers),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            raise UpstreamTransportError(f"Key fetch timed out after {self.timeout:g}s")
        except httpx.HTTPError as e:
            raise UpstreamTransportError(f"Key fetch failed: {str(e) or type(e).__name__}")

        logger.info(
            f"Key fetch attempt {attempt}, status: {resp.status_code}, "
            f"ray ID: {resp.headers.get('cf-ray', 'none')}"
        )

        if not resp.is_success:
            body = resp.text[:ERROR_BODY_MAX_CHARS]
            raise UpstreamProtocolError(f"Failed to fetch key: {resp.status_code} - {body}")

        try:
            data = resp.json()
        except ValueError:
            raise UpstreamProtocolError("Invalid JSON in key response")

        key = data.get("key") if isinstance(data, dict) else None
        if not key:
            raise UpstreamProtocolError("No key in API response")
        return str(key)


class CredentialCache:
    """
    Serves the upstream key.
    Order: static key > fresh in-process slot > Redis > upstream fetch.
    """

    def __init__(
        self,
        fetcher: CredentialFetcher,
        store: Optional[CredentialStore] = None,
        ttl: float = 3600,
        static_key: Optional[str] = None,
        single_flight: bool = True,
        redis_getter: Callable[[], Optional[Redis]] = lambda: None,
        redis_key: str = "upstream:key",
    ):
        self.fetcher = fetcher
        self.store = store or CredentialStore()
        self.ttl = ttl
        self.static_key = static_key
        self.single_flight = single_flight
        self.redis_getter = redis_getter
        self.redis_key = redis_key
        self._inflight: Optional[asyncio.Future] = None

    async def get_credential(self) -> str:
        if self.static_key:
            return self.static_key

        cached = self.store.fresh_value()
        if cached:
            return cached

        stored = await self._load_from_redis()
        if stored:
            return stored

        if not self.single_flight:
            return await self._refresh()

        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._refresh())
        # A cancelled waiter must not cancel the shared fetch
        return await asyncio.shield(self._inflight)

    async def _refresh(self) -> str:
        try:
            key = await self.fetcher.fetch()
        except UpstreamError as e:
            logger.error(f"Key refresh failed: {e}")
            raise

        self.store.set(key, self.ttl)
        await self._save_to_redis(key)
        logger.info("Cached fresh upstream key")
        return key

    async def _load_from_redis(self) -> Optional[str]:
        redis = self.redis_getter()
        if not redis:
            return None
        try:
            value = await redis.get(self.redis_key)
            if not value:
                return None
            remaining = await redis.ttl(self.redis_key)
        except Exception as e:
            logger.warning(f"Redis key lookup failed: {str(e)}")
            return None

        ttl = remaining if remaining and remaining > 0 else self.ttl
        self.store.set(value, ttl)
        logger.debug("Using key from Redis")
        return value

    async def _save_to_redis(self, key: str) -> None:
        redis = self.redis_getter()
        if not redis:
            return
        try:
            await redis.setex(self.redis_key, int(self.ttl), key)
        except Exception as e:
            logger.warning(f"Redis key store failed: {str(e)}")
