import asyncio
import random
import time
from dataclasses import dataclass
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Optional

import httpx

from app.config.settings import Config
from app.core.errors import UpstreamError, UpstreamTransportError
from app.core.security import ensure_public_target
from app.infra.redis import get_redis
from app.services.convert import ConversionInvoker
from app.services.cookies import CookiePrimer
from app.services.credential import CredentialCache, CredentialFetcher, CredentialStore
from app.services.identity import IdentityProvider
from app.services.stream import StreamProxy
from app.utils.http_retry import RetryPolicy


@dataclass
class Relay:
    """The wired-up relay core, shared by all request handlers"""
    client: httpx.AsyncClient
    identity: IdentityProvider
    cookies: CookiePrimer
    credentials: CredentialCache
    converter: ConversionInvoker
    stream: StreamProxy

    async def aclose(self) -> None:
        await self.client.aclose()


def new_upstream_client(transport: Optional[httpx.AsyncBaseTransport] = None, connect_timeout: float = 10.0) -> httpx.AsyncClient:
    """
    Shared client for upstream traffic. Its cookie jar accepts nothing:
    cookies are harvested explicitly per call and never carried over.
    """
    return httpx.AsyncClient(
        transport=transport,
        cookies=CookieJar(policy=DefaultCookiePolicy(allowed_domains=[])),
        timeout=httpx.Timeout(30.0, connect=connect_timeout, read=None),
    )


def build_relay(
    cfg: Config,
    client: Optional[httpx.AsyncClient] = None,
    rng: Optional[random.Random] = None,
    sleep=asyncio.sleep,
    clock=time.time,
    redis_getter=get_redis,
) -> Relay:
    """Wire the relay components from configuration"""
    rng = rng or random.Random()
    if client is None:
        client = new_upstream_client(connect_timeout=cfg.stream.connect_timeout)

    identity = IdentityProvider(rng=rng)
    cookies = CookiePrimer(client, identity, cfg.upstream.web_base)

    fetcher = CredentialFetcher(
        client,
        identity,
        cookies,
        retry=RetryPolicy.from_config(
            cfg.retry, cfg.retry.key_attempts, rng=rng, sleep=sleep,
            retry_on=(UpstreamError,),
        ),
        api_base=cfg.upstream.api_base,
        key_path=cfg.upstream.key_path,
        timeout=cfg.upstream.key_timeout_seconds,
    )
    credentials = CredentialCache(
        fetcher,
        store=CredentialStore(clock=clock),
        ttl=cfg.upstream.key_ttl_seconds,
        static_key=cfg.upstream.api_key,
        single_flight=cfg.upstream.single_flight,
        redis_getter=redis_getter,
        redis_key=cfg.redis.key_name,
    )
    converter = ConversionInvoker(
        client,
        identity,
        cookies,
        credentials,
        retry=RetryPolicy.from_config(
            cfg.retry, cfg.retry.convert_attempts, rng=rng, sleep=sleep,
            retry_on=(UpstreamTransportError,),
        ),
        api_base=cfg.upstream.api_base,
        convert_path=cfg.upstream.convert_path,
    )
    stream = StreamProxy(
        client,
        identity,
        chunk_size=cfg.stream.chunk_size,
        target_guard=ensure_public_target,
    )

    return Relay(
        client=client,
        identity=identity,
        cookies=cookies,
        credentials=credentials,
        converter=converter,
        stream=stream,
    )
