import inspect
import random
from collections import defaultdict, deque
from typing import Any, Dict

import httpx
import pytest

from app.config.settings import Config, config
from app.services.relay import build_relay, new_upstream_client

API_BASE = "https://api.upstream.test"
WEB_BASE = "https://www.upstream.test"


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class Upstream:
    """
    Scripted upstream for httpx.MockTransport.
    Each (method, path) has a queue of replies; the last reply repeats.
    A reply is an httpx.Response, an exception to raise, or a callable
    taking the request (sync or async).
    """

    def __init__(self):
        self.routes: Dict[tuple, deque] = defaultdict(deque)
        self.requests = []

    def on(self, method: str, path: str, *replies: Any) -> "Upstream":
        self.routes[(method, path)].extend(replies)
        return self

    def calls(self, method: str, path: str):
        return [r for r in self.requests if r.method == method and r.url.path == path]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"error": "unrouted"})
        reply = queue.popleft() if len(queue) > 1 else queue[0]
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            reply = reply(request)
            if inspect.isawaitable(reply):
                reply = await reply
        # fresh copy, scripted replies may be served more than once
        return httpx.Response(reply.status_code, headers=reply.headers, stream=httpx.ByteStream(reply.content))


def make_config(**upstream: Any) -> Config:
    return Config(upstream={"api_base": API_BASE, "web_base": WEB_BASE, **upstream})


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def make_relay(upstream, clock, sleep, monkeypatch):
    # Fake hosts never resolve; tests that need the target guard enable it
    monkeypatch.setattr(config.security, "enable_ssrf_protection", False)

    def _make(redis_getter=lambda: None, **upstream_overrides):
        client = new_upstream_client(transport=httpx.MockTransport(upstream.handler))
        return build_relay(
            make_config(**upstream_overrides),
            client=client,
            rng=random.Random(0),
            sleep=sleep,
            clock=clock,
            redis_getter=redis_getter,
        )
    return _make
