import random

import httpx
import pytest

from app.services.cookies import CookiePrimer, parse_set_cookie
from app.services.identity import USER_AGENTS, IdentityProvider

from conftest import WEB_BASE


def test_parse_set_cookie_joins_pairs():
    assert parse_set_cookie(["a=1; Path=/; HttpOnly", "b=2; Secure"]) == "a=1; b=2"


def test_parse_set_cookie_splits_on_commas():
    assert parse_set_cookie(["a=1; Path=/, b=2"]) == "a=1; b=2"


def test_parse_set_cookie_drops_expires_fragments():
    value = "sid=abc; Expires=Wed, 21 Oct 2026 07:28:00 GMT; Path=/"
    assert parse_set_cookie([value]) == "sid=abc"


def test_parse_set_cookie_empty():
    assert parse_set_cookie([]) == ""


@pytest.mark.asyncio
async def test_prime_collects_cookies_with_browser_identity(upstream):
    upstream.on("GET", "/", httpx.Response(200, headers=[
        ("set-cookie", "a=1; Path=/"),
        ("set-cookie", "b=2; HttpOnly"),
    ]))
    client = httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler))
    primer = CookiePrimer(client, IdentityProvider(rng=random.Random(3)), WEB_BASE)

    assert await primer.prime() == "a=1; b=2"
    sent = upstream.requests[0]
    assert str(sent.url).startswith(WEB_BASE)
    assert sent.headers["user-agent"] in USER_AGENTS
    assert sent.headers["sec-fetch-mode"] == "cors"
    assert "cookie" not in sent.headers


@pytest.mark.asyncio
async def test_prime_failure_yields_empty_string(upstream):
    upstream.on("GET", "/", httpx.ConnectError("connection refused"))
    client = httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler))
    primer = CookiePrimer(client, IdentityProvider(), WEB_BASE)

    assert await primer.prime() == ""


def test_identity_headers_omit_empty_cookie_and_map_extras():
    identity = IdentityProvider(user_agents=["UA-1"])
    h = identity.headers(cookies="", content_type="application/x-www-form-urlencoded", key="k")
    assert h["user-agent"] == "UA-1"
    assert "cookie" not in h
    assert h["content-type"] == "application/x-www-form-urlencoded"
    assert h["key"] == "k"


def test_identity_pick_follows_injected_randomness():
    a = IdentityProvider(rng=random.Random(42))
    b = IdentityProvider(rng=random.Random(42))
    assert [a.pick() for _ in range(10)] == [b.pick() for _ in range(10)]
