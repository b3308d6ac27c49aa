import httpx
import pytest

from app.core.errors import ForbiddenTargetError, StreamProxyError, ValidationError
from app.services.identity import USER_AGENTS

TARGET = "https://cdn.upstream.test/file.mp4?sig=abc"


async def collect(body):
    return b"".join([chunk async for chunk in body])


@pytest.mark.asyncio
async def test_range_is_forwarded_and_partial_content_relayed(make_relay, upstream):
    upstream.on("GET", "/file.mp4", httpx.Response(206, content=b"x" * 100, headers={
        "content-type": "video/mp4",
        "content-range": "bytes 100-199/1000",
        "accept-ranges": "bytes",
    }))
    relay = make_relay()

    body, headers, status = await relay.stream.open(TARGET, "bytes=100-199")

    sent = upstream.requests[0]
    assert sent.headers["range"] == "bytes=100-199"
    assert sent.headers["user-agent"] in USER_AGENTS
    assert status == 206
    assert headers == {
        "content-type": "video/mp4",
        "content-length": "100",
        "content-range": "bytes 100-199/1000",
        "accept-ranges": "bytes",
    }
    assert await collect(body) == b"x" * 100


@pytest.mark.asyncio
async def test_no_range_header_when_client_sent_none(make_relay, upstream):
    upstream.on("GET", "/file.mp4", httpx.Response(200, content=b"abc"))
    relay = make_relay()

    body, headers, status = await relay.stream.open(TARGET)

    assert "range" not in upstream.requests[0].headers
    assert status == 200
    assert headers["content-type"] == "application/octet-stream"
    assert "content-range" not in headers
    assert await collect(body) == b"abc"


@pytest.mark.asyncio
async def test_body_is_relayed_in_chunks(make_relay, upstream):
    payload = bytes(range(256)) * 1024
    upstream.on("GET", "/file.mp4", httpx.Response(200, content=payload))
    relay = make_relay()
    relay.stream.chunk_size = 4096

    body, _, _ = await relay.stream.open(TARGET)
    chunks = [chunk async for chunk in body]

    assert b"".join(chunks) == payload
    assert max(len(c) for c in chunks) <= 4096


@pytest.mark.asyncio
async def test_upstream_error_status_is_relayed(make_relay, upstream):
    upstream.on("GET", "/file.mp4", httpx.Response(403, text="expired"))
    relay = make_relay()

    body, _, status = await relay.stream.open(TARGET)

    assert status == 403
    assert await collect(body) == b"expired"


@pytest.mark.asyncio
async def test_missing_url(make_relay):
    relay = make_relay()
    with pytest.raises(ValidationError, match="Missing url"):
        await relay.stream.open("")


@pytest.mark.asyncio
async def test_transport_failure(make_relay, upstream):
    upstream.on("GET", "/file.mp4", httpx.ConnectError("no route to host"))
    relay = make_relay()

    with pytest.raises(StreamProxyError, match="no route to host"):
        await relay.stream.open(TARGET)


@pytest.mark.asyncio
async def test_redirects_are_followed_with_range(make_relay, upstream):
    upstream.on("GET", "/file.mp4", httpx.Response(302, headers={"location": "/moved.mp4"}))
    upstream.on("GET", "/moved.mp4", httpx.Response(206, content=b"z" * 10, headers={
        "content-range": "bytes 0-9/50",
    }))
    relay = make_relay()

    body, headers, status = await relay.stream.open(TARGET, "bytes=0-9")

    assert [r.url.path for r in upstream.requests] == ["/file.mp4", "/moved.mp4"]
    assert upstream.requests[1].headers["range"] == "bytes=0-9"
    assert status == 206
    assert headers["content-range"] == "bytes 0-9/50"
    assert await collect(body) == b"z" * 10


@pytest.mark.asyncio
async def test_every_redirect_hop_is_checked(make_relay, upstream):
    upstream.on("GET", "/file.mp4", httpx.Response(302, headers={"location": "http://127.0.0.1/admin"}))
    upstream.on("GET", "/admin", httpx.Response(200, content=b"internal"))
    relay = make_relay()
    checked = []

    async def guard(url):
        checked.append(url)
        if "127.0.0.1" in url:
            raise ForbiddenTargetError("Access denied")

    relay.stream.target_guard = guard

    with pytest.raises(ForbiddenTargetError):
        await relay.stream.open(TARGET)

    assert checked == [TARGET, "http://127.0.0.1/admin"]
    assert [r.url.path for r in upstream.requests] == ["/file.mp4"]


@pytest.mark.asyncio
async def test_redirect_loop_is_bounded(make_relay, upstream):
    upstream.on("GET", "/file.mp4", httpx.Response(302, headers={"location": "/file.mp4"}))
    relay = make_relay()
    relay.stream.max_redirects = 3

    with pytest.raises(StreamProxyError, match="Exceeded 3 redirects"):
        await relay.stream.open(TARGET)
    assert len(upstream.requests) == 4
