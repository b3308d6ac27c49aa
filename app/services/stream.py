import logging
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from app.core.errors import StreamProxyError, ValidationError
from app.core.logging import safe_url_for_log
from app.services.identity import IdentityProvider

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
MAX_REDIRECTS = 20

# Raises when a URL must not be fetched
TargetGuard = Callable[[str], Awaitable[None]]

# Upstream headers relayed verbatim when present
RELAYED_HEADERS = ("content-length", "content-range", "accept-ranges")


class StreamProxy:
    """Relays a media URL byte-for-byte, honouring Range"""

    def __init__(
        self,
        client: httpx.AsyncClient,
        identity: IdentityProvider,
        chunk_size: int = CHUNK_SIZE,
        target_guard: Optional[TargetGuard] = None,
        max_redirects: int = MAX_REDIRECTS,
    ):
        self.client = client
        self.identity = identity
        self.chunk_size = chunk_size
        self.target_guard = target_guard
        self.max_redirects = max_redirects

    async def open(
        self,
        target_url: Optional[str],
        range_header: Optional[str] = None,
    ) -> Tuple[AsyncIterator[bytes], Dict[str, str], int]:
        """
        Open the upstream stream.
        Returns (body iterator, headers, status code). The iterator owns the
        upstream response and closes it when exhausted or cancelled.
        """
        if not target_url:
            raise ValidationError("Missing url")
        await self._check_target(target_url)

        headers = {
            "User-Agent": self.identity.pick(),
            # Raw bytes are relayed, so ask for them unencoded
            "Accept-Encoding": "identity",
        }
        if range_header:
            headers["Range"] = range_header

        resp = await self._send_following_redirects(target_url, headers)

        out_headers = {
            "content-type": resp.headers.get("content-type", "application/octet-stream"),
        }
        for name in RELAYED_HEADERS:
            if name in resp.headers:
                out_headers[name] = resp.headers[name]

        logger.info(
            f"Streaming {safe_url_for_log(target_url)} "
            f"(status {resp.status_code}, range {range_header or 'none'})"
        )

        async def generate() -> AsyncIterator[bytes]:
            try:
                async for chunk in resp.aiter_raw(self.chunk_size):
                    yield chunk
            except httpx.HTTPError as e:
                # Headers are already sent; the client sees a short body
                logger.error(f"Stream interrupted for {safe_url_for_log(target_url)}: {str(e)}")
            finally:
                await resp.aclose()

        return generate(), out_headers, resp.status_code

    async def _check_target(self, url: str) -> None:
        if self.target_guard is not None:
            await self.target_guard(url)

    async def _send_following_redirects(self, target_url: str, headers: Dict[str, str]) -> httpx.Response:
        """Send the request, following redirects one hop at a time so each hop is checked"""
        try:
            req = self.client.build_request("GET", target_url, headers=headers)
            resp = await self.client.send(req, stream=True, follow_redirects=False)
            hops = 0
            while resp.next_request is not None:
                next_request = resp.next_request
                await resp.aclose()
                hops += 1
                if hops > self.max_redirects:
                    raise StreamProxyError(f"Exceeded {self.max_redirects} redirects")
                await self._check_target(str(next_request.url))
                resp = await self.client.send(next_request, stream=True, follow_redirects=False)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Stream open failed for {safe_url_for_log(target_url)}: {str(e)}")
            raise StreamProxyError(str(e) or type(e).__name__)
        return resp
