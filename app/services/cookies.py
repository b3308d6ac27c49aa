import logging
from typing import Iterable

import httpx

from app.services.identity import IdentityProvider

logger = logging.getLogger(__name__)


def parse_set_cookie(values: Iterable[str]) -> str:
    """
    Collapse Set-Cookie header values into a Cookie header value.
    Each value is split on commas and every segment is cut at its first ';'.
    Segments left without a name=value pair are dropped.
    """
    pairs = []
    for value in values:
        for segment in value.split(","):
            pair = segment.split(";", 1)[0].strip()
            # Expires dates contain commas; their tails carry no '='
            if "=" in pair:
                pairs.append(pair)
    return "; ".join(pairs)


class CookiePrimer:
    """Best-effort harvest of session cookies from the upstream web origin"""

    def __init__(self, client: httpx.AsyncClient, identity: IdentityProvider, web_base: str):
        self.client = client
        self.identity = identity
        self.web_base = web_base

    async def prime(self) -> str:
        """Return a Cookie header value, or "" on any failure"""
        try:
            resp = await self.client.get(self.web_base, headers=self.identity.headers())
            cookies = parse_set_cookie(resp.headers.get_list("set-cookie"))
        except Exception as e:
            logger.warning(f"Cookie priming failed: {str(e)}")
            return ""

        logger.debug(f"Fetched cookies: {cookies or '<none>'}")
        return cookies
