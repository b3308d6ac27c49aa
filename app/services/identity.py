import random
from typing import Dict, Optional, Sequence

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/139.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/139.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:130.0) "
    "Gecko/20100101 Firefox/130.0",
)

# Browser-like header set sent with every upstream call
DEFAULT_HEADERS = {
    "accept": "*/*",
    "accept-language": "en-US,en;q=0.9",
    "cache-control": "no-cache",
    "content-type": "application/json",
    "origin": "https://iframe.y2meta-uk.com",
    "pragma": "no-cache",
    "priority": "u=1, i",
    "referer": "https://iframe.y2meta-uk.com/",
    "sec-ch-ua": '"Not;A=Brand";v="99", "Google Chrome";v="139", "Chromium";v="139"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"Windows"',
    "sec-fetch-dest": "empty",
    "sec-fetch-mode": "cors",
    "sec-fetch-site": "cross-site",
    "user-agent": USER_AGENTS[0],
}


class IdentityProvider:
    """Rotates client identities and builds disguise headers for upstream calls"""

    def __init__(
        self,
        user_agents: Sequence[str] = USER_AGENTS,
        base_headers: Optional[Dict[str, str]] = None,
        rng: Optional[random.Random] = None,
    ):
        if not user_agents:
            raise ValueError("At least one user agent is required")
        self.user_agents = tuple(user_agents)
        self.base_headers = dict(base_headers if base_headers is not None else DEFAULT_HEADERS)
        self.rng = rng or random.Random()

    def pick(self) -> str:
        """Pick one identity uniformly at random"""
        return self.rng.choice(self.user_agents)

    def headers(
        self,
        user_agent: Optional[str] = None,
        cookies: str = "",
        **extra: str,
    ) -> Dict[str, str]:
        """Base headers + identity + cookie (only when non-empty) + extras"""
        h = dict(self.base_headers)
        h["user-agent"] = user_agent or self.pick()
        if cookies:
            h["cookie"] = cookies
        for name, value in extra.items():
            h[name.replace("_", "-")] = value
        return h
