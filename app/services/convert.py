import logging

import httpx

from app.core.errors import UpstreamTransportError
from app.models.request import ConversionRequest
from app.models.response import ConversionResult
from app.services.cookies import CookiePrimer
from app.services.credential import CredentialCache
from app.services.identity import IdentityProvider
from app.utils.http_retry import RetryPolicy

logger = logging.getLogger(__name__)


class ConversionInvoker:
    """Submits conversion jobs to the upstream converter"""

    def __init__(
        self,
        client: httpx.AsyncClient,
        identity: IdentityProvider,
        cookies: CookiePrimer,
        credentials: CredentialCache,
        retry: RetryPolicy,
        api_base: str,
        convert_path: str = "/v2/converter",
    ):
        self.client = client
        self.identity = identity
        self.cookies = cookies
        self.credentials = credentials
        self.retry = retry
        self.url = f"{api_base}{convert_path}"

    async def convert(self, request: ConversionRequest) -> ConversionResult:
        """
        Forward one conversion job.

        The key and cookies are resolved fresh for every call. Only
        exceptions are retried; any response that arrives, whatever its
        status, is the result.
        """
        key = await self.credentials.get_credential()
        cookies = await self.cookies.prime()
        headers = self.identity.headers(
            cookies=cookies,
            content_type="application/x-www-form-urlencoded",
            key=key,
        )
        form = request.to_form()

        async def attempt(n: int) -> ConversionResult:
            try:
                resp = await self.client.post(self.url, data=form, headers=headers)
            except httpx.HTTPError as e:
                raise UpstreamTransportError(f"Convert request failed: {str(e) or type(e).__name__}")
            try:
                payload = resp.json()
            except ValueError:
                raise UpstreamTransportError(
                    f"Convert response was not JSON (status {resp.status_code})"
                )
            logger.info(f"Convert attempt {n}, status: {resp.status_code}")
            return ConversionResult(status_code=resp.status_code, payload=payload)

        return await self.retry.run(attempt, label="Convert")
