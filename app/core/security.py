import asyncio
import hashlib
import ipaddress
import logging
import socket
from enum import Enum, auto
from urllib.parse import urlparse

from app.config.settings import config
from app.core.errors import ForbiddenTargetError, ValidationError
from app.infra.redis import get_redis

logger = logging.getLogger(__name__)

SSRF_CACHE_TTL = 300


class UrlValidationResult(Enum):
    """URL validation result without throwing exceptions"""
    OK = auto()
    BLOCKED = auto()
    INVALID = auto()


def _is_blocked(ip_str: str) -> bool:
    ip = ipaddress.ip_address(ip_str)
    if not config.security.allow_localhost and ip.is_loopback:
        return True
    if not config.security.allow_private_ips and ip.is_private:
        return True
    return ip.is_link_local or ip.is_multicast


class SecurityValidator:
    """
    Decide whether a download target may be fetched.
    Returns result enum; the router maps it to an error.
    """

    @staticmethod
    async def validate_url(url: str) -> UrlValidationResult:
        """
        Refuse targets resolving to loopback, private, link-local or
        multicast addresses. Uses async DNS resolution and Redis caching.
        """
        if not config.security.enable_ssrf_protection:
            return UrlValidationResult.OK

        try:
            parsed = urlparse(url)
            hostname = parsed.hostname
        except ValueError:
            return UrlValidationResult.INVALID
        if parsed.scheme not in ("http", "https") or not hostname:
            return UrlValidationResult.INVALID

        redis = get_redis()
        cache_key = f"ssrf:{hashlib.sha256(hostname.encode()).hexdigest()[:16]}"
        if redis:
            try:
                cached = await redis.get(cache_key)
            except Exception as e:
                logger.warning(f"SSRF cache lookup failed: {str(e)}")
                cached = None
            if cached == "ok":
                return UrlValidationResult.OK
            if cached == "blocked":
                return UrlValidationResult.BLOCKED

        try:
            addr_info = await asyncio.to_thread(socket.getaddrinfo, hostname, None)
            ips = [info[4][0] for info in addr_info]
        except socket.gaierror:
            # Unresolvable hosts fail later in the stream proxy
            return UrlValidationResult.OK

        try:
            is_blocked = any(_is_blocked(ip) for ip in ips)
        except ValueError:
            return UrlValidationResult.INVALID

        if redis:
            try:
                await redis.setex(cache_key, SSRF_CACHE_TTL, "blocked" if is_blocked else "ok")
            except Exception as e:
                logger.warning(f"SSRF cache store failed: {str(e)}")

        return UrlValidationResult.BLOCKED if is_blocked else UrlValidationResult.OK


async def ensure_public_target(url: str) -> None:
    """Raise ForbiddenTargetError or ValidationError unless `url` may be fetched"""
    validation_result = await SecurityValidator.validate_url(url)
    if validation_result == UrlValidationResult.BLOCKED:
        raise ForbiddenTargetError("Access denied")
    if validation_result == UrlValidationResult.INVALID:
        raise ValidationError("Invalid url")
