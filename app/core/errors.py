"""Relay exception classes."""


class RelayError(Exception):
    """Base exception for relay errors."""

    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(RelayError):
    """Client supplied a malformed or unsupported request."""

    status_code = 400


class UpstreamError(RelayError):
    """The upstream conversion service could not be used."""

    pass


class UpstreamTransportError(UpstreamError):
    """Network failure, timeout or unreadable response from the upstream."""

    pass


class UpstreamProtocolError(UpstreamError):
    """Upstream answered, but not with what the relay needs (bad status, missing key)."""

    pass


class StreamProxyError(RelayError):
    """Target media URL could not be reached or read."""

    pass


class RateLimitError(RelayError):
    """Too many requests from one client."""

    status_code = 429

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after


class ForbiddenTargetError(RelayError):
    """Download target resolves to a network the relay refuses to reach."""

    status_code = 403
