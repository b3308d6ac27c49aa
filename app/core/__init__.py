from .errors import (
    RelayError,
    StreamProxyError,
    UpstreamError,
    UpstreamProtocolError,
    UpstreamTransportError,
    ValidationError,
)

__all__ = [
    "RelayError",
    "StreamProxyError",
    "UpstreamError",
    "UpstreamProtocolError",
    "UpstreamTransportError",
    "ValidationError",
]
