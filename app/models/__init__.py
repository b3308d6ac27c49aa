from .request import ConversionRequest, merge_fields
from .response import ConversionResult, ErrorResponse, KeyResponse, PresetsResponse

__all__ = [
    "ConversionRequest",
    "ConversionResult",
    "ErrorResponse",
    "KeyResponse",
    "PresetsResponse",
    "merge_fields",
]
