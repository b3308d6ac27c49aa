from typing import Any, Dict, List

from pydantic import BaseModel


class ConversionResult(BaseModel):
    """Upstream converter answer, relayed as-is"""
    status_code: int
    payload: Any = None


class KeyResponse(BaseModel):
    key: str


class PresetsResponse(BaseModel):
    presets: Dict[str, List[int]]


class ErrorResponse(BaseModel):
    error: str
