from fastapi import APIRouter

from app.core.state import state
from app.models.response import PresetsResponse
from app.services.presets import presets_as_json

router = APIRouter()


@router.get("/", response_model=PresetsResponse)
async def root():
    """Supported formats and their quality presets"""
    return {"presets": presets_as_json()}


@router.get("/presets", response_model=PresetsResponse)
async def presets():
    return {"presets": presets_as_json()}


@router.get("/health")
async def health_check():
    """Lightweight health check"""
    redis_status = "disabled"
    if state.redis:
        try:
            await state.redis.ping()
            redis_status = "connected"
        except Exception:
            redis_status = "disconnected"

    return {
        "status": "ok",
        "redis": redis_status
    }
