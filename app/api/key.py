from fastapi import APIRouter, Depends, Request

from app.api.deps import get_relay
from app.core.logging import log_info
from app.infra.rate_limit import rate_limiter
from app.models.response import KeyResponse
from app.services.relay import Relay

router = APIRouter()


@router.get("/key", response_model=KeyResponse, dependencies=[Depends(rate_limiter)])
async def get_key(request: Request, relay: Relay = Depends(get_relay)):
    """Current upstream key (cached, fetched on miss)"""
    key = await relay.credentials.get_credential()
    log_info(request, "Served upstream key")
    return {"key": key}
