import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.api.deps import get_relay
from app.core.errors import ValidationError
from app.core.logging import log_info
from app.infra.rate_limit import rate_limiter
from app.models.request import ConversionRequest, merge_fields
from app.services.relay import Relay

router = APIRouter()


async def read_body_fields(request: Request) -> Optional[Dict[str, Any]]:
    """JSON or form body as a flat dict; None when there is no body"""
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()

    if content_type in ("application/x-www-form-urlencoded", "multipart/form-data"):
        form = await request.form()
        return dict(form)

    raw = await request.body()
    if not raw.strip():
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        raise ValidationError("Invalid JSON body")
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data


@router.post("/convert", dependencies=[Depends(rate_limiter)])
async def convert(request: Request, relay: Relay = Depends(get_relay)):
    """Validate a conversion job and forward it to the upstream"""
    body = await read_body_fields(request)
    fields = merge_fields(body, request.query_params)
    job = ConversionRequest.from_fields(fields)

    log_info(request, f"Converting {job.link} as {job.format}")
    result = await relay.converter.convert(job)
    log_info(request, f"Upstream convert answered {result.status_code}")

    return JSONResponse(status_code=result.status_code, content=result.payload)
