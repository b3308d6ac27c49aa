from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from app.api.deps import get_relay
from app.core.errors import ValidationError
from app.core.logging import log_info, safe_url_for_log
from app.services.relay import Relay

router = APIRouter()


@router.get("/download")
async def download(
    request: Request,
    url: Optional[str] = None,
    relay: Relay = Depends(get_relay),
):
    """Stream a converted media file, Range transparent"""
    if not url:
        raise ValidationError("Missing url")

    range_header = request.headers.get("range")
    log_info(request, f"Proxying {safe_url_for_log(url)}")
    # The proxy checks the target and every redirect hop before fetching
    body, headers, status_code = await relay.stream.open(url, range_header)

    return StreamingResponse(
        body,
        status_code=status_code,
        media_type=headers.pop("content-type"),
        headers=headers,
    )
