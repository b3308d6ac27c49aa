import logging
import uuid
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from app.api import health, key, convert, download
from app.api.deps import close_relay, get_relay
from app.config.settings import config
from app.core.errors import RateLimitError, RelayError
from app.core.logging import setup_logging
from app.infra.redis import init_redis, close_redis

logger = logging.getLogger(__name__)

app = FastAPI(
    title=config.api.title,
    version=config.api.version,
    docs_url="/docs" if config.api.debug else None,
    redoc_url=None
)


def error_response(status_code: int, message: str, headers: dict = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError):
    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(exc.retry_after)}
    return error_response(exc.status_code, exc.message, headers)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    return error_response(400, first.get("msg", "Invalid request"))


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag each request with an id and render unexpected failures as 500"""
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
    request.state.request_id = request_id
    try:
        response = await call_next(request)
    except Exception as e:
        logger.exception(f"[{request_id}] Unhandled error on {request.method} {request.url.path}")
        response = error_response(500, str(e) or type(e).__name__)
    response.headers["X-Request-ID"] = request_id
    return response


CORS_METHODS = ["GET", "POST", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Key", "Range"]
CORS_EXPOSED = ["Content-Length", "Content-Range", "Accept-Ranges"]

# CORS headers for actual requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.api.cors_origins,
    allow_methods=CORS_METHODS,
    allow_headers=CORS_HEADERS,
    expose_headers=CORS_EXPOSED,
)


def preflight_headers(origin: str = None) -> dict:
    """Fixed CORS header set sent with every OPTIONS reply"""
    headers = {
        "Access-Control-Allow-Methods": ", ".join(CORS_METHODS),
        "Access-Control-Allow-Headers": ", ".join(CORS_HEADERS),
        "Access-Control-Expose-Headers": ", ".join(CORS_EXPOSED),
    }
    if "*" in config.api.cors_origins:
        headers["Access-Control-Allow-Origin"] = "*"
    elif origin and origin in config.api.cors_origins:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Vary"] = "Origin"
    return headers


# Registered after CORSMiddleware, so it runs first and answers OPTIONS itself
@app.middleware("http")
async def answer_options(request: Request, call_next):
    if request.method != "OPTIONS":
        return await call_next(request)
    response = Response(status_code=204, headers=preflight_headers(request.headers.get("origin")))
    response.headers["X-Request-ID"] = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
    return response

# Routes
app.include_router(health.router, tags=["Presets"])
app.include_router(key.router, tags=["Key"])
app.include_router(convert.router, tags=["Convert"])
app.include_router(download.router, tags=["Download"])


@app.on_event("startup")
async def startup_event():
    setup_logging()
    await init_redis()
    get_relay()
    logger.info(f"Relay ready, upstream {config.upstream.api_base}")


@app.on_event("shutdown")
async def shutdown_event():
    await close_relay()
    await close_redis()
