import json
import logging
import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_PATH = os.getenv("CONFIG_PATH", "config.json")


class RedisConfig(BaseModel):
    url: Optional[str] = Field(default=None, description="Redis connection URL (disabled when empty)")
    socket_timeout: int = Field(default=5, description="Redis socket timeout in seconds")
    key_name: str = Field(default="upstream:key", description="Redis key holding the cached upstream credential")


class UpstreamConfig(BaseModel):
    api_base: str = Field(default="https://api.mp3youtube.cc", description="Upstream API origin")
    web_base: str = Field(default="https://www.mp3youtube.cc", description="Upstream web origin used for cookie priming")
    api_key: Optional[str] = Field(default=None, description="Static credential, bypasses fetching and caching")
    key_path: str = Field(default="/v2/sanity/key", description="Credential endpoint path")
    convert_path: str = Field(default="/v2/converter", description="Conversion endpoint path")
    key_ttl_seconds: int = Field(default=3600, ge=1, description="Lifetime of a fetched credential")
    key_timeout_seconds: float = Field(default=5.0, gt=0, description="Hard timeout per credential fetch attempt")
    single_flight: bool = Field(default=True, description="Share one in-flight credential fetch between concurrent callers")

    @validator("api_base", "web_base")
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")


class RetryConfig(BaseModel):
    key_attempts: int = Field(default=5, ge=1, description="Credential fetch attempts")
    convert_attempts: int = Field(default=3, ge=1, description="Conversion attempts")
    backoff_base_ms: int = Field(default=5000, ge=0, description="Fixed delay between attempts")
    backoff_jitter_ms: int = Field(default=2000, ge=0, description="Random extra delay between attempts")


class RateLimitConfig(BaseModel):
    enabled: bool = Field(default=True, description="Enable rate limiting (requires Redis)")
    max_requests: int = Field(default=30, ge=1, description="Max requests per window")
    window_seconds: int = Field(default=60, ge=1, description="Rate limit window in seconds")


class SecurityConfig(BaseModel):
    enable_ssrf_protection: bool = Field(default=True, description="Refuse download targets on private networks")
    allow_private_ips: bool = Field(default=False, description="Allow private IP ranges")
    allow_localhost: bool = Field(default=False, description="Allow localhost access")


class StreamConfig(BaseModel):
    chunk_size: int = Field(default=64 * 1024, ge=1024, description="Bytes per relayed chunk")
    connect_timeout: float = Field(default=10.0, gt=0, description="Connect timeout for upstream calls")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field(default="%(message)s", description="Log format")
    enable_rich: bool = Field(default=True, description="Enable rich console logging")

    @validator("level")
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()


class ApiConfig(BaseModel):
    title: str = Field(default="YouTube Conversion Relay", description="API title")
    version: str = Field(default="1.0.0", description="API version")
    cors_origins: list = Field(default=["*"], description="CORS allowed origins")
    debug: bool = Field(default=False, description="Enable debug mode")


class EnvSettings(BaseSettings):
    """Flat environment variables recognised by the relay"""
    model_config = SettingsConfigDict(case_sensitive=True, extra="ignore")

    API_KEY: Optional[str] = None
    API_BASE: Optional[str] = None
    REDIS_URL: Optional[str] = None
    LOG_LEVEL: Optional[str] = None
    KEY_TTL_SECONDS: Optional[int] = None
    RATE_LIMIT_REQUESTS: Optional[int] = None
    RATE_LIMIT_WINDOW: Optional[int] = None
    ENABLE_SSRF_PROTECTION: Optional[bool] = None


class Config(BaseModel):
    """Main configuration model"""
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @classmethod
    def load_from_file(cls, config_path: str = "config.json") -> "Config":
        """Load configuration from JSON file"""
        if os.path.exists(config_path):
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    config_data = json.load(f)
                logger.info(f"Configuration loaded from {config_path}")
                return cls(**config_data)
            except Exception as e:
                logger.error(f"Failed to load config from {config_path}: {str(e)}")
                logger.info("Using default configuration")
        else:
            logger.warning(f"Config file {config_path} not found, using defaults")

        return cls()

    @classmethod
    def load_from_env(cls, env: Optional[EnvSettings] = None) -> "Config":
        """Load configuration from environment variables"""
        env = env or EnvSettings()
        config_data: Dict[str, Any] = {}

        upstream: Dict[str, Any] = {}
        if env.API_KEY:
            upstream["api_key"] = env.API_KEY
        if env.API_BASE:
            # One root controls both the API and the web origin
            upstream["api_base"] = env.API_BASE
            upstream["web_base"] = env.API_BASE
        if env.KEY_TTL_SECONDS:
            upstream["key_ttl_seconds"] = env.KEY_TTL_SECONDS
        if upstream:
            config_data["upstream"] = upstream

        if env.REDIS_URL:
            config_data["redis"] = {"url": env.REDIS_URL}

        rate_limit = {}
        if env.RATE_LIMIT_REQUESTS:
            rate_limit["max_requests"] = env.RATE_LIMIT_REQUESTS
        if env.RATE_LIMIT_WINDOW:
            rate_limit["window_seconds"] = env.RATE_LIMIT_WINDOW
        if rate_limit:
            config_data["rate_limit"] = rate_limit

        if env.ENABLE_SSRF_PROTECTION is not None:
            config_data["security"] = {"enable_ssrf_protection": env.ENABLE_SSRF_PROTECTION}

        if env.LOG_LEVEL:
            config_data["logging"] = {"level": env.LOG_LEVEL}

        return cls(**config_data) if config_data else cls()


def load_config() -> Config:
    """Load configuration with priority: config file > env vars > defaults"""
    if os.path.exists(CONFIG_PATH):
        return Config.load_from_file(CONFIG_PATH)
    logger.info(f"Config file not found at {CONFIG_PATH}, checking environment variables")
    return Config.load_from_env()


config = load_config()
