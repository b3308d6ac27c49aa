from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional
from redis.asyncio import Redis

if TYPE_CHECKING:
    from app.services.relay import Relay

@dataclass
class RuntimeState:
    """Centralized runtime state"""
    redis: Optional[Redis] = None
    relay: Optional["Relay"] = None

state = RuntimeState()
