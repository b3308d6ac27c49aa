import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from app.config.settings import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class RetryPolicy:
    """
    Bounded retry with linear-constant jittered backoff.
    Delay between attempts is base + uniform(0, jitter) milliseconds,
    never exponential, so concurrent relays do not retry in lockstep.
    """
    max_attempts: int
    base_ms: int = 5000
    jitter_ms: int = 2000
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
    rng: random.Random = field(default_factory=random.Random)
    sleep: Sleep = asyncio.sleep

    @classmethod
    def from_config(
        cls,
        retry: RetryConfig,
        max_attempts: int,
        rng: Optional[random.Random] = None,
        sleep: Optional[Sleep] = None,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    ) -> "RetryPolicy":
        return cls(
            max_attempts=max_attempts,
            base_ms=retry.backoff_base_ms,
            jitter_ms=retry.backoff_jitter_ms,
            retry_on=retry_on,
            rng=rng or random.Random(),
            sleep=sleep or asyncio.sleep,
        )

    def backoff(self, attempt: int) -> float:
        """Seconds to wait after a failed `attempt` (1-based)"""
        return (self.base_ms + self.rng.uniform(0, self.jitter_ms)) / 1000.0

    def is_retryable(self, error: BaseException) -> bool:
        return isinstance(error, self.retry_on)

    async def run(self, operation: Callable[[int], Awaitable[T]], label: str = "request") -> T:
        """
        Call `operation(attempt)` until it returns or attempts run out.
        The last error is re-raised unchanged.
        """
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        attempt = 1
        while True:
            try:
                return await operation(attempt)
            except Exception as e:
                if not self.is_retryable(e):
                    raise
                logger.warning(f"{label} attempt {attempt}/{self.max_attempts} failed: {e}")
                if attempt >= self.max_attempts:
                    raise
            await self.sleep(self.backoff(attempt))
            attempt += 1
