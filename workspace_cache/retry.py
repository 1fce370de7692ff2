"""Retry policy for calls to the remote directory service.

One policy object is configured once and handed to the directory client, so
backoff rules live in a single place instead of at each call site. Only
transient errors (RemoteUnavailableError and its RateLimitedError subclass)
are retried; everything else propagates on the first failure.
"""

import asyncio
import os
import random
from typing import Awaitable, Callable, Mapping, Optional, TypeVar

from pydantic import BaseModel, Field

from .errors import RateLimitedError, RemoteUnavailableError
from .logging import setup_logging

logger = setup_logging()

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class RetryPolicy(BaseModel):
    """Exponential backoff with jitter.

    Attributes:
        max_retries: Retries after the first attempt (0 disables retrying)
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay, including Retry-After
        exponential_base: Growth factor between consecutive delays
        jitter_factor: Random spread applied to each delay, as a fraction
    """

    model_config = {"frozen": True}

    max_retries: int = Field(3, ge=0)
    base_delay: float = Field(1.0, ge=0.0)
    max_delay: float = Field(30.0, ge=0.0)
    exponential_base: float = Field(2.0, ge=1.0)
    jitter_factor: float = Field(0.1, ge=0.0, le=1.0)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "RetryPolicy":
        """Read NOTION_CLI_MAX_RETRIES, NOTION_CLI_BASE_DELAY (ms) and NOTION_CLI_MAX_DELAY (ms)."""
        env = os.environ if env is None else env
        values: dict[str, float] = {}
        if env.get("NOTION_CLI_MAX_RETRIES"):
            values["max_retries"] = int(env["NOTION_CLI_MAX_RETRIES"])
        if env.get("NOTION_CLI_BASE_DELAY"):
            values["base_delay"] = int(env["NOTION_CLI_BASE_DELAY"]) / 1000
        if env.get("NOTION_CLI_MAX_DELAY"):
            values["max_delay"] = int(env["NOTION_CLI_MAX_DELAY"]) / 1000
        return cls.model_validate(values)

    def compute_delay(self, attempt: int, retry_after: Optional[float] = None, rng: Optional[random.Random] = None) -> float:
        """Seconds to wait before retry number ``attempt`` (1-based)."""
        if retry_after is not None:
            return min(retry_after, self.max_delay)
        delay = min(self.base_delay * self.exponential_base ** (attempt - 1), self.max_delay)
        spread = (rng or random).uniform(-1.0, 1.0) * self.jitter_factor * delay
        return max(0.0, delay + spread)

    async def call(
        self,
        fn: Callable[[], Awaitable[T]],
        context: str = "",
        sleep: Sleep = asyncio.sleep,
    ) -> T:
        """Run ``fn`` until it succeeds, fails permanently, or retries run out."""
        attempt = 0
        while True:
            try:
                return await fn()
            except RemoteUnavailableError as exc:
                attempt += 1
                if attempt > self.max_retries:
                    raise
                retry_after = exc.retry_after if isinstance(exc, RateLimitedError) else None
                delay = self.compute_delay(attempt, retry_after)
                label = "Rate limited" if isinstance(exc, RateLimitedError) else "Transient failure"
                logger.warning(
                    {
                        "message": f"{label}, retrying",
                        "context": context,
                        "attempt": attempt,
                        "max_retries": self.max_retries,
                        "delay_s": round(delay, 3),
                        "error": str(exc),
                    }
                )
                await sleep(delay)
