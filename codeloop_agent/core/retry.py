"""
Network Retry Layer — async retry with exponential backoff.

Two ways to use it:

1. ``RetryExecutor`` — full control, returns ``RetryResult``; its
   ``should_retry`` / ``calculate_delay`` are also used directly by the
   streaming model clients, which cannot be wrapped as a single awaitable.
2. ``retry_async()`` — one-off calls, raises the last error on exhaustion.

Delays follow ``backoff_base * multiplier ** attempt`` with attempt counted
from 0, i.e. 1s, 2s, 4s for the defaults.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple, Type

import httpx

logger = logging.getLogger(__name__)


# ── Policy & Result dataclasses ─────────────────────────────────────

@dataclass
class RetryPolicy:
    """Configuration for retry behaviour. ``max_retries`` excludes the first try."""
    max_retries: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: bool = False
    retryable_exceptions: Tuple[Type[BaseException], ...] = (
        ConnectionError, TimeoutError, OSError, httpx.TransportError,
    )


@dataclass
class RetryResult:
    """Outcome of a retry-wrapped execution."""
    success: bool
    result: Any = None
    attempts: int = 0
    total_delay: float = 0.0
    last_error: Optional[Exception] = None
    errors: list = field(default_factory=list)


# ── RetryExecutor ───────────────────────────────────────────────────

class RetryExecutor:
    """Execute an async callable with configurable retry logic."""

    def __init__(self, policy: Optional[RetryPolicy] = None):
        self._policy = policy or RetryPolicy()

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def execute(self, fn: Callable, *args: Any, **kwargs: Any) -> RetryResult:
        """Call *fn* up to ``max_retries + 1`` times, backing off between failures."""
        policy = self._policy
        errors: list[Exception] = []
        total_delay = 0.0

        for attempt in range(policy.max_retries + 1):
            try:
                result = await fn(*args, **kwargs)
                return RetryResult(
                    success=True,
                    result=result,
                    attempts=attempt + 1,
                    total_delay=total_delay,
                    errors=errors,
                )
            except Exception as exc:
                errors.append(exc)
                if not self.should_retry(exc, attempt):
                    break
                delay = self.calculate_delay(attempt)
                total_delay += delay
                logger.info(
                    "Retry %d/%d after %.2fs — %s",
                    attempt + 1, policy.max_retries, delay, exc,
                )
                await asyncio.sleep(delay)

        return RetryResult(
            success=False,
            attempts=len(errors),
            total_delay=total_delay,
            last_error=errors[-1] if errors else None,
            errors=errors,
        )

    def calculate_delay(self, attempt: int) -> float:
        """Exponential backoff with optional jitter (attempt counted from 0)."""
        policy = self._policy
        delay = min(
            policy.backoff_base * (policy.backoff_multiplier ** attempt),
            policy.backoff_max,
        )
        if policy.jitter:
            delay += delay * random.random() * 0.5
        return delay

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """Decide whether *error* on *attempt* is worth retrying."""
        if attempt >= self._policy.max_retries:
            return False
        return isinstance(error, self._policy.retryable_exceptions)


# ── Standalone function ─────────────────────────────────────────────

async def retry_async(
    fn: Callable,
    *args: Any,
    policy: Optional[RetryPolicy] = None,
    **kwargs: Any,
) -> Any:
    """One-shot retry wrapper.  Raises the last error on exhaustion."""
    executor = RetryExecutor(policy)
    result = await executor.execute(fn, *args, **kwargs)
    if result.success:
        return result.result
    raise result.last_error  # type: ignore[misc]
