"""
Deadline and backoff wrapper for backend calls.

Adapters translate SDK failures into registry errors first; this module
then retries ``BackendUnavailableError`` with exponential backoff and bounds
every attempt with ``asyncio.wait_for``.

A write that hits the deadline is not retried: it may already have been
applied, so ``BackendUnavailableError(outcome_unknown=True)`` is raised and
the caller re-reads before deciding what to do.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from ...config import settings
from ..errors import BackendUnavailableError

logger = logging.getLogger("hunt_registry.storage.retry")

T = TypeVar("T")


@dataclass
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0
    timeout: Optional[float] = 10.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_retries=settings.storage_max_retries,
            base_delay=settings.storage_retry_base_delay,
            max_delay=settings.storage_retry_max_delay,
            timeout=settings.storage_timeout_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (0-based)."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)


async def run_with_retry(
    policy: RetryPolicy,
    backend: str,
    operation: str,
    func: Callable[[], Awaitable[T]],
    is_write: bool = False,
) -> T:
    """
    Execute ``func`` with a per-attempt deadline and backoff on transient errors.

    Args:
        policy: Retry budget, delays and deadline
        backend: Backend name used in errors and logs
        operation: Short description for logs ("read org acme")
        func: Zero-argument coroutine factory, called once per attempt
        is_write: Timed-out writes raise immediately with an unknown outcome

    Returns:
        Result from func

    Raises:
        BackendUnavailableError: retries exhausted or a write timed out
    """
    last_error: Optional[BackendUnavailableError] = None

    for attempt in range(policy.max_retries + 1):
        try:
            if policy.timeout:
                return await asyncio.wait_for(func(), timeout=policy.timeout)
            return await func()
        except asyncio.TimeoutError:
            if is_write:
                logger.warning(f"{backend}: {operation} timed out after {policy.timeout}s; outcome unknown")
                raise BackendUnavailableError(
                    backend, f"{operation} timed out after {policy.timeout}s", outcome_unknown=True
                )
            last_error = BackendUnavailableError(backend, f"{operation} timed out after {policy.timeout}s")
        except BackendUnavailableError as e:
            if e.outcome_unknown or not e.retryable:
                raise
            last_error = e

        if attempt < policy.max_retries:
            delay = policy.delay_for(attempt)
            logger.warning(
                f"Transient error (attempt {attempt + 1}/{policy.max_retries + 1}) "
                f"during {operation}: {last_error}. Waiting {delay:.2f}s before retry..."
            )
            await asyncio.sleep(delay)

    logger.error(f"{backend}: {operation} failed after {policy.max_retries + 1} attempts")
    raise last_error
