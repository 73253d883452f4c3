"""
Concurrency Controller.

Optimistic read / mutate / write with bounded retry, layered over the
repository ports:

    READ    load the document and its etag
    MUTATE  apply the change in memory; report whether anything changed
    WRITE   write with the etag from READ
    -> success: done
    -> ConcurrencyError: back to READ with fresh data, until the budget runs out

Mutations must be re-appliable to fresh data: they merge uniquely keyed
items (a hunt by id, an org summary by slug, an index entry) and report
``False`` when the change is already present. That also covers writes
whose outcome is unknown after a timeout: the re-read shows whether the
write landed, and an already-applied change is not written twice.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from ..config import settings
from ..core.errors import AlreadyExistsError, BackendUnavailableError, ConcurrencyError, RegistryError
from ..core.models import DualWriteResult, ETagged

logger = logging.getLogger("hunt_registry.concurrency")

T = TypeVar("T")

Reader = Callable[[], Awaitable[ETagged[T]]]
Mutator = Callable[[T], bool]
Writer = Callable[[T, str], Awaitable[Any]]


@dataclass
class OptimisticResult(Generic[T]):
    data: T
    etag: str
    changed: bool
    attempts: int
    write_result: Optional[DualWriteResult] = None


async def run_optimistic(
    read: Reader,
    mutate: Mutator,
    write: Writer,
    max_retries: Optional[int] = None,
    key: str = "document",
) -> OptimisticResult:
    """
    Run one logical write under the optimistic concurrency policy.

    Args:
        read: Loads the current document and etag
        mutate: Applies the change in place, returns True if the document changed
        write: Persists ``(document, expected_etag)``; returns an etag or DualWriteResult
        max_retries: Extra attempts after a conflict (default: settings.concurrency_max_retries)
        key: Document name for logs

    Returns:
        OptimisticResult with the final document and etag

    Raises:
        ConcurrencyError: still conflicting after the retry budget
        BackendUnavailableError: transient failure surfaced by the adapter
    """
    budget = settings.concurrency_max_retries if max_retries is None else max_retries
    last_error: Optional[RegistryError] = None

    for attempt in range(budget + 1):
        current = await read()
        changed = mutate(current.data)
        if not changed:
            return OptimisticResult(data=current.data, etag=current.etag, changed=False, attempts=attempt + 1)

        try:
            outcome = await write(current.data, current.etag)
        except AlreadyExistsError:
            raise
        except ConcurrencyError as e:
            last_error = e
            logger.info(f"Conflict writing {key} (attempt {attempt + 1}/{budget + 1}); re-reading")
            continue
        except BackendUnavailableError as e:
            if not e.outcome_unknown:
                raise
            last_error = e
            logger.warning(f"Write of {key} has unknown outcome (attempt {attempt + 1}/{budget + 1}); re-reading")
            continue

        if isinstance(outcome, DualWriteResult):
            return OptimisticResult(
                data=current.data, etag=outcome.etag, changed=True, attempts=attempt + 1, write_result=outcome
            )
        return OptimisticResult(data=current.data, etag=outcome, changed=True, attempts=attempt + 1)

    logger.warning(f"Giving up on {key} after {budget + 1} attempts")
    raise last_error
