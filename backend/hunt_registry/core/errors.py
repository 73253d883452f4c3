"""
Typed error taxonomy for the registry storage layer.

Every failure that crosses a port boundary is one of these classes; no
backend SDK exception escapes an adapter. The service layer decides what
to retry:

- ``ValidationError`` / ``MigrationIntegrityError``: caller or data bug, never retried.
- ``ConcurrencyError``: etag precondition failed, retried by the concurrency controller.
- ``BackendUnavailableError``: transient failure, retried in the adapter with backoff.
"""

from typing import Any, Optional


class RegistryError(RuntimeError):
    """Base class for all registry errors."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(RegistryError):
    """A payload failed its structural schema or an intra-document invariant."""

    def __init__(self, message: str, field_path: Optional[str] = None, value: Any = None):
        super().__init__(message, status_code=422)
        self.field_path = field_path
        self.value = value


class MigrationIntegrityError(RegistryError):
    """A document could not be brought to the current schema version."""

    def __init__(self, message: str, doc_type: str, from_version: Optional[str] = None):
        super().__init__(message, status_code=500)
        self.doc_type = doc_type
        self.from_version = from_version


class ConcurrencyError(RegistryError):
    """The stored etag did not match the expected one."""

    def __init__(self, key: str, expected_etag: Optional[str] = None, message: Optional[str] = None):
        super().__init__(message or f"Document '{key}' was modified concurrently", status_code=409)
        self.key = key
        self.expected_etag = expected_etag


class AlreadyExistsError(ConcurrencyError):
    """A create-only write found an existing document."""

    def __init__(self, key: str):
        super().__init__(key, message=f"Document '{key}' already exists")


class NotFoundError(RegistryError):
    def __init__(self, key: str):
        super().__init__(f"Document '{key}' not found", status_code=404)
        self.key = key


class BackendUnavailableError(RegistryError):
    """
    Transient backend failure that survived adapter retries.

    ``outcome_unknown`` is set when a write timed out: it may or may not have
    applied, so the caller has to re-read before deciding to retry.
    ``retryable`` is False for failures a retry cannot fix (denied access,
    missing bucket).
    """

    def __init__(self, backend: str, message: str, outcome_unknown: bool = False, retryable: bool = True):
        super().__init__(f"{backend}: {message}", status_code=503)
        self.backend = backend
        self.outcome_unknown = outcome_unknown
        self.retryable = retryable


class StatusTransitionError(RegistryError):
    """A hunt status change would move backwards through the lifecycle."""

    def __init__(self, hunt_id: str, current: str, requested: str):
        super().__init__(
            f"Hunt '{hunt_id}' cannot move from '{current}' to '{requested}'",
            status_code=422,
        )
        self.hunt_id = hunt_id
        self.current = current
        self.requested = requested
