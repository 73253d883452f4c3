# backend/hunt_registry/services/__init__.py
"""Registry services layered over the storage ports."""

from .concurrency import OptimisticResult, run_optimistic
from .date_index import DateIndexMaintainer, RebuildReport, dates_between
from .org_registry_service import (
    CreateHuntRequest,
    CreateOrgRequest,
    OrgRegistryService,
    UpdateOrgRequest,
)

__all__ = [
    "CreateHuntRequest",
    "CreateOrgRequest",
    "DateIndexMaintainer",
    "OptimisticResult",
    "OrgRegistryService",
    "RebuildReport",
    "UpdateOrgRequest",
    "dates_between",
    "run_optimistic",
]
