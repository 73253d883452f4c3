"""
Adapter Registry / Factory.

The single composition point that decides which adapter backs each port.
One ``AdapterRegistry`` is constructed at process start (the FastAPI app
keeps it in ``app.state.registry``; commands build their own) and passed by
reference to everything that needs a repository.

Selection is deterministic for a given ``RegistryConfig`` and performs no
I/O: adapters create their clients and engines lazily on first use. Adapter
instances are cached so connection pools are reused; ``reset()`` drops the
cache (and any overrides) for test isolation.

Usage:
    registry = AdapterRegistry.from_settings()
    org_repo = registry.get_org_repo()
    app = await org_repo.get_app()
"""

import logging
from dataclasses import asdict, dataclass, replace
from typing import Any, Callable, Dict, Optional

from ..config import MediaProvider, Settings, StoreKind, settings as default_settings
from .ports import EventRepoPort, MediaPort, OrgRepoPort
from .storage import (
    BlobEventRepoAdapter,
    BlobOrgRepoAdapter,
    DocumentOrgRepo,
    DualWriteOrgRepo,
    MemoryEventRepoAdapter,
    MemoryMediaAdapter,
    MemoryOrgRepoAdapter,
    MinioMediaAdapter,
    OrgBackedEventRepo,
    TableEventRepoAdapter,
    TableOrgRepoAdapter,
)

logger = logging.getLogger("hunt_registry.registry")

PORTS = ("event_repo", "org_repo", "media")


@dataclass(frozen=True)
class RegistryConfig:
    """Typed adapter selection."""
    primary_store: StoreKind = "blob"
    secondary_store: Optional[StoreKind] = None
    dual_write: bool = False
    read_new_store_first: bool = False
    media_provider: MediaProvider = "minio"

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "RegistryConfig":
        source = source or default_settings
        return cls(
            primary_store=source.primary_store,
            secondary_store=source.secondary_store,
            dual_write=source.dual_write,
            read_new_store_first=source.read_new_store_first,
            media_provider=source.media_provider,
        )

    def validate(self) -> None:
        """
        Raises:
            ValueError: inconsistent staged-migration flags
        """
        if (self.dual_write or self.read_new_store_first) and self.secondary_store is None:
            raise ValueError("dual_write and read_new_store_first require a secondary_store")
        if self.secondary_store is not None and self.secondary_store == self.primary_store:
            raise ValueError("secondary_store must differ from primary_store")

    @property
    def uses_secondary(self) -> bool:
        return self.secondary_store is not None and (self.dual_write or self.read_new_store_first)


class AdapterRegistry:
    """Builds and caches one adapter per port for a configuration snapshot."""

    # Registry of available store backends
    _store_builders: Dict[str, Callable[[], DocumentOrgRepo]] = {
        "blob": BlobOrgRepoAdapter,
        "table": TableOrgRepoAdapter,
        "mock": MemoryOrgRepoAdapter,
    }

    _media_builders: Dict[str, Callable[[], MediaPort]] = {
        "minio": MinioMediaAdapter,
        "mock": MemoryMediaAdapter,
    }

    def __init__(self, config: Optional[RegistryConfig] = None):
        self.config = config or RegistryConfig.from_settings()
        self.config.validate()
        self._stores: Dict[str, DocumentOrgRepo] = {}
        self._instances: Dict[str, Any] = {}
        self._overrides: Dict[str, Any] = {}

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "AdapterRegistry":
        return cls(RegistryConfig.from_settings(source))

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def _store(self, kind: str) -> DocumentOrgRepo:
        if kind not in self._stores:
            builder = self._store_builders.get(kind)
            if builder is None:
                available = ", ".join(self._store_builders)
                raise ValueError(f"Unsupported store: {kind}. Available stores: {available}")
            self._stores[kind] = builder()
            logger.info(f"Created {kind} store adapter")
        return self._stores[kind]

    def _resolve(self, port: str, build: Callable[[], Any]) -> Any:
        if port in self._overrides:
            return self._overrides[port]
        if port not in self._instances:
            self._instances[port] = build()
        return self._instances[port]

    def get_org_repo(self) -> OrgRepoPort:
        def build() -> OrgRepoPort:
            primary = self._store(self.config.primary_store)
            if not self.config.uses_secondary:
                return primary
            return DualWriteOrgRepo(
                primary,
                self._store(self.config.secondary_store),
                read_new_store_first=self.config.read_new_store_first,
            )

        return self._resolve("org_repo", build)

    def get_event_repo(self) -> EventRepoPort:
        def build() -> EventRepoPort:
            org_repo = self.get_org_repo()
            if isinstance(org_repo, TableOrgRepoAdapter):
                return TableEventRepoAdapter(org_repo)
            if isinstance(org_repo, BlobOrgRepoAdapter):
                return BlobEventRepoAdapter(org_repo)
            if isinstance(org_repo, MemoryOrgRepoAdapter):
                return MemoryEventRepoAdapter(org_repo)
            return OrgBackedEventRepo(org_repo)

        return self._resolve("event_repo", build)

    def get_media(self) -> MediaPort:
        def build() -> MediaPort:
            builder = self._media_builders.get(self.config.media_provider)
            if builder is None:
                available = ", ".join(self._media_builders)
                raise ValueError(
                    f"Unsupported media provider: {self.config.media_provider}. Available: {available}"
                )
            return builder()

        return self._resolve("media", build)

    # -------------------------------------------------------------------------
    # Test isolation / reconfiguration
    # -------------------------------------------------------------------------

    def override(self, port: str, instance: Any) -> None:
        """Force ``instance`` for ``port`` until the next ``reset()``."""
        if port not in PORTS:
            raise ValueError(f"Unknown port: {port}. Ports: {', '.join(PORTS)}")
        self._overrides[port] = instance
        # Event repos wrap the org repo; rebuild them against the override.
        if port == "org_repo":
            self._instances.pop("event_repo", None)

    def reset(self) -> None:
        """Drop cached adapters and overrides. Does not close connections; see ``aclose``."""
        self._stores.clear()
        self._instances.clear()
        self._overrides.clear()

    def configure(self, **changes: Any) -> RegistryConfig:
        """Replace configuration fields and reset the cache."""
        config = replace(self.config, **changes)
        config.validate()
        self.config = config
        self.reset()
        logger.info(f"Adapter registry reconfigured: {asdict(config)}")
        return config

    def status(self) -> Dict[str, Any]:
        return {
            "config": asdict(self.config),
            "cached_ports": sorted(self._instances),
            "overridden_ports": sorted(self._overrides),
            "stores": sorted(self._stores),
        }

    async def aclose(self) -> None:
        """Close pooled connections of every cached store and reset."""
        for store in self._stores.values():
            await store.aclose()
        self.reset()
