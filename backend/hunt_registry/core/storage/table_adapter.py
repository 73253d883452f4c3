"""
Table storage adapters (SQLAlchemy async).

Documents live in wide-column style tables (see ``table_models``). Conditional
writes are ``UPDATE ... WHERE etag = :expected`` checked through the affected
row count; create-only writes are plain INSERTs guarded by the primary key.

Atomicity of one logical write:
    - ``upsert_org`` commits the Organizations row and that organization's
      Hunts projection in one transaction. Both change or neither does.
    - ``upsert_app`` commits the AppRegistry row and the whole HuntIndex
      projection in one transaction.
    - Nothing spans an Org write and an App write. A hunt created through
      ``upsert_org`` is not in the HuntIndex until a later ``upsert_app``
      succeeds; the service layer owns that gap.

Usage:
    store = TableStore("sqlite+aiosqlite:///./data/hunt_registry.db")
    repo = TableOrgRepoAdapter(store)
    app = await repo.get_app()
"""

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import date
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, List, Optional, Type, Union

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ...config import settings
from ..errors import AlreadyExistsError, BackendUnavailableError, ConcurrencyError
from ..models import EventSummary, OrgListFilter, OrgSummary
from ..ports import ETAG_ABSENT
from .base import APP_KEY, DocumentOrgRepo, OrgBackedEventRepo, RawDocument, decode_body, normalize_day, org_key
from .retry import RetryPolicy
from .table_models import (
    APP_PARTITION,
    APP_ROW,
    ORG_ROW,
    AppRegistryEntity,
    Base,
    HuntEntity,
    HuntIndexEntity,
    OrganizationEntity,
)

logger = logging.getLogger("hunt_registry.storage.table")


class TableStore:
    """
    Engine, session factory and lazy schema creation for the registry tables.

    Follows the database service pattern: one engine per store, sessions via
    an async context manager that commits on success and rolls back on error.
    """

    BACKEND = "table"

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or settings.database_url
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None
        self._schema_ready = False
        self._schema_lock = asyncio.Lock()

    @property
    def engine(self) -> AsyncEngine:
        """Get or create the async engine (lazy initialization)."""
        if self._engine is None:
            url = make_url(self.database_url)
            if url.get_backend_name() == "sqlite":
                if url.database and url.database != ":memory:":
                    Path(url.database).parent.mkdir(parents=True, exist_ok=True)
                self._engine = create_async_engine(self.database_url, echo=settings.debug)
            else:
                self._engine = create_async_engine(
                    self.database_url,
                    pool_size=settings.db_pool_size,
                    max_overflow=settings.db_max_overflow,
                    pool_pre_ping=True,
                    echo=settings.debug,
                )
            safe_url = self.database_url.split("@")[-1]
            logger.info(f"Table storage engine initialized: {safe_url}")
            self._session_factory = async_sessionmaker(
                self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
        return self._engine

    async def init_schema(self) -> None:
        """Create registry tables if they do not exist."""
        if self._schema_ready:
            return
        async with self._schema_lock:
            if self._schema_ready:
                return
            try:
                async with self.engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
            except (OperationalError, InterfaceError) as e:
                raise BackendUnavailableError(self.BACKEND, f"schema init failed: {e}") from e
            self._schema_ready = True

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Transactional session.

        Commits on success, rolls back on error. Connection-level failures
        surface as ``BackendUnavailableError``.
        """
        await self.init_schema()
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except (OperationalError, InterfaceError) as e:
                await session.rollback()
                raise BackendUnavailableError(self.BACKEND, str(e.orig or e)) from e
            except Exception:
                await session.rollback()
                raise

    async def health_check(self) -> Dict[str, Any]:
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return {"backend": self.BACKEND, "status": "healthy", "database": self.database_url.split("@")[-1]}
        except BackendUnavailableError as e:
            logger.error(f"Table storage health check failed: {e}")
            return {"backend": self.BACKEND, "status": "unhealthy", "error": str(e)}

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            self._schema_ready = False


def _new_etag() -> str:
    return uuid.uuid4().hex


async def _conditional_write(
    session: AsyncSession,
    entity: Type[Any],
    partition_key: str,
    row_key: str,
    key: str,
    values: Dict[str, Any],
    expected_etag: Optional[str],
) -> str:
    """
    Write one entity under an etag precondition inside ``session``.

    Returns:
        The new etag
    """
    etag = _new_etag()
    values = {**values, "etag": etag}
    pk = (entity.partition_key == partition_key, entity.row_key == row_key)

    if expected_etag == ETAG_ABSENT:
        session.add(entity(partition_key=partition_key, row_key=row_key, **values))
        try:
            await session.flush()
        except IntegrityError as e:
            raise AlreadyExistsError(key) from e
        return etag

    if expected_etag is not None:
        result = await session.execute(
            update(entity).where(*pk, entity.etag == expected_etag).values(**values)
        )
        if result.rowcount != 1:
            raise ConcurrencyError(key, expected_etag)
        return etag

    result = await session.execute(update(entity).where(*pk).values(**values))
    if result.rowcount == 0:
        session.add(entity(partition_key=partition_key, row_key=row_key, **values))
        try:
            await session.flush()
        except IntegrityError as e:
            raise ConcurrencyError(key, expected_etag) from e
    return etag


class TableOrgRepoAdapter(DocumentOrgRepo):
    """OrgRepoPort over the AppRegistry / Organizations tables and their projections."""

    BACKEND = "table"

    def __init__(self, store: Optional[TableStore] = None, retry_policy: Optional[RetryPolicy] = None):
        super().__init__(retry_policy=retry_policy)
        self.store = store or TableStore()

    async def _read_app(self) -> Optional[RawDocument]:
        async with self.store.session() as session:
            row = await session.get(AppRegistryEntity, (APP_PARTITION, APP_ROW))
            if row is None:
                return None
            return RawDocument(body=decode_body(row.payload, APP_KEY), etag=row.etag)

    async def _write_app(self, body: Dict[str, Any], expected_etag: Optional[str]) -> str:
        async with self.store.session() as session:
            etag = await _conditional_write(
                session, AppRegistryEntity, APP_PARTITION, APP_ROW, APP_KEY,
                {"payload": json.dumps(body)}, expected_etag,
            )
            await session.execute(delete(HuntIndexEntity))
            for day, entries in (body.get("byDate") or {}).items():
                for entry in entries:
                    session.add(HuntIndexEntity(
                        partition_key=day,
                        row_key=f"{entry['orgSlug']}:{entry['huntId']}",
                        org_slug=entry["orgSlug"],
                        hunt_id=entry["huntId"],
                    ))
            return etag

    async def _read_org(self, org_slug: str) -> Optional[RawDocument]:
        async with self.store.session() as session:
            row = await session.get(OrganizationEntity, (org_slug, ORG_ROW))
            if row is None:
                return None
            return RawDocument(body=decode_body(row.payload, org_key(org_slug)), etag=row.etag)

    async def _write_org(self, org_slug: str, body: Dict[str, Any], expected_etag: Optional[str]) -> str:
        org = body["org"]
        contacts = org.get("contacts") or []
        hunts = body.get("hunts") or []
        values = {
            "org_name": org["orgName"],
            "primary_contact_email": contacts[0].get("email") if contacts else None,
            "hunts_total": len(hunts),
            "payload": json.dumps(body),
        }
        async with self.store.session() as session:
            etag = await _conditional_write(
                session, OrganizationEntity, org_slug, ORG_ROW, org_key(org_slug), values, expected_etag,
            )
            await session.execute(delete(HuntEntity).where(HuntEntity.partition_key == org_slug))
            for hunt in hunts:
                session.add(HuntEntity(
                    partition_key=org_slug,
                    row_key=hunt["id"],
                    name=hunt["name"],
                    start_date=hunt["startDate"],
                    end_date=hunt["endDate"],
                    status=hunt.get("status", "scheduled"),
                    payload=json.dumps(hunt),
                ))
            return etag

    async def _scan_org_slugs(self) -> List[str]:
        async with self.store.session() as session:
            result = await session.execute(
                select(OrganizationEntity.partition_key).where(OrganizationEntity.row_key == ORG_ROW)
            )
            return [slug for (slug,) in result.all()]

    async def list_orgs(self, filter: Optional[OrgListFilter] = None) -> List[OrgSummary]:
        async def _query() -> List[OrgSummary]:
            async with self.store.session() as session:
                result = await session.execute(
                    select(OrganizationEntity).order_by(OrganizationEntity.partition_key)
                )
                return [
                    OrgSummary(
                        org_slug=row.partition_key,
                        org_name=row.org_name,
                        primary_contact_email=row.primary_contact_email,
                        created_at=row.created_at.isoformat() if row.created_at else None,
                        hunts_total=row.hunts_total,
                    )
                    for row in result.scalars().all()
                ]

        summaries = await self._call("list orgs", _query)
        return (filter or OrgListFilter()).apply(summaries)

    async def initialize(self) -> None:
        await self.store.init_schema()

    async def health_check(self) -> Dict[str, Any]:
        return await self.store.health_check()

    async def aclose(self) -> None:
        await self.store.close()


class TableEventRepoAdapter(OrgBackedEventRepo):
    """Events served from the HuntIndex and Hunts projections."""

    def __init__(self, org_repo: TableOrgRepoAdapter):
        super().__init__(org_repo)
        self.store = org_repo.store

    async def list_today(self, day: Union[str, date], org_filter: Optional[str] = None) -> List[EventSummary]:
        day = normalize_day(day)

        async def _query() -> List[EventSummary]:
            async with self.store.session() as session:
                stmt = (
                    select(HuntEntity, OrganizationEntity.org_name)
                    .join(
                        HuntIndexEntity,
                        (HuntIndexEntity.org_slug == HuntEntity.partition_key)
                        & (HuntIndexEntity.hunt_id == HuntEntity.row_key),
                    )
                    .join(
                        OrganizationEntity,
                        (OrganizationEntity.partition_key == HuntEntity.partition_key)
                        & (OrganizationEntity.row_key == ORG_ROW),
                    )
                    .where(HuntIndexEntity.partition_key == day)
                    .order_by(HuntEntity.partition_key, HuntEntity.row_key)
                )
                if org_filter is not None:
                    stmt = stmt.where(HuntIndexEntity.org_slug == org_filter)
                rows = (await session.execute(stmt)).all()
                indexed = await session.scalar(
                    select(func.count()).select_from(HuntIndexEntity).where(HuntIndexEntity.partition_key == day)
                )
            if org_filter is None and indexed != len(rows):
                logger.warning(f"byDate[{day}] has {indexed - len(rows)} entries without a stored hunt")
            return [
                EventSummary(
                    org_slug=hunt.partition_key,
                    hunt_id=hunt.row_key,
                    name=hunt.name,
                    start_date=hunt.start_date,
                    end_date=hunt.end_date,
                    status=hunt.status,
                    org_name=org_name,
                )
                for hunt, org_name in rows
            ]

        return await self.org_repo._call(f"list events {day}", _query)
