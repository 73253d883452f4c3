"""
Tests for the optimistic read / mutate / write controller.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from hunt_registry.core.errors import AlreadyExistsError, BackendUnavailableError, ConcurrencyError
from hunt_registry.core.models import DualWriteResult, ETagged, WriteOutcome
from hunt_registry.services import run_optimistic


class FakeDocument:
    """Versioned list held in memory, with an injectable write failure queue."""

    def __init__(self):
        self.items = []
        self.version = 0
        self.failures = []
        self.writes = 0

    async def read(self):
        return ETagged(data=list(self.items), etag=str(self.version))

    async def write(self, data, etag):
        self.writes += 1
        if self.failures:
            failure = self.failures.pop(0)
            if failure == "apply-then-timeout":
                self.items, self.version = data, self.version + 1
                raise BackendUnavailableError("fake", "timed out", outcome_unknown=True)
            if failure == "conflict":
                # Someone else wrote in between.
                self.items = self.items + ["other"]
                self.version += 1
            else:
                raise failure
        if etag != str(self.version):
            raise ConcurrencyError("doc", etag)
        self.items, self.version = data, self.version + 1
        return str(self.version)


def add(item):
    def mutate(items):
        if item in items:
            return False
        items.append(item)
        return True
    return mutate


class TestRunOptimistic:

    @pytest.mark.asyncio
    async def test_first_attempt(self):
        doc = FakeDocument()

        result = await run_optimistic(doc.read, add("a"), doc.write, max_retries=1)

        assert result.changed
        assert result.attempts == 1
        assert result.etag == "1"
        assert doc.items == ["a"]

    @pytest.mark.asyncio
    async def test_conflict_reapplied_on_fresh_data(self):
        doc = FakeDocument()
        doc.failures = ["conflict"]

        result = await run_optimistic(doc.read, add("a"), doc.write, max_retries=1)

        assert result.attempts == 2
        assert doc.items == ["other", "a"]

    @pytest.mark.asyncio
    async def test_gives_up_after_budget(self):
        doc = FakeDocument()
        doc.failures = ["conflict", "conflict"]

        with pytest.raises(ConcurrencyError):
            await run_optimistic(doc.read, add("a"), doc.write, max_retries=1)

        assert doc.writes == 2
        assert "a" not in doc.items

    @pytest.mark.asyncio
    async def test_no_change_skips_write(self):
        doc = FakeDocument()
        doc.items = ["a"]

        result = await run_optimistic(doc.read, add("a"), doc.write, max_retries=1)

        assert not result.changed
        assert doc.writes == 0

    @pytest.mark.asyncio
    async def test_unknown_outcome_rechecked(self):
        doc = FakeDocument()
        doc.failures = ["apply-then-timeout"]

        result = await run_optimistic(doc.read, add("a"), doc.write, max_retries=1)

        assert not result.changed
        assert result.attempts == 2
        assert doc.items == ["a"]
        assert doc.writes == 1

    @pytest.mark.asyncio
    async def test_known_outage_not_retried(self):
        doc = FakeDocument()
        doc.failures = [BackendUnavailableError("fake", "down")]

        with pytest.raises(BackendUnavailableError):
            await run_optimistic(doc.read, add("a"), doc.write, max_retries=3)
        assert doc.writes == 1

    @pytest.mark.asyncio
    async def test_already_exists_not_retried(self):
        doc = FakeDocument()
        doc.failures = [AlreadyExistsError("doc")]

        with pytest.raises(AlreadyExistsError):
            await run_optimistic(doc.read, add("a"), doc.write, max_retries=3)
        assert doc.writes == 1

    @pytest.mark.asyncio
    async def test_mutate_errors_propagate(self):
        doc = FakeDocument()

        def mutate(items):
            raise ValueError("bad change")

        with pytest.raises(ValueError):
            await run_optimistic(doc.read, mutate, doc.write)
        assert doc.writes == 0

    @pytest.mark.asyncio
    async def test_dual_write_result(self):
        read = AsyncMock(return_value=ETagged(data=[], etag="e0"))
        outcome = DualWriteResult(
            primary=WriteOutcome(ok=True, etag="e1"),
            secondary=WriteOutcome(ok=False, error=RuntimeError("down")),
        )
        write = AsyncMock(return_value=outcome)

        result = await run_optimistic(read, add("a"), write)

        assert result.etag == "e1"
        assert result.write_result is outcome
        write.assert_awaited_once_with(["a"], "e0")

    @pytest.mark.asyncio
    async def test_budget_from_settings(self, monkeypatch):
        from hunt_registry.config import settings

        monkeypatch.setattr(settings, "concurrency_max_retries", 0)
        doc = FakeDocument()
        doc.failures = ["conflict"]

        with pytest.raises(ConcurrencyError):
            await run_optimistic(doc.read, add("a"), doc.write)


class TestConcurrentWriters:

    @pytest.mark.asyncio
    async def test_concurrent_hunt_creation_keeps_both(self, service, org_request, hunt_request):
        await service.create_organization(org_request())

        first, second = await asyncio.gather(
            service.create_hunt("vail-resort", hunt_request(name="Morning Hunt")),
            service.create_hunt("vail-resort", hunt_request(name="Evening Hunt")),
        )

        org = (await service.get_org("vail-resort")).data
        assert sorted(h.id for h in org.hunts) == ["evening-hunt-20250412", "morning-hunt-20250412"]
        assert first.index_synced and second.index_synced

        events = await service.list_today("2025-04-12")
        assert sorted(e.hunt_id for e in events) == ["evening-hunt-20250412", "morning-hunt-20250412"]
        app = (await service.get_app()).data
        assert app.find_organization("vail-resort").summary.hunts_total == 2

    @pytest.mark.asyncio
    async def test_concurrent_org_creation_registers_both(self, service, org_request):
        await asyncio.gather(
            service.create_organization(org_request("acme", "Acme")),
            service.create_organization(org_request("breck", "Breck")),
        )

        slugs = [o.org_slug for o in await service.list_orgs()]
        assert sorted(slugs) == ["acme", "breck"]

    @pytest.mark.asyncio
    async def test_same_org_created_twice(self, service, org_request):
        results = await asyncio.gather(
            service.create_organization(org_request()),
            service.create_organization(org_request()),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], AlreadyExistsError)
