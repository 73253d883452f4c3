"""
Date Index Maintainer.

Keeps the App document's ``byDate`` index in step with the hunts stored in
Org documents. Every hunt is listed under each calendar date from its
``startDate`` to its ``endDate`` inclusive.

Index updates are separate App writes made after the Org write has
succeeded, so the index can lag behind the Org documents. ``rebuild()``
repairs any drift by scanning every Org document.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Iterable, List, Optional

from ..config import settings
from ..core.errors import MigrationIntegrityError, NotFoundError, ValidationError
from ..core.models import AppDocument, Hunt, HuntIndexEntry, OrganizationSummary, OrgDocument, OrgRollup
from ..core.ports import OrgRepoPort
from ..core.utils.text_utils import parse_iso_date, utc_now_iso
from .concurrency import OptimisticResult, run_optimistic

logger = logging.getLogger("hunt_registry.date_index")


def dates_between(start: str, end: str, max_span_days: Optional[int] = None) -> List[str]:
    """
    Every ISO date from ``start`` to ``end`` inclusive.

    Raises:
        ValidationError: malformed dates, end before start, or a span longer
            than ``max_span_days``
    """
    start_day = parse_iso_date(start)
    end_day = parse_iso_date(end)
    if start_day is None:
        raise ValidationError("startDate must be YYYY-MM-DD", field_path="startDate", value=start)
    if end_day is None:
        raise ValidationError("endDate must be YYYY-MM-DD", field_path="endDate", value=end)
    if end_day < start_day:
        raise ValidationError("endDate precedes startDate", field_path="endDate", value=end)

    span = (end_day - start_day).days + 1
    limit = settings.max_hunt_span_days if max_span_days is None else max_span_days
    if span > limit:
        raise ValidationError(
            f"Hunt spans {span} days; at most {limit} can be indexed",
            field_path="endDate",
            value=end,
        )
    return [(start_day + timedelta(days=offset)).isoformat() for offset in range(span)]


def add_index_entries(app: AppDocument, org_slug: str, hunt_id: str, dates: Iterable[str]) -> bool:
    changed = False
    for day in dates:
        entries = app.by_date.setdefault(day, [])
        if not any(e.org_slug == org_slug and e.hunt_id == hunt_id for e in entries):
            entries.append(HuntIndexEntry(org_slug=org_slug, hunt_id=hunt_id))
            changed = True
    return changed


def remove_index_entries(
    app: AppDocument, org_slug: str, hunt_id: str, dates: Optional[Iterable[str]] = None
) -> bool:
    changed = False
    for day in list(dates if dates is not None else app.by_date.keys()):
        entries = app.by_date.get(day)
        if not entries:
            continue
        kept = [e for e in entries if not (e.org_slug == org_slug and e.hunt_id == hunt_id)]
        if len(kept) != len(entries):
            changed = True
            if kept:
                app.by_date[day] = kept
            else:
                del app.by_date[day]
    return changed


def set_hunts_total(app: AppDocument, org_slug: str, hunts_total: Optional[int]) -> bool:
    if hunts_total is None:
        return False
    summary = app.find_organization(org_slug)
    if summary is None:
        return False
    if summary.summary is None:
        summary.summary = OrgRollup()
    # Hunts are never removed from an Org document; a smaller count is stale.
    if summary.summary.hunts_total >= hunts_total:
        return False
    summary.summary.hunts_total = hunts_total
    return True


@dataclass
class RebuildReport:
    orgs_scanned: int = 0
    orgs_skipped: List[str] = field(default_factory=list)
    dates_indexed: int = 0
    entries_indexed: int = 0
    summaries_added: List[str] = field(default_factory=list)
    summaries_removed: List[str] = field(default_factory=list)
    changed: bool = False
    etag: Optional[str] = None


class DateIndexMaintainer:
    """Conditional App writes that add, remove, move or rebuild ``byDate`` entries."""

    def __init__(self, org_repo: OrgRepoPort, max_retries: Optional[int] = None):
        self.org_repo = org_repo
        self.max_retries = max_retries

    async def _update(self, mutate, key: str) -> OptimisticResult:
        return await run_optimistic(
            self.org_repo.get_app,
            mutate,
            self.org_repo.write_app,
            max_retries=self.max_retries,
            key=key,
        )

    async def add_hunt(self, org_slug: str, hunt: Hunt, hunts_total: Optional[int] = None) -> OptimisticResult:
        dates = dates_between(hunt.start_date, hunt.end_date)

        def mutate(app: AppDocument) -> bool:
            added = add_index_entries(app, org_slug, hunt.id, dates)
            counted = set_hunts_total(app, org_slug, hunts_total)
            return added or counted

        result = await self._update(mutate, f"byDate +{org_slug}/{hunt.id}")
        if result.changed:
            logger.info(f"Indexed hunt {org_slug}/{hunt.id} on {len(dates)} date(s)")
        return result

    async def remove_hunt(
        self, org_slug: str, hunt_id: str, start: Optional[str] = None, end: Optional[str] = None
    ) -> OptimisticResult:
        """Remove a hunt from the index; without dates every date is searched."""
        dates = dates_between(start, end) if start and end else None

        def mutate(app: AppDocument) -> bool:
            return remove_index_entries(app, org_slug, hunt_id, dates)

        return await self._update(mutate, f"byDate -{org_slug}/{hunt_id}")

    async def move_hunt(
        self,
        org_slug: str,
        hunt_id: str,
        old_start: str,
        old_end: str,
        new_start: str,
        new_end: str,
    ) -> OptimisticResult:
        old_dates = set(dates_between(old_start, old_end))
        new_dates = dates_between(new_start, new_end)

        def mutate(app: AppDocument) -> bool:
            removed = remove_index_entries(app, org_slug, hunt_id, old_dates - set(new_dates))
            added = add_index_entries(app, org_slug, hunt_id, new_dates)
            return removed or added

        return await self._update(mutate, f"byDate ~{org_slug}/{hunt_id}")

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    async def _load_orgs(self, report: RebuildReport) -> Dict[str, OrgDocument]:
        orgs: Dict[str, OrgDocument] = {}
        for slug in await self.org_repo.list_org_slugs():
            report.orgs_scanned += 1
            try:
                orgs[slug] = (await self.org_repo.get_org(slug)).data
            except (NotFoundError, ValidationError, MigrationIntegrityError) as e:
                logger.error(f"Skipping org '{slug}' during index rebuild: {e}")
                report.orgs_skipped.append(slug)
        return orgs

    @staticmethod
    def _expected_index(orgs: Dict[str, OrgDocument]) -> Dict[str, List[HuntIndexEntry]]:
        by_date: Dict[str, List[HuntIndexEntry]] = {}
        for slug, org in sorted(orgs.items()):
            for hunt in org.hunts:
                try:
                    dates = dates_between(hunt.start_date, hunt.end_date)
                except ValidationError as e:
                    logger.warning(f"Not indexing {slug}/{hunt.id}: {e}")
                    continue
                for day in dates:
                    by_date.setdefault(day, []).append(HuntIndexEntry(org_slug=slug, hunt_id=hunt.id))
        return dict(sorted(by_date.items()))

    @staticmethod
    def _keep_skipped(
        expected: Dict[str, List[HuntIndexEntry]],
        current: Dict[str, List[HuntIndexEntry]],
        skipped: List[str],
    ) -> Dict[str, List[HuntIndexEntry]]:
        """Expected index plus the current entries of orgs that could not be read."""
        by_date = {day: list(entries) for day, entries in expected.items()}
        for day, entries in current.items():
            for entry in entries:
                if entry.org_slug in skipped:
                    by_date.setdefault(day, []).append(HuntIndexEntry(org_slug=entry.org_slug, hunt_id=entry.hunt_id))
        return dict(sorted(by_date.items()))

    async def rebuild(self) -> RebuildReport:
        """
        Rebuild ``byDate`` and the organization summaries from the Org documents.

        Summaries and ``byDate`` entries of unreadable orgs are left alone;
        summaries of orgs with no document are dropped; orgs without a summary
        get one when they have a contact email.
        """
        report = RebuildReport()
        orgs = await self._load_orgs(report)
        expected = self._expected_index(orgs)

        def mutate(app: AppDocument) -> bool:
            report.summaries_added.clear()
            report.summaries_removed.clear()
            changed = False

            current = {k: [e.model_dump() for e in v] for k, v in app.by_date.items()}
            rebuilt = self._keep_skipped(expected, app.by_date, report.orgs_skipped)
            target = {k: [e.model_dump() for e in v] for k, v in rebuilt.items()}
            if current != target:
                app.by_date = rebuilt
                changed = True

            summaries: List[OrganizationSummary] = []
            for summary in app.organizations:
                org = orgs.get(summary.org_slug)
                if org is None and summary.org_slug not in report.orgs_skipped:
                    report.summaries_removed.append(summary.org_slug)
                    changed = True
                    continue
                if org is not None:
                    rollup = summary.summary or OrgRollup()
                    if summary.org_name != org.org.org_name or rollup.hunts_total != len(org.hunts):
                        summary.org_name = org.org.org_name
                        rollup.hunts_total = len(org.hunts)
                        summary.summary = rollup
                        changed = True
                summaries.append(summary)

            known = {s.org_slug for s in summaries}
            for slug, org in sorted(orgs.items()):
                if slug in known:
                    continue
                if not org.org.contacts:
                    logger.warning(f"Org '{slug}' has no contact; cannot add an organization summary")
                    continue
                summaries.append(OrganizationSummary(
                    org_slug=slug,
                    org_name=org.org.org_name,
                    primary_contact_email=org.org.contacts[0].email,
                    created_at=utc_now_iso(),
                    org_blob_key=f"orgs/{slug}.json",
                    summary=OrgRollup(hunts_total=len(org.hunts), teams_common=list(org.org.settings.default_teams)),
                ))
                report.summaries_added.append(slug)
                changed = True

            app.organizations = summaries
            return changed

        result = await self._update(mutate, "byDate rebuild")
        report.changed = result.changed
        report.etag = result.etag
        report.dates_indexed = len(expected)
        report.entries_indexed = sum(len(v) for v in expected.values())
        logger.info(
            f"Index rebuild: {report.orgs_scanned} orgs scanned, {report.entries_indexed} entries "
            f"on {report.dates_indexed} dates, changed={report.changed}"
        )
        return report
