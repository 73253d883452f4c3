"""
Pre-write validation.

Structural schema checks plus the intra-document invariants a single write
can violate: unique organization slugs, unique hunt and stop ids, the org
slug matching its storage key, well-formed hunt dates and ``byDate`` keys.
Cross-document consistency (``byDate`` pointing at real hunts) is eventual
and is not checked here.
"""

from typing import Any, Iterable, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from ..models import AppDocument, OrgDocument
from ..utils.text_utils import is_valid_slug, parse_iso_date

M = TypeVar("M", bound=BaseModel)


def format_loc(loc: Iterable[Any]) -> str:
    return ".".join(str(part) for part in loc)


def from_pydantic_error(exc: PydanticValidationError, context: str) -> ValidationError:
    """Convert the first pydantic error into a registry ``ValidationError``."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field_path = format_loc(first.get("loc", ()))
    message = f"{context}: {first.get('msg', str(exc))}"
    if len(errors) > 1:
        message += f" (+{len(errors) - 1} more)"
    return ValidationError(message, field_path=field_path or None, value=first.get("input"))


def parse_model(schema: Type[M], data: Any, context: str) -> M:
    try:
        return schema.model_validate(data)
    except PydanticValidationError as exc:
        raise from_pydantic_error(exc, context) from exc


def _ensure_unique(values: Iterable[str], field_path: str, what: str) -> None:
    seen = set()
    for index, value in enumerate(values):
        if value in seen:
            raise ValidationError(
                f"Duplicate {what} '{value}'",
                field_path=f"{field_path}.{index}",
                value=value,
            )
        seen.add(value)


def validate_app_document(data: Any) -> AppDocument:
    """Validate an App document (model or raw dict) before it is written."""
    if isinstance(data, AppDocument):
        data = data.to_json_dict()
    app = parse_model(AppDocument, data, "Invalid app document")

    _ensure_unique(
        (summary.org_slug for summary in app.organizations),
        "organizations",
        "organization slug",
    )
    for day, entries in app.by_date.items():
        if parse_iso_date(day) is None:
            raise ValidationError("byDate keys must be YYYY-MM-DD", field_path=f"byDate.{day}", value=day)
        _ensure_unique(
            (f"{entry.org_slug}:{entry.hunt_id}" for entry in entries),
            f"byDate.{day}",
            "index entry",
        )
    return app


def validate_org_document(data: Any, org_slug: Optional[str] = None) -> OrgDocument:
    """
    Validate an Org document before it is written.

    Args:
        data: OrgDocument or raw camelCase dict
        org_slug: Storage key the document is about to be written under

    Raises:
        ValidationError: with ``field_path`` and ``value`` of the first violation
    """
    if isinstance(data, OrgDocument):
        data = data.to_json_dict()
    org = parse_model(OrgDocument, data, "Invalid org document")

    if not is_valid_slug(org.org.org_slug):
        raise ValidationError("Invalid organization slug", field_path="org.orgSlug", value=org.org.org_slug)
    if org_slug is not None and org.org.org_slug != org_slug:
        raise ValidationError(
            f"org.orgSlug must equal storage key '{org_slug}'",
            field_path="org.orgSlug",
            value=org.org.org_slug,
        )

    _ensure_unique((hunt.id for hunt in org.hunts), "hunts", "hunt id")
    for index, hunt in enumerate(org.hunts):
        start = parse_iso_date(hunt.start_date)
        end = parse_iso_date(hunt.end_date)
        if start is None:
            raise ValidationError("startDate must be YYYY-MM-DD", field_path=f"hunts.{index}.startDate", value=hunt.start_date)
        if end is None:
            raise ValidationError("endDate must be YYYY-MM-DD", field_path=f"hunts.{index}.endDate", value=hunt.end_date)
        if end < start:
            raise ValidationError("endDate precedes startDate", field_path=f"hunts.{index}.endDate", value=hunt.end_date)
        _ensure_unique((stop.id for stop in hunt.stops), f"hunts.{index}.stops", "stop id")
    return org
