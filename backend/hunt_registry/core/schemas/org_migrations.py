"""
Org document migrations.

0.9.0 -> 1.0.0  Restructure legacy organizations: nested ``org`` profile,
                normalized contacts, default teams, fully-shaped hunts and stops.
1.0.0 -> 1.1.0  Upload tracking on teams and hunts.
1.1.0 -> 1.2.0  Typed stop requirements (default: one required photo) and assets.

No fallback is registered: an organization's identity cannot be
synthesized, so a missing or unknown version fails the read.
"""

from typing import Any, Dict, List, Optional

from ..models import DEFAULT_TEAMS
from ..utils.text_utils import slugify, utc_now_iso
from .migrations import MigrationEngine

DEFAULT_REQUIREMENTS = [{"type": "photo", "required": True, "description": "Photo required"}]

_LEGACY_ORG_KEYS = {
    "schemaVersion", "etag", "updatedAt", "orgSlug", "slug", "orgName", "name",
    "contacts", "contact", "contactEmail", "defaultTeams", "teams", "timezone",
    "defaultTimezone", "hunts",
}


def _drop_none(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def _to_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _empty_counters() -> Dict[str, int]:
    return {"total": 0, "photos": 0, "videos": 0}


# =============================================================================
# 0.9.0 -> 1.0.0
# =============================================================================

def _legacy_contacts(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    if isinstance(data.get("contacts"), list):
        return [
            _drop_none({
                "firstName": c.get("firstName") or c.get("first_name") or "Unknown",
                "lastName": c.get("lastName") or c.get("last_name") or "Contact",
                "email": c.get("email") or c.get("contactEmail"),
                "role": c.get("role") or c.get("position"),
            })
            for c in data["contacts"]
        ]
    contact = data.get("contact")
    if contact:
        return [_drop_none({
            "firstName": contact.get("firstName") or "Unknown",
            "lastName": contact.get("lastName") or "Contact",
            "email": contact.get("email"),
            "role": contact.get("role"),
        })]
    return [{
        "firstName": "Unknown",
        "lastName": "Contact",
        "email": data.get("contactEmail") or "unknown@example.com",
    }]


def _legacy_person(source: Dict[str, Any], full_name: Optional[str], email: Optional[str], fallback_last: str):
    names = (full_name or "").split(" ")
    return {
        "firstName": source.get("firstName") or names[0] or "Unknown",
        "lastName": source.get("lastName") or " ".join(names[1:]) or fallback_last,
        "email": source.get("email") or email or "",
    }


def _legacy_stop(stop: Dict[str, Any]) -> Dict[str, Any]:
    hints = stop.get("hints") if isinstance(stop.get("hints"), list) else []
    requirements = stop.get("requirements")
    return _drop_none({
        "id": stop.get("id") or stop.get("stopId"),
        "title": stop.get("title") or stop.get("name"),
        "lat": _to_float(stop.get("lat") or stop.get("latitude")),
        "lng": _to_float(stop.get("lng") or stop.get("longitude")),
        "radiusMeters": stop.get("radiusMeters") or stop.get("radius") or 50,
        "description": stop.get("description"),
        "difficulty": stop.get("difficulty"),
        "hints": [
            _drop_none({"text": h, "delay": None} if isinstance(h, str) else {"text": h.get("text"), "delay": h.get("delay")})
            for h in hints
        ],
        "requirements": [
            _drop_none({
                "type": r.get("type") or "photo",
                "required": r.get("required") is not False,
                "description": r.get("description"),
            })
            for r in requirements
        ] if requirements else [dict(r) for r in DEFAULT_REQUIREMENTS],
        "assets": stop.get("assets") or [],
        "audit": stop.get("audit"),
    })


def _legacy_rules(hunt_id: str, rules: Dict[str, Any]) -> Dict[str, Any]:
    acknowledgement = rules.get("acknowledgement") or {}
    content = rules.get("content") or {}
    return _drop_none({
        "id": rules.get("id") or f"{hunt_id}-rules",
        "version": rules.get("version") or "1.0",
        "updatedAt": rules.get("updatedAt") or utc_now_iso(),
        "acknowledgement": {
            "required": bool(acknowledgement.get("required", False)),
            "text": acknowledgement.get("text") or "I acknowledge the hunt rules",
        },
        "content": {
            "format": content.get("format") or "markdown",
            "body": content.get("body") or rules.get("text") or "",
        },
        "categories": rules.get("categories"),
    })


def _legacy_hunt(hunt: Dict[str, Any]) -> Dict[str, Any]:
    hunt_id = hunt.get("id") or hunt.get("huntId")
    access = hunt.get("access") or {}
    scoring = hunt.get("scoring") or {}
    moderation = hunt.get("moderation") or {}
    time = hunt.get("time")
    location = hunt.get("location")

    migrated = {
        "id": hunt_id,
        "slug": hunt.get("slug") or slugify(str(hunt_id or "")),
        "name": hunt.get("name") or hunt.get("title"),
        "startDate": hunt.get("startDate") or hunt.get("date"),
        "endDate": hunt.get("endDate") or hunt.get("date"),
        "time": _drop_none({"start": time.get("start"), "end": time.get("end"), "timezone": time.get("timezone")}) if time else None,
        "location": _drop_none({"city": location.get("city"), "state": location.get("state"), "zip": location.get("zip")}) if location else None,
        "status": hunt.get("status") or "scheduled",
        "access": _drop_none({
            "visibility": hunt.get("visibility") or access.get("visibility") or "public",
            "joinCode": hunt.get("joinCode") or access.get("joinCode"),
            "pinRequired": bool(hunt.get("pinRequired") or access.get("pinRequired")),
        }),
        "scoring": {
            "basePerStop": scoring.get("basePerStop") or hunt.get("pointsPerStop") or 10,
            "bonusCreative": scoring.get("bonusCreative") or hunt.get("bonusPoints") or 5,
        },
        "moderation": {
            "required": bool(moderation.get("required") or hunt.get("requiresApproval")),
            "reviewers": moderation.get("reviewers") or hunt.get("reviewers") or [],
        },
        "uploads": {
            "summary": _drop_none({
                "total": hunt.get("uploadCount") or 0,
                "photos": hunt.get("photoCount") or 0,
                "videos": hunt.get("videoCount") or 0,
                "lastUploadedAt": hunt.get("lastUpload"),
            }),
        },
        "stops": [_legacy_stop(stop) for stop in hunt.get("stops") or []],
        "rules": _legacy_rules(hunt_id, hunt["rules"]) if hunt.get("rules") else None,
        "audit": hunt.get("audit"),
    }
    if hunt.get("teams") is not None:
        migrated["teams"] = [
            {
                "name": team.get("name") or team.get("teamName"),
                "captain": _legacy_person(
                    team.get("captain") or {}, team.get("captainName"), team.get("captainEmail"), "Captain"
                ),
                "members": team.get("members") or [],
            }
            for team in hunt["teams"]
        ]
    if hunt.get("teamCaptain"):
        migrated["teamCaptain"] = _legacy_person(hunt["teamCaptain"], None, None, "Captain")
    if hunt.get("teamMembers"):
        migrated["teamMembers"] = hunt["teamMembers"]
    return _drop_none(migrated)


def migrate_org_0_9_0_to_1_0_0(data: Dict[str, Any]) -> Dict[str, Any]:
    settings = {
        "defaultTeams": data.get("defaultTeams") or data.get("teams") or list(DEFAULT_TEAMS),
    }
    timezone = data.get("timezone") or data.get("defaultTimezone")
    if timezone:
        settings["timezone"] = timezone

    migrated = {
        "schemaVersion": "1.0.0",
        "updatedAt": data.get("updatedAt") or utc_now_iso(),
        "org": {
            "orgSlug": data.get("orgSlug") or data.get("slug"),
            "orgName": data.get("orgName") or data.get("name") or "Unknown Organization",
            "contacts": _legacy_contacts(data),
            "settings": settings,
        },
        "hunts": [_legacy_hunt(hunt) for hunt in data.get("hunts") or []],
    }
    leftovers = {k: v for k, v in data.items() if k not in _LEGACY_ORG_KEYS}
    if leftovers:
        migrated["legacy"] = leftovers
    return migrated


# =============================================================================
# 1.0.0 -> 1.1.0
# =============================================================================

def migrate_org_1_0_0_to_1_1_0(data: Dict[str, Any]) -> Dict[str, Any]:
    hunts = []
    for hunt in data.get("hunts") or []:
        hunt = dict(hunt)
        if hunt.get("teams") is not None:
            hunt["teams"] = [
                {**team, "uploads": team.get("uploads") or _empty_counters()}
                for team in hunt["teams"]
            ]
        if not hunt.get("uploads"):
            hunt["uploads"] = {
                "store": {
                    "blobsPrefix": f"hunts/{hunt.get('id')}/uploads",
                    "cloudinaryFolder": f"scavenger/entries/{hunt.get('slug')}",
                },
                "summary": _empty_counters(),
            }
        hunts.append(hunt)
    return {**data, "schemaVersion": "1.1.0", "hunts": hunts}


# =============================================================================
# 1.1.0 -> 1.2.0
# =============================================================================

def migrate_org_1_1_0_to_1_2_0(data: Dict[str, Any]) -> Dict[str, Any]:
    hunts = []
    for hunt in data.get("hunts") or []:
        stops = []
        for stop in hunt.get("stops") or []:
            requirements = stop.get("requirements")
            stops.append({
                **stop,
                "requirements": [
                    {**req, "type": req.get("type") or "photo"} for req in requirements
                ] if requirements else [dict(r) for r in DEFAULT_REQUIREMENTS],
                "assets": stop.get("assets") or [],
            })
        hunts.append({**hunt, "stops": stops})
    return {**data, "schemaVersion": "1.2.0", "hunts": hunts}


def register_org_migrations(engine: MigrationEngine) -> None:
    engine.register_migration(
        "org", "0.9.0", "1.0.0", migrate_org_0_9_0_to_1_0_0,
        "Transform legacy organization format to nested structure",
    )
    engine.register_migration(
        "org", "1.0.0", "1.1.0", migrate_org_1_0_0_to_1_1_0,
        "Add team upload tracking and hunt upload metadata",
    )
    engine.register_migration(
        "org", "1.1.0", "1.2.0", migrate_org_1_1_0_to_1_2_0,
        "Add typed stop requirements and assets",
    )
