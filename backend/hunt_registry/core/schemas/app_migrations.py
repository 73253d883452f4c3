"""
App document migrations and the seeded default.

0.9.0 -> 1.0.0  Restructure the flat legacy layout into the nested ``app`` section.
1.0.0 -> 1.1.0  Add privacy and limits sections.
1.1.0 -> 1.2.0  Enable video uploads: new feature flags, larger upload limit,
                video media types.
"""

from typing import Any, Dict

from ...config import settings
from ..models import APP_SCHEMA_VERSION
from ..utils.text_utils import utc_now_iso
from .migrations import MigrationEngine

IMAGE_MEDIA_TYPES = ["image/jpeg", "image/png", "image/gif"]
VIDEO_MEDIA_TYPES = ["video/mp4", "video/quicktime", "video/webm"]
VIDEO_MAX_UPLOAD_SIZE_MB = 200

# Legacy keys consumed by the 0.9.0 step; anything else is kept under "legacy".
_LEGACY_APP_KEYS = {
    "schemaVersion", "etag", "updatedAt", "appName", "metadata", "features",
    "defaultTimezone", "defaultLocale", "mapConfig", "emailConfig", "orgs", "dateIndex",
}


def seed_app_document() -> Dict[str, Any]:
    """Default App document for an empty store: no organizations, empty index."""
    return {
        "schemaVersion": APP_SCHEMA_VERSION,
        "updatedAt": utc_now_iso(),
        "app": {
            "metadata": {"name": settings.app_name, "environment": settings.app_environment},
            "features": {
                "enableKVEvents": False,
                "enableBlobEvents": False,
                "enablePhotoUpload": True,
                "enableMapPage": False,
                "enableVideoUpload": True,
                "enableAdvancedValidation": False,
            },
            "defaults": {"timezone": settings.default_timezone, "locale": settings.default_locale},
            "privacy": {"mediaRetentionDays": 365},
            "limits": {
                "maxUploadSizeMB": VIDEO_MAX_UPLOAD_SIZE_MB,
                "maxPhotosPerTeam": 100,
                "allowedMediaTypes": IMAGE_MEDIA_TYPES + VIDEO_MEDIA_TYPES,
            },
        },
        "organizations": [],
        "byDate": {},
    }


def _drop_none(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def migrate_app_0_9_0_to_1_0_0(data: Dict[str, Any]) -> Dict[str, Any]:
    metadata = data.get("metadata") or {}
    features = data.get("features") or {}

    app: Dict[str, Any] = {
        "metadata": _drop_none({
            "name": metadata.get("appName") or data.get("appName") or settings.app_name,
            "environment": metadata.get("environment") or settings.app_environment,
            "uiVersion": metadata.get("version"),
        }),
        "features": {
            "enableKVEvents": bool(features.get("useKVStore", False)),
            "enableBlobEvents": bool(features.get("useBlobStore", False)),
            "enablePhotoUpload": features.get("photoUploads") is not False,
            "enableMapPage": bool(features.get("showMap", False)),
        },
        "defaults": {
            "timezone": data.get("defaultTimezone") or settings.default_timezone,
            "locale": data.get("defaultLocale") or settings.default_locale,
        },
    }
    map_config = data.get("mapConfig")
    if map_config:
        app["map"] = _drop_none({
            "tileProvider": map_config.get("provider"),
            "tileUrl": map_config.get("tileUrl"),
            "attribution": map_config.get("attribution"),
        })
    email_config = data.get("emailConfig")
    if email_config:
        app["email"] = _drop_none({
            "fromAddress": email_config.get("from"),
            "sendingEnabled": bool(email_config.get("enabled", False)),
        })

    organizations = []
    for org in data.get("orgs") or []:
        slug = org.get("slug") or org.get("id")
        contact = org.get("contact") or {}
        organizations.append(_drop_none({
            "orgSlug": slug,
            "orgName": org.get("name"),
            "primaryContactEmail": org.get("contactEmail") or contact.get("email"),
            "createdAt": org.get("createdAt") or utc_now_iso(),
            "orgBlobKey": f"orgs/{slug}.json",
            "summary": {
                "huntsTotal": org.get("huntCount") or 0,
                "teamsCommon": org.get("commonTeams") or [],
            },
        }))

    migrated = {
        "schemaVersion": "1.0.0",
        "updatedAt": data.get("updatedAt") or utc_now_iso(),
        "app": app,
        "organizations": organizations,
        "byDate": data.get("dateIndex") or {},
    }
    leftovers = {k: v for k, v in data.items() if k not in _LEGACY_APP_KEYS}
    if leftovers:
        migrated["legacy"] = leftovers
    return migrated


def migrate_app_1_0_0_to_1_1_0(data: Dict[str, Any]) -> Dict[str, Any]:
    app = dict(data["app"])
    app.setdefault("privacy", {"mediaRetentionDays": 365})
    app.setdefault("limits", {
        "maxUploadSizeMB": 10,
        "maxPhotosPerTeam": 100,
        "allowedMediaTypes": list(IMAGE_MEDIA_TYPES),
    })
    return {**data, "schemaVersion": "1.1.0", "app": app}


def migrate_app_1_1_0_to_1_2_0(data: Dict[str, Any]) -> Dict[str, Any]:
    app = dict(data["app"])

    features = dict(app.get("features") or {})
    features.setdefault("enableVideoUpload", True)
    features.setdefault("enableAdvancedValidation", False)
    app["features"] = features

    limits = dict(app.get("limits") or {"maxPhotosPerTeam": 100})
    limits["maxUploadSizeMB"] = max(limits.get("maxUploadSizeMB") or 0, VIDEO_MAX_UPLOAD_SIZE_MB)
    media_types = list(limits.get("allowedMediaTypes") or IMAGE_MEDIA_TYPES)
    media_types.extend(t for t in VIDEO_MEDIA_TYPES if t not in media_types)
    limits["allowedMediaTypes"] = media_types
    app["limits"] = limits

    return {**data, "schemaVersion": "1.2.0", "app": app}


def register_app_migrations(engine: MigrationEngine) -> None:
    engine.register_migration(
        "app", "0.9.0", "1.0.0", migrate_app_0_9_0_to_1_0_0,
        "Transform legacy app format to nested structure",
    )
    engine.register_migration(
        "app", "1.0.0", "1.1.0", migrate_app_1_0_0_to_1_1_0,
        "Add privacy and limits configuration sections",
    )
    engine.register_migration(
        "app", "1.1.0", "1.2.0", migrate_app_1_1_0_to_1_2_0,
        "Add video upload support and feature flags",
    )
    engine.register_fallback("app", seed_app_document)
