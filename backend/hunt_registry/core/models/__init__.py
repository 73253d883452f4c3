from .app_models import (
    APP_SCHEMA_VERSION,
    AppDefaults,
    AppDocument,
    AppDocumentBody,
    AppEmail,
    AppFeatures,
    AppLimits,
    AppMap,
    AppMetadata,
    AppPrivacy,
    AppSection,
    HuntIndexEntry,
    OrganizationSummary,
    OrgRollup,
)
from .base import RegistryModel
from .event_models import (
    DualWriteResult,
    ETagged,
    Event,
    EventSummary,
    MediaUploadOptions,
    MediaUploadResponse,
    OrgListFilter,
    OrgSummary,
    WriteOutcome,
)
from .org_models import (
    DEFAULT_TEAMS,
    HUNT_STATUS_ORDER,
    ORG_SCHEMA_VERSION,
    Contact,
    Hunt,
    HuntAccess,
    HuntAudit,
    HuntModeration,
    HuntScoring,
    HuntStatus,
    HuntUploads,
    HuntUploadStore,
    OrgDocument,
    OrgDocumentBody,
    OrgProfile,
    OrgSettings,
    Person,
    Stop,
    StopRequirement,
    Team,
    UploadCounters,
)

__all__ = [
    "APP_SCHEMA_VERSION",
    "ORG_SCHEMA_VERSION",
    "DEFAULT_TEAMS",
    "HUNT_STATUS_ORDER",
    "RegistryModel",
    "AppDefaults",
    "AppDocument",
    "AppDocumentBody",
    "AppEmail",
    "AppFeatures",
    "AppLimits",
    "AppMap",
    "AppMetadata",
    "AppPrivacy",
    "AppSection",
    "HuntIndexEntry",
    "OrganizationSummary",
    "OrgRollup",
    "DualWriteResult",
    "ETagged",
    "Event",
    "EventSummary",
    "MediaUploadOptions",
    "MediaUploadResponse",
    "OrgListFilter",
    "OrgSummary",
    "WriteOutcome",
    "Contact",
    "Hunt",
    "HuntAccess",
    "HuntAudit",
    "HuntModeration",
    "HuntScoring",
    "HuntStatus",
    "HuntUploads",
    "HuntUploadStore",
    "OrgDocument",
    "OrgDocumentBody",
    "OrgProfile",
    "OrgSettings",
    "Person",
    "Stop",
    "StopRequirement",
    "Team",
    "UploadCounters",
]
