"""
App document models.

The App document is the global singleton: application metadata and feature
flags, the denormalized list of organization summaries and the ``byDate``
secondary index mapping ISO dates to the hunts running on that day.
"""

from typing import Dict, List, Literal, Optional

from pydantic import EmailStr, Field

from .base import RegistryModel

APP_SCHEMA_VERSION = "1.2.0"


class AppMetadata(RegistryModel):
    name: str
    environment: str
    ui_version: Optional[str] = None


class AppFeatures(RegistryModel):
    """Feature flags. Flags added by later schema versions arrive as extra fields."""
    enable_kv_events: bool = Field(default=False, alias="enableKVEvents")
    enable_blob_events: bool = False
    enable_photo_upload: bool = True
    enable_map_page: bool = False


class AppDefaults(RegistryModel):
    timezone: str = "America/Denver"
    locale: str = "en-US"


class AppMap(RegistryModel):
    tile_provider: Optional[str] = None
    tile_url: Optional[str] = None
    attribution: Optional[str] = None


class AppEmail(RegistryModel):
    from_address: Optional[EmailStr] = None
    sending_enabled: bool = False


class AppPrivacy(RegistryModel):
    media_retention_days: int = 365
    data_deletion_contact: Optional[EmailStr] = None


class AppLimits(RegistryModel):
    max_upload_size_mb: int = Field(default=10, alias="maxUploadSizeMB")
    max_photos_per_team: int = 100
    allowed_media_types: List[str] = Field(default_factory=lambda: ["image/jpeg", "image/png"])


class AppSection(RegistryModel):
    metadata: AppMetadata
    features: AppFeatures = Field(default_factory=AppFeatures)
    defaults: AppDefaults = Field(default_factory=AppDefaults)
    map: Optional[AppMap] = None
    email: Optional[AppEmail] = None
    privacy: Optional[AppPrivacy] = None
    limits: Optional[AppLimits] = None


class OrgRollup(RegistryModel):
    hunts_total: int = 0
    teams_common: List[str] = Field(default_factory=list)


class OrganizationSummary(RegistryModel):
    """Projection of one organization embedded in the App document."""
    org_slug: str
    org_name: str
    primary_contact_email: EmailStr
    created_at: str
    org_blob_key: str
    summary: Optional[OrgRollup] = None


class HuntIndexEntry(RegistryModel):
    org_slug: str
    hunt_id: str


class AppDocumentBody(RegistryModel):
    """Fields shared by every non-legacy App schema version."""
    updated_at: str
    app: AppSection
    organizations: List[OrganizationSummary] = Field(default_factory=list)
    by_date: Dict[str, List[HuntIndexEntry]] = Field(default_factory=dict)

    def find_organization(self, org_slug: str) -> Optional[OrganizationSummary]:
        for summary in self.organizations:
            if summary.org_slug == org_slug:
                return summary
        return None


class AppDocument(AppDocumentBody):
    """Current App document."""
    schema_version: Literal["1.2.0"] = APP_SCHEMA_VERSION
