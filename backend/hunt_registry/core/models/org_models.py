"""
Organization document models.

One Org document exists per organization, keyed by ``orgSlug``. It owns the
organization profile and every hunt the organization has ever run; archived
hunts stay in the document.
"""

from typing import List, Literal, Optional

from pydantic import EmailStr, Field

from .base import RegistryModel

ORG_SCHEMA_VERSION = "1.2.0"

DEFAULT_TEAMS = ["RED", "GREEN", "BLUE", "YELLOW", "ORANGE"]

HuntStatus = Literal["scheduled", "active", "completed", "archived"]

# Hunts only ever move forward through this order.
HUNT_STATUS_ORDER = ("scheduled", "active", "completed", "archived")


class Contact(RegistryModel):
    first_name: str
    last_name: str
    email: EmailStr
    role: Optional[str] = None


class OrgSettings(RegistryModel):
    default_teams: List[str] = Field(default_factory=lambda: list(DEFAULT_TEAMS))
    timezone: Optional[str] = None


class OrgProfile(RegistryModel):
    org_slug: str
    org_name: str
    contacts: List[Contact] = Field(default_factory=list)
    settings: OrgSettings = Field(default_factory=OrgSettings)


# =============================================================================
# HUNT
# =============================================================================

class HuntAccess(RegistryModel):
    visibility: Literal["public", "invite", "private"] = "public"
    join_code: Optional[str] = None
    pin_required: bool = False


class HuntScoring(RegistryModel):
    base_per_stop: int = 10
    bonus_creative: int = 5


class HuntModeration(RegistryModel):
    required: bool = False
    reviewers: List[str] = Field(default_factory=list)


class HuntTime(RegistryModel):
    start: Optional[str] = None
    end: Optional[str] = None
    timezone: Optional[str] = None


class HuntLocation(RegistryModel):
    city: str
    state: str
    zip: str


class Person(RegistryModel):
    first_name: str
    last_name: str
    email: Optional[str] = None


class UploadCounters(RegistryModel):
    total: int = 0
    photos: int = 0
    videos: int = 0
    last_uploaded_at: Optional[str] = None
    last_media_id: Optional[str] = None


class Team(RegistryModel):
    name: str
    captain: Person
    members: List[Person] = Field(default_factory=list)
    uploads: Optional[UploadCounters] = None


class HuntUploadStore(RegistryModel):
    blobs_prefix: Optional[str] = None
    cloudinary_folder: Optional[str] = None


class HuntUploads(RegistryModel):
    store: Optional[HuntUploadStore] = None
    summary: UploadCounters = Field(default_factory=UploadCounters)


class Hint(RegistryModel):
    text: str
    delay: Optional[int] = None


class StopRequirement(RegistryModel):
    type: Literal["photo", "video", "text"] = "photo"
    required: bool = True
    description: Optional[str] = None


class StopAsset(RegistryModel):
    type: Literal["image", "video", "audio"]
    url: str
    caption: Optional[str] = None


class StopAudit(RegistryModel):
    created_by: str
    created_at: str
    last_modified_by: Optional[str] = None
    last_modified_at: Optional[str] = None


class Stop(RegistryModel):
    id: str
    title: str
    lat: float
    lng: float
    radius_meters: float = 50
    description: Optional[str] = None
    difficulty: Optional[Literal["easy", "medium", "hard"]] = None
    hints: List[Hint] = Field(default_factory=list)
    requirements: List[StopRequirement] = Field(default_factory=list)
    assets: List[StopAsset] = Field(default_factory=list)
    audit: Optional[StopAudit] = None


class RulesAcknowledgement(RegistryModel):
    required: bool = False
    text: str = "I acknowledge that I have read and agree to follow these rules."


class RulesContent(RegistryModel):
    format: Literal["markdown", "plain", "html"] = "markdown"
    body: str


class Rules(RegistryModel):
    id: str
    version: str = "1.0"
    updated_at: str
    acknowledgement: RulesAcknowledgement = Field(default_factory=RulesAcknowledgement)
    content: RulesContent
    categories: Optional[List[str]] = None


class HuntStats(RegistryModel):
    teams_registered: int = 0
    photos_submitted: int = 0
    completed_stops: int = 0


class HuntAudit(RegistryModel):
    created_by: str
    created_at: str
    archived_at: Optional[str] = None


class Hunt(RegistryModel):
    id: str
    slug: str
    name: str
    start_date: str
    end_date: str
    time: Optional[HuntTime] = None
    location: Optional[HuntLocation] = None
    status: HuntStatus = "scheduled"
    access: HuntAccess = Field(default_factory=HuntAccess)
    scoring: HuntScoring = Field(default_factory=HuntScoring)
    moderation: HuntModeration = Field(default_factory=HuntModeration)
    # An organization uses either the multi-team model or the single-team fields.
    teams: Optional[List[Team]] = None
    team_captain: Optional[Person] = None
    team_members: Optional[List[Person]] = None
    uploads: Optional[HuntUploads] = None
    stops: List[Stop] = Field(default_factory=list)
    rules: Optional[Rules] = None
    stats: Optional[HuntStats] = None
    audit: Optional[HuntAudit] = None


# =============================================================================
# DOCUMENT
# =============================================================================

class OrgDocumentBody(RegistryModel):
    """Fields shared by every non-legacy Org schema version."""
    updated_at: str
    org: OrgProfile
    hunts: List[Hunt] = Field(default_factory=list)

    def find_hunt(self, hunt_id: str) -> Optional[Hunt]:
        for hunt in self.hunts:
            if hunt.id == hunt_id:
                return hunt
        return None


class OrgDocument(OrgDocumentBody):
    """Current Org document."""
    schema_version: Literal["1.2.0"] = ORG_SCHEMA_VERSION
