from .event_repo import EventRepoPort
from .media import MediaFile, MediaPort, ResourceType
from .org_repo import ETAG_ABSENT, AppPayload, OrgPayload, OrgRepoPort

__all__ = [
    "ETAG_ABSENT",
    "AppPayload",
    "EventRepoPort",
    "MediaFile",
    "MediaPort",
    "OrgPayload",
    "OrgRepoPort",
    "ResourceType",
]
