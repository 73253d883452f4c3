"""MediaPort - upload photos and videos, hand back pointer objects."""

from abc import ABC, abstractmethod
from typing import Any, BinaryIO, Dict, Literal, Union

from ..models import MediaUploadOptions, MediaUploadResponse

MediaFile = Union[bytes, BinaryIO]
ResourceType = Literal["image", "video"]


class MediaPort(ABC):

    PROVIDER: str = "abstract"

    @abstractmethod
    async def upload_image(self, file: MediaFile, options: MediaUploadOptions) -> MediaUploadResponse:
        ...

    @abstractmethod
    async def upload_video(self, file: MediaFile, options: MediaUploadOptions) -> MediaUploadResponse:
        ...

    @abstractmethod
    async def delete_media(self, public_id: str, resource_type: ResourceType = "image") -> bool:
        """Returns False when the media did not exist."""
        ...

    async def health_check(self) -> Dict[str, Any]:
        return {"provider": self.PROVIDER, "status": "unknown"}
