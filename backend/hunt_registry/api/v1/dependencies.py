from typing import Optional

from fastapi import Header, Request

from ...core.registry import AdapterRegistry
from ...services import OrgRegistryService


def get_registry(request: Request) -> AdapterRegistry:
    return request.app.state.registry


def get_service(request: Request) -> OrgRegistryService:
    return OrgRegistryService(get_registry(request))


def if_match(if_match: Optional[str] = Header(default=None, alias="If-Match")) -> Optional[str]:
    """Expected etag from ``If-Match``; ``*`` means any version."""
    if if_match is None or if_match.strip() == "*":
        return None
    return if_match.strip()
