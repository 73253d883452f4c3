import copy
import os
import shutil
import tempfile
from pathlib import Path


# Configure the registry for tests before importing hunt_registry modules.
# Use the system temp directory for the SQLite database.
_SESSION_DIR = Path(tempfile.mkdtemp(prefix="hunt_registry_pytest_"))

os.environ.setdefault("PRIMARY_STORE", "mock")
os.environ.setdefault("MEDIA_PROVIDER", "mock")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_SESSION_DIR / 'registry.db'}")

# No real backoff or long deadlines in tests
os.environ.setdefault("STORAGE_RETRY_BASE_DELAY", "0")
os.environ.setdefault("STORAGE_RETRY_MAX_DELAY", "0")
os.environ.setdefault("STORAGE_TIMEOUT_SECONDS", "5")

import pytest

from hunt_registry.core.registry import AdapterRegistry, RegistryConfig
from hunt_registry.core.storage import MemoryOrgRepoAdapter, MemoryStore, RetryPolicy
from hunt_registry.services import CreateHuntRequest, CreateOrgRequest, OrgRegistryService


def pytest_sessionfinish(session, exitstatus):
    """Cleanup temporary test files after the test session."""
    shutil.rmtree(_SESSION_DIR, ignore_errors=True)


@pytest.fixture
def session_dir() -> Path:
    return _SESSION_DIR


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_retries=2, base_delay=0, max_delay=0, timeout=1.0)


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def org_repo(memory_store, fast_retry) -> MemoryOrgRepoAdapter:
    return MemoryOrgRepoAdapter(memory_store, retry_policy=fast_retry)


@pytest.fixture
def registry(org_repo):
    registry = AdapterRegistry(RegistryConfig(primary_store="mock", media_provider="mock"))
    registry.override("org_repo", org_repo)
    yield registry
    registry.reset()


@pytest.fixture
def service(registry) -> OrgRegistryService:
    return OrgRegistryService(registry)


def _org_request(slug: str = "vail-resort", name: str = "Vail Resort") -> CreateOrgRequest:
    return CreateOrgRequest.model_validate({
        "orgSlug": slug,
        "orgName": name,
        "contacts": [{"firstName": "Ada", "lastName": "Lovelace", "email": f"ada@{slug}.example.com"}],
    })


def _hunt_request(name: str = "Spring Scramble", start: str = "2025-04-12", end: str = "2025-04-13", **extra) -> CreateHuntRequest:
    return CreateHuntRequest.model_validate({
        "name": name,
        "startDate": start,
        "endDate": end,
        "createdBy": "ada@vail-resort.example.com",
        **extra,
    })


@pytest.fixture
def org_request():
    return _org_request


@pytest.fixture
def hunt_request():
    return _hunt_request


# -----------------------------------------------------------------------------
# Stored documents as older clients wrote them
# -----------------------------------------------------------------------------

LEGACY_APP = {
    "schemaVersion": "0.9.0",
    "updatedAt": "2024-06-01T10:00:00.000Z",
    "appName": "Vail Hunt",
    "features": {"photoUploads": True, "showMap": True},
    "defaultTimezone": "America/Denver",
    "orgs": [
        {
            "slug": "vail-resort",
            "name": "Vail Resort",
            "contactEmail": "ops@vail.example.com",
            "createdAt": "2024-01-01T00:00:00.000Z",
            "huntCount": 1,
        }
    ],
    "dateIndex": {"2024-07-04": [{"orgSlug": "vail-resort", "huntId": "fourth-hunt-20240704"}]},
    "analytics": {"provider": "plausible"},
}

LEGACY_ORG = {
    "schemaVersion": "0.9.0",
    "orgSlug": "vail-resort",
    "orgName": "Vail Resort",
    "contactEmail": "ops@vail.example.com",
    "hunts": [
        {
            "id": "fourth-hunt-20240704",
            "name": "Fourth Hunt",
            "date": "2024-07-04",
            "pointsPerStop": 20,
            "stops": [{"stopId": "s1", "name": "Gondola", "latitude": "39.64", "longitude": "-106.37"}],
        }
    ],
}

APP_V1_0_0 = {
    "schemaVersion": "1.0.0",
    "updatedAt": "2024-08-01T00:00:00.000Z",
    "app": {
        "metadata": {"name": "Vail Hunt", "environment": "production"},
        "features": {"enableKVEvents": False, "enableBlobEvents": True, "enablePhotoUpload": True, "enableMapPage": True},
        "defaults": {"timezone": "America/Denver", "locale": "en-US"},
    },
    "organizations": [],
    "byDate": {},
}


@pytest.fixture
def legacy_app() -> dict:
    return copy.deepcopy(LEGACY_APP)


@pytest.fixture
def legacy_org() -> dict:
    return copy.deepcopy(LEGACY_ORG)


@pytest.fixture
def app_v1_0_0() -> dict:
    return copy.deepcopy(APP_V1_0_0)


def _org_document(slug: str = "acme", name: str = "Acme Hunts", hunts=None) -> dict:
    return {
        "schemaVersion": "1.2.0",
        "updatedAt": "2025-01-01T00:00:00.000Z",
        "org": {
            "orgSlug": slug,
            "orgName": name,
            "contacts": [{"firstName": "Grace", "lastName": "Hopper", "email": f"grace@{slug}.example.com"}],
        },
        "hunts": hunts or [],
    }


@pytest.fixture
def org_document():
    return _org_document
