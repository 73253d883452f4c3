import pytest
from fastapi.testclient import TestClient

from hunt_registry.main import create_app


ORG_PAYLOAD = {
    "orgSlug": "vail-resort",
    "orgName": "Vail Resort",
    "contacts": [{"firstName": "Ada", "lastName": "Lovelace", "email": "ada@vail-resort.example.com"}],
}

HUNT_PAYLOAD = {
    "name": "Spring Scramble",
    "startDate": "2025-04-12",
    "endDate": "2025-04-13",
    "createdBy": "ada@vail-resort.example.com",
}


@pytest.fixture
def client(registry):
    with TestClient(create_app(registry)) as c:
        yield c


@pytest.fixture
def org(client):
    response = client.post("/api/v1/orgs", json=ORG_PAYLOAD)
    assert response.status_code == 201
    return response


@pytest.fixture
def hunt(client, org):
    response = client.post("/api/v1/orgs/vail-resort/hunts", json=HUNT_PAYLOAD)
    assert response.status_code == 201
    return response.json()


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["health_check"] == "/api/v1/health"


def test_health(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert set(data["components"]) == {"org_repo", "media"}


def test_app_document_seeded(client):
    response = client.get("/api/v1/app")
    assert response.status_code == 200
    assert response.headers["ETag"]
    assert response.json()["schemaVersion"] == "1.2.0"


class TestOrganizations:

    def test_create(self, org):
        data = org.json()
        assert data["orgSlug"] == "vail-resort"
        assert data["registrySynced"] is True
        assert org.headers["ETag"] == data["etag"]

    def test_create_duplicate(self, client, org):
        response = client.post("/api/v1/orgs", json=ORG_PAYLOAD)
        assert response.status_code == 409
        assert response.json()["error"] == "Already Exists"

    def test_create_invalid_slug(self, client):
        response = client.post("/api/v1/orgs", json=dict(ORG_PAYLOAD, orgSlug="Not A Slug"))
        assert response.status_code == 422
        assert response.json()["field_path"] == "orgSlug"

    def test_get(self, client, org):
        response = client.get("/api/v1/orgs/vail-resort")
        assert response.status_code == 200
        assert response.headers["ETag"] == org.headers["ETag"]
        assert response.json()["org"]["orgName"] == "Vail Resort"

    def test_get_missing(self, client):
        response = client.get("/api/v1/orgs/nobody")
        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "Not Found"
        assert "orgs/nobody" in body["detail"]

    def test_list(self, client, org):
        response = client.get("/api/v1/orgs", params={"slugPrefix": "vail"})
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["organizations"][0]["orgSlug"] == "vail-resort"

    def test_put_with_if_match(self, client, org):
        current = client.get("/api/v1/orgs/vail-resort")
        document = current.json()
        document["org"]["orgName"] = "Vail Mountain"

        response = client.put(
            "/api/v1/orgs/vail-resort", json=document, headers={"If-Match": current.headers["ETag"]},
        )

        assert response.status_code == 200
        assert response.json()["org"]["org"]["orgName"] == "Vail Mountain"
        assert response.headers["ETag"] != current.headers["ETag"]

    def test_put_stale_etag(self, client, org):
        stale = org.headers["ETag"]
        client.patch("/api/v1/orgs/vail-resort", json={"orgName": "Renamed"})
        document = client.get("/api/v1/orgs/vail-resort").json()

        response = client.put("/api/v1/orgs/vail-resort", json=document, headers={"If-Match": stale})

        assert response.status_code == 409
        assert response.json()["error"] == "Concurrency Conflict"

    def test_patch(self, client, org):
        response = client.patch(
            "/api/v1/orgs/vail-resort",
            json={"orgName": "Vail Mountain", "settings": {"defaultTeams": ["RED", "BLUE"]}},
            headers={"If-Match": "*"},
        )

        assert response.status_code == 200
        stored = response.json()["org"]
        assert stored["org"]["orgName"] == "Vail Mountain"
        assert stored["org"]["settings"]["defaultTeams"] == ["RED", "BLUE"]


class TestHunts:

    def test_create(self, hunt):
        assert hunt["hunt"]["id"] == "spring-scramble-20250412"
        assert hunt["indexSynced"] is True

    def test_create_for_missing_org(self, client):
        response = client.post("/api/v1/orgs/nobody/hunts", json=HUNT_PAYLOAD)
        assert response.status_code == 404

    def test_create_bad_dates(self, client, org):
        response = client.post(
            "/api/v1/orgs/vail-resort/hunts", json=dict(HUNT_PAYLOAD, endDate="2025-04-01"),
        )
        assert response.status_code == 422
        assert response.json()["field_path"] == "endDate"

    def test_status_forward(self, client, hunt):
        response = client.patch(
            "/api/v1/orgs/vail-resort/hunts/spring-scramble-20250412/status", json={"status": "active"},
        )
        assert response.status_code == 200
        assert response.json()["hunt"]["status"] == "active"

    def test_status_backwards(self, client, hunt):
        path = "/api/v1/orgs/vail-resort/hunts/spring-scramble-20250412/status"
        client.patch(path, json={"status": "completed"})

        response = client.patch(path, json={"status": "scheduled"})

        assert response.status_code == 422
        assert response.json()["error"] == "Invalid Status Transition"

    def test_reschedule(self, client, hunt):
        response = client.patch(
            "/api/v1/orgs/vail-resort/hunts/spring-scramble-20250412/schedule",
            json={"startDate": "2025-05-03", "endDate": "2025-05-03"},
        )

        assert response.status_code == 200
        assert response.json()["hunt"]["id"] == "spring-scramble-20250412"
        assert client.get("/api/v1/events", params={"date": "2025-04-12"}).json()["events"] == []
        moved = client.get("/api/v1/events", params={"date": "2025-05-03"}).json()["events"]
        assert [e["huntId"] for e in moved] == ["spring-scramble-20250412"]


class TestEvents:

    def test_list_by_date(self, client, hunt):
        response = client.get("/api/v1/events", params={"date": "2025-04-13"})

        assert response.status_code == 200
        data = response.json()
        assert data["date"] == "2025-04-13"
        assert data["events"][0]["orgSlug"] == "vail-resort"
        assert data["events"][0]["orgName"] == "Vail Resort"

    def test_bad_date(self, client):
        response = client.get("/api/v1/events", params={"date": "tomorrow"})
        assert response.status_code == 422

    def test_get_event(self, client, hunt):
        response = client.get("/api/v1/events/vail-resort/spring-scramble-20250412")
        assert response.status_code == 200
        assert response.json()["hunt"]["name"] == "Spring Scramble"

    def test_get_missing_event(self, client, org):
        response = client.get("/api/v1/events/vail-resort/nope")
        assert response.status_code == 404


class TestMedia:

    def test_upload_photo(self, client, hunt):
        response = client.post(
            "/api/v1/orgs/vail-resort/hunts/spring-scramble-20250412/media",
            files={"file": ("stop.jpg", b"\xff\xd8\xff\xe0jpeg", "image/jpeg")},
            data={"stopId": "s1"},
        )

        assert response.status_code == 201
        assert response.json()["mediaType"] == "image"
        assert response.headers["ETag"]
        org = client.get("/api/v1/orgs/vail-resort").json()
        assert org["hunts"][0]["uploads"]["summary"]["photos"] == 1

    def test_disallowed_type(self, client, hunt):
        response = client.post(
            "/api/v1/orgs/vail-resort/hunts/spring-scramble-20250412/media",
            files={"file": ("notes.pdf", b"%PDF-1.4", "application/pdf")},
        )
        assert response.status_code == 422
        assert response.json()["field_path"] == "contentType"
