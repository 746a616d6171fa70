from fastapi.testclient import TestClient

from sharedrop.main import app
from sharedrop.models import utcnow

from tests.helpers import MB, auth, make_user, run_db


def _key(client, headers):
    resp = client.post("/api/v1/keys", headers=headers)
    assert resp.status_code == 200
    return {"x-api-key": resp.json()["api_key"]}


def _api_upload(client, key, **fields):
    body = {"name": "data.csv", "size": MB, "type": "text/csv", **fields}
    return client.post("/api/v1/ext/upload", json=body, headers=key)


def test_missing_or_invalid_key(client):
    assert client.get("/api/v1/ext/files").json() == {"error": "Missing API Key"}
    resp = client.get("/api/v1/ext/files", headers={"x-api-key": "sd_nope"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid API Key"}


def test_key_rotation(client):
    headers = auth("keys@example.com")
    assert client.get("/api/v1/keys", headers=headers).json() == {"api_key": None}
    first = _key(client, headers)
    second = _key(client, headers)
    assert first != second
    assert second["x-api-key"].startswith("sd_")
    assert client.get("/api/v1/keys", headers=headers).json()["api_key"] == second["x-api-key"]


def test_free_plan_has_no_api_access(client):
    key = _key(client, auth("free@example.com"))
    resp = client.get("/api/v1/ext/files", headers=key)
    assert resp.status_code == 403
    assert "no incluye acceso a la API" in resp.json()["error"]


def test_api_upload_and_manage(client, set_plan, deleted_keys):
    headers = auth("dev@example.com")
    set_plan(headers, "plus")
    key = _key(client, headers)

    resp = _api_upload(client, key, custom_link="nightly", expires_in_hours=10000)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["file_url"].endswith("/d/nightly")
    assert body["upload"]["fields"]["public_id"] == body["key"]

    listing = client.get("/api/v1/ext/files", headers=key).json()
    assert listing["pagination"]["total"] == 1
    assert listing["data"][0]["custom_link"] == "nightly"

    one = client.get(f"/api/v1/ext/files/{body['id']}", headers=key)
    assert one.json()["original_name"] == "data.csv"

    stranger = auth("stranger@example.com")
    set_plan(stranger, "pro")
    assert client.get(f"/api/v1/ext/files/{body['id']}", headers=_key(client, stranger)).status_code == 404

    assert client.delete(f"/api/v1/ext/files/{body['id']}", headers=key).status_code == 200
    assert deleted_keys == [body["key"]]
    assert client.get(f"/api/v1/ext/files/{body['id']}", headers=key).status_code == 404


def test_api_upload_limits(client, set_plan):
    headers = auth("quota@example.com")
    set_plan(headers, "plus")
    key = _key(client, headers)

    too_big = _api_upload(client, key, size=600 * MB)
    assert too_big.status_code == 403
    assert too_big.json()["limit"] == 500 * MB

    assert _api_upload(client, key, custom_link="admin").status_code == 400
    assert _api_upload(client, key, size=0).status_code == 400


def _seed_key(**fields):
    async def seed(session):
        await make_user(session, "busy@example.com", plan="plus", api_key="sd_busy", **fields)

    run_db(seed)
    return {"x-api-key": "sd_busy"}


def test_hourly_request_budget(deleted_keys):
    key = _seed_key(api_requests_count=999, api_requests_window_start=utcnow())
    with TestClient(app) as client:
        assert client.get("/api/v1/ext/files", headers=key).status_code == 200
        resp = client.get("/api/v1/ext/files", headers=key)
        assert resp.status_code == 429
        assert resp.json() == {"error": "Rate limit exceeded", "limit": 1000}


def test_daily_upload_budget(deleted_keys):
    key = _seed_key(api_uploads_count=100, api_uploads_window_start=utcnow())
    with TestClient(app) as client:
        resp = _api_upload(client, key)
        assert resp.status_code == 429
        assert resp.json()["limit"] == 100
        # reads are still allowed
        assert client.get("/api/v1/ext/files", headers=key).status_code == 200


def test_refused_upload_keeps_the_daily_budget(deleted_keys):
    key = _seed_key(api_uploads_count=99, api_uploads_window_start=utcnow())
    with TestClient(app) as client:
        assert _api_upload(client, key, size=600 * MB).status_code == 403
        assert _api_upload(client, key, custom_link="admin").status_code == 400
        assert _api_upload(client, key).status_code == 200
        resp = _api_upload(client, key)
        assert resp.status_code == 429
        assert resp.json() == {"error": "Daily upload limit exceeded", "limit": 100}
