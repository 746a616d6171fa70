import os

from sharedrop.core.config import settings

from tests.helpers import auth, upload


def test_admin_only(client):
    resp = client.get("/api/v1/admin/files", headers=auth("user@example.com"))
    assert resp.status_code == 403
    assert resp.json() == {"error": "Admin only"}
    assert client.get("/api/v1/admin/files").status_code == 401


def test_admin_update_bypasses_quotas(client, admin_headers):
    owner = auth("free@example.com")
    file_id = upload(client, owner)["id"]

    far = "2030-01-01T00:00:00"
    resp = client.put(
        f"/api/v1/admin/files/{file_id}",
        json={"custom_link": "promo", "expires_at": far, "password": "pw", "max_downloads": 3},
        headers=admin_headers,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["custom_link"] == "promo"
    assert body["expires_at"] == far
    assert body["is_protected"] is True
    assert body["max_downloads"] == 3

    assert client.put(f"/api/v1/admin/files/{file_id}", json={"custom_link": "login"}, headers=admin_headers).status_code == 400
    assert client.put(f"/api/v1/admin/files/{file_id}", json={"custom_link": "Bad Slug"}, headers=admin_headers).status_code == 400

    other = upload(client, auth("other@example.com"))["id"]
    clash = client.put(f"/api/v1/admin/files/{other}", json={"custom_link": "promo"}, headers=admin_headers)
    assert clash.status_code == 409
    assert client.put("/api/v1/admin/files/9999", json={"name": "x"}, headers=admin_headers).status_code == 404


def test_block_notifies_owner(client, admin_headers):
    owner = auth("owner@example.com")
    file_id = upload(client, owner, name="movie.mp4")["id"]

    resp = client.post(
        f"/api/v1/admin/files/{file_id}/block",
        json={"blocked": True, "blocked_message": "Copyright claim"},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["blocked"] is True

    blocked = client.post(f"/api/v1/files/{file_id}/download")
    assert blocked.status_code == 403
    assert blocked.json() == {"error": "Copyright claim"}

    mails = os.listdir(settings.email_log_dir)
    assert len(mails) == 1
    with open(os.path.join(settings.email_log_dir, mails[0])) as fh:
        text = fh.read()
    assert "To: owner@example.com" in text
    assert "Reason: Copyright claim" in text

    listing = client.get("/api/v1/admin/files", params={"status": "blocked"}, headers=admin_headers).json()
    assert [f["id"] for f in listing["files"]] == [file_id]
    assert listing["files"][0]["owner_email"] == "owner@example.com"

    client.post(f"/api/v1/admin/files/{file_id}/block", json={"blocked": False}, headers=admin_headers)
    assert client.post(f"/api/v1/files/{file_id}/download").status_code == 200


def test_file_search_and_delete(client, admin_headers, deleted_keys):
    upload(client, auth("a@example.com"), name="budget.xlsx")
    target = upload(client, auth("b@example.com"), name="slides.key")["id"]

    found = client.get("/api/v1/admin/files", params={"search": "b@example"}, headers=admin_headers).json()
    assert [f["id"] for f in found["files"]] == [target]
    assert client.get("/api/v1/admin/files", params={"status": "weird"}, headers=admin_headers).status_code == 400

    assert client.delete(f"/api/v1/admin/files/{target}", headers=admin_headers).status_code == 200
    assert len(deleted_keys) == 1

    actions = [a["action"] for a in client.get("/api/v1/admin/activity", headers=admin_headers).json()]
    assert "admin_delete" in actions


def test_user_management(client, admin_headers, deleted_keys):
    headers = auth("member@example.com")
    user_id = client.get("/api/v1/users/me", headers=headers).json()["id"]
    upload(client, headers)
    client.post("/api/v1/folders", json={"name": "Keep"}, headers=headers)

    resp = client.put(
        f"/api/v1/admin/users/{user_id}",
        json={"plan": "pro", "plan_expires_at": "2027-01-01T00:00:00"},
        headers=admin_headers,
    )
    assert resp.json()["plan"] == "pro"
    assert resp.json()["plan_expires_at"] == "2027-01-01T00:00:00"

    resp = client.put(f"/api/v1/admin/users/{user_id}", json={"clear_plan_expiry": True}, headers=admin_headers)
    assert resp.json()["plan_expires_at"] is None
    assert client.put(f"/api/v1/admin/users/{user_id}", json={"plan": "gold"}, headers=admin_headers).status_code == 400

    client.put(f"/api/v1/admin/users/{user_id}", json={"blocked": True, "blocked_message": "Abuse"}, headers=admin_headers)
    locked = client.get("/api/v1/users/me", headers=headers)
    assert locked.status_code == 403
    assert locked.json() == {"error": "Abuse"}

    emails = [u["email"] for u in client.get("/api/v1/admin/users", headers=admin_headers).json()]
    assert "member@example.com" in emails

    assert client.delete(f"/api/v1/admin/users/{user_id}", headers=admin_headers).json() == {"ok": True}
    assert client.get(f"/api/v1/admin/users/{user_id}", headers=admin_headers).status_code == 404
    assert len(deleted_keys) == 1
    assert client.get("/api/v1/admin/files", headers=admin_headers).json()["pagination"]["total"] == 0
