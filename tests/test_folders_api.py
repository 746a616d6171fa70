from tests.helpers import auth, upload


def _create(client, headers, name, **fields):
    return client.post("/api/v1/folders", json={"name": name, **fields}, headers=headers)


def test_folder_lifecycle(client):
    headers = auth("folders@example.com")
    resp = _create(client, headers, "  Work  ", color="#000000")
    assert resp.status_code == 201
    folder = resp.json()["folder"]
    assert folder["name"] == "Work"
    assert folder["file_count"] == 0

    a = upload(client, headers, name="a.pdf", folder_id=folder["id"])["id"]
    b = upload(client, headers, name="b.pdf")["id"]

    listing = client.get("/api/v1/folders", headers=headers).json()
    assert listing["max_folders"] == 3
    assert listing["folders"][0]["file_count"] == 1

    moved = client.post(f"/api/v1/folders/{folder['id']}/move", json={"file_ids": [b]}, headers=headers)
    assert moved.json()["moved_count"] == 1

    detail = client.get(f"/api/v1/folders/{folder['id']}", headers=headers).json()
    assert {f["id"] for f in detail["files"]} == {a, b}
    assert detail["folder"]["file_count"] == 2

    client.post("/api/v1/folders/none/move", json={"file_ids": [a]}, headers=headers)
    root = client.get("/api/v1/files", params={"folder_id": "none"}, headers=headers).json()
    assert [f["id"] for f in root["files"]] == [a]

    assert client.delete(f"/api/v1/folders/{folder['id']}", headers=headers).status_code == 200
    files = client.get("/api/v1/files", headers=headers).json()["files"]
    assert len(files) == 2
    assert all(f["folder_id"] is None for f in files)


def test_folder_limits_and_duplicates(client):
    headers = auth("limits@example.com")
    assert _create(client, headers, "One").status_code == 201
    dup = _create(client, headers, " One ")
    assert dup.status_code == 409
    assert _create(client, headers, "").status_code == 400
    assert _create(client, headers, "x" * 51).status_code == 400
    assert _create(client, headers, "Two").status_code == 201
    assert _create(client, headers, "Three").status_code == 201

    full = _create(client, headers, "Four")
    assert full.status_code == 403
    assert full.json()["limit"] == 3

    # other users are unaffected by this user's names
    assert _create(client, auth("else@example.com"), "One").status_code == 201


def test_rename_checks_duplicates(client):
    headers = auth("rename@example.com")
    first = _create(client, headers, "Photos").json()["folder"]
    _create(client, headers, "Docs")

    resp = client.put(f"/api/v1/folders/{first['id']}", json={"name": "Docs"}, headers=headers)
    assert resp.status_code == 409
    resp = client.put(f"/api/v1/folders/{first['id']}", json={"name": "Photos", "icon": "Camera"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["folder"]["icon"] == "Camera"


def test_include_empty_and_ownership(client):
    owner, other = auth("own@example.com"), auth("other@example.com")
    full = _create(client, owner, "Full").json()["folder"]
    _create(client, owner, "Empty")
    upload(client, owner, folder_id=full["id"])

    names = [f["name"] for f in client.get("/api/v1/folders", params={"include_empty": False}, headers=owner).json()["folders"]]
    assert names == ["Full"]

    assert client.get(f"/api/v1/folders/{full['id']}", headers=other).status_code == 404
    assert client.delete(f"/api/v1/folders/{full['id']}", headers=other).status_code == 404

    theirs = upload(client, other)["id"]
    resp = client.post(f"/api/v1/folders/{full['id']}/move", json={"file_ids": [theirs]}, headers=owner)
    assert resp.status_code == 404
    assert client.post("/api/v1/folders/none/move", json={"file_ids": []}, headers=owner).status_code == 400
