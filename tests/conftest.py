import pytest
from fastapi.testclient import TestClient

from sharedrop.core.config import settings
from sharedrop.main import app
from sharedrop.utils import storage

from tests.helpers import ADMIN, auth, reset_engine


@pytest.fixture(autouse=True)
def fresh_db(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "database_url", f"sqlite+aiosqlite:///{tmp_path / 'sharedrop.db'}")
    monkeypatch.setattr(settings, "email_log_dir", str(tmp_path / "mail"))
    reset_engine()
    yield
    reset_engine()


@pytest.fixture
def deleted_keys(monkeypatch):
    keys = []

    async def fake_delete(file_key):
        keys.append(file_key)
        return {"result": "ok"}

    monkeypatch.setattr(storage, "delete_object", fake_delete)
    return keys


@pytest.fixture
def client(deleted_keys):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_headers():
    return auth(ADMIN, role="admin")


@pytest.fixture
def set_plan(client, admin_headers):
    """Put the account behind ``headers`` on ``plan`` and return its user id."""

    def _set(headers, plan, **extra):
        me = client.get("/api/v1/users/me", headers=headers)
        assert me.status_code == 200, me.text
        user_id = me.json()["id"]
        resp = client.put(
            f"/api/v1/admin/users/{user_id}",
            json={"plan": plan, **extra},
            headers=admin_headers,
        )
        assert resp.status_code == 200, resp.text
        return user_id

    return _set
