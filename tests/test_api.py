import time

from fastapi.testclient import TestClient
from sqlalchemy import func, select

from trame_backend.api.main import create_app
from trame_backend.note_store import NoteStore
from trame_database import make_engine, make_session_factory
from trame_database.models import Session

from .conftest import WINDOW, register_and_auth


def count_sessions(ctx):
    with ctx.session_factory() as db:
        return db.execute(select(func.count()).select_from(Session)).scalar()


def count_puts(monkeypatch, ctx):
    """Wraps the note store's put so the test can see every durable write."""
    writes = []
    original = ctx.notes.put

    def recording_put(owner_id, content):
        writes.append(content)
        return original(owner_id, content)

    monkeypatch.setattr(ctx.notes, "put", recording_put)
    return writes


def test_health_check(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}

# -------- AUTH TESTS --------
def test_signup_and_login(client, app_context, user_data):
    r = client.post("/api/signup", json=user_data)
    assert r.status_code == 201
    body = r.json()
    assert body["username"] == "alice"
    assert "id" in body
    assert "password" not in body and "password_hash" not in body

    r2 = client.post("/api/login", json=user_data)
    assert r2.status_code == 200
    assert r2.json()["token"]
    assert r2.json()["token_type"] == "bearer"

    sessions_before = count_sessions(app_context)
    r3 = client.post("/api/login", json={"username": "alice", "password": "wrong"})
    assert r3.status_code == 401
    assert "set-cookie" not in r3.headers
    assert count_sessions(app_context) == sessions_before

def test_login_failures_are_indistinguishable(client, user_data):
    client.post("/api/signup", json=user_data)
    wrong_password = client.post("/api/login", json={"username": "alice", "password": "nope-nope"})
    unknown_user = client.post("/api/login", json={"username": "mallory", "password": "pw12345"})
    assert wrong_password.status_code == unknown_user.status_code == 401
    assert wrong_password.json() == unknown_user.json()

def test_duplicate_signup(client, user_data):
    assert client.post("/api/signup", json=user_data).status_code == 201
    r = client.post("/api/signup", json=user_data)
    assert r.status_code == 409
    assert r.json()["code"] == "DUPLICATE_USERNAME"

def test_weak_credentials_rejected(client):
    r = client.post("/api/signup", json={"username": "alice", "password": "123"})
    assert r.status_code == 400
    assert r.json()["code"] == "WEAK_CREDENTIAL"
    r2 = client.post("/api/signup", json={"username": "", "password": "pw12345"})
    assert r2.status_code == 400

def test_malformed_body_is_400(client):
    r = client.post("/api/signup", json={"username": "alice"})
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"

def test_profile(client, auth_header):
    r = client.get("/api/me", headers=auth_header)
    assert r.status_code == 200
    assert r.json()["username"] == "alice"

def test_login_sets_session_cookie(client, user_data):
    client.post("/api/signup", json=user_data)
    client.post("/api/login", json=user_data)
    assert client.cookies.get("trame_session")
    r = client.get("/api/note")
    assert r.status_code == 200

def test_logout_revokes_session(client, auth_header):
    r = client.post("/api/logout", headers=auth_header)
    assert r.status_code == 200
    assert client.get("/api/note", headers=auth_header).status_code == 401
    assert client.post("/api/logout", headers=auth_header).status_code == 401

def test_logout_keeps_other_sessions(client, user_data, auth_header):
    other = register_and_auth(client, user_data["username"], user_data["password"])
    client.post("/api/logout", headers=auth_header)
    r = client.get("/api/note", headers={"Authorization": f"Bearer {other}"})
    assert r.status_code == 200

# ------- NOTE --------
def test_note_requires_auth(client):
    r = client.get("/api/note")
    assert r.status_code == 401
    assert r.headers["www-authenticate"] == "Bearer"
    assert client.put("/api/note", json={"content": "x"}).status_code == 401
    garbage = {"Authorization": "Bearer not-a-real-token"}
    r2 = client.get("/api/note", headers=garbage)
    assert r2.status_code == 401
    assert r2.json() == r.json()

def test_note_starts_empty(client, auth_header):
    r = client.get("/api/note", headers=auth_header)
    assert r.status_code == 200
    assert r.json()["content"] == ""
    assert r.json()["pending"] is False

def test_burst_of_edits_is_written_once(client, app_context, auth_header, monkeypatch):
    writes = count_puts(monkeypatch, app_context)

    r = client.put("/api/note", json={"content": "a"}, headers=auth_header)
    assert r.status_code == 202
    assert r.json()["status"] == "accepted"
    time.sleep(WINDOW / 4)
    assert client.put("/api/note", json={"content": "ab"}, headers=auth_header).status_code == 202

    r2 = client.get("/api/note", headers=auth_header)
    assert r2.json()["content"] == "ab"
    assert r2.json()["pending"] is True
    assert writes == []

    time.sleep(WINDOW * 3)
    owner_id = client.get("/api/me", headers=auth_header).json()["id"]
    assert app_context.notes.get(owner_id).content == "ab"
    assert writes == ["ab"]
    assert client.get("/api/note", headers=auth_header).json()["pending"] is False

def test_logout_flushes_pending_edit(client, app_context, auth_header, monkeypatch):
    writes = count_puts(monkeypatch, app_context)
    owner_id = client.get("/api/me", headers=auth_header).json()["id"]

    client.put("/api/note", json={"content": "draft"}, headers=auth_header)
    assert client.post("/api/logout", headers=auth_header).status_code == 200
    assert app_context.notes.get(owner_id).content == "draft"

    time.sleep(WINDOW * 2)
    assert writes == ["draft"]

def test_shutdown_flushes_pending_edit(settings, user_data):
    app = create_app(settings)
    with TestClient(app) as c:
        token = register_and_auth(c, user_data["username"], user_data["password"])
        headers = {"Authorization": f"Bearer {token}"}
        owner_id = c.get("/api/me", headers=headers).json()["id"]
        c.put("/api/note", json={"content": "draft"}, headers=headers)

    engine = make_engine(settings.database_url)
    try:
        store = NoteStore(make_session_factory(engine))
        assert store.get(owner_id).content == "draft"
    finally:
        engine.dispose()

def test_note_survives_restart(settings, user_data):
    with TestClient(create_app(settings)) as c:
        token = register_and_auth(c, user_data["username"], user_data["password"])
        c.put("/api/note", json={"content": "kept"}, headers={"Authorization": f"Bearer {token}"})

    with TestClient(create_app(settings)) as c:
        r = c.get("/api/note", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 200
        assert r.json()["content"] == "kept"

def test_note_too_long(client, auth_header):
    r = client.put("/api/note", json={"content": "x" * 1001}, headers=auth_header)
    assert r.status_code == 400

def test_note_update_requires_content(client, auth_header):
    r = client.put("/api/note", json={}, headers=auth_header)
    assert r.status_code == 400
