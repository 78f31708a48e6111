import pytest
from fastapi.testclient import TestClient

from trame_backend.api.main import create_app
from trame_backend.config import Settings
from trame_backend.context import AppContext

WINDOW = 0.2


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a throwaway SQLite file, with cheap hashing and a short debounce window."""
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'trame-test.db'}",
        debounce_seconds=WINDOW,
        max_note_length=1000,
        argon2_memory_cost=1024,
        argon2_rounds=1,
        argon2_parallelism=1,
        log_format="text",
        static_dir="",
    )

@pytest.fixture
def context(settings):
    """A fully wired AppContext, closed after the test."""
    ctx = AppContext.create(settings)
    yield ctx
    ctx.close()

@pytest.fixture
def app(settings):
    return create_app(settings)

@pytest.fixture
def client(app):
    """TestClient running the app lifespan (context created on enter, closed on exit)."""
    with TestClient(app) as c:
        yield c

@pytest.fixture
def app_context(client):
    return client.app.state.context

@pytest.fixture
def user_data():
    """Returns default credentials for signup."""
    return {"username": "alice", "password": "pw12345"}

def register_and_auth(client, username, password):
    """Helper for signing up then logging in to get a session token."""
    r1 = client.post("/api/signup", json={"username": username, "password": password})
    assert r1.status_code in (201, 409)

    r2 = client.post("/api/login", json={"username": username, "password": password})
    assert r2.status_code == 200
    # keep tests explicit about which token they send
    client.cookies.clear()
    return r2.json()["token"]

@pytest.fixture
def token(client, user_data):
    return register_and_auth(client, user_data["username"], user_data["password"])

@pytest.fixture
def auth_header(token):
    """Returns {'Authorization': 'Bearer <token>'} for the default account."""
    return {"Authorization": f"Bearer {token}"}
