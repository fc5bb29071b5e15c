import sys
from pathlib import Path as _Path
sys.path.insert(0, str(_Path(__file__).resolve().parents[1] / "src"))

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from memberauth.config import Settings, get_settings

TEST_SECRET = "test-session-secret"


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        host="127.0.0.1",
        port=8000,
        reload=False,
        mongodb_host="mongodb://unused",
        mongodb_database="memberauth_test",
        session_secret=TEST_SECRET,
        session_cookie_name="memberauth.sid",
        session_cookie_secure=False,
        log_debug=True,
    )


@pytest.fixture()
def clean_env(monkeypatch):
    """Environment without any memberauth variables, and a fresh settings cache."""
    for name in (
        "HOST",
        "PORT",
        "RELOAD",
        "MONGODB_HOST",
        "MONGODB_DATABASE",
        "SESSION_SECRET",
        "NODE_SESSION_SECRET",
        "SESSION_COOKIE_NAME",
        "SESSION_COOKIE_SECURE",
        "LOG_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)
    # Keep a developer's .env out of the picture.
    monkeypatch.setattr("memberauth.config.load_dotenv", lambda *a, **kw: False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


@pytest.fixture()
def database():
    return AsyncMongoMockClient()["memberauth_test"]


@pytest.fixture()
def client(database, settings):
    from memberauth.app import create_app

    app = create_app(database=database, settings=settings)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def find_user(client, database):
    """Read a user document on the app's event loop."""

    def _find(email: str):
        return client.portal.call(database["users"].find_one, {"email": email})

    return _find


@pytest.fixture()
def signed_up(client):
    r = client.post(
        "/signupSubmit",
        data={"name": "Alice", "email": "a@x.com", "password": "secret1"},
        follow_redirects=False,
    )
    assert r.status_code == 303
    return r
