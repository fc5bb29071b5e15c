import re
from datetime import datetime, timedelta, timezone

from argon2.exceptions import HashingError
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

from memberauth.errors import PersistenceError

COOKIE = "memberauth.sid"
ERROR_RE = re.compile(r'<p class="error"[^>]*>(.*?)</p>')


def _login(client, email="a@x.com", password="secret1"):
    return client.post(
        "/loginSubmit",
        data={"email": email, "password": password},
        follow_redirects=False,
    )


def test_home_renders_for_anonymous_visitor(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "Welcome" in r.text


def test_signup_redirects_to_members_with_session(client, signed_up, find_user):
    assert signed_up.headers["location"] == "/members"
    assert COOKIE in client.cookies

    r = client.get("/members", follow_redirects=False)
    assert r.status_code == 200
    assert "Alice" in r.text
    assert "a@x.com" in r.text

    doc = find_user("a@x.com")
    assert doc["name"] == "Alice"
    assert doc["password"] != "secret1"
    assert doc["password"].startswith("$argon2")


def test_signup_with_existing_email_is_rejected_without_second_record(client, signed_up, database):
    client.cookies.clear()
    r = client.post(
        "/signupSubmit",
        data={"name": "Alice", "email": "a@x.com", "password": "secret1"},
        follow_redirects=False,
    )
    assert r.status_code == 200
    assert "Email already exists" in r.text
    assert COOKIE not in client.cookies
    assert client.portal.call(database["users"].count_documents, {"email": "a@x.com"}) == 1


def test_signup_race_is_caught_by_unique_index(client, signed_up, database, monkeypatch):
    async def _never_exists(email):
        return False

    monkeypatch.setattr(client.app.state.users, "exists", _never_exists)
    client.cookies.clear()
    r = client.post(
        "/signupSubmit",
        data={"name": "Alice2", "email": "a@x.com", "password": "other"},
        follow_redirects=False,
    )
    assert r.status_code == 200
    assert "Email already exists" in r.text
    assert client.portal.call(database["users"].count_documents, {"email": "a@x.com"}) == 1


def test_signup_validation_error_is_shown_inline(client, find_user):
    r = client.post(
        "/signupSubmit",
        data={"name": "x" * 21, "email": "b@x.com", "password": "pw"},
        follow_redirects=False,
    )
    assert r.status_code == 200
    assert "less than or equal to 20 characters" in r.text
    assert find_user("b@x.com") is None


def test_login_with_valid_credentials(client, signed_up):
    client.cookies.clear()
    r = _login(client)
    assert r.status_code == 303
    assert r.headers["location"] == "/members"
    assert client.get("/members", follow_redirects=False).status_code == 200


def test_login_errors_do_not_reveal_which_field_was_wrong(client, signed_up):
    client.cookies.clear()
    wrong_password = _login(client, password="wrong")
    unknown_email = _login(client, email="nobody@x.com")

    assert wrong_password.status_code == unknown_email.status_code == 200
    assert "Invalid email or password" in wrong_password.text
    assert ERROR_RE.findall(wrong_password.text) == ["Invalid email or password"]
    assert ERROR_RE.findall(wrong_password.text) == ERROR_RE.findall(unknown_email.text)
    assert COOKIE not in client.cookies


def test_members_redirects_home_without_session(client):
    r = client.get("/members", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/"


def test_members_rejects_tampered_cookie(client, signed_up):
    token = client.cookies[COOKIE]
    client.cookies.clear()
    tampered = token[:-2] + "xx"
    assert client.get("/members", headers={"Cookie": f"{COOKIE}={tampered}"}, follow_redirects=False).status_code == 303


def test_logout_destroys_session_and_old_cookie_stops_working(client, signed_up):
    token = client.cookies[COOKIE]

    r = client.get("/logout", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/"
    assert client.get("/members", follow_redirects=False).status_code == 303

    client.cookies.clear()
    assert client.get("/members", headers={"Cookie": f"{COOKIE}={token}"}, follow_redirects=False).status_code == 303


def test_expired_session_is_treated_as_anonymous(client, signed_up):
    manager = client.app.state.sessions
    later = manager._clock() + timedelta(seconds=manager.ttl_seconds + 1)
    manager._clock = lambda: later
    assert client.get("/members", follow_redirects=False).status_code == 303


def test_database_error_is_shown_generically(client, monkeypatch):
    class _Down:
        async def find_one(self, *args, **kwargs):
            raise ServerSelectionTimeoutError("mongo:27017: connection refused")

    monkeypatch.setattr(client.app.state.users, "_collection", _Down())

    r = _login(client)
    assert r.status_code == 200
    assert "Database error" in r.text
    assert "connection refused" not in r.text

    r = client.post(
        "/signupSubmit",
        data={"name": "Bob", "email": "bob@x.com", "password": "pw"},
        follow_redirects=False,
    )
    assert "Database error" in r.text


def test_unknown_route_renders_404(client):
    r = client.get("/does-not-exist")
    assert r.status_code == 404
    assert "Page not found" in r.text


def test_members_image_is_served(client, signed_up):
    r = client.get("/members")
    assert "/static/img/image" in r.text
    assert client.get("/static/img/image1.svg").status_code == 200


def test_session_lasts_one_hour_in_cookie_and_store(client, signed_up, database):
    assert "Max-Age=3600" in signed_up.headers["set-cookie"]

    record = client.portal.call(database["sessions"].find_one, {})
    expires_at = record["expires_at"]
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    remaining = (expires_at - datetime.now(timezone.utc)).total_seconds()
    assert 3600 - 60 < remaining <= 3600


def test_failed_session_write_leaves_no_user_behind(client, database, monkeypatch):
    async def _fail(*args, **kwargs):
        raise PersistenceError()

    monkeypatch.setattr(client.app.state.sessions.store, "set", _fail)
    r = client.post(
        "/signupSubmit",
        data={"name": "Alice", "email": "a@x.com", "password": "secret1"},
        follow_redirects=False,
    )
    assert r.status_code == 200
    assert "Database error" in r.text
    assert client.portal.call(database["users"].count_documents, {}) == 0

    monkeypatch.undo()
    r = client.post(
        "/signupSubmit",
        data={"name": "Alice", "email": "a@x.com", "password": "secret1"},
        follow_redirects=False,
    )
    assert r.status_code == 303


def test_hashing_failure_fails_only_that_request(database, settings, monkeypatch):
    from memberauth.app import create_app

    def _broken_hash(plain):
        raise HashingError("out of memory")

    monkeypatch.setattr("memberauth.services.auth_service.hash_password", _broken_hash)
    with TestClient(create_app(database=database, settings=settings), raise_server_exceptions=False) as c:
        r = c.post(
            "/signupSubmit",
            data={"name": "Alice", "email": "a@x.com", "password": "secret1"},
            follow_redirects=False,
        )
        assert r.status_code == 500
        assert "Something went wrong" in r.text
        assert "out of memory" not in r.text
        assert c.get("/").status_code == 200


def test_repeated_form_field_is_rejected(client, find_user):
    r = client.post(
        "/signupSubmit",
        content="name=A&name=B&email=a%40x.com&password=secret1",
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        follow_redirects=False,
    )
    assert r.status_code == 200
    assert "must be a string" in r.text
    assert find_user("a@x.com") is None


def test_session_record_without_user_is_anonymous(client, database):
    client.portal.call(
        database["sessions"].insert_one,
        {"_id": "sid-empty", "expires_at": datetime.now(timezone.utc) + timedelta(hours=1)},
    )
    token = client.app.state.sessions._serializer.dumps({"sid": "sid-empty"})
    r = client.get("/members", headers={"Cookie": f"{COOKIE}={token}"}, follow_redirects=False)
    assert r.status_code == 303


def test_anonymous_request_reads_session_store_once(client, signed_up, monkeypatch):
    token = client.cookies[COOKIE]
    client.get("/logout", follow_redirects=False)

    store = client.app.state.sessions.store
    real_get = store.get
    calls = []

    async def _counting_get(sid, **kwargs):
        calls.append(sid)
        return await real_get(sid, **kwargs)

    monkeypatch.setattr(store, "get", _counting_get)
    r = client.get("/members", headers={"Cookie": f"{COOKIE}={token}"}, follow_redirects=False)
    assert r.status_code == 303
    assert len(calls) == 1
