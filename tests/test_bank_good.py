"""Tests for FastBank version B: the same attacks fail against the patched routes."""

import hashlib

import pytest

import bank_good
from helpers import assert_ok, assert_err


def login(client, username="alice", password="password123"):
    return client.post("/login", json={"username": username, "password": password})


@pytest.fixture
def alice(good_client):
    """Logged-in client plus its CSRF token."""
    d = assert_ok(login(good_client))
    return good_client, d["csrf"]


def test_login_sets_random_httponly_cookie(good_client):
    r = login(good_client)
    d = assert_ok(r)
    assert d["success"] is True and d["csrf"]
    cookie = r.headers["Set-Cookie"]
    assert "HttpOnly" in cookie
    assert "SameSite=Lax" in cookie
    sid = cookie.split(";")[0].split("=", 1)[1]
    assert not sid.startswith("alice")
    assert len(sid) >= 40
    assert bank_good.SESSIONS[sid]["uid"] == 1


def test_login_errors_are_generic(good_client):
    assert assert_err(login(good_client, "mallory", "x"), 401) == "invalid"
    assert assert_err(login(good_client, "alice", "wrong"), 401) == "invalid"
    assert assert_err(good_client.post("/login", json={"username": "alice"}), 401) == "invalid"


def test_login_sql_injection_fails(good_client):
    assert_err(login(good_client, "nobody' OR '1'='1", "password123"), 401)


def test_login_form_body(good_client):
    assert_ok(good_client.post("/login", data={"username": "bob", "password": "hunter2"}))
    assert assert_ok(good_client.get("/me"))["username"] == "bob"


def test_login_throttled(good_client):
    for _ in range(bank_good.MAX_TRIES):
        assert_err(login(good_client, "alice", "guess"), 401)
    assert assert_err(login(good_client), 429) == "too_many_attempts"


def test_passwords_are_salted(good_client):
    rows = bank_good.DB.execute("SELECT salt, password_hash FROM users").fetchall()
    assert rows[0]["salt"] != rows[1]["salt"]
    assert rows[0]["password_hash"] != hashlib.sha256(b"password123").hexdigest()
    assert rows[0]["password_hash"] == bank_good.hash_password("password123", rows[0]["salt"])


def test_me(alice):
    client, _ = alice
    assert assert_ok(client.get("/me")) == {"username": "alice", "email": "alice@example.com"}


def test_unknown_session_rejected(good_client):
    with bank_good.app.test_client(use_cookies=False) as attacker:
        r = attacker.get("/me", headers={"Cookie": "sid=alice-1700000000000"})
        assert assert_err(r, 401) == "Not authenticated"


def test_session_expires(alice, monkeypatch):
    client, _ = alice
    monkeypatch.setattr(bank_good, "SESSION_TTL", -1)
    assert_err(client.get("/me"), 401)
    assert bank_good.SESSIONS == {}


def test_csrf_token_endpoint(alice):
    client, csrf = alice
    assert assert_ok(client.get("/csrf-token")) == {"csrf": csrf}


def test_csrf_token_requires_session(good_client):
    assert_err(good_client.get("/csrf-token"), 401)


def test_transactions(alice):
    client, _ = alice
    rows = assert_ok(client.get("/transactions"))
    assert [r["description"] for r in rows] == ["Groceries", "Coffee shop"]
    rows = assert_ok(client.get("/transactions", query_string={"q": "Coffee"}))
    assert [r["amount"] for r in rows] == [25.5]


@pytest.mark.parametrize("q", ["%' OR 1=1 OR description LIKE '", "'", "' UNION SELECT id, 0, password_hash FROM users --"])
def test_transactions_injection_is_plain_text(alice, q):
    client, _ = alice
    assert assert_ok(client.get("/transactions", query_string={"q": q})) == []


def test_transactions_query_length(alice):
    client, _ = alice
    r = client.get("/transactions", query_string={"q": "x" * (bank_good.MAX_QUERY + 1)})
    assert assert_err(r, 400) == "query_too_long"


def test_feedback_requires_csrf(alice):
    client, _ = alice
    assert assert_err(client.post("/feedback", json={"comment": "hi"}), 403) == "csrf_failed"
    r = client.post("/feedback", json={"comment": "hi"}, headers={"X-CSRF-Token": "nope"})
    assert_err(r, 403)


def test_feedback_is_escaped(alice):
    client, csrf = alice
    payload = "<script>alert(1)</script>"
    assert_ok(client.post("/feedback", json={"comment": payload}, headers={"X-CSRF-Token": csrf}))
    rows = assert_ok(client.get("/feedback"))
    assert rows == [{"user": "alice", "comment": "&lt;script&gt;alert(1)&lt;/script&gt;"}]
    html = client.get("/feedback/view").get_data(as_text=True)
    assert "<script>" not in html
    assert "&lt;script&gt;" in html


def test_feedback_injection_stored_literally(alice):
    client, csrf = alice
    comment = "x'), ('mallory', 'pwned"
    assert_ok(client.post("/feedback", json={"comment": comment}, headers={"X-CSRF-Token": csrf}))
    rows = bank_good.DB.execute("SELECT user, comment FROM feedback").fetchall()
    assert [tuple(r) for r in rows] == [("alice", comment)]


@pytest.mark.parametrize("comment", ["", "x" * 1001, None])
def test_feedback_validation(alice, comment):
    client, csrf = alice
    r = client.post("/feedback", json={"comment": comment}, headers={"X-CSRF-Token": csrf})
    assert assert_err(r, 400) == "invalid_comment"


def test_change_email(alice):
    client, csrf = alice
    r = client.post("/change-email", json={"email": "alice@bank.test"}, headers={"X-CSRF-Token": csrf})
    assert assert_ok(r) == {"success": True, "email": "alice@bank.test"}
    assert assert_ok(client.get("/me"))["email"] == "alice@bank.test"


def test_change_email_requires_csrf(alice):
    client, _ = alice
    r = client.post("/change-email", data={"email": "attacker@evil.test"},
                    headers={"Origin": "http://evil.test"})
    assert_err(r, 403)
    assert assert_ok(client.get("/me"))["email"] == "alice@example.com"


@pytest.mark.parametrize("email", ["nope", "a@b", "a b@c.d", "a@b.c\n", "x" * 250 + "@b.cd", 7])
def test_change_email_validation(alice, email):
    client, csrf = alice
    r = client.post("/change-email", json={"email": email}, headers={"X-CSRF-Token": csrf})
    assert assert_err(r, 400) == "Invalid email"


def test_change_email_injection_stored_literally(alice):
    client, csrf = alice
    email = "a@b.c',username='hacked"
    assert_ok(client.post("/change-email", json={"email": email}, headers={"X-CSRF-Token": csrf}))
    assert assert_ok(client.get("/me")) == {"username": "alice", "email": email}


def test_logout(alice):
    client, csrf = alice
    assert_err(client.post("/logout"), 403)
    assert_ok(client.post("/logout", headers={"X-CSRF-Token": csrf}))
    assert_err(client.get("/me"), 401)
    assert bank_good.SESSIONS == {}


def test_cors_allows_frontend_origin_only(good_client):
    r = good_client.get("/", headers={"Origin": "http://localhost:3001"})
    assert r.headers.get("Access-Control-Allow-Origin") == "http://localhost:3001"
    assert r.headers.get("Access-Control-Allow-Credentials") == "true"
    r = good_client.get("/", headers={"Origin": "http://evil.test"})
    assert "Access-Control-Allow-Origin" not in r.headers


def test_me_user_row_gone(alice):
    client, _ = alice
    bank_good.DB.execute("DELETE FROM users WHERE id = 1")
    assert assert_err(client.get("/me"), 404) == "not_found"


def test_secure_cookie_flag(good_client, monkeypatch):
    monkeypatch.setattr(bank_good, "COOKIE_SECURE", True)
    r = login(good_client)
    assert "Secure" in r.headers["Set-Cookie"]


def test_new_session_drops_expired_entries(alice):
    client, _ = alice
    (old_sid,) = bank_good.SESSIONS
    bank_good.SESSIONS[old_sid]["created"] = 0
    assert_ok(login(client, "bob", "hunter2"))
    assert old_sid not in bank_good.SESSIONS
    assert len(bank_good.SESSIONS) == 1


class BrokenDB:
    def execute(self, *args, **kwargs):
        raise RuntimeError("disk on fire: /var/lib/secret.db")


def test_unexpected_error_is_generic(alice, monkeypatch):
    client, _ = alice
    monkeypatch.setitem(bank_good.app.config, "TESTING", False)
    monkeypatch.setattr(bank_good, "DB", BrokenDB())
    r = client.get("/me")
    assert r.status_code == 500
    assert r.get_json() == {"ok": False, "error": "internal_error"}
    assert "secret.db" not in r.get_data(as_text=True)
