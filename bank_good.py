# bank_good.py
# ============================================================
# FASTBANK, VERSION B - PATCHED BANKING BACKEND
# ============================================================
# Same routes as bank_bad.py with each classwork issue fixed:
#
# ✅ SQL Injection -> parameter binding everywhere
# ✅ Weak password storage -> salted PBKDF2-HMAC-SHA256
# ✅ Username enumeration -> one generic login error
# ✅ Password guessing -> per-IP login throttle
# ✅ Predictable session ids -> secrets.token_urlsafe, HttpOnly cookie, TTL
# ✅ CSRF -> per-session token checked on every state change
# ✅ Stored XSS -> HTML-escape stored content on output
# ✅ Verbose errors -> generic 500, details in the server log
#
# 🚀 SETUP INSTRUCTIONS:
#   pip install flask flask-cors
#   export SESSION_TTL=3600         # optional, seconds
#   export COOKIE_SECURE=1          # when served over HTTPS
#   python bank_good.py
#
# 🌐 ACCESS: http://127.0.0.1:4000/
# ============================================================
from flask import Flask, request, jsonify, g, make_response
from flask_cors import CORS
from markupsafe import escape
import os, re, sqlite3, secrets, hmac, hashlib, time, logging

# ============================================================
# APPLICATION SETUP AND CONFIGURATION
# ============================================================

app = Flask(__name__)

CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "http://localhost:3001,http://127.0.0.1:3001")
CORS(app, origins=[o.strip() for o in CORS_ORIGINS.split(",") if o.strip()], supports_credentials=True)

SESSION_TTL = float(os.environ.get("SESSION_TTL", "3600"))
COOKIE_SECURE = os.environ.get("COOKIE_SECURE", "0") == "1"

logging.basicConfig(level=logging.INFO)

EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")
MAX_EMAIL = 254
MAX_COMMENT = 1000
MAX_QUERY = 100

# ============================================================
# DATABASE SETUP AND USER MANAGEMENT
# ============================================================

DB = None
SESSIONS = {}   # sid -> {"uid", "csrf", "created"}


def hash_password(password, salt):
    """PBKDF2-HMAC-SHA256, 200,000 rounds; returns a hex digest."""
    return hashlib.pbkdf2_hmac("sha256", password.encode(), salt, 200_000).hex()


def create_user(username, password, email):
    """
    Creates a user with a unique random salt and a PBKDF2 password hash.
    Values are bound as parameters, never concatenated.
    """
    salt = secrets.token_bytes(16)
    cur = DB.execute("INSERT INTO users (username, salt, password_hash, email) VALUES (?,?,?,?)",
                     (username, salt, hash_password(password, salt), email))
    return cur.lastrowid


def init_db():
    """(Re)creates the in-memory database with the demo accounts."""
    global DB
    if DB is not None:
        DB.close()
    DB = sqlite3.connect(":memory:", check_same_thread=False)
    DB.row_factory = sqlite3.Row
    DB.executescript("""
        CREATE TABLE users (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          username TEXT UNIQUE NOT NULL,
          salt BLOB NOT NULL,
          password_hash TEXT NOT NULL,
          email TEXT
        );
        CREATE TABLE transactions (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          user_id INTEGER NOT NULL REFERENCES users(id),
          amount REAL,
          description TEXT
        );
        CREATE TABLE feedback (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          user TEXT,
          comment TEXT
        );
    """)
    alice = create_user("alice", "password123", "alice@example.com")
    bob = create_user("bob", "hunter2", "bob@example.com")
    DB.executemany("INSERT INTO transactions (user_id, amount, description) VALUES (?,?,?)", [
        (alice, 25.50, "Coffee shop"),
        (alice, 100, "Groceries"),
        (bob, 1200, "Rent"),
    ])
    DB.commit()
    SESSIONS.clear()
    LOGIN_TRIES.clear()


# ============================================================
# RATE LIMITING FOR BRUTE FORCE PROTECTION
# ============================================================

WINDOW = 30.0      # seconds
MAX_TRIES = 5      # attempts per window
LOGIN_TRIES = {}   # ip -> [timestamps]

def throttle(ip):
    """Sliding window: True once `ip` has made MAX_TRIES attempts within WINDOW."""
    now = time.time()
    tries = [t for t in LOGIN_TRIES.get(ip, []) if now - t <= WINDOW]
    if len(tries) >= MAX_TRIES:
        LOGIN_TRIES[ip] = tries
        return True
    tries.append(now)
    LOGIN_TRIES[ip] = tries
    return False


init_db()

# ============================================================
# UTILITY FUNCTIONS FOR API RESPONSES
# ============================================================

def ok(data=None, status=200):
    """Return successful JSON response with consistent format."""
    return (jsonify({"ok": True, "data": data}), status)

def err(msg="error", status=400):
    """Return error JSON response with consistent format."""
    return (jsonify({"ok": False, "error": msg}), status)


def payload():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else request.form

# ============================================================
# SESSION MANAGEMENT
# ============================================================

def new_session(uid):
    """Issues an unguessable session id with its own CSRF token; drops expired entries."""
    now = time.time()
    for stale in [k for k, s in SESSIONS.items() if now - s["created"] > SESSION_TTL]:
        del SESSIONS[stale]
    sid = secrets.token_urlsafe(32)
    SESSIONS[sid] = {"uid": uid, "csrf": secrets.token_urlsafe(32), "created": now}
    return sid


@app.before_request
def load_session():
    """
    Looks up the `sid` cookie in the server-side session table.
    Expired entries are dropped here, so a stale cookie behaves like no cookie.
    """
    g.uid = None
    g.session = None
    sid = request.cookies.get("sid")
    sess = SESSIONS.get(sid) if sid else None
    if not sess:
        return
    if time.time() - sess["created"] > SESSION_TTL:
        SESSIONS.pop(sid, None)
        return
    g.uid = sess["uid"]
    g.session = sess


def csrf_ok():
    header = request.headers.get("X-CSRF-Token", "")
    return bool(header) and hmac.compare_digest(header.encode(), g.session["csrf"].encode())


@app.route("/")
def index():
    return ok({
        "message": "FastBank version B - patched endpoints",
        "topics": [
            "Salted PBKDF2 + generic errors + throttle + random sid -> /login (POST)",
            "Profile -> /me",
            "Parameterized search -> /transactions?q=...",
            "Escaped feedback + CSRF -> /feedback (POST), /feedback, /feedback/view",
            "CSRF token -> /csrf-token, /change-email (POST)",
        ]
    })

# ============================================================
# AUTHENTICATION
# ============================================================

@app.post("/login")
def login():
    """
    Parameterized lookup, salted hash, constant-time compare.
    Unknown user and wrong password share the same 401 so usernames can't be probed.
    """
    ip = request.headers.get("X-Forwarded-For", request.remote_addr or "0.0.0.0")
    if throttle(ip):
        logging.warning("Login throttled for %s", ip)
        return err("too_many_attempts", 429)

    body = payload()
    username = body.get("username")
    password = body.get("password")
    if not isinstance(username, str) or not isinstance(password, str):
        return err("invalid", 401)

    row = DB.execute("SELECT id, salt, password_hash FROM users WHERE username = ?", (username,)).fetchone()
    if not row or not hmac.compare_digest(hash_password(password, row["salt"]), row["password_hash"]):
        logging.info("Failed login for %r from %s", username, ip)
        return err("invalid", 401)

    sid = new_session(row["id"])
    logging.info("login ok for %s", username)
    resp = make_response(ok({"success": True, "csrf": SESSIONS[sid]["csrf"]}))
    resp.set_cookie("sid", sid, httponly=True, samesite="Lax", secure=COOKIE_SECURE,
                    max_age=int(SESSION_TTL))
    return resp


@app.post("/logout")
def logout():
    if g.uid is None:
        return err("Not authenticated", 401)
    if not csrf_ok():
        return err("csrf_failed", 403)
    SESSIONS.pop(request.cookies.get("sid"), None)
    resp = make_response(ok({"success": True}))
    resp.delete_cookie("sid")
    return resp


@app.get("/csrf-token")
def csrf_token():
    if g.uid is None:
        return err("Not authenticated", 401)
    return ok({"csrf": g.session["csrf"]})

# ============================================================
# ACCOUNT DATA
# ============================================================

@app.get("/me")
def me():
    if g.uid is None:
        return err("Not authenticated", 401)
    row = DB.execute("SELECT username, email FROM users WHERE id = ?", (g.uid,)).fetchone()
    if not row:
        return err("not_found", 404)
    return ok(dict(row))


@app.get("/transactions")
def transactions():
    """Search the caller's own transactions; `q` is bound, wildcards added outside SQL."""
    if g.uid is None:
        return err("Not authenticated", 401)
    q = request.args.get("q", "")
    if len(q) > MAX_QUERY:
        return err("query_too_long", 400)
    rows = DB.execute("""
        SELECT id, amount, description
        FROM transactions
        WHERE user_id = ?
          AND description LIKE ?
        ORDER BY id DESC
    """, (g.uid, f"%{q}%")).fetchall()
    return ok([dict(r) for r in rows])

# ============================================================
# FEEDBACK (STORED XSS FIX)
# ============================================================

def escaped(row):
    return {"user": str(escape(row["user"])), "comment": str(escape(row["comment"]))}


@app.post("/feedback")
def add_feedback():
    if g.uid is None:
        return err("Not authenticated", 401)
    if not csrf_ok():
        return err("csrf_failed", 403)
    comment = payload().get("comment")
    if not isinstance(comment, str) or not (1 <= len(comment) <= MAX_COMMENT):
        return err("invalid_comment", 400)
    row = DB.execute("SELECT username FROM users WHERE id = ?", (g.uid,)).fetchone()
    if not row:
        return err("not_found", 404)
    DB.execute("INSERT INTO feedback (user, comment) VALUES (?, ?)", (row["username"], comment))
    DB.commit()
    return ok({"success": True})


@app.get("/feedback")
def list_feedback():
    if g.uid is None:
        return err("Not authenticated", 401)
    rows = DB.execute("SELECT user, comment FROM feedback ORDER BY id DESC").fetchall()
    return ok([escaped(r) for r in rows])


@app.get("/feedback/view")
def view_feedback():
    if g.uid is None:
        return err("Not authenticated", 401)
    rows = DB.execute("SELECT user, comment FROM feedback ORDER BY id DESC").fetchall()
    items = "".join(f"<li><b>{escape(r['user'])}</b>: {escape(r['comment'])}</li>" for r in rows)
    return f"<h1>Feedback</h1><ul>{items}</ul>"

# ============================================================
# EMAIL UPDATE (CSRF FIX)
# ============================================================

@app.post("/change-email")
def change_email():
    if g.uid is None:
        return err("Not authenticated", 401)
    if not csrf_ok():
        return err("csrf_failed", 403)
    new_email = payload().get("email")
    if not isinstance(new_email, str) or len(new_email) > MAX_EMAIL or not EMAIL_RE.fullmatch(new_email):
        return err("Invalid email", 400)
    DB.execute("UPDATE users SET email = ? WHERE id = ?", (new_email, g.uid))
    DB.commit()
    return ok({"success": True, "email": new_email})

# ============================================================
# SECURE ERROR HANDLING
# ============================================================

@app.errorhandler(500)
def handle_500(e):
    """Log details server-side, return a generic message."""
    logging.exception("Internal error: %s", e)
    return err("internal_error", 500)


if __name__ == "__main__":
    port = int(os.environ.get("PORT", "4000"))
    logging.info("FastBank Version B backend running on http://localhost:%d", port)
    app.run(host=os.environ.get("HOST", "127.0.0.1"), port=port, threaded=False, debug=False)
