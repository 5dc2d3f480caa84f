# bank_bad.py
# ------------------------------------------------------------
# FastBank, version A: INSECURE banking backend for classwork
# SQL injection, stored XSS, CSRF, username enumeration,
# fast unsalted hashing and predictable session ids.
# DO NOT DEPLOY. Educational only.
#
# Run:
#   pip install flask flask-cors
#   python bank_bad.py
# Open: http://127.0.0.1:4000/
# ------------------------------------------------------------
from flask import Flask, request, jsonify, g, make_response
from flask_cors import CORS
import os, sqlite3, hashlib, time, logging

app = Flask(__name__)

# Plain CORS for the classwork frontend (not one of the exercises)
CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "http://localhost:3001,http://127.0.0.1:3001")
CORS(app, origins=[o.strip() for o in CORS_ORIGINS.split(",") if o.strip()], supports_credentials=True)

logging.basicConfig(level=logging.INFO)

DB = None
SESSIONS = {}   # sid -> user id, never expires


def fast_hash(pwd):
    # BAD: single unsalted SHA-256 round
    return hashlib.sha256(pwd.encode()).hexdigest()


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
          username TEXT UNIQUE,
          password_hash TEXT,
          email TEXT
        );
        CREATE TABLE transactions (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          user_id INTEGER,
          amount REAL,
          description TEXT
        );
        CREATE TABLE feedback (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          user TEXT,
          comment TEXT
        );
    """)
    DB.execute("INSERT INTO users (username, password_hash, email) VALUES ('alice', '" + fast_hash("password123") + "', 'alice@example.com')")
    DB.execute("INSERT INTO users (username, password_hash, email) VALUES ('bob', '" + fast_hash("hunter2") + "', 'bob@example.com')")
    DB.execute("INSERT INTO transactions (user_id, amount, description) VALUES (1, 25.50, 'Coffee shop')")
    DB.execute("INSERT INTO transactions (user_id, amount, description) VALUES (1, 100, 'Groceries')")
    DB.execute("INSERT INTO transactions (user_id, amount, description) VALUES (2, 1200, 'Rent')")
    DB.commit()
    SESSIONS.clear()


init_db()


def ok(data=None, status=200): return (jsonify({"ok": True, "data": data}), status)
def err(msg="error", status=400): return (jsonify({"ok": False, "error": msg}), status)


def payload():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else request.form


@app.before_request
def load_user():
    sid = request.cookies.get("sid")
    g.uid = SESSIONS.get(sid) if sid else None


@app.route("/")
def index():
    return ok({
        "note": "FastBank version A - INSECURE endpoints for classwork",
        "topics": [
            "Fast hash + SQLi + username enumeration + predictable sid -> /login (POST)",
            "Profile -> /me",
            "SQL Injection in search -> /transactions?q=' OR 1=1 --",
            "Stored XSS + SQLi -> /feedback (POST), /feedback, /feedback/view",
            "CSRF + SQLi -> /change-email (POST)",
        ]
    })


# Weak Authentication: fast hash, SQLi, username enumeration, predictable sid
@app.post("/login")
def login():
    body = payload()
    username = body.get("username", "")
    password = body.get("password", "")

    # BAD: string concatenation
    sql = f"SELECT id, username, password_hash FROM users WHERE username = '{username}'"
    user = DB.execute(sql).fetchone()
    if not user:
        return err("Unknown username", 404)   # BAD: tells attacker the name is wrong

    if fast_hash(str(password)) != user["password_hash"]:
        return err("Wrong password", 401)

    sid = f"{username}-{int(time.time() * 1000)}"   # BAD: predictable
    SESSIONS[sid] = user["id"]
    logging.info("login ok for %s", username)

    resp = make_response(ok({"success": True}))
    resp.set_cookie("sid", sid)   # BAD: not HttpOnly / Secure
    return resp


@app.post("/logout")
def logout():
    if g.uid is None:
        return err("Not authenticated", 401)
    SESSIONS.pop(request.cookies.get("sid"), None)
    resp = make_response(ok({"success": True}))
    resp.delete_cookie("sid")
    return resp


@app.get("/me")
def me():
    if g.uid is None:
        return err("Not authenticated", 401)
    row = DB.execute(f"SELECT username, email FROM users WHERE id = {g.uid}").fetchone()
    if not row:
        return err("User not found", 404)
    return ok(dict(row))


# SQL Injection in transaction search
@app.get("/transactions")
def transactions():
    if g.uid is None:
        return err("Not authenticated", 401)
    q = request.args.get("q", "")
    # BAD: q lands inside the LIKE literal
    sql = f"""
        SELECT id, amount, description
        FROM transactions
        WHERE user_id = {g.uid}
          AND description LIKE '%{q}%'
        ORDER BY id DESC
    """
    rows = DB.execute(sql).fetchall()
    return ok([dict(r) for r in rows])


# Stored XSS + SQL Injection in feedback
@app.post("/feedback")
def add_feedback():
    if g.uid is None:
        return err("Not authenticated", 401)
    comment = payload().get("comment", "")
    row = DB.execute(f"SELECT username FROM users WHERE id = {g.uid}").fetchone()
    if not row:
        return err("User not found", 404)
    # BAD: both values concatenated, comment stored as raw HTML
    DB.execute(f"""
        INSERT INTO feedback (user, comment)
        VALUES ('{row["username"]}', '{comment}')
    """)
    DB.commit()
    return ok({"success": True})


@app.get("/feedback")
def list_feedback():
    if g.uid is None:
        return err("Not authenticated", 401)
    rows = DB.execute("SELECT user, comment FROM feedback ORDER BY id DESC").fetchall()
    return ok([dict(r) for r in rows])


@app.get("/feedback/view")
def view_feedback():
    if g.uid is None:
        return err("Not authenticated", 401)
    rows = DB.execute("SELECT user, comment FROM feedback ORDER BY id DESC").fetchall()
    # BAD: reflect stored content unescaped
    items = "".join(f"<li><b>{r['user']}</b>: {r['comment']}</li>" for r in rows)
    return f"<h1>Feedback</h1><ul>{items}</ul>"


# CSRF + SQL Injection in email update
@app.post("/change-email")
def change_email():
    if g.uid is None:
        return err("Not authenticated", 401)
    new_email = payload().get("email") or ""
    if "@" not in str(new_email):
        return err("Invalid email", 400)
    # BAD: no CSRF token, concatenated UPDATE
    DB.execute(f"UPDATE users SET email = '{new_email}' WHERE id = {g.uid}")
    DB.commit()
    return ok({"success": True, "email": new_email})


# Verbose Error Message: driver errors go straight back to the client.
# Older sqlite3 raises Warning, not Error, for stacked statements.
@app.errorhandler(sqlite3.Error)
@app.errorhandler(sqlite3.Warning)
def handle_db_error(e):
    logging.error("DB error: %s", e)
    return err(str(e), 500)


if __name__ == "__main__":
    port = int(os.environ.get("PORT", "4000"))
    logging.info("FastBank Version A backend running on http://localhost:%d", port)
    app.run(host=os.environ.get("HOST", "127.0.0.1"), port=port, threaded=False, debug=False)
