# files_app.py
# ------------------------------------------------------------
# Flask demo: path canonicalization vs. path traversal
# /read validates and canonicalizes, /read-no-validate does not.
# DO NOT DEPLOY. Educational only.
#
# Run:
#   pip install flask
#   export FILES_BASE_DIR=./files   # optional
#   python files_app.py
# Open: http://127.0.0.1:4000/
# ------------------------------------------------------------
from flask import Flask, request, jsonify
from pathlib import Path
from urllib.parse import unquote
import os, time, logging

app = Flask(__name__)

logging.basicConfig(level=logging.INFO)

# ============================================================
# CONFIGURATION
# ============================================================

BASE_DIR = Path(os.environ.get("FILES_BASE_DIR", Path(__file__).parent / "files")).resolve()
BASE_DIR.mkdir(parents=True, exist_ok=True)

SAMPLES = {
    "hello.txt": "Hello from safe file!\n",
    "notes/readme.md": "# Readme\nSample readme file",
}

# ============================================================
# RATE LIMITING (15 minute window, 100 requests per IP)
# ============================================================

RATE_WINDOW = 15 * 60.0
RATE_MAX = 100
REQUESTS = {}

def throttle(ip):
    """Sliding window limiter: True when `ip` is over RATE_MAX in RATE_WINDOW."""
    now = time.time()
    hits = [t for t in REQUESTS.get(ip, []) if now - t <= RATE_WINDOW]
    if len(hits) >= RATE_MAX:
        REQUESTS[ip] = hits
        return True
    hits.append(now)
    REQUESTS[ip] = hits
    return False


def ok(data=None, status=200): return (jsonify({"ok": True, "data": data}), status)
def err(msg="error", status=400, **extra): return (jsonify({"ok": False, "error": msg, **extra}), status)


def payload():
    """Request body as a mapping; accepts JSON and urlencoded forms."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form


@app.before_request
def limit_requests():
    ip = request.headers.get("X-Forwarded-For", request.remote_addr or "0.0.0.0")
    if throttle(ip):
        logging.warning("Rate limit hit for %s", ip)
        return err("too_many_requests", 429)


@app.route("/")
def index():
    return ok({
        "note": "Path canonicalization demo",
        "base": str(BASE_DIR),
        "topics": [
            "Validated + canonicalized read -> /read (POST filename=hello.txt)",
            "Unvalidated read (traversal) -> /read-no-validate (POST filename=../../etc/passwd)",
            "Create sample files -> /setup-sample (POST)",
        ]
    })


# ============================================================
# PATH CANONICALIZATION
# ============================================================

def resolve_safe(base_dir, user_input):
    """
    Percent-decode `user_input` once and resolve it against `base_dir`.

    The result is absolute with `..` segments and symlinks resolved, so a
    simple prefix check against the base directory is meaningful. Absolute
    inputs replace the base entirely, which the caller's prefix check then
    rejects.
    """
    # unquote() never raises; malformed escapes such as "%zz" are kept as-is
    decoded = unquote(user_input)
    return (Path(base_dir) / decoded).resolve()


def is_inside(base_dir, target):
    # strict: the base directory itself is not a readable file
    return str(target).startswith(str(base_dir) + os.sep)


@app.post("/read")
def read_file():
    """
    Reads a file below BASE_DIR after validation and canonicalization.

    - filename must be a non-empty string without NUL bytes (400)
    - the resolved path must stay inside BASE_DIR (403)
    - the file must exist (404)
    """
    filename = payload().get("filename")
    if not isinstance(filename, str):
        return err("invalid_filename", 400)
    filename = filename.strip()
    # "%00" decodes to NUL as well
    if not filename or "\0" in unquote(filename):
        return err("invalid_filename", 400)

    target = resolve_safe(BASE_DIR, filename)
    if not is_inside(BASE_DIR, target):
        logging.warning("Path traversal detected: %r -> %s", filename, target)
        return err("Path traversal detected", 403)
    try:
        if not target.is_file():
            return err("File not found", 404)
        # undecodable bytes come back as U+FFFD
        content = target.read_text(encoding="utf-8", errors="replace")
    except OSError:
        # ENAMETOOLONG and friends: nothing readable at that name
        return err("File not found", 404)
    return ok({"path": str(target), "content": content})


@app.post("/read-no-validate")
def read_file_no_validate():
    # BAD: naive join, no decoding, no containment check.
    # An absolute filename is still appended to the base; only "../" escapes.
    filename = payload().get("filename") or ""
    joined = os.path.normpath(str(BASE_DIR) + os.sep + str(filename))
    try:
        if not os.path.isfile(joined):
            return err("File not found", 404, path=joined)
        with open(joined, "r", encoding="utf-8", errors="replace") as fh:
            return ok({"path": joined, "content": fh.read()})
    except OSError:
        return err("File not found", 404, path=joined)


@app.post("/setup-sample")
def setup_sample():
    for name, content in SAMPLES.items():
        p = (BASE_DIR / name).resolve()
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")
    logging.info("Sample files written under %s", BASE_DIR)
    return ok({"base": str(BASE_DIR)})


@app.errorhandler(500)
def handle_500(e):
    logging.exception("Internal error: %s", e)
    return err("internal_error", 500)


if __name__ == "__main__":
    port = int(os.environ.get("PORT", "4000"))
    logging.info("Server listening on http://localhost:%d", port)
    app.run(host=os.environ.get("HOST", "127.0.0.1"), port=port, threaded=False, debug=False)
