import os
import sys
import threading
import time
from collections import OrderedDict

# Ensure backend/ is on sys.path so sibling imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from flask import Flask, Response, g, jsonify, request
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv

from availability import academic_years, current_academic_year
from data_loader import EXAMS_FILE, RULES_FILE, load_data
from messages import DEFAULT_LANG as _FALLBACK_LANG, SUPPORTED_LANGS, table_label
from normalizer import (
    normalize_academic_year,
    normalize_credits,
    normalize_curriculum,
    normalize_lang,
    normalize_plan_key,
)
from plan_export import export_filename, export_plan_csv
from plan_manager import PlanManager
from plan_store import PlanStore
from rules import get_curricula, is_custom_item, is_fixed_item

load_dotenv()

app = Flask(__name__)

# ── Paths ─────────────────────────────────────────────────────────────────────
BACKEND_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(BACKEND_DIR)
_DEFAULT_DATA_PATH = os.path.join(PROJECT_ROOT, "data")
_DEFAULT_STORE_PATH = os.path.join(PROJECT_ROOT, ".plans")


def _env_path(name: str, default: str) -> str:
    raw = os.environ.get(name)
    if not raw:
        return default
    return raw if os.path.isabs(raw) else os.path.join(PROJECT_ROOT, raw)


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, float(raw))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, int(raw))
    except (TypeError, ValueError):
        return default


DATA_PATH = _env_path("DATA_PATH", _DEFAULT_DATA_PATH)
PLAN_STORE_PATH = _env_path("PLAN_STORE_PATH", _DEFAULT_STORE_PATH)
DEFAULT_LANG = normalize_lang(os.environ.get("DEFAULT_LANG"), _FALLBACK_LANG)
_SLOW_REQUEST_LOG_MS = _env_float("SLOW_REQUEST_LOG_MS", 750.0, minimum=0.0)
_SESSION_CACHE_SIZE = _env_int("SESSION_CACHE_SIZE", 128, minimum=1)

_data_lock = threading.Lock()
_data_mtime = None

# Bounded LRU of PlanManagers by plan key; evicted plans are rebuilt from the store.
# A single lock serialises every plan request, whatever its key.
_session_lock = threading.RLock()
_sessions: OrderedDict[str, PlanManager] = OrderedDict()
_store = PlanStore(PLAN_STORE_PATH)


def _data_file_mtime(path: str):
    try:
        mtimes = [
            os.path.getmtime(os.path.join(path, name))
            for name in (EXAMS_FILE, RULES_FILE)
            if os.path.isfile(os.path.join(path, name))
        ]
        return max(mtimes) if mtimes else None
    except OSError:
        return None


# ── Startup data load ──────────────────────────────────────────────────────────
try:
    _data = load_data(DATA_PATH)
    _data_mtime = _data_file_mtime(DATA_PATH)
    print(f"[OK] Loaded {len(_data['exams'])} exams from {DATA_PATH}")
except FileNotFoundError:
    # Stale DATA_PATH: fall back to the bundled catalog.
    if DATA_PATH != _DEFAULT_DATA_PATH and os.path.exists(_DEFAULT_DATA_PATH):
        print(
            f"[WARN] DATA_PATH not found ({DATA_PATH}); "
            f"falling back to default data ({_DEFAULT_DATA_PATH}).",
            file=sys.stderr,
        )
        DATA_PATH = _DEFAULT_DATA_PATH
        _data = load_data(DATA_PATH)
        _data_mtime = _data_file_mtime(DATA_PATH)
        print(f"[OK] Loaded {len(_data['exams'])} exams from {DATA_PATH}")
    else:
        print(f"[FATAL] Data files not found in: {DATA_PATH}", file=sys.stderr)
        sys.exit(1)
except Exception as exc:
    print(f"[FATAL] Failed to load data: {exc}", file=sys.stderr)
    sys.exit(1)


def _reload_data_if_changed(force: bool = False) -> bool:
    """
    Hot-reload catalog and rules when DATA_PATH changes on disk.

    Open plan sessions are dropped and rebuilt from the store on next use.
    Returns True when a reload occurred, else False.
    """
    global _data, _data_mtime

    candidate_mtime = _data_file_mtime(DATA_PATH)
    if not force:
        if candidate_mtime is None:
            return False
        if _data_mtime is not None and candidate_mtime <= _data_mtime:
            return False

    with _data_lock:
        latest_mtime = _data_file_mtime(DATA_PATH)
        if not force:
            if latest_mtime is None:
                return False
            if _data_mtime is not None and latest_mtime <= _data_mtime:
                return False

        try:
            new_data = load_data(DATA_PATH)
        except Exception as exc:
            print(f"[WARN] Data reload failed; keeping previous dataset: {exc}", file=sys.stderr)
            return False

        _data = new_data
        _data_mtime = latest_mtime if latest_mtime is not None else candidate_mtime
        with _session_lock:
            _sessions.clear()
        print(f"[OK] Reloaded {len(new_data['exams'])} exams from {DATA_PATH}")
        return True


def _refresh_data_if_needed() -> None:
    try:
        _reload_data_if_changed()
    except Exception as exc:
        print(f"[WARN] Data reload check failed: {exc}", file=sys.stderr)


# ── Sessions ──────────────────────────────────────────────────────────────────
def _get_manager(key: str) -> PlanManager:
    """Cached manager for `key`, restored from the store or seeded with the baseline."""
    with _session_lock:
        manager = _sessions.get(key)
        if manager is not None:
            _sessions.move_to_end(key)
            return manager
        manager = PlanManager(
            _data["exams"],
            _data["rules"],
            year=current_academic_year(),
            lang=DEFAULT_LANG,
        )
        state = _store.load(key)
        if state:
            manager.restore(state)
        else:
            manager.init_defaults()
        _sessions[key] = manager
        while len(_sessions) > _SESSION_CACHE_SIZE:
            _sessions.popitem(last=False)
        return manager


def _persist(key: str, manager: PlanManager) -> None:
    try:
        _store.save(key, manager.snapshot())
    except OSError as exc:
        print(f"[WARN] Could not persist plan '{key}': {exc}", file=sys.stderr)


def _error(error_code: str, message: str, status: int, **extra):
    return jsonify({
        "mode": "error",
        "error": {"error_code": error_code, "message": message},
        **extra,
    }), status


def _request_plan_key():
    return normalize_plan_key(request.headers.get("X-Plan-Key") or request.args.get("plan_key"))


def _apply_request_lang(manager: PlanManager) -> None:
    raw = request.args.get("lang")
    if raw:
        lang = normalize_lang(raw, manager.lang)
        if lang != manager.lang:
            manager.set_language(lang)


def _item_payload(manager: PlanManager, item: dict) -> dict:
    if is_fixed_item(item) or is_custom_item(item):
        possible = []
    else:
        possible = manager.get_allowed_tables(manager.exams_by_id.get(item.get("exam_id")))
    return {**item, "allowed_tables": possible}


def _plan_payload(manager: PlanManager) -> dict:
    # Schema tables first, then any table only a custom item still occupies.
    grouped = manager.grouped_plan()
    return {
        "year": manager.year,
        "curriculum": manager.curriculum,
        "lang": manager.lang,
        "tables": [
            {
                "code": code,
                "label": table_label(code, manager.lang),
                "items": [item["id"] for item in items],
            }
            for code, items in grouped.items()
        ],
        "plan": [_item_payload(manager, item) for item in manager.plan],
        "validation": manager.report,
    }


def _mutation_response(key: str, manager: PlanManager, applied: bool, message: str):
    """Persist and return the plan; rejected mutations answer 409 with the unchanged plan."""
    if applied:
        _persist(key, manager)
        return jsonify({"applied": True, **_plan_payload(manager)})
    return _error("MUTATION_REJECTED", message, 409, applied=False, **_plan_payload(manager))


def _with_manager(handler):
    """Resolve the plan key, lock the session and hand its manager to `handler`."""
    _refresh_data_if_needed()
    key = _request_plan_key()
    if key is None:
        return _error("INVALID_INPUT", "Plan key must be 1-64 letters, digits, '-' or '_'.", 400)
    with _session_lock:
        manager = _get_manager(key)
        _apply_request_lang(manager)
        return handler(key, manager)


# -- Security headers ------------------------------------------------------
@app.before_request
def _start_request_timer():
    g._request_start_time = time.perf_counter()


@app.after_request
def _add_security_headers(response):
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "same-origin"

    started = getattr(g, "_request_start_time", None)
    if started is not None:
        duration_ms = (time.perf_counter() - started) * 1000.0
        if duration_ms >= _SLOW_REQUEST_LOG_MS:
            endpoint = request.endpoint or "unknown"
            print(
                f"[SLOW] {request.method} {request.path} "
                f"endpoint={endpoint} status={response.status_code} duration_ms={duration_ms:.1f}"
            )
    return response


# ── 500 handler ────────────────────────────────────────────────────────────────
@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return e
    print(f"[ERROR] {request.method} {request.path}: {e!r}", file=sys.stderr)
    return _error("SERVER_ERROR", "An unexpected server error occurred.", 500)


# -- Health endpoint --------------------------------------------------------
@app.route("/health", methods=["GET"])
def health_endpoint():
    return jsonify({
        "status": "ok",
        "version": "1.0.0",
        "exams_loaded": len(_data.get("exams", [])),
    })


# ── Catalog ───────────────────────────────────────────────────────────────────
@app.route("/api/exams", methods=["GET"])
def get_exams():
    query = str(request.args.get("q") or "").strip().lower()

    def handler(_key, manager):
        exams = []
        for exam in manager.exams:
            if query and query not in exam["name"].lower():
                continue
            exams.append({
                **exam,
                "available": manager.is_available(exam),
                "next_availability": manager.describe_next_availability(exam),
                "allowed_tables": manager.get_allowed_tables(exam),
                "display_tables": manager.display_tables(exam),
                "in_plan": manager.is_in_plan(exam["id"]),
            })
        return jsonify({
            "exams": exams,
            "curricula": get_curricula(manager.rules),
            "years": academic_years(),
            "languages": list(SUPPORTED_LANGS),
        })

    return _with_manager(handler)


# ── Plan ──────────────────────────────────────────────────────────────────────
@app.route("/api/plan", methods=["GET"])
def get_plan():
    return _with_manager(lambda _key, manager: jsonify(_plan_payload(manager)))


@app.route("/api/plan", methods=["DELETE"])
def delete_plan():
    """Forget a saved plan; the next request for the key starts from the baseline."""
    key = _request_plan_key()
    if key is None:
        return _error("INVALID_INPUT", "Plan key must be 1-64 letters, digits, '-' or '_'.", 400)
    with _session_lock:
        _sessions.pop(key, None)
        deleted = _store.delete(key)
    return jsonify({"plan_key": key, "deleted": deleted})


@app.route("/api/plan/setup", methods=["POST"])
def setup_plan():
    body = request.get_json(force=True, silent=True) or {}

    def handler(key, manager):
        year = normalize_academic_year(body.get("year"))
        if year is None:
            return _error("INVALID_INPUT", "year must be an academic year like '2025/2026'.", 400)
        curriculum = normalize_curriculum(body.get("curriculum"), get_curricula(manager.rules))
        if curriculum is None:
            return _error("INVALID_INPUT", f"curriculum must be one of {get_curricula(manager.rules)}.", 400)
        manager.set_year(year)
        applied = manager.set_curriculum(curriculum)
        return _mutation_response(key, manager, applied, "Curriculum could not be applied.")

    return _with_manager(handler)


@app.route("/api/plan/year", methods=["POST"])
def set_plan_year():
    body = request.get_json(force=True, silent=True) or {}

    def handler(key, manager):
        year = normalize_academic_year(body.get("year"))
        if year is None:
            return _error("INVALID_INPUT", "year must be an academic year like '2025/2026'.", 400)
        return _mutation_response(key, manager, manager.set_year(year), "Year could not be applied.")

    return _with_manager(handler)


@app.route("/api/plan/curriculum", methods=["POST"])
def set_plan_curriculum():
    body = request.get_json(force=True, silent=True) or {}

    def handler(key, manager):
        curriculum = normalize_curriculum(body.get("curriculum"), get_curricula(manager.rules))
        if curriculum is None:
            return _error("INVALID_INPUT", f"curriculum must be one of {get_curricula(manager.rules)}.", 400)
        applied = manager.set_curriculum(curriculum)
        return _mutation_response(key, manager, applied, "Curriculum could not be applied.")

    return _with_manager(handler)


@app.route("/api/plan/exams", methods=["POST"])
def add_plan_exam():
    body = request.get_json(force=True, silent=True) or {}

    def handler(key, manager):
        exam_id = str(body.get("exam_id") or "").strip()
        if not exam_id:
            return _error("INVALID_INPUT", "exam_id is required.", 400)
        if exam_id not in manager.exams_by_id:
            return _error("UNKNOWN_EXAM", f"{exam_id} is not in the exam catalog.", 404)
        target = str(body.get("table") or "").strip() or None
        applied = manager.add_exam(exam_id, target)
        return _mutation_response(key, manager, applied, f"{exam_id} is already in the plan.")

    return _with_manager(handler)


@app.route("/api/plan/custom", methods=["POST"])
def add_plan_custom_exam():
    body = request.get_json(force=True, silent=True) or {}

    def handler(key, manager):
        name = str(body.get("name") or "").strip()
        credits = normalize_credits(body.get("credits"))
        if not name or credits is None:
            return _error("INVALID_INPUT", "name and a positive integer credits value are required.", 400)
        manager.add_custom_exam(name, credits)
        return _mutation_response(key, manager, True, "")

    return _with_manager(handler)


@app.route("/api/plan/items/<item_id>", methods=["DELETE"])
def remove_plan_item(item_id):
    def handler(key, manager):
        applied = manager.remove_exam(item_id)
        return _mutation_response(key, manager, applied, f"{item_id} is mandatory or not in the plan.")

    return _with_manager(handler)


@app.route("/api/plan/items/<item_id>/move", methods=["POST"])
def move_plan_item(item_id):
    body = request.get_json(force=True, silent=True) or {}

    def handler(key, manager):
        target = str(body.get("table") or "").strip()
        if not target:
            return _error("INVALID_INPUT", "table is required.", 400)
        applied = manager.move_exam(item_id, target)
        return _mutation_response(key, manager, applied, f"{item_id} cannot be moved to table {target}.")

    return _with_manager(handler)


@app.route("/api/plan/reset", methods=["POST"])
def reset_plan():
    def handler(key, manager):
        manager.reset()
        return _mutation_response(key, manager, True, "")

    return _with_manager(handler)


@app.route("/api/plan/export", methods=["GET"])
def export_plan():
    def handler(_key, manager):
        csv_text = export_plan_csv(manager.plan, manager.exams_by_id, manager.lang)
        filename = export_filename(manager.curriculum, manager.year)
        return Response(
            csv_text,
            mimetype="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    return _with_manager(handler)


app.add_url_rule("/api/health", endpoint="api_health", view_func=health_endpoint, methods=["GET"])


# -- API catch-all (404 for unknown /api/* routes) -------------------
@app.route("/api/<path:rest>", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
def api_catch_all(rest):
    return jsonify({"error": f"/api/{rest} not found"}), 404


if __name__ == "__main__":
    port = _env_int("PORT", 5000)
    debug = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(host="0.0.0.0", port=port, debug=debug)
