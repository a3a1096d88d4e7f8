import hmac
import os
import sys
import threading
import time
from collections import defaultdict

# Ensure backend/ is on sys.path so sibling imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import pandas as pd
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

import config
from catalog import filter_catalog
from catalog_store import (
    DuplicatePlanEntry,
    PlanEntryNotFound,
    add_plan_entry,
    catalog_codes,
    delete_plan_entry,
    get_plan,
    import_plan_entries,
    list_courses,
    plan_course_codes,
    update_plan_entry,
)
from catalog_sync import CatalogSyncError, run_catalog_sync
from data_loader import load_program_plan
from db import make_session_factory
from normalizer import coerce_bool, compact_code, normalize_input
from requirements import evaluate_requirements, summarize_requirements
from timeline import group_plan_by_term
from validators import PlanValidationError, normalize_plan_import, normalize_program_plan

app = Flask(__name__)

_DEFAULT_PLAN_PATH = os.path.join(config.DATA_DIR, "comp_math_plan.json")

# -- Rate limiting (manual token bucket, 10 req/min per IP) ----------------
_RATE_LIMIT_MAX = 10
_RATE_LIMIT_WINDOW = 60  # seconds
_rate_limit_lock = threading.Lock()
_rate_limit_tracker: dict[str, list[float]] = defaultdict(list)


class AuthenticationRequired(Exception):
    pass


def _check_rate_limit(ip: str) -> bool:
    """Return True if request is allowed, False if rate-limited."""
    now = time.time()
    with _rate_limit_lock:
        timestamps = _rate_limit_tracker[ip]
        _rate_limit_tracker[ip] = [t for t in timestamps if now - t < _RATE_LIMIT_WINDOW]
        if len(_rate_limit_tracker[ip]) >= _RATE_LIMIT_MAX:
            return False
        _rate_limit_tracker[ip].append(now)
        return True


def _load_default_plan(path: str) -> dict:
    return load_program_plan(
        path,
        fallback_name=config.DEFAULT_PROGRAM_NAME,
        fallback_subjects=config.DEFAULT_RELEVANT_SUBJECTS,
    )


def configure_database(database_url: str) -> None:
    """Point the app at a database (tables are created if missing)."""
    global _session_factory
    _session_factory = make_session_factory(database_url)


# ── Startup data load ──────────────────────────────────────────────────────────
try:
    _program_plan = _load_default_plan(config.PROGRAM_PLAN_PATH)
except FileNotFoundError:
    # Stale PROGRAM_PLAN_PATH: fall back to the built-in plan.
    if config.PROGRAM_PLAN_PATH != _DEFAULT_PLAN_PATH and os.path.exists(_DEFAULT_PLAN_PATH):
        print(
            f"[WARN] PROGRAM_PLAN_PATH not found ({config.PROGRAM_PLAN_PATH}); "
            f"falling back to built-in plan ({_DEFAULT_PLAN_PATH}).",
            file=sys.stderr,
        )
        _program_plan = _load_default_plan(_DEFAULT_PLAN_PATH)
    else:
        print(f"[FATAL] Program plan not found: {config.PROGRAM_PLAN_PATH}", file=sys.stderr)
        sys.exit(1)
except Exception as exc:
    print(f"[FATAL] Failed to load program plan: {exc}", file=sys.stderr)
    sys.exit(1)

try:
    configure_database(config.DATABASE_URL)
    print(f"[OK] Database ready ({config.DATABASE_URL.split('://', 1)[0]})")
except Exception as exc:
    print(f"[FATAL] Failed to open database: {exc}", file=sys.stderr)
    sys.exit(1)


# ── Request helpers ────────────────────────────────────────────────────────────
def _error_response(error_code: str, message: str, status: int):
    return jsonify({
        "mode": "error",
        "error": {"error_code": error_code, "message": message},
    }), status


def _current_user_id() -> str:
    """User id forwarded by the upstream auth layer."""
    user_id = (request.headers.get("X-User-Id") or "").strip()
    if not user_id:
        raise AuthenticationRequired()
    return user_id


def _json_body(default=None):
    body = request.get_json(force=True, silent=True)
    if body is None:
        if default is not None:
            return default
        raise PlanValidationError("Request body must be valid JSON.")
    return body


def _plan_from_body(body) -> dict:
    """Uploaded program under body["program"], else the configured default."""
    raw = body.get("program") if isinstance(body, dict) else None
    if raw is None:
        return _program_plan
    return normalize_program_plan(
        raw,
        fallback_name=config.DEFAULT_PROGRAM_NAME,
        fallback_subjects=config.DEFAULT_RELEVANT_SUBJECTS,
    )


def _records(df: pd.DataFrame) -> list[dict]:
    # Convert to object dtype so None survives instead of being re-coerced to NaN.
    return df.astype(object).where(pd.notna(df), None).to_dict(orient="records")


def _courses_payload(plan: dict, search, program_only, required_only, subjects):
    with _session_factory() as session:
        courses_df = list_courses(session)
    filtered = filter_catalog(
        courses_df,
        plan,
        search=search,
        program_only=program_only,
        required_only=required_only,
        subjects=subjects,
    )
    return jsonify({
        "program_name": plan["name"],
        "count": len(filtered),
        "courses": _records(filtered),
    })


def _requirements_payload(plan: dict, user_codes):
    report = evaluate_requirements(user_codes, plan)
    return {
        "program_name": plan["name"],
        "requirements": report,
        "summary": summarize_requirements(plan, report, user_codes),
    }


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
        if duration_ms >= config.SLOW_REQUEST_LOG_MS:
            endpoint = request.endpoint or "unknown"
            print(
                f"[SLOW] {request.method} {request.path} "
                f"endpoint={endpoint} status={response.status_code} duration_ms={duration_ms:.1f}"
            )
    return response


# ── Error handlers ─────────────────────────────────────────────────────────────
@app.errorhandler(PlanValidationError)
def handle_validation_error(e):
    return _error_response(e.error_code, e.message, 400)


@app.errorhandler(AuthenticationRequired)
def handle_missing_user(e):
    return _error_response("UNAUTHENTICATED", "Missing authenticated user.", 401)


@app.errorhandler(PlanEntryNotFound)
def handle_missing_entry(e):
    return _error_response("NOT_FOUND", str(e), 404)


@app.errorhandler(DuplicatePlanEntry)
def handle_duplicate_entry(e):
    return _error_response("DUPLICATE_COURSE", str(e), 409)


@app.errorhandler(CatalogSyncError)
def handle_sync_error(e):
    print(f"[WARN] Catalog sync failed: {e.message}", file=sys.stderr)
    return _error_response("SYNC_FAILED", e.message, e.status_code)


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return _error_response(e.name.upper().replace(" ", "_"), e.description, e.code)
    print(f"[WARN] Unhandled error on {request.method} {request.path}: {e!r}", file=sys.stderr)
    return _error_response("SERVER_ERROR", "An unexpected server error occurred.", 500)


# ── Routes ─────────────────────────────────────────────────────────────────────
@app.route("/health", methods=["GET"])
def health_endpoint():
    return jsonify({
        "status": "ok",
        "version": "1.0.0",
        "program_name": _program_plan["name"],
    })


@app.route("/courses", methods=["GET"])
def get_courses():
    args = request.args
    return _courses_payload(
        _program_plan,
        search=args.get("search", ""),
        program_only=coerce_bool(args.get("program_only")),
        required_only=coerce_bool(args.get("required_only")),
        subjects=args.getlist("subject"),
    )


@app.route("/courses/search", methods=["POST"])
def search_courses():
    body = _json_body(default={})
    if not isinstance(body, dict):
        raise PlanValidationError("Request body must be a JSON object.")
    subjects = body.get("subjects") or []
    if isinstance(subjects, str):
        subjects = [s for s in subjects.split(",") if s.strip()]
    return _courses_payload(
        _plan_from_body(body),
        search=body.get("search", ""),
        program_only=coerce_bool(body.get("program_only")),
        required_only=coerce_bool(body.get("required_only")),
        subjects=subjects,
    )


@app.route("/program", methods=["GET"])
def get_program():
    return jsonify({"program": _program_plan})


@app.route("/program/validate", methods=["POST"])
def validate_program():
    """Validate an uploaded requirement file; the client keeps the result for its session."""
    plan = normalize_program_plan(
        _json_body(),
        fallback_name=config.DEFAULT_PROGRAM_NAME,
        fallback_subjects=config.DEFAULT_RELEVANT_SUBJECTS,
    )
    return jsonify({
        "program": plan,
        "requirement_count": len(plan["requirements"]),
    })


@app.route("/plan", methods=["GET"])
def get_user_plan():
    user_id = _current_user_id()
    with _session_factory() as session:
        entries = get_plan(session, user_id)
    return jsonify({"plan": entries, "by_term": group_plan_by_term(entries)})


@app.route("/plan", methods=["POST"])
def add_course():
    user_id = _current_user_id()
    body = _json_body()
    if not isinstance(body, dict):
        raise PlanValidationError("Request body must be a JSON object.")
    code = compact_code(body.get("courseCode") or body.get("course_code"))
    term = str(body.get("term") or "").strip()
    if not code or not term:
        raise PlanValidationError("courseCode and term are required.")
    with _session_factory.begin() as session:
        entry = add_plan_entry(session, user_id, code, term, coerce_bool(body.get("completed", False)))
    return jsonify({"message": "Course added", "entry": entry}), 201


@app.route("/plan/<code>", methods=["PUT"])
def update_course(code):
    user_id = _current_user_id()
    body = _json_body()
    if not isinstance(body, dict):
        raise PlanValidationError("Request body must be a JSON object.")
    term = str(body.get("term") or "").strip() or None
    completed = coerce_bool(body["completed"]) if "completed" in body else None
    if term is None and completed is None:
        raise PlanValidationError("Nothing to update.")
    with _session_factory.begin() as session:
        entry = update_plan_entry(session, user_id, code, term=term, completed=completed)
    return jsonify({"message": "Course updated", "entry": entry})


@app.route("/plan/<code>", methods=["DELETE"])
def delete_course(code):
    user_id = _current_user_id()
    with _session_factory.begin() as session:
        delete_plan_entry(session, user_id, code)
    return jsonify({"message": "Course removed"})


@app.route("/plan/import", methods=["POST"])
def import_plan():
    user_id = _current_user_id()
    client_ip = request.headers.get("X-Forwarded-For", request.remote_addr or "").split(",")[0].strip()
    if not app.config.get("TESTING") and not _check_rate_limit(client_ip):
        return _error_response("RATE_LIMITED", "Too many uploads. Please wait before trying again.", 429)

    entries = normalize_plan_import(_json_body())
    with _session_factory.begin() as session:
        result = import_plan_entries(session, user_id, entries)
        plan = get_plan(session, user_id)
    print(
        f"[INFO] Plan import for user {user_id}: received={result['received']} "
        f"inserted={result['inserted']} updated={result['updated']}"
    )
    return jsonify({"imported": result, "plan": plan})


@app.route("/plan/requirements", methods=["GET", "POST"])
def plan_requirements():
    user_id = _current_user_id()
    plan = _program_plan
    if request.method == "POST":
        plan = _plan_from_body(_json_body(default={}))
    with _session_factory() as session:
        user_codes = plan_course_codes(session, user_id)
    return jsonify(_requirements_payload(plan, user_codes))


@app.route("/requirements/check", methods=["POST"])
def check_requirements():
    """Evaluate an ad hoc course list without touching the stored plan."""
    body = _json_body()
    if not isinstance(body, dict):
        raise PlanValidationError("Request body must be a JSON object.")
    plan = _plan_from_body(body)
    with _session_factory() as session:
        known = catalog_codes(session)
    parsed = normalize_input(body.get("courses", ""), known)
    payload = _requirements_payload(plan, parsed["valid"] + parsed["not_in_catalog"])
    payload["invalid"] = parsed["invalid"]
    payload["not_in_catalog"] = parsed["not_in_catalog"]
    return jsonify(payload)


@app.route("/sync-courses", methods=["POST"])
def sync_courses_endpoint():
    """Scheduler trigger for the catalog sync; disabled unless SYNC_TOKEN is set."""
    if not config.SYNC_TOKEN:
        return _error_response("NOT_FOUND", "Catalog sync trigger is disabled.", 404)
    supplied = request.headers.get("X-Sync-Token", "")
    if not hmac.compare_digest(supplied, config.SYNC_TOKEN):
        return _error_response("FORBIDDEN", "Invalid sync token.", 403)

    summary = run_catalog_sync(_session_factory, _program_plan, api_key=config.catalog_api_key())
    return jsonify({"success": True, **summary})


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("FLASK_DEBUG", "0") == "1"
    app.run(host="0.0.0.0", port=port, debug=debug)
