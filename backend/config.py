import os

from dotenv import load_dotenv

from requirements import DEFAULT_PROGRAM_NAME as _BUILTIN_PROGRAM_NAME
from requirements import DEFAULT_RELEVANT_SUBJECTS as _BUILTIN_RELEVANT_SUBJECTS

load_dotenv()

# ── Paths ─────────────────────────────────────────────────────────────────────
BACKEND_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(BACKEND_DIR)
DATA_DIR = os.path.join(PROJECT_ROOT, "data")
_DEFAULT_PLAN_PATH = os.path.join(DATA_DIR, "comp_math_plan.json")


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, float(raw))
    except (TypeError, ValueError):
        return default


def _env_path(name: str, default: str) -> str:
    raw = os.environ.get(name)
    if not raw:
        return default
    if not os.path.isabs(raw):
        return os.path.join(PROJECT_ROOT, raw)
    return raw


def _env_subjects(name: str, default) -> frozenset:
    raw = os.environ.get(name, "")
    subjects = {s.strip().upper() for s in raw.split(",") if s.strip()}
    return frozenset(subjects) if subjects else frozenset(default)


DATABASE_URL = os.environ.get("DATABASE_URL") or f"sqlite:///{os.path.join(DATA_DIR, 'planner.db')}"
PROGRAM_PLAN_PATH = _env_path("PROGRAM_PLAN_PATH", _DEFAULT_PLAN_PATH)

DEFAULT_PROGRAM_NAME = os.environ.get("DEFAULT_PROGRAM_NAME", "").strip() or _BUILTIN_PROGRAM_NAME
DEFAULT_RELEVANT_SUBJECTS = _env_subjects("DEFAULT_RELEVANT_SUBJECTS", _BUILTIN_RELEVANT_SUBJECTS)

CATALOG_API_URL = (os.environ.get("CATALOG_API_URL") or "https://openapi.data.uwaterloo.ca/v3").rstrip("/")
CATALOG_API_TIMEOUT = _env_float("CATALOG_API_TIMEOUT", 30.0, minimum=1.0)

SYNC_TOKEN = os.environ.get("SYNC_TOKEN", "").strip()

SLOW_REQUEST_LOG_MS = _env_float("SLOW_REQUEST_LOG_MS", 750.0, minimum=0.0)


def catalog_api_key() -> str | None:
    """Open Data API key; WATERLOO_API_KEY and API_KEY are accepted for local setups."""
    for name in ("UW_API_KEY", "WATERLOO_API_KEY", "API_KEY"):
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return None
