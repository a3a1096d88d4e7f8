import json
import os

from validators import normalize_program_plan


def extract_course_records(body) -> list[dict]:
    """Catalog payloads arrive either as a bare array or wrapped in {"data": [...]}."""
    if isinstance(body, list):
        records = body
    elif isinstance(body, dict) and isinstance(body.get("data"), list):
        records = body["data"]
    else:
        raise ValueError("Unexpected catalog payload: expected a list or an object with a `data` list.")
    return [r for r in records if isinstance(r, dict)]


def load_program_plan(path: str, fallback_name: str | None = None, fallback_subjects=None) -> dict:
    """Load and normalize a requirement document from JSON. Raises on file/schema errors."""
    with open(path, encoding="utf-8") as fh:
        raw = json.load(fh)
    plan = normalize_program_plan(raw, fallback_name=fallback_name, fallback_subjects=fallback_subjects)
    print(
        f"[INFO] Program plan '{plan['name']}': {len(plan['requirements'])} requirement(s), "
        f"{len(plan['relevant_subjects'])} relevant subject(s)"
    )
    return plan


def load_catalog_snapshot(path: str) -> list[dict]:
    """Read raw catalog records previously written by write_catalog_snapshot()."""
    with open(path, encoding="utf-8") as fh:
        body = json.load(fh)
    return extract_course_records(body)


def write_catalog_snapshot(records: list[dict], path: str) -> None:
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(records, fh, indent=2, ensure_ascii=False)
