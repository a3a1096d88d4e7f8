"""
Pure input-validation helpers for uploaded program files and plan imports.
No Flask or storage imports.
"""

from typing import Any, Dict, Iterable, List, Optional

from normalizer import coerce_bool, compact_code
from requirements import DEFAULT_PROGRAM_NAME, DEFAULT_RELEVANT_SUBJECTS
from terms import UNASSIGNED_TERM


class PlanValidationError(ValueError):
    """Uploaded document rejected; the message names the offending index or field."""

    def __init__(self, message: str, error_code: str = "INVALID_INPUT"):
        super().__init__(message)
        self.error_code = error_code
        self.message = message


# Plan-import fields that can carry a course code, in priority order.
_CODE_SOURCES = (
    ("course_code",),
    ("courseCode",),
    ("subjectCode", "catalogNumber"),
    ("subject", "catalog_number"),
)


def _clean_text(value) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""


def _normalize_options(raw_options: Iterable[Any]) -> List[str]:
    options = []
    for opt in raw_options:
        if isinstance(opt, bool) or not isinstance(opt, (str, int, float)):
            continue
        code = compact_code(opt)
        if code:
            options.append(code)
    return list(dict.fromkeys(options))


def _normalize_subjects(raw_subjects, fallback: Iterable[str]) -> List[str]:
    subjects = []
    if isinstance(raw_subjects, (list, tuple)):
        for subj in raw_subjects:
            if isinstance(subj, str) and subj.strip():
                subjects.append(subj.strip().upper())
    if not subjects:
        subjects = sorted(str(s).strip().upper() for s in fallback)
    return list(dict.fromkeys(subjects))


def normalize_program_plan(
    raw: Any,
    fallback_name: Optional[str] = None,
    fallback_subjects: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    """
    Validate an uploaded requirement document and return its normalized form.

    Fails fast on the first bad requirement; nothing is partially applied.

    Returns:
      {
        "name": "Computational Mathematics",
        "relevant_subjects": ["CS", "MATH"],
        "requirements": [{"description": "Core", "options": ["CS135", "CS145"]}],
      }
    """
    if not isinstance(raw, dict):
        raise PlanValidationError(
            "Invalid format: expected a JSON object with a `requirements` array.",
            "INVALID_PROGRAM",
        )
    raw_requirements = raw.get("requirements")
    if not isinstance(raw_requirements, list) or len(raw_requirements) == 0:
        raise PlanValidationError(
            "Invalid format: expected a non-empty `requirements` array in the JSON file.",
            "INVALID_PROGRAM",
        )

    requirements = []
    for idx, entry in enumerate(raw_requirements, start=1):
        if not isinstance(entry, dict):
            raise PlanValidationError(
                f"Requirement {idx} must be an object with an `options` array.",
                "INVALID_PROGRAM",
            )
        raw_options = entry.get("options")
        if not isinstance(raw_options, list) or len(raw_options) == 0:
            raise PlanValidationError(
                f"Requirement {idx} must list at least one course in `options`.",
                "INVALID_PROGRAM",
            )
        options = _normalize_options(raw_options)
        if not options:
            raise PlanValidationError(
                f"Requirement {idx} has no usable course codes in `options`.",
                "INVALID_PROGRAM",
            )
        requirements.append({
            "description": _clean_text(entry.get("description")) or f"Requirement {idx}",
            "options": options,
        })

    name = _clean_text(raw.get("name")) or fallback_name or DEFAULT_PROGRAM_NAME
    raw_subjects = raw.get("relevantSubjects", raw.get("relevant_subjects"))
    subjects = _normalize_subjects(
        raw_subjects,
        DEFAULT_RELEVANT_SUBJECTS if fallback_subjects is None else fallback_subjects,
    )

    return {
        "name": name,
        "relevant_subjects": subjects,
        "requirements": requirements,
    }


def _code_part(value) -> bool:
    # bool is an int subclass; JSON true must not become "TRUE"
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        return False
    return bool(str(value).strip())


def _resolve_course_code(item: Dict[str, Any]) -> Optional[str]:
    for fields in _CODE_SOURCES:
        parts = [item.get(f) for f in fields]
        if not all(_code_part(p) for p in parts):
            continue
        code = compact_code("".join(str(p) for p in parts))
        if code:
            return code
    return None


def normalize_plan_import(raw: Any) -> List[Dict[str, Any]]:
    """
    Validate an uploaded plan and return entries in input order.

    Accepts a bare array or an exported `{"plan": [...]}` object. Duplicate
    course codes are kept here; the storage import decides how to collapse
    them.

    Each item:
      {"course_code": "MATH135", "term": "1A", "completed": False}
    """
    if isinstance(raw, dict) and isinstance(raw.get("plan"), list):
        raw = raw["plan"]
    if not isinstance(raw, list):
        raise PlanValidationError(
            "Invalid format: expected a JSON array of plan entries.",
            "INVALID_PLAN",
        )

    entries = []
    for idx, item in enumerate(raw, start=1):
        if not isinstance(item, dict):
            raise PlanValidationError(f"Plan entry {idx} must be an object.", "INVALID_PLAN")
        code = _resolve_course_code(item)
        if code is None:
            raise PlanValidationError(
                f"Plan entry {idx} has no course code "
                "(expected course_code, courseCode, or subjectCode + catalogNumber).",
                "INVALID_PLAN",
            )
        term = item.get("term")
        term = str(term).strip() if term is not None else ""
        entries.append({
            "course_code": code,
            "term": term or UNASSIGNED_TERM,
            "completed": coerce_bool(item.get("completed", False)),
        })
    return entries
