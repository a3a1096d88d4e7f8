import re

# Matches: SUBJ NNN, SUBJ-NNN, SUBJNNN, CS 136L, MATH 499R, etc.
CANONICAL = re.compile(r'^([A-Za-z]{2,8})\s*[-]?\s*(\d{1,4}[A-Za-z]{0,2})$')
SUBJECT_PREFIX = re.compile(r'^[A-Za-z]+')
_WHITESPACE = re.compile(r'\s+')

_BOOL_TRUTHY = {"true", "1", "yes", "y"}


def compact_code(raw) -> str:
    """
    Coerce to string, drop every whitespace character and uppercase.
    None and blank values become "".
    """
    if raw is None:
        return ""
    return _WHITESPACE.sub("", str(raw)).upper()


def normalize_code(raw: str) -> str | None:
    """
    Normalizes a course code to canonical 'SUBJNNN' format.
    Handles: 'math135', 'MATH-135', 'MATH 135', 'CS 136L', 'stat230'
    Returns None if the string cannot be parsed as a course code.
    """
    if not raw or not str(raw).strip():
        return None
    m = CANONICAL.match(str(raw).strip())
    if m:
        subject = m.group(1).upper()
        num = m.group(2).upper()
        return f"{subject}{num}"
    return None


def subject_prefix(code: str) -> str:
    """Leading alphabetic run of a course code: 'STAT230' -> 'STAT'."""
    m = SUBJECT_PREFIX.match(str(code or "").strip())
    return m.group(0).upper() if m else ""


def coerce_bool(value) -> bool:
    """Python bool, JSON number, or string variants (true/1/yes/y). None -> False."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    return str(value).strip().lower() in _BOOL_TRUTHY


def normalize_input(raw, catalog_codes: set) -> dict:
    """
    Splits comma/newline/semicolon-separated input (or a list) and
    normalizes each code.

    Returns:
      {
        "valid":          ["CS135", "MATH135"],   # normalized + found in catalog
        "invalid":        ["asdfasdf"],           # failed regex
        "not_in_catalog": ["CS999"]               # valid format but unknown course
      }
    """
    if isinstance(raw, (list, tuple, set)):
        tokens = [str(t) for t in raw if t is not None]
    elif not raw or not str(raw).strip():
        return {"valid": [], "invalid": [], "not_in_catalog": []}
    else:
        tokens = re.split(r'[,\n;]+', str(raw))

    valid = []
    invalid = []
    not_in_catalog = []
    seen: set[str] = set()

    for token in tokens:
        token = token.strip()
        if not token:
            continue
        normalized = normalize_code(token)
        if normalized is None:
            if token not in seen:
                invalid.append(token)
                seen.add(token)
        elif normalized in seen:
            pass  # deduplicate silently
        elif normalized not in catalog_codes:
            not_in_catalog.append(normalized)
            seen.add(normalized)
        else:
            valid.append(normalized)
            seen.add(normalized)

    return {"valid": valid, "invalid": invalid, "not_in_catalog": not_in_catalog}
