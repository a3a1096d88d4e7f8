import re
from datetime import date

# Placeholder term for plan entries that have not been scheduled yet.
UNASSIGNED_TERM = "TBD"

# Planner columns, in academic order.
TERM_SEQUENCE = ["1A", "1B", "2A", "2B", "3A", "3B", "4A", "4B"]

TERM_CODE_RE = re.compile(r'^(\d)(\d{2})([159])$')

_SEASON_BY_DIGIT = {"1": "Winter", "5": "Spring", "9": "Fall"}


def term_digit_for_month(month: int) -> int:
    """Jan-Apr -> 1 (Winter), May-Aug -> 5 (Spring), Sep-Dec -> 9 (Fall)."""
    if not 1 <= month <= 12:
        raise ValueError(f"Month out of range: {month!r}")
    if month <= 4:
        return 1
    if month <= 8:
        return 5
    return 9


def term_code_for_date(day: date | None = None) -> str:
    """
    Map a calendar date to the registrar's term code.

    Format is <century offset from 1900><two-digit year><term digit>:
      2026-10-19 -> '1269'   (Fall 2026)
      1999-02-01 -> '0991'   (Winter 1999)
    """
    day = day or date.today()
    century = (day.year - 1900) // 100
    return f"{century}{day.year % 100:02d}{term_digit_for_month(day.month)}"


def term_label(code: str) -> str:
    """'1269' -> 'Fall 2026'. Raises ValueError on a malformed code."""
    m = TERM_CODE_RE.match(str(code or "").strip())
    if not m:
        raise ValueError(f"Cannot parse term code: {code!r}")
    century, yy, digit = m.groups()
    year = 1900 + int(century) * 100 + int(yy)
    return f"{_SEASON_BY_DIGIT[digit]} {year}"
