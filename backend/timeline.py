from terms import TERM_SEQUENCE, UNASSIGNED_TERM


def group_plan_by_term(entries: list[dict]) -> list[dict]:
    """
    Group plan entries into planner columns.

    Standard academic terms come first in sequence order (empty columns
    included), then any other terms alphabetically, then unscheduled
    entries under the placeholder term.

    Returns:
      [
        {"term": "1A", "courses": [{"course_code": "CS135", ...}]},
        {"term": "1B", "courses": []},
        ...
      ]
    """
    by_term: dict[str, list[dict]] = {term: [] for term in TERM_SEQUENCE}
    for entry in entries:
        term = str(entry.get("term") or "").strip() or UNASSIGNED_TERM
        by_term.setdefault(term, []).append(entry)

    extra = sorted(t for t in by_term if t not in TERM_SEQUENCE and t != UNASSIGNED_TERM)
    order = TERM_SEQUENCE + extra
    if UNASSIGNED_TERM in by_term:
        order.append(UNASSIGNED_TERM)

    return [
        {
            "term": term,
            "courses": sorted(by_term[term], key=lambda e: str(e.get("course_code", ""))),
        }
        for term in order
    ]
