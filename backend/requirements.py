from normalizer import compact_code, subject_prefix

# Program name used when an uploaded requirement file omits one.
DEFAULT_PROGRAM_NAME = "Custom Plan"

# Subjects surfaced in program-only catalog views when a file lists none.
DEFAULT_RELEVANT_SUBJECTS = frozenset({"MATH", "AMATH", "PMATH", "CS", "CO", "STAT"})

# Outstanding requirements highlighted in the catalog sidebar.
MAX_SUGGESTIONS = 3


def evaluate_requirements(user_codes, plan: dict) -> list[dict]:
    """
    Check each requirement of a normalized program plan against a set of
    course codes.

    Options are scanned in the order the plan lists them and the first one
    the user has wins, so the canonical choice is reported when several
    options are present. Completed and merely planned courses count the
    same; callers pass every code on the plan.

    Returns:
      [{"description": "Core", "fulfilled": True, "fulfilled_by": "CS136"}, ...]
    """
    owned = {compact_code(c) for c in (user_codes or [])}
    owned.discard("")

    report = []
    for req in plan.get("requirements", []):
        fulfilled_by = next((code for code in req["options"] if code in owned), None)
        report.append({
            "description": req["description"],
            "fulfilled": fulfilled_by is not None,
            "fulfilled_by": fulfilled_by,
        })
    return report


def required_option_set(plan: dict) -> set[str]:
    """Flatten every requirement's options into one set."""
    required: set[str] = set()
    for req in plan.get("requirements", []):
        required.update(req["options"])
    return required


def tag_course(code: str, required_options: set, relevant_subjects) -> tuple[bool, bool]:
    """
    Return (is_required, is_relevant) for one catalog course.

    A course is relevant when it is required or its subject prefix is on the
    program's watch list. Shared by the sync job and the catalog filter.
    """
    key = compact_code(code)
    is_required = key in required_options
    is_relevant = is_required or subject_prefix(key) in relevant_subjects
    return is_required, is_relevant


def summarize_requirements(plan: dict, report: list[dict], user_codes=()) -> dict:
    """
    Sidebar summary of a fulfillment report.

    Suggestions are the first few outstanding requirements, each with the
    options not yet on the plan.
    """
    owned = {compact_code(c) for c in user_codes}
    satisfied = sum(1 for r in report if r["fulfilled"])

    suggestions = []
    for req, row in zip(plan.get("requirements", []), report):
        if row["fulfilled"]:
            continue
        suggestions.append({
            "description": row["description"],
            "pending": [code for code in req["options"] if code not in owned],
            "total_options": len(req["options"]),
        })
        if len(suggestions) >= MAX_SUGGESTIONS:
            break

    return {
        "program_name": plan.get("name", DEFAULT_PROGRAM_NAME),
        "total": len(report),
        "satisfied": satisfied,
        "outstanding": len(report) - satisfied,
        "required_course_count": len(required_option_set(plan)),
        "suggestions": suggestions,
    }
