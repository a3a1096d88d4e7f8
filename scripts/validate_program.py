"""
Publish gate for program requirement files.

Checks a requirement JSON before it becomes the configured default plan.
Designed to be importable for tests and runnable as a standalone CLI.

Usage:
    python scripts/validate_program.py data/comp_math_plan.json
    python scripts/validate_program.py path/to/plan.json --catalog data/courses.json
"""

import argparse
import json
import os
import sys

BACKEND_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend")
sys.path.insert(0, BACKEND_DIR)

from data_loader import load_catalog_snapshot  # noqa: E402
from normalizer import compact_code, subject_prefix  # noqa: E402
from validators import PlanValidationError, normalize_program_plan  # noqa: E402


# ── Validation result ─────────────────────────────────────────────────────────

class ValidationResult:
    """Collects errors and warnings for a single program file."""

    def __init__(self, label: str):
        self.label = label
        self.errors: list[str] = []
        self.warnings: list[str] = []

    def error(self, msg: str) -> None:
        self.errors.append(msg)

    def warn(self, msg: str) -> None:
        self.warnings.append(msg)

    @property
    def passed(self) -> bool:
        return len(self.errors) == 0

    def summary(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        lines = [f"[{status}] Program '{self.label}'"]
        for e in self.errors:
            lines.append(f"  [ERROR] {e}")
        for w in self.warnings:
            lines.append(f"  [WARN]  {w}")
        if self.passed and not self.warnings:
            lines.append("  All checks passed.")
        return "\n".join(lines)


# ── Individual checks ─────────────────────────────────────────────────────────

def check_option_overlap(plan: dict, result: ValidationResult) -> None:
    """A course listed under two requirements fulfills both; usually a copy-paste slip."""
    seen: dict[str, int] = {}
    for idx, req in enumerate(plan["requirements"], start=1):
        for code in req["options"]:
            if code in seen:
                result.warn(
                    f"{code} is listed in requirement {seen[code]} and requirement {idx}."
                )
            else:
                seen[code] = idx


def check_options_in_catalog(plan: dict, catalog_codes: set[str], result: ValidationResult) -> None:
    """Options that no catalog course matches can never be fulfilled from the catalog."""
    if not catalog_codes:
        return
    for idx, req in enumerate(plan["requirements"], start=1):
        missing = [code for code in req["options"] if code not in catalog_codes]
        if len(missing) == len(req["options"]):
            result.error(f"Requirement {idx} ('{req['description']}'): no option found in catalog: {missing}")
        elif missing:
            result.warn(f"Requirement {idx} ('{req['description']}'): not in catalog: {missing}")


def check_relevant_subjects_cover_options(plan: dict, result: ValidationResult) -> None:
    subjects = set(plan["relevant_subjects"])
    uncovered = sorted({
        subject_prefix(code)
        for req in plan["requirements"]
        for code in req["options"]
        if subject_prefix(code) not in subjects
    })
    if uncovered:
        result.warn(
            f"Required courses from subjects outside relevantSubjects: {uncovered}. "
            "They are still tagged relevant because they are required."
        )


def validate_program(raw, catalog_codes: set[str] | None = None, label: str = "program") -> ValidationResult:
    result = ValidationResult(label)
    try:
        plan = normalize_program_plan(raw)
    except PlanValidationError as exc:
        result.error(exc.message)
        return result
    result.label = plan["name"]
    check_option_overlap(plan, result)
    check_options_in_catalog(plan, catalog_codes or set(), result)
    check_relevant_subjects_cover_options(plan, result)
    return result


def main(args=None) -> int:
    parser = argparse.ArgumentParser(description="Validate a program requirement file.")
    parser.add_argument("path", help="Path to the program requirement JSON.")
    parser.add_argument("--catalog", type=str, help="Catalog snapshot JSON to check options against.")
    opts = parser.parse_args(args)

    try:
        with open(opts.path, encoding="utf-8") as fh:
            raw = json.load(fh)
    except (OSError, ValueError) as exc:
        print(f"[ERROR] Cannot read {opts.path}: {exc}", file=sys.stderr)
        return 1

    catalog_codes: set[str] = set()
    if opts.catalog:
        records = load_catalog_snapshot(opts.catalog)
        catalog_codes = {
            compact_code(f"{r.get('subjectCode', '')}{r.get('catalogNumber', '')}")
            for r in records
        }

    result = validate_program(raw, catalog_codes, label=os.path.basename(opts.path))
    print(result.summary())
    return 0 if result.passed else 1


if __name__ == "__main__":
    raise SystemExit(main())
