"""
Relational storage for the course catalog and per-user plans.

Every function takes an open Session and leaves commit/rollback to the
caller, so a sync run or a plan import is applied as one transaction.
"""

import pandas as pd
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db import Course, PlanEntry, utcnow
from normalizer import compact_code

COURSE_COLUMNS = [
    "course_id",
    "term_code",
    "term_name",
    "subject_code",
    "catalog_number",
    "course_code",
    "title",
    "description",
    "requirements_description",
    "grading_basis",
    "component_code",
    "enroll_consent_code",
    "enroll_consent_description",
    "drop_consent_code",
    "drop_consent_description",
    "is_required",
    "program_relevant",
]

# Columns written by a sync; term_code is passed separately.
_SYNC_FIELDS = [c for c in COURSE_COLUMNS if c != "term_code"]


class PlanEntryNotFound(LookupError):
    pass


class DuplicatePlanEntry(ValueError):
    pass


# ── Catalog ──────────────────────────────────────────────────────────────────

def upsert_courses(session: Session, rows: list[dict], term_code: str) -> dict:
    """
    Upsert one term's courses keyed by (course_id, term_code) and archive
    every active row from other terms. Nothing is deleted, so a rolled-back
    run leaves the previous catalog in place.
    """
    existing = {
        c.course_id: c
        for c in session.scalars(select(Course).where(Course.term_code == term_code))
    }
    now = utcnow()
    inserted = 0
    updated = 0

    for row in rows:
        values = {k: row[k] for k in _SYNC_FIELDS if k in row}
        values["course_id"] = str(values["course_id"])
        values["archived"] = False
        values["last_updated"] = now

        course = existing.get(values["course_id"])
        if course is None:
            course = Course(term_code=term_code, **values)
            session.add(course)
            existing[course.course_id] = course
            inserted += 1
        else:
            for key, value in values.items():
                setattr(course, key, value)
            updated += 1

    result = session.execute(
        update(Course)
        .where(Course.term_code != term_code, Course.archived.is_(False))
        .values(archived=True)
    )
    session.flush()
    return {"inserted": inserted, "updated": updated, "archived": result.rowcount or 0}


def list_courses(session: Session, include_archived: bool = False) -> pd.DataFrame:
    """Catalog rows as a DataFrame ordered by subject and catalog number."""
    stmt = select(Course).order_by(Course.subject_code, Course.catalog_number)
    if not include_archived:
        stmt = stmt.where(Course.archived.is_(False))
    records = [
        {col: getattr(course, col) for col in COURSE_COLUMNS}
        for course in session.scalars(stmt)
    ]
    return pd.DataFrame(records, columns=COURSE_COLUMNS)


def catalog_codes(session: Session) -> set[str]:
    stmt = select(Course.course_code).where(Course.archived.is_(False))
    return set(session.scalars(stmt))


# ── Plans ────────────────────────────────────────────────────────────────────

def _entry_to_dict(entry: PlanEntry) -> dict:
    return {
        "course_code": entry.course_code,
        "term": entry.term,
        "completed": bool(entry.completed),
    }


def _find_entry(session: Session, user_id: str, course_code: str) -> PlanEntry | None:
    stmt = select(PlanEntry).where(
        PlanEntry.user_id == user_id,
        PlanEntry.course_code == compact_code(course_code),
    )
    return session.scalars(stmt).first()


def get_plan(session: Session, user_id: str) -> list[dict]:
    stmt = (
        select(PlanEntry)
        .where(PlanEntry.user_id == user_id)
        .order_by(PlanEntry.term, PlanEntry.course_code)
    )
    return [_entry_to_dict(e) for e in session.scalars(stmt)]


def plan_course_codes(session: Session, user_id: str) -> set[str]:
    """Every code on the plan, completed or not."""
    stmt = select(PlanEntry.course_code).where(PlanEntry.user_id == user_id)
    return set(session.scalars(stmt))


def add_plan_entry(
    session: Session,
    user_id: str,
    course_code: str,
    term: str,
    completed: bool = False,
) -> dict:
    code = compact_code(course_code)
    if _find_entry(session, user_id, code) is not None:
        raise DuplicatePlanEntry(f"{code} is already on your plan.")

    entry = PlanEntry(user_id=user_id, course_code=code, term=term, completed=bool(completed))
    session.add(entry)
    try:
        session.flush()
    except IntegrityError as exc:
        raise DuplicatePlanEntry(f"{code} is already on your plan.") from exc
    return _entry_to_dict(entry)


def update_plan_entry(
    session: Session,
    user_id: str,
    course_code: str,
    term: str | None = None,
    completed: bool | None = None,
) -> dict:
    entry = _find_entry(session, user_id, course_code)
    if entry is None:
        raise PlanEntryNotFound(f"{compact_code(course_code)} is not on your plan.")
    if term is not None:
        entry.term = term
    if completed is not None:
        entry.completed = bool(completed)
    session.flush()
    return _entry_to_dict(entry)


def delete_plan_entry(session: Session, user_id: str, course_code: str) -> None:
    entry = _find_entry(session, user_id, course_code)
    if entry is None:
        raise PlanEntryNotFound(f"{compact_code(course_code)} is not on your plan.")
    session.delete(entry)
    session.flush()


def import_plan_entries(session: Session, user_id: str, entries: list[dict]) -> dict:
    """
    Write normalized plan entries for one user.

    Duplicate codes within the batch collapse last-write-wins; codes already
    on the plan are updated in place.
    """
    latest: dict[str, dict] = {}
    for entry in entries:
        latest[entry["course_code"]] = entry

    existing = {
        e.course_code: e
        for e in session.scalars(select(PlanEntry).where(PlanEntry.user_id == user_id))
    }
    inserted = 0
    updated = 0
    for code, entry in latest.items():
        row = existing.get(code)
        if row is None:
            session.add(PlanEntry(
                user_id=user_id,
                course_code=code,
                term=entry["term"],
                completed=bool(entry["completed"]),
            ))
            inserted += 1
        else:
            row.term = entry["term"]
            row.completed = bool(entry["completed"])
            updated += 1
    session.flush()

    return {
        "received": len(entries),
        "inserted": inserted,
        "updated": updated,
        "duplicates_collapsed": len(entries) - len(latest),
    }
