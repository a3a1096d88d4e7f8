"""
Catalog sync: fetch the registrar's course catalog for a term, tag each
course against the program plan, and upsert it into storage.

Each run is all-or-nothing. Fetch, payload and storage failures raise
CatalogSyncError and the storage write happens in a single transaction.
"""

import sys
from datetime import date

import httpx
import pandas as pd
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

import config
from catalog_store import COURSE_COLUMNS, upsert_courses
from data_loader import extract_course_records
from normalizer import compact_code
from requirements import required_option_set, tag_course
from terms import term_code_for_date, term_label

# Open Data API field -> storage column.
_API_FIELD_MAP = {
    "courseId": "course_id",
    "subjectCode": "subject_code",
    "catalogNumber": "catalog_number",
    "title": "title",
    "description": "description",
    "requirementsDescription": "requirements_description",
    "gradingBasis": "grading_basis",
    "courseComponentCode": "component_code",
    "enrollConsentCode": "enroll_consent_code",
    "enrollConsentDescription": "enroll_consent_description",
    "dropConsentCode": "drop_consent_code",
    "dropConsentDescription": "drop_consent_description",
}


class CatalogSyncError(RuntimeError):
    """A sync run was aborted. status_code is what an HTTP trigger should return."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def fetch_catalog(
    term_code: str,
    api_key: str | None,
    base_url: str | None = None,
    timeout: float | None = None,
    transport: httpx.BaseTransport | None = None,
) -> list[dict]:
    """GET <base_url>/Courses/<term_code> with the X-API-KEY header."""
    if not api_key:
        raise CatalogSyncError("Missing catalog API key. Set UW_API_KEY.")

    url = f"{(base_url or config.CATALOG_API_URL).rstrip('/')}/Courses/{term_code}"
    try:
        with httpx.Client(
            timeout=timeout or config.CATALOG_API_TIMEOUT,
            headers={"X-API-KEY": api_key},
            transport=transport,
        ) as client:
            response = client.get(url)
    except httpx.HTTPError as exc:
        raise CatalogSyncError(f"Catalog request failed: {exc}", status_code=502) from exc

    if response.status_code == 401:
        raise CatalogSyncError("Catalog API rejected the key (HTTP 401).", status_code=502)
    if response.is_error:
        raise CatalogSyncError(
            f"Catalog fetch failed: HTTP {response.status_code} {response.reason_phrase}",
            status_code=502,
        )

    try:
        return extract_course_records(response.json())
    except ValueError as exc:
        raise CatalogSyncError(f"Catalog payload unreadable: {exc}", status_code=502) from exc


def normalize_catalog_records(records: list[dict], term_code: str, plan: dict) -> tuple[pd.DataFrame, int]:
    """
    Shape raw catalog records into course rows tagged against the plan.

    Records without a course id, subject or catalog number are skipped.
    Repeated (course_id, term_code) pairs keep the last record.

    Returns (courses_df, skipped_count).
    """
    df = pd.DataFrame(records, dtype=object)
    for src in _API_FIELD_MAP:
        if src not in df.columns:
            df[src] = ""
    df = df[list(_API_FIELD_MAP)].rename(columns=_API_FIELD_MAP)
    df = df.where(pd.notna(df), "")
    for col in df.columns:
        df[col] = df[col].astype(str).str.strip()
    df["subject_code"] = df["subject_code"].str.upper()

    missing = (df["course_id"] == "") | (df["subject_code"] == "") | (df["catalog_number"] == "")
    skipped = int(missing.sum())
    if skipped:
        print(
            f"[WARN] Skipping {skipped} catalog record(s) missing courseId/subjectCode/catalogNumber.",
            file=sys.stderr,
        )
    df = df[~missing].copy()

    df["course_code"] = (df["subject_code"] + df["catalog_number"]).map(compact_code)
    df["term_code"] = term_code
    df["term_name"] = term_label(term_code)

    required = required_option_set(plan)
    subjects = set(plan.get("relevant_subjects", []))
    tags = [tag_course(code, required, subjects) for code in df["course_code"]]
    df["is_required"] = [t[0] for t in tags]
    df["program_relevant"] = [t[1] for t in tags]

    df = df.drop_duplicates(subset=["course_id", "term_code"], keep="last")
    return df[COURSE_COLUMNS].reset_index(drop=True), skipped


def run_catalog_sync(
    session_factory: sessionmaker | None,
    plan: dict,
    api_key: str | None = None,
    term_code: str | None = None,
    today: date | None = None,
    records: list[dict] | None = None,
    dry_run: bool = False,
    transport: httpx.BaseTransport | None = None,
) -> dict:
    """
    One sync run. Pass `records` to sync from a snapshot instead of the API.

    Returns:
      {"term_code": "1269", "term_name": "Fall 2026", "fetched": 6120,
       "upserted": 6118, "skipped": 2, "inserted": 40, "updated": 6078,
       "archived": 5900, "dry_run": False}
    """
    term_code = term_code or term_code_for_date(today)
    try:
        label = term_label(term_code)
    except ValueError as exc:
        raise CatalogSyncError(str(exc), status_code=400) from exc
    print(f"[INFO] Catalog sync starting for term {term_code} ({label})")

    if records is None:
        records = fetch_catalog(term_code, api_key, transport=transport)
    courses_df, skipped = normalize_catalog_records(records, term_code, plan)
    if len(courses_df) == 0:
        raise CatalogSyncError(
            f"Catalog for term {term_code} has no usable courses; existing catalog left unchanged.",
            status_code=502,
        )

    summary = {
        "term_code": term_code,
        "term_name": label,
        "fetched": len(records),
        "upserted": len(courses_df),
        "skipped": skipped,
        "inserted": 0,
        "updated": 0,
        "archived": 0,
        "dry_run": dry_run,
    }
    if dry_run:
        print(f"[OK] Dry run: {len(courses_df)} course(s) normalized for {term_code}; nothing written.")
        return summary

    rows = courses_df.to_dict(orient="records")
    for row in rows:
        row["is_required"] = bool(row["is_required"])
        row["program_relevant"] = bool(row["program_relevant"])

    try:
        with session_factory.begin() as session:
            result = upsert_courses(session, rows, term_code)
    except SQLAlchemyError as exc:
        raise CatalogSyncError(f"Catalog upsert failed; previous catalog kept: {exc}") from exc

    summary.update(result)
    print(
        f"[OK] Synced {summary['upserted']} course(s) for {term_code} "
        f"(inserted={result['inserted']} updated={result['updated']} archived={result['archived']})"
    )
    return summary
