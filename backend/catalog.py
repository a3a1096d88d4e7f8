import pandas as pd

from requirements import required_option_set, tag_course


def tag_catalog(courses_df: pd.DataFrame, plan: dict) -> pd.DataFrame:
    """
    Recompute is_required / program_relevant for every row against `plan`.

    Stored flags reflect the plan used at sync time; an uploaded plan can
    differ, so browsing always re-tags.
    """
    df = courses_df.copy()
    if len(df) == 0:
        df["is_required"] = pd.Series(dtype=bool)
        df["program_relevant"] = pd.Series(dtype=bool)
        return df

    required = required_option_set(plan)
    subjects = set(plan.get("relevant_subjects", []))
    tags = [tag_course(code, required, subjects) for code in df["course_code"]]
    df["is_required"] = [t[0] for t in tags]
    df["program_relevant"] = [t[1] for t in tags]
    return df


def filter_catalog(
    courses_df: pd.DataFrame,
    plan: dict,
    search: str = "",
    program_only: bool = False,
    required_only: bool = False,
    subjects=None,
) -> pd.DataFrame:
    """
    Catalog browse filter.

    search matches 'SUBJ NUM', title, or prerequisite text, case-insensitive.
    """
    df = tag_catalog(courses_df, plan)
    if len(df) == 0:
        return df

    mask = pd.Series(True, index=df.index)
    if program_only:
        mask &= df["program_relevant"]
    if required_only:
        mask &= df["is_required"]

    wanted = {str(s).strip().upper() for s in (subjects or []) if str(s).strip()}
    if wanted:
        mask &= df["subject_code"].astype(str).str.upper().isin(wanted)

    q = str(search or "").strip().lower()
    if q:
        display_code = (df["subject_code"].astype(str) + " " + df["catalog_number"].astype(str)).str.lower()
        title = df["title"].fillna("").astype(str).str.lower()
        prereq = df["requirements_description"].fillna("").astype(str).str.lower()
        mask &= (
            display_code.str.contains(q, regex=False)
            | df["course_code"].astype(str).str.lower().str.contains(q, regex=False)
            | title.str.contains(q, regex=False)
            | prereq.str.contains(q, regex=False)
        )

    return df[mask].reset_index(drop=True)
