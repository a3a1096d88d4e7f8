from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text, UniqueConstraint, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Course(Base):
    """One catalog course offering for a term. Replaced wholesale on each sync."""

    __tablename__ = "courses"

    course_id: Mapped[str] = mapped_column(String, primary_key=True)
    term_code: Mapped[str] = mapped_column(String, primary_key=True)
    term_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    subject_code: Mapped[str] = mapped_column(String, index=True)
    catalog_number: Mapped[str] = mapped_column(String)
    course_code: Mapped[str] = mapped_column(String, index=True)
    title: Mapped[str] = mapped_column(String, default="")
    description: Mapped[str] = mapped_column(Text, default="")
    requirements_description: Mapped[str] = mapped_column(Text, default="")
    grading_basis: Mapped[str] = mapped_column(String, default="")
    component_code: Mapped[str] = mapped_column(String, default="")
    enroll_consent_code: Mapped[str] = mapped_column(String, default="")
    enroll_consent_description: Mapped[str] = mapped_column(String, default="")
    drop_consent_code: Mapped[str] = mapped_column(String, default="")
    drop_consent_description: Mapped[str] = mapped_column(String, default="")
    is_required: Mapped[bool] = mapped_column(Boolean, default=False)
    program_relevant: Mapped[bool] = mapped_column(Boolean, default=False)
    archived: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    last_updated: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class PlanEntry(Base):
    """A course on one user's plan. At most one row per (user, course)."""

    __tablename__ = "plan_entries"
    __table_args__ = (
        UniqueConstraint("user_id", "course_code", name="uq_plan_entries_user_course"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, index=True)
    course_code: Mapped[str] = mapped_column(String)
    term: Mapped[str] = mapped_column(String)
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


def make_session_factory(database_url: str, create_tables: bool = True) -> sessionmaker:
    """Build an engine + session factory. In-memory SQLite shares one connection."""
    kwargs = {"future": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, **kwargs)
    if create_tables:
        Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
