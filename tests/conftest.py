import os
import tempfile
from pathlib import Path

# Module-level engine in mergeusers.db.session is built from DATABASE_URL on import.
os.environ.setdefault(
    "DATABASE_URL", f"sqlite:///{Path(tempfile.mkdtemp()) / 'mergeusers_import.db'}"
)

import pytest
from sqlalchemy import (
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    insert,
    select,
)
from sqlalchemy.orm import sessionmaker

from mergeusers.config import Settings
from mergeusers.core.merge_config import build_merge_config
from mergeusers.db.base import Base
from mergeusers.models.merge_log import MergeLog  # noqa: F401
from mergeusers.services.merge_tool import MergeUserTool


def _host_metadata() -> MetaData:
    """A small LMS-like schema: the tables a merge has to deal with."""
    md = MetaData()
    Table(
        "user", md,
        Column("id", Integer, primary_key=True),
        Column("username", String(100), nullable=False),
        Column("deleted", Integer, nullable=False, default=0),
        Column("suspended", Integer, nullable=False, default=0),
    )
    Table(
        "enrol_records", md,
        Column("id", Integer, primary_key=True),
        Column("userid", Integer, nullable=False),
        Column("courseid", Integer, nullable=False),
        UniqueConstraint("userid", "courseid"),
    )
    Table(
        "forum_posts", md,
        Column("id", Integer, primary_key=True),
        Column("userid", Integer, nullable=False),
        Column("usermodified", Integer, nullable=True),
        Column("message", String(200)),
    )
    Table(
        "user_preferences", md,
        Column("id", Integer, primary_key=True),
        Column("userid", Integer, nullable=False),
        Column("name", String(100)),
        Column("value", String(100)),
    )
    Table(
        "message_contacts", md,
        Column("id", Integer, primary_key=True),
        Column("userid", Integer, nullable=False),
        Column("contactid", Integer, nullable=False),
        UniqueConstraint("userid", "contactid"),
    )
    Table(
        "quiz_attempts", md,
        Column("id", Integer, primary_key=True),
        Column("quiz", Integer, nullable=False),
        Column("userid", Integer, nullable=False),
        Column("attempt", Integer, nullable=False),
        Column("timestart", Integer, nullable=False, default=0),
        UniqueConstraint("quiz", "userid", "attempt"),
    )
    Table(
        "quiz_grades", md,
        Column("id", Integer, primary_key=True),
        Column("quiz", Integer, nullable=False),
        Column("userid", Integer, nullable=False),
        Column("grade", Float, nullable=True),
    )
    Table(
        "grade_items", md,
        Column("id", Integer, primary_key=True),
        Column("courseid", Integer, nullable=False),
        Column("needsupdate", Integer, nullable=False, default=0),
    )
    Table(
        "grade_grades", md,
        Column("id", Integer, primary_key=True),
        Column("itemid", Integer, nullable=False),
        Column("userid", Integer, nullable=False),
        Column("finalgrade", Float, nullable=True),
        UniqueConstraint("itemid", "userid"),
    )
    Table(
        "course_completions", md,
        Column("id", Integer, primary_key=True),
        Column("userid", Integer, nullable=False),
        Column("course", Integer, nullable=False),
        Column("timecompleted", Integer, nullable=True),
        Column("reaggregate", Integer, nullable=False, default=0),
        UniqueConstraint("userid", "course"),
    )
    return md


@pytest.fixture()
def engine(tmp_path: Path):
    eng = create_engine(f"sqlite:///{tmp_path / 'lms.db'}")
    _host_metadata().create_all(eng)
    Base.metadata.create_all(eng)
    with eng.begin() as conn:
        conn.execute(
            insert(Table("user", MetaData(), autoload_with=conn)),
            [
                {"id": 2, "username": "keep", "deleted": 0, "suspended": 0},
                {"id": 5, "username": "remove", "deleted": 0, "suspended": 0},
                {"id": 7, "username": "other", "deleted": 0, "suspended": 0},
                {"id": 9, "username": "gone", "deleted": 1, "suspended": 0},
            ],
        )
    yield eng
    eng.dispose()


@pytest.fixture()
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def settings():
    return Settings(user_table="user", suspend_merged_user=True)


@pytest.fixture()
def make_tool(engine, settings):
    def _make(custom: dict | None = None, **setting_overrides) -> MergeUserTool:
        s = settings.model_copy(update=setting_overrides) if setting_overrides else settings
        return MergeUserTool(engine, build_merge_config(custom), s)

    return _make


def insert_rows(engine, table_name: str, rows: list[dict]) -> None:
    with engine.begin() as conn:
        conn.execute(insert(Table(table_name, MetaData(), autoload_with=conn)), rows)


def fetch_rows(engine, table_name: str, *columns: str) -> list[tuple]:
    with engine.connect() as conn:
        table = Table(table_name, MetaData(), autoload_with=conn)
        cols = [table.c[c] for c in columns] if columns else list(table.c)
        return [tuple(r) for r in conn.execute(select(*cols).order_by(*cols))]


def snapshot(engine, exclude: tuple[str, ...] = ("merge_logs",)) -> dict[str, list[tuple]]:
    md = MetaData()
    md.reflect(engine)
    return {name: fetch_rows(engine, name) for name in md.tables if name not in exclude}
