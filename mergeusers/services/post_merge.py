"""
Side effects of a merge that belong to the user rather than to a single table.
Both run inside the merge transaction after every table has been merged, and are no-ops
when the host schema has no grade book or course completions.
"""
import logging
import time

from sqlalchemy import inspect, or_, select, update
from sqlalchemy.engine import Connection

from mergeusers.core.errors import MergeError
from mergeusers.services.schema import reflect_table

logger = logging.getLogger(__name__)


def _table_with(conn: Connection, table_name: str, *columns: str):
    if not inspect(conn).has_table(table_name):
        return None
    table = reflect_table(conn, table_name)
    if any(c not in table.c for c in columns):
        return None
    return table


def refresh_grades(conn: Connection, to_id: int, from_id: int, log: list[str]) -> None:
    """Flag every grade item graded for either user so the grade book recomputes the kept user's grades."""
    grades = _table_with(conn, "grade_grades", "itemid", "userid")
    items = _table_with(conn, "grade_items", "id", "needsupdate")
    if grades is None or items is None:
        return
    item_ids = set(
        conn.execute(
            select(grades.c.itemid).where(grades.c.userid.in_([to_id, from_id])).distinct()
        ).scalars()
    )
    if not item_ids:
        return
    known = set(conn.execute(select(items.c.id).where(items.c.id.in_(item_ids))).scalars())
    missing = sorted(item_ids - known)
    if missing:
        raise MergeError(f"grade_grades of user {to_id} reference missing grade items: {missing}")
    n = conn.execute(update(items).where(items.c.id.in_(item_ids)).values(needsupdate=1)).rowcount
    log.append(f"grade_items: {n} grade items flagged for regrading of user {to_id}")


def reaggregate_completions(conn: Connection, to_id: int, from_id: int, log: list[str]) -> None:
    """Mark the kept user's incomplete course completions for re-aggregation."""
    completions = _table_with(conn, "course_completions", "userid", "timecompleted", "reaggregate")
    if completions is None:
        return
    now = int(time.time())
    n = conn.execute(
        update(completions)
        .where(
            completions.c.userid == to_id,
            or_(completions.c.timecompleted.is_(None), completions.c.timecompleted == 0),
        )
        .values(reaggregate=now)
    ).rowcount
    if n:
        log.append(f"course_completions: {n} completions of user {to_id} marked for re-aggregation")


POST_MERGE_STEPS = (refresh_grades, reaggregate_completions)
