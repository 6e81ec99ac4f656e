"""
Append and list merge logs. One row per merge attempt; rows are never updated or deleted.
"""
import json
import time
from typing import Any

from sqlalchemy.orm import Session

from mergeusers.models.merge_log import MergeLog


def log_merge(
    db: Session,
    to_user_id: int,
    from_user_id: int,
    success: bool,
    log: list[str],
    timemodified: int | None = None,
) -> int:
    """Append one merge log entry and return its id."""
    row = MergeLog(
        touserid=to_user_id,
        fromuserid=from_user_id,
        success=success,
        timemodified=int(time.time()) if timemodified is None else timemodified,
        log_json=json.dumps([str(line) for line in log]),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row.id


def get_merge_logs(
    db: Session,
    *,
    to_user_id: int | None = None,
    from_user_id: int | None = None,
    offset: int = 0,
    limit: int | None = None,
) -> list[MergeLog]:
    """Merge logs matching the filters, newest first."""
    q = db.query(MergeLog)
    if to_user_id is not None:
        q = q.filter(MergeLog.touserid == to_user_id)
    if from_user_id is not None:
        q = q.filter(MergeLog.fromuserid == from_user_id)
    q = q.order_by(MergeLog.timemodified.desc(), MergeLog.id.desc()).offset(offset)
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def get_last_merge_log(db: Session, **filters: int) -> MergeLog | None:
    rows = get_merge_logs(db, limit=1, **filters)
    return rows[0] if rows else None


def get_merge_log(db: Session, log_id: int) -> MergeLog | None:
    return db.get(MergeLog, log_id)


def merge_log_to_dict(row: MergeLog) -> dict[str, Any]:
    return {
        "id": row.id,
        "to_user_id": row.touserid,
        "from_user_id": row.fromuserid,
        "success": bool(row.success),
        "timemodified": row.timemodified,
        "log": row.log,
    }
