"""
Merge API: run a merge, browse merge logs, ask which users can be deleted.

The merge tool is built once per process from the configured engine; restart the service
after schema changes so tables and user fields are resolved again.
"""
import logging
from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from mergeusers.core.errors import ConfigurationError, configuration_error_to_http
from mergeusers.db.session import engine, get_db
from mergeusers.services.last_merge import is_user_deletable, list_deletable_users
from mergeusers.services.merge_log_service import get_merge_log, get_merge_logs, merge_log_to_dict
from mergeusers.services.merge_tool import MergeUserTool

router = APIRouter()
logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _build_merge_tool() -> MergeUserTool:
    return MergeUserTool(engine)


def get_merge_tool() -> MergeUserTool:
    try:
        return _build_merge_tool()
    except ConfigurationError as e:
        logger.error("Cannot build merge tool: %s", e)
        raise configuration_error_to_http(e) from e


class MergeRequest(BaseModel):
    to_user_id: int = Field(..., description="User kept; receives all data")
    from_user_id: int = Field(..., description="User merged away; left without data")


@router.post("/merges")
def merge_users(body: MergeRequest, tool: MergeUserTool = Depends(get_merge_tool)) -> dict[str, Any]:
    """Merge from_user_id into to_user_id. Failures are reported in the body, not as HTTP errors."""
    result = tool.merge(body.to_user_id, body.from_user_id)
    return {"success": result.success, "log": result.log, "log_id": result.log_id}


@router.get("/merges")
def list_merge_logs(
    db: Session = Depends(get_db),
    to_user_id: int | None = Query(None),
    from_user_id: int | None = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
) -> dict[str, Any]:
    """Merge logs, newest first."""
    rows = get_merge_logs(db, to_user_id=to_user_id, from_user_id=from_user_id, offset=offset, limit=limit)
    return {"merges": [merge_log_to_dict(r) for r in rows]}


@router.get("/merges/{log_id}")
def get_merge_log_detail(log_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    row = get_merge_log(db, log_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"Merge log {log_id} not found")
    return merge_log_to_dict(row)


@router.get("/users/deletable")
def deletable_users(db: Session = Depends(get_db)) -> dict[str, Any]:
    return {"user_ids": list_deletable_users(db)}


@router.get("/users/{user_id}/deletable")
def user_deletable(user_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    return {"user_id": user_id, "deletable": is_user_deletable(db, user_id)}
