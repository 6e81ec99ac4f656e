"""
Last merges related to a user, and whether that user can now be deleted.

A user is deletable when it is suspended and its last merge as the merged-away user
succeeded, or, regardless of suspension, when its last merge as merged-away user happened
after a successful merge into it. Account deletion tooling relies on this exact rule.
"""
import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mergeusers.config import settings
from mergeusers.models.merge_log import MergeLog
from mergeusers.services.merge_log_service import get_last_merge_log
from mergeusers.services.users import get_user_state

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LastMerge:
    user_id: int
    suspended: bool
    tome: MergeLog | None    # last merge keeping this user
    fromme: MergeLog | None  # last merge removing this user

    @classmethod
    def from_user(cls, db: Session, user_id: int, user_table: str | None = None) -> "LastMerge":
        state = get_user_state(db.connection(), user_table or settings.user_table, user_id)
        return cls(
            user_id=user_id,
            suspended=state.suspended,
            tome=get_last_merge_log(db, to_user_id=user_id),
            fromme=get_last_merge_log(db, from_user_id=user_id),
        )

    def is_deletable(self) -> bool:
        deletable = self.suspended and self.fromme is not None and bool(self.fromme.success)
        return deletable or (
            self.tome is not None
            and self.fromme is not None
            and bool(self.tome.success)
            and self.fromme.timemodified > self.tome.timemodified
        )


def is_user_deletable(db: Session, user_id: int, user_table: str | None = None) -> bool:
    try:
        return LastMerge.from_user(db, user_id, user_table).is_deletable()
    except SQLAlchemyError as e:
        logger.exception("is_user_deletable(%s) failed: %s", user_id, e)
        return False


def list_deletable_users(db: Session, user_table: str | None = None) -> list[int]:
    """Users merged away at least once that are deletable now and not deleted yet, ascending."""
    table = user_table or settings.user_table
    try:
        candidates = db.execute(select(MergeLog.fromuserid).distinct()).scalars().all()
        out = []
        for user_id in sorted(candidates):
            if not get_user_state(db.connection(), table, user_id).active:
                continue
            if LastMerge.from_user(db, user_id, table).is_deletable():
                out.append(user_id)
        return out
    except SQLAlchemyError as e:
        logger.exception("list_deletable_users failed: %s", e)
        return []
