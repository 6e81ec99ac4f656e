"""Append-only record of every merge attempt (success or failure). Never updated or deleted."""
import json

from sqlalchemy import Boolean, Column, Integer, Text

from mergeusers.db.base import Base
from mergeusers.db.tables import MERGE_LOG_TABLE_NAME


class MergeLog(Base):
    __tablename__ = MERGE_LOG_TABLE_NAME

    id = Column(Integer, primary_key=True, autoincrement=True)
    touserid = Column(Integer, nullable=False, index=True)    # user kept
    fromuserid = Column(Integer, nullable=False, index=True)  # user merged away
    success = Column(Boolean, nullable=False, default=False)
    timemodified = Column(Integer, nullable=False, index=True)  # unix seconds
    log_json = Column(Text, nullable=False, default="[]")  # ordered list of log lines

    @property
    def log(self) -> list[str]:
        try:
            lines = json.loads(self.log_json or "[]")
        except (TypeError, json.JSONDecodeError):
            return [self.log_json]
        return [str(line) for line in lines] if isinstance(lines, list) else [str(lines)]
