from mergeusers.db.base import Base
from mergeusers.db.session import get_db, engine, SessionLocal
from mergeusers.db.tables import ALL_TABLE_NAMES, MERGE_LOG_TABLE_NAME

__all__ = ["get_db", "engine", "SessionLocal", "Base", "ALL_TABLE_NAMES", "MERGE_LOG_TABLE_NAME"]
