"""
Tables owned by this service. Everything else in the database belongs to the host
application and is only touched through merges.
"""
MERGE_LOG_TABLE_NAME = "merge_logs"

# Tables created by our own migrations. Must match models and alembic/versions.
ALL_TABLE_NAMES = (MERGE_LOG_TABLE_NAME,)
