"""
Schema capability: list tables, list columns, transaction support, reflected tables.

Wraps SQLAlchemy's inspector so the merge engine never talks to a driver directly.
"""
import logging
from collections.abc import Iterable

from sqlalchemy import MetaData, Table, inspect, text
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)


class SchemaInspector:
    """Live schema metadata for one database. Column lists are cached per table."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._columns: dict[str, list[str]] = {}

    def list_tables(self) -> list[str]:
        return sorted(inspect(self.engine).get_table_names())

    def list_columns(self, table_name: str) -> list[str]:
        if table_name not in self._columns:
            cols = inspect(self.engine).get_columns(table_name)
            self._columns[table_name] = [c["name"] for c in cols]
        return self._columns[table_name]

    def has_table(self, table_name: str) -> bool:
        return inspect(self.engine).has_table(table_name)

    def supports_transactions(self) -> bool:
        """False only for MySQL running MyISAM by default; every other dialect is transactional."""
        if self.engine.dialect.name not in ("mysql", "mariadb"):
            return True
        with self.engine.connect() as conn:
            storage = conn.execute(text("SELECT @@default_storage_engine")).scalar()
        return (storage or "").lower() != "myisam"


def resolve_user_fields(columns: Iterable[str], candidates: Iterable[str]) -> list[str]:
    """Candidate user-related field names that exist on the table, in candidate order.

    Empty when none match; the table then has nothing to merge.
    """
    existing = set(columns)
    out: list[str] = []
    for name in candidates:
        if name in existing and name not in out:
            out.append(name)
    return out


def reflect_table(conn: Connection, table_name: str) -> Table:
    """Reflect table_name through the merge connection so it sees the running transaction."""
    return Table(table_name, MetaData(), autoload_with=conn)
