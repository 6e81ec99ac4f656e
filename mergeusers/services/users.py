"""Read and flag rows of the host application's user table (id, deleted, suspended)."""
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.engine import Connection

from mergeusers.services.schema import reflect_table


@dataclass(frozen=True)
class UserState:
    exists: bool
    deleted: bool = False
    suspended: bool = False

    @property
    def active(self) -> bool:
        return self.exists and not self.deleted


def get_user_state(conn: Connection, table_name: str, user_id: int) -> UserState:
    table = reflect_table(conn, table_name)
    columns = [table.c.id]
    for name in ("deleted", "suspended"):
        if name in table.c:
            columns.append(table.c[name])
    row = conn.execute(select(*columns).where(table.c.id == user_id)).mappings().first()
    if row is None:
        return UserState(exists=False)
    return UserState(
        exists=True,
        deleted=bool(int(row.get("deleted") or 0)),
        suspended=bool(int(row.get("suspended") or 0)),
    )


def invalid_user_ids(conn: Connection, table_name: str, user_ids: Iterable[int]) -> list[int]:
    """Ids that do not exist or are already deleted, in the given order."""
    return [uid for uid in user_ids if not get_user_state(conn, table_name, uid).active]


def suspend_user(conn: Connection, table_name: str, user_id: int) -> int:
    table = reflect_table(conn, table_name)
    if "suspended" not in table.c:
        return 0
    return conn.execute(update(table).where(table.c.id == user_id).values(suspended=1)).rowcount
