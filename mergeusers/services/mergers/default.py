"""
Default table merger: rewrite user columns from the merged-away user to the kept user.

Tables with a compound unique index spanning a user column cannot be rewritten blindly:
a row of the old user whose other indexed values already exist for the kept user is a
duplicate and is deleted; any other row is updated in place.
"""
import logging
from collections import defaultdict

from sqlalchemy import Table, and_, delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from mergeusers.core.merge_config import CompoundIndex
from mergeusers.services.mergers.base import MergeContext, TableMerger
from mergeusers.services.schema import reflect_table

logger = logging.getLogger(__name__)


def compound_keys(index: CompoundIndex | None, user_fields: tuple[str, ...]) -> dict[str, list[str]]:
    """Map each user field covered by the index to the other columns that complete the key.

    With index.both, user columns among the other fields are keyed too (e.g. contacts,
    where both ends of the relation are users).
    """
    if index is None:
        return {}
    keyed: dict[str, list[str]] = {}
    if index.userfield in user_fields:
        keyed[index.userfield] = list(index.otherfields)
    if index.both:
        for other in index.otherfields:
            if other in user_fields:
                keyed[other] = [index.userfield] + [f for f in index.otherfields if f != other]
    return keyed


def _equals(column, value):
    return column.is_(None) if value is None else column == value


class DefaultTableMerger(TableMerger):
    """Default merger for every table without an explicit assignment."""

    def merge(self, context: MergeContext, log: list[str], errors: list[str]) -> None:
        table = reflect_table(context.conn, context.table_name)
        keyed = compound_keys(context.compound_index, context.user_fields)
        for field in context.user_fields:
            try:
                if field in keyed:
                    self._merge_compound(context, table, field, keyed[field], log)
                else:
                    self._update_field(context, table, field, log)
            except SQLAlchemyError as e:
                # The transaction is unusable after a failed statement; stop this table.
                logger.warning("merge %s.%s failed: %s", context.table_name, field, e)
                errors.append(f"{context.table_name}.{field}: {e}")
                return

    def _update_field(self, context: MergeContext, table: Table, field: str, log: list[str]) -> None:
        column = table.c[field]
        result = context.conn.execute(
            update(table).where(column == context.from_id).values({field: context.to_id})
        )
        if result.rowcount:
            log.append(
                f"UPDATE {context.table_name} SET {field} = {context.to_id} "
                f"WHERE {field} = {context.from_id} ({result.rowcount} rows)"
            )

    def _merge_compound(
        self,
        context: MergeContext,
        table: Table,
        field: str,
        key_fields: list[str],
        log: list[str],
    ) -> None:
        column = table.c[field]
        key_columns = [table.c[k] for k in key_fields]
        rows = context.conn.execute(
            select(column, *key_columns).where(column.in_([context.from_id, context.to_id]))
        ).all()

        # other indexed values -> users owning a row with them
        owners: dict[tuple, set] = defaultdict(set)
        for row in rows:
            owners[tuple(row[1:])].add(row[0])

        updated = 0
        for key, users in owners.items():
            if context.from_id not in users:
                continue
            where = and_(column == context.from_id, *[_equals(c, v) for c, v in zip(key_columns, key)])
            # NULLs never collide under a unique index.
            if context.to_id in users and None not in key:
                deleted = context.conn.execute(delete(table).where(where)).rowcount
                described = ", ".join(f"{k} = {v}" for k, v in zip(key_fields, key))
                log.append(
                    f"DELETE FROM {context.table_name} WHERE {field} = {context.from_id}"
                    f"{' AND ' + described if described else ''} "
                    f"({deleted} rows duplicating user {context.to_id})"
                )
            else:
                updated += context.conn.execute(update(table).where(where).values({field: context.to_id})).rowcount
        if updated:
            log.append(
                f"UPDATE {context.table_name} SET {field} = {context.to_id} "
                f"WHERE {field} = {context.from_id} ({updated} rows)"
            )
