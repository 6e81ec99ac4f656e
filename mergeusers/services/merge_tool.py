"""
Merge users: move every user-related row of one user (from) onto another (to).

Lifecycle:
  tool = MergeUserTool(engine)          once; resolves configuration against the live schema
  tool.merge(to_id, from_id)            N times; one transaction per call, one merge log per attempt

Create a new tool after schema changes: tables and fields are resolved only at construction.
"""
import logging
import threading
import time
import traceback
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import NamedTuple

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from mergeusers.config import Settings, settings as default_settings
from mergeusers.core.errors import (
    MSG_ALWAYS_ROLLBACK,
    MSG_EXCEPTION,
    MSG_FINISH_TIME,
    MSG_INVALID_USER,
    MSG_NO_TRANSACTIONS,
    MSG_SAME_USER,
    MSG_START_TIME,
    MSG_TABLES_SKIPPED,
    MSG_TIME_TAKEN,
    ConfigurationError,
)
from mergeusers.core.merge_config import MergeConfig, load_merge_config
from mergeusers.db.tables import MERGE_LOG_TABLE_NAME
from mergeusers.services.locks import identity_lock
from mergeusers.services.merge_log_service import log_merge
from mergeusers.services.mergers.base import MergeContext
from mergeusers.services.policy import MergePolicy, build_merge_policy
from mergeusers.services.post_merge import POST_MERGE_STEPS
from mergeusers.services.schema import SchemaInspector, resolve_user_fields
from mergeusers.services.users import invalid_user_ids, suspend_user

logger = logging.getLogger(__name__)

PostMergeStep = Callable[..., None]


class MergeResult(NamedTuple):
    success: bool
    log: list[str]
    log_id: int | None  # None when rejected before opening a transaction


def _format_time(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="seconds")


# The logger level is process-wide: the first merge enabling echo saves it, the last one restores it.
_echo_guard = threading.Lock()
_echo_users = 0
_echo_previous_level = logging.NOTSET


@contextmanager
def _sql_echo(enabled: bool) -> Iterator[None]:
    """Log every SQL statement while enabled (sqlalchemy.engine at INFO)."""
    global _echo_users, _echo_previous_level
    if not enabled:
        yield
        return
    sa_logger = logging.getLogger("sqlalchemy.engine")
    with _echo_guard:
        if _echo_users == 0:
            _echo_previous_level = sa_logger.level
            sa_logger.setLevel(logging.INFO)
        _echo_users += 1
    try:
        yield
    finally:
        with _echo_guard:
            _echo_users -= 1
            if _echo_users == 0:
                sa_logger.setLevel(_echo_previous_level)


class MergeUserTool:
    def __init__(
        self,
        engine: Engine,
        config: MergeConfig | None = None,
        settings: Settings | None = None,
        *,
        inspector: SchemaInspector | None = None,
        session_factory: sessionmaker | None = None,
        post_merge_steps: tuple[PostMergeStep, ...] = POST_MERGE_STEPS,
    ):
        self.engine = engine
        self.settings = settings or default_settings
        self.config = config or load_merge_config(self.settings)
        self.inspector = inspector or SchemaInspector(engine)
        self.session_factory = session_factory or sessionmaker(bind=engine, autoflush=False)
        self.post_merge_steps = post_merge_steps

        self.transactions_supported = self.check_transaction_support()
        if self.config.always_rollback and not self.transactions_supported:
            raise ConfigurationError("alwaysrollback needs a database with transaction support")
        if not self.inspector.has_table(self.settings.user_table):
            raise ConfigurationError(f"User table {self.settings.user_table!r} does not exist")
        if not self.inspector.has_table(MERGE_LOG_TABLE_NAME):
            raise ConfigurationError(f"Merge log table {MERGE_LOG_TABLE_NAME!r} does not exist; run the migrations")
        self.policy: MergePolicy = build_merge_policy(self.config, self.inspector, self.settings)
        self.user_fields_per_table, self.tables_skipped = self._init_tables()
        logger.info(
            "MergeUserTool ready: %d tables to merge, %d skipped, transactions=%s",
            len(self.user_fields_per_table),
            len(self.tables_skipped),
            self.transactions_supported,
        )

    def check_transaction_support(self) -> bool:
        """Whether merges are atomic. Raises ConfigurationError when transactions are required but missing."""
        supported = self.inspector.supports_transactions()
        if not supported and self.settings.transactions_only:
            raise ConfigurationError(
                f"Database {self.engine.dialect.name} does not support transactions and transactions_only is set"
            )
        if not supported:
            logger.warning("Database has no transaction support: merges will not be atomic")
        return supported

    def _init_tables(self) -> tuple[dict[str, tuple[str, ...]], list[str]]:
        """Tables to merge (with their user fields) and the exception tables found in the schema."""
        fields_per_table: dict[str, tuple[str, ...]] = {}
        skipped: list[str] = []
        for table_name in self.inspector.list_tables():
            if not table_name.strip():
                continue
            if table_name in self.policy.skip_set:
                skipped.append(table_name)
                continue
            custom = self.policy.has_custom_merger(table_name)
            if table_name in self.policy.claimed_set and not custom:
                continue
            fields = resolve_user_fields(
                self.inspector.list_columns(table_name),
                self.policy.candidate_fields(table_name),
            )
            if fields or custom:
                fields_per_table[table_name] = tuple(fields)
        return dict(sorted(fields_per_table.items())), sorted(skipped)

    def merge(self, to_id: int, from_id: int) -> MergeResult:
        """Merge user from_id into to_id.

        Returns (True, log, log_id) when every table was merged, or (False, errors, log_id)
        when the merge was aborted and rolled back. log_id is None for rejected requests
        (same user, unknown or deleted user), which are not logged.
        """
        with identity_lock(to_id, from_id):
            errors = self._check_users(to_id, from_id)
            if errors:
                logger.info("merge %s -> %s rejected: %s", from_id, to_id, errors)
                return MergeResult(False, errors, None)

            success, log = self._merge(to_id, from_id)
            with self.session_factory() as db:
                log_id = log_merge(db, to_id, from_id, success, log)
        logger.info("merge %s -> %s %s (log id %s)", from_id, to_id, "succeeded" if success else "failed", log_id)
        return MergeResult(success, log, log_id)

    def _check_users(self, to_id: int, from_id: int) -> list[str]:
        if to_id == from_id:
            return [MSG_SAME_USER.format(user_id=to_id)]
        with self.engine.connect() as conn:
            invalid = invalid_user_ids(conn, self.settings.user_table, [to_id, from_id])
        return [MSG_INVALID_USER.format(field="id", value=uid) for uid in invalid]

    def _merge(self, to_id: int, from_id: int) -> tuple[bool, list[str]]:
        errors: list[str] = []
        action_log: list[str] = []

        start = time.time()
        start_line = MSG_START_TIME.format(when=_format_time(start))
        action_log.append(start_line)

        with _sql_echo(self.config.debug_db), self.engine.connect() as conn:
            if not self.transactions_supported:
                conn = conn.execution_options(isolation_level="AUTOCOMMIT")
                action_log.append(MSG_NO_TRANSACTIONS)
            transaction = conn.begin()
            try:
                self._merge_tables(conn, to_id, from_id, action_log, errors)
                if not errors:
                    for step in self.post_merge_steps:
                        step(conn, to_id, from_id, action_log)
                    if self.settings.suspend_merged_user and suspend_user(conn, self.settings.user_table, from_id):
                        action_log.append(f"User {from_id} suspended")
            except Exception as e:
                errors.append(MSG_EXCEPTION.format(message=e, trace=traceback.format_exc()))

            if errors or self.config.always_rollback:
                self._rollback(transaction)
            else:
                try:
                    transaction.commit()
                except SQLAlchemyError as e:
                    errors.append(MSG_EXCEPTION.format(message=e, trace=traceback.format_exc()))
                    self._rollback(transaction)

        finish = time.time()
        if errors:
            return False, errors + [start_line, MSG_TIME_TAKEN.format(seconds=int(finish - start))]

        skipped = []
        if self.tables_skipped:
            skipped.append(MSG_TABLES_SKIPPED.format(tables=", ".join(self.tables_skipped)))
        action_log.append(MSG_FINISH_TIME.format(when=_format_time(finish)))
        action_log.append(MSG_TIME_TAKEN.format(seconds=int(finish - start)))
        if self.config.always_rollback:
            action_log.append(MSG_ALWAYS_ROLLBACK)
        return True, skipped + action_log

    def _merge_tables(self, conn, to_id: int, from_id: int, log: list[str], errors: list[str]) -> None:
        for table_name, user_fields in self.user_fields_per_table.items():
            context = MergeContext(
                conn=conn,
                to_id=to_id,
                from_id=from_id,
                table_name=table_name,
                user_fields=user_fields,
                compound_index=self.policy.compound_indexes.get(table_name),
            )
            self.policy.merger_for(table_name).merge(context, log, errors)
            if errors:
                # One failing table aborts the whole merge.
                return

    @staticmethod
    def _rollback(transaction) -> None:
        try:
            transaction.rollback()
        except SQLAlchemyError as e:
            # Already abandoning the transaction; the collected errors are what matters.
            logger.warning("rollback failed: %s", e)
