"""
Errors raised by the merge engine, plus the user-facing message templates it reports.

Construction problems are exceptions (the engine must not start); problems while merging
are collected as messages and end up in the merge log instead of reaching the caller.
"""
from __future__ import annotations

from fastapi import HTTPException

# ---------------------------------------------------------------------------
# User-facing messages. Every merge result is a list of these lines.
# ---------------------------------------------------------------------------

MSG_SAME_USER = "Trying to merge the same user (id = {user_id})"
MSG_INVALID_USER = "Invalid user: no active user with {field} = {value}"
MSG_START_TIME = "Merging started at {when}"
MSG_FINISH_TIME = "Merging finished at {when}"
MSG_TIME_TAKEN = "Merging took {seconds} seconds"
MSG_TABLES_SKIPPED = "For logging or security reasons these tables are skipped: {tables}"
MSG_ALWAYS_ROLLBACK = "alwaysrollback option is set: all changes were rolled back"
MSG_NO_TRANSACTIONS = "Database has no transaction support: changes were applied without atomicity"
MSG_EXCEPTION = "Exception thrown when merging: '{message}'.\nTrace:\n{trace}"


class MergeUsersError(Exception):
    """Base class for merge engine errors."""


class ConfigurationError(MergeUsersError):
    """Merge configuration cannot be used: unknown table merger, missing default entry,
    invalid custom settings or transactions required but unsupported."""


class MergeError(MergeUsersError):
    """A table merger or post-merge step met data it cannot process."""


def configuration_error_to_http(exc: ConfigurationError):
    """Map a configuration problem to 503: the merge engine cannot start until settings are fixed."""
    return HTTPException(status_code=503, detail=f"Merge engine misconfigured: {exc}")
