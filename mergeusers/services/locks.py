"""
In-process mutual exclusion per user id. Two merges sharing a user never interleave.

Locks are taken in ascending id order so overlapping merges cannot deadlock. This does not
coordinate several processes; run a single merging process or serialize merges upstream.
"""
import threading
from collections.abc import Iterator
from contextlib import contextmanager

_guard = threading.Lock()
# user id -> [lock, number of holders or waiters]
_locks: dict[int, list] = {}


def _checkout(user_id: int) -> threading.Lock:
    with _guard:
        entry = _locks.setdefault(user_id, [threading.Lock(), 0])
        entry[1] += 1
        return entry[0]


def _checkin(user_id: int) -> None:
    with _guard:
        entry = _locks[user_id]
        entry[1] -= 1
        if entry[1] == 0:
            del _locks[user_id]


@contextmanager
def identity_lock(*user_ids: int) -> Iterator[None]:
    ids = sorted(set(user_ids))
    acquired: list[int] = []
    try:
        for uid in ids:
            _checkout(uid).acquire()
            acquired.append(uid)
        yield
    finally:
        for uid in reversed(acquired):
            _locks[uid][0].release()
            _checkin(uid)
