"""Interface for table mergers. One implementation per kind of table; the default one covers most."""
from abc import ABC, abstractmethod
from dataclasses import dataclass

from sqlalchemy.engine import Connection

from mergeusers.config import Settings
from mergeusers.core.merge_config import CompoundIndex


@dataclass(frozen=True)
class MergeContext:
    """Everything a table merger needs for one table within one merge."""

    conn: Connection  # connection holding the merge transaction
    to_id: int
    from_id: int
    table_name: str
    user_fields: tuple[str, ...]
    compound_index: CompoundIndex | None = None


class TableMerger(ABC):
    """Merges the rows of one table from one user into another.

    Implementations append human-readable lines to log and problems to errors; they never
    commit or roll back. Any error entry aborts the whole merge.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def tables_to_skip(self) -> list[str]:
        """Tables this merger handles itself, so the default merger must leave them alone."""
        return []

    @abstractmethod
    def merge(self, context: MergeContext, log: list[str], errors: list[str]) -> None:
        ...
