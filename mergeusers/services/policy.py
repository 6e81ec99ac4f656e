"""
Merge policy: which tables are skipped, which are claimed by custom mergers, which compound
indexes apply and which merger handles each table. Built once from the resolved configuration
and the live schema; read-only afterwards.
"""
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from mergeusers.config import Settings
from mergeusers.core.errors import ConfigurationError
from mergeusers.core.merge_config import CompoundIndex, MergeConfig
from mergeusers.db.tables import MERGE_LOG_TABLE_NAME
from mergeusers.services.mergers.base import TableMerger
from mergeusers.services.mergers.registry import get_merger_class
from mergeusers.services.schema import SchemaInspector

logger = logging.getLogger(__name__)

DEFAULT_KEY = "default"


@dataclass(frozen=True)
class MergePolicy:
    skip_set: frozenset[str]
    claimed_set: frozenset[str]
    compound_indexes: Mapping[str, CompoundIndex]
    table_mergers: Mapping[str, TableMerger]
    user_field_names: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def merger_for(self, table_name: str) -> TableMerger:
        return self.table_mergers.get(table_name, self.table_mergers[DEFAULT_KEY])

    def has_custom_merger(self, table_name: str) -> bool:
        return table_name != DEFAULT_KEY and table_name in self.table_mergers

    def candidate_fields(self, table_name: str) -> tuple[str, ...]:
        return self.user_field_names.get(table_name, self.user_field_names[DEFAULT_KEY])


def build_skip_set(
    exceptions: Iterable[str], reincluded: Iterable[str], always: Iterable[str] = ()
) -> frozenset[str]:
    """Configured exceptions minus the tables an administrator asked to process anyway.

    Tables in ``always`` (the user table, the merge log) are skipped regardless.
    """
    return (frozenset(exceptions) - frozenset(reincluded)) | frozenset(always)


def build_table_mergers(assignments: Mapping[str, str], settings: Settings) -> dict[str, TableMerger]:
    if DEFAULT_KEY not in assignments:
        raise ConfigurationError("tablemergers must define a 'default' table merger")
    mergers: dict[str, TableMerger] = {}
    for table_name, identifier in assignments.items():
        mergers[table_name] = get_merger_class(identifier)(settings)
    return mergers


def validate_compound_indexes(
    indexes: Mapping[str, CompoundIndex],
    inspector: SchemaInspector,
    existing_tables: Iterable[str],
) -> dict[str, CompoundIndex]:
    """Drop indexes that no longer match the schema (missing table or column)."""
    tables = set(existing_tables)
    valid: dict[str, CompoundIndex] = {}
    for table_name, index in indexes.items():
        if table_name not in tables:
            continue
        columns = set(inspector.list_columns(table_name))
        missing = [c for c in index.columns if c not in columns]
        if missing:
            logger.warning("Ignoring compound index on %s: missing columns %s", table_name, missing)
            continue
        valid[table_name] = index
    return valid


def build_merge_policy(config: MergeConfig, inspector: SchemaInspector, settings: Settings) -> MergePolicy:
    """Resolve the configuration against the live schema. Raises ConfigurationError on bad settings."""
    if DEFAULT_KEY not in config.user_field_names:
        raise ConfigurationError("userfieldnames must define a 'default' list of field names")
    mergers = build_table_mergers(config.table_mergers, settings)
    claimed: set[str] = set()
    for merger in mergers.values():
        claimed.update(merger.tables_to_skip())
    return MergePolicy(
        skip_set=build_skip_set(
            config.exceptions, settings.reincluded_tables, always=(settings.user_table, MERGE_LOG_TABLE_NAME)
        ),
        claimed_set=frozenset(claimed),
        compound_indexes=MappingProxyType(
            validate_compound_indexes(config.compound_indexes, inspector, inspector.list_tables())
        ),
        table_mergers=MappingProxyType(mergers),
        user_field_names=MappingProxyType(dict(config.user_field_names)),
    )
