"""
Resolved merge configuration: defaults from merge_defaults plus custom JSON settings.
"""
from __future__ import annotations

import copy
import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from mergeusers.config import Settings
from mergeusers.core.errors import ConfigurationError
from mergeusers.core.merge_defaults import DEFAULT_MERGE_CONFIG


class CompoundIndex(BaseModel):
    """Unique index spanning a user column (userfield) and other columns.

    With both=True the other columns may hold user ids too, so each of them is also
    checked for collisions when it is rewritten.
    """

    model_config = ConfigDict(frozen=True)

    userfield: str
    otherfields: tuple[str, ...] = ()
    both: bool = False

    @property
    def columns(self) -> tuple[str, ...]:
        return (self.userfield, *self.otherfields)


class MergeConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    exceptions: tuple[str, ...] = ()
    compound_indexes: dict[str, CompoundIndex] = Field(default_factory=dict, alias="compoundindexes")
    user_field_names: dict[str, tuple[str, ...]] = Field(default_factory=dict, alias="userfieldnames")
    table_mergers: dict[str, str] = Field(default_factory=dict, alias="tablemergers")
    always_rollback: bool = Field(False, alias="alwaysrollback")
    debug_db: bool = Field(False, alias="debugdb")

    def with_flags(self, *, always_rollback: bool | None = None, debug_db: bool | None = None) -> "MergeConfig":
        """Copy with runtime flags changed. Nothing else may be overridden after loading."""
        update: dict[str, bool] = {}
        if always_rollback is not None:
            update["always_rollback"] = always_rollback
        if debug_db is not None:
            update["debug_db"] = debug_db
        return self.model_copy(update=update)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge override into a copy of base. Dicts merge recursively; anything else is replaced."""
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = deep_merge(out[key], value)
        else:
            out[key] = copy.deepcopy(value)
    return out


def parse_custom_settings(raw: str | None) -> dict[str, Any]:
    text = (raw or "").strip() or "{}"
    try:
        custom = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Custom merge settings are not valid JSON: {e}") from e
    if not isinstance(custom, dict):
        raise ConfigurationError("Custom merge settings must be a JSON object")
    return custom


def build_merge_config(custom: dict[str, Any] | None = None) -> MergeConfig:
    """Validate the defaults merged with custom overrides."""
    raw = deep_merge(DEFAULT_MERGE_CONFIG, custom or {})
    try:
        return MergeConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid merge configuration: {e}") from e


def load_merge_config(settings: Settings) -> MergeConfig:
    """Resolve the merge configuration from settings (custom JSON + runtime flags)."""
    config = build_merge_config(parse_custom_settings(settings.custom_db_settings))
    return config.with_flags(
        always_rollback=config.always_rollback or settings.always_rollback,
        debug_db=config.debug_db or settings.debug_db,
    )
