import pytest

from mergeusers.config import Settings
from mergeusers.core.errors import ConfigurationError
from mergeusers.core.merge_config import (
    CompoundIndex,
    build_merge_config,
    deep_merge,
    load_merge_config,
    parse_custom_settings,
)
from mergeusers.core.merge_defaults import DEFAULT_MERGE_CONFIG


def test_deep_merge_merges_dicts_and_replaces_lists():
    base = {"a": {"x": 1, "y": [1, 2]}, "b": [1, 2, 3]}
    out = deep_merge(base, {"a": {"y": [9]}, "b": [4]})
    assert out == {"a": {"x": 1, "y": [9]}, "b": [4]}
    assert base == {"a": {"x": 1, "y": [1, 2]}, "b": [1, 2, 3]}


def test_defaults_are_valid():
    config = build_merge_config()
    assert config.table_mergers["default"] == "default"
    assert "default" in config.user_field_names
    assert config.compound_indexes["enrol_records"] == CompoundIndex(userfield="userid", otherfields=("courseid",))
    assert config.compound_indexes["message_contacts"].both is True
    assert set(DEFAULT_MERGE_CONFIG["exceptions"]) == set(config.exceptions)


def test_custom_settings_override_defaults():
    config = build_merge_config({"userfieldnames": {"forum_posts": ["userid"]}, "exceptions": ["user"]})
    assert config.user_field_names["forum_posts"] == ("userid",)
    assert "default" in config.user_field_names
    assert config.exceptions == ("user",)


def test_invalid_custom_json():
    with pytest.raises(ConfigurationError):
        parse_custom_settings("{not json")
    with pytest.raises(ConfigurationError):
        parse_custom_settings("[1, 2]")
    assert parse_custom_settings("") == {}


def test_invalid_compound_index_shape():
    with pytest.raises(ConfigurationError):
        build_merge_config({"compoundindexes": {"t": {"otherfields": ["a"]}}})


def test_load_merge_config_runtime_flags():
    config = load_merge_config(Settings(always_rollback=True, custom_db_settings='{"debugdb": true}'))
    assert config.always_rollback is True
    assert config.debug_db is True

    plain = load_merge_config(Settings(custom_db_settings="{}"))
    assert plain.always_rollback is False
    assert plain.with_flags(always_rollback=True).always_rollback is True
    assert plain.with_flags(always_rollback=True).table_mergers == plain.table_mergers


def test_settings_reincluded_tables():
    assert Settings(excluded_exceptions="none").reincluded_tables == []
    assert Settings(excluded_exceptions="user_preferences, my_pages").reincluded_tables == [
        "user_preferences",
        "my_pages",
    ]


def test_settings_reject_unknown_quiz_action():
    with pytest.raises(ValueError):
        Settings(quiz_attempts_action="shuffle")
