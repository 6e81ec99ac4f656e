import pytest

from mergeusers.core.errors import ConfigurationError
from mergeusers.core.merge_config import MergeConfig, build_merge_config
from mergeusers.services.mergers import DefaultTableMerger, QuizAttemptsMerger
from mergeusers.services.policy import build_merge_policy, build_skip_set
from mergeusers.services.schema import SchemaInspector


def test_skip_set_removes_reincluded_tables():
    assert build_skip_set(["user", "user_preferences"], ["user_preferences"]) == frozenset({"user"})
    assert build_skip_set(["user"], []) == frozenset({"user"})
    assert build_skip_set(["user_preferences"], ["user", "user_preferences"], always=("user",)) == frozenset({"user"})


def test_policy_from_defaults(engine, settings):
    policy = build_merge_policy(build_merge_config(), SchemaInspector(engine), settings)
    assert isinstance(policy.merger_for("forum_posts"), DefaultTableMerger)
    assert isinstance(policy.merger_for("quiz_attempts"), QuizAttemptsMerger)
    assert policy.claimed_set == frozenset({"quiz_attempts", "quiz_grades"})
    assert policy.has_custom_merger("quiz_attempts")
    assert not policy.has_custom_merger("default")
    # only indexes whose table exists in the schema are kept
    assert set(policy.compound_indexes) == {"enrol_records", "message_contacts", "grade_grades", "course_completions"}


def test_compound_index_with_missing_column_is_dropped(engine, settings):
    config = build_merge_config(
        {"compoundindexes": {"forum_posts": {"userfield": "userid", "otherfields": ["discussion"]}}}
    )
    policy = build_merge_policy(config, SchemaInspector(engine), settings)
    assert "forum_posts" not in policy.compound_indexes
    assert "enrol_records" in policy.compound_indexes


def test_missing_default_table_merger(engine, settings):
    config = MergeConfig(table_mergers={"quiz_attempts": "quiz_attempts"}, user_field_names={"default": ("userid",)})
    with pytest.raises(ConfigurationError):
        build_merge_policy(config, SchemaInspector(engine), settings)


def test_missing_default_user_field_names(engine, settings):
    config = MergeConfig(table_mergers={"default": "default"}, user_field_names={"forum_posts": ("userid",)})
    with pytest.raises(ConfigurationError):
        build_merge_policy(config, SchemaInspector(engine), settings)


@pytest.mark.parametrize(
    "identifier",
    ["no_such_merger", "mergeusers.config:Settings", "mergeusers.nothing_here:Merger", "mergeusers.config:"],
)
def test_unknown_table_merger_fails_construction(make_tool, identifier):
    with pytest.raises(ConfigurationError):
        make_tool({"tablemergers": {"forum_posts": identifier}})


def test_table_merger_by_import_path(make_tool):
    tool = make_tool({"tablemergers": {"forum_posts": "mergeusers.services.mergers.default:DefaultTableMerger"}})
    assert tool.policy.has_custom_merger("forum_posts")
    assert isinstance(tool.policy.merger_for("forum_posts"), DefaultTableMerger)


def test_field_map_of_the_tool(make_tool):
    tool = make_tool()
    fields = tool.user_fields_per_table
    assert list(fields) == sorted(fields)
    assert fields["forum_posts"] == ("userid", "usermodified")
    assert fields["message_contacts"] == ("userid", "contactid")
    assert fields["quiz_attempts"] == ("userid",)
    assert "quiz_grades" not in fields  # claimed by the quiz attempts merger
    assert "grade_items" not in fields  # no user fields
    assert "user_preferences" not in fields
    assert tool.tables_skipped == ["merge_logs", "user", "user_preferences"]


def test_reincluded_exception_is_merged(make_tool):
    tool = make_tool(excluded_exceptions="user_preferences")
    assert tool.user_fields_per_table["user_preferences"] == ("userid",)
    assert "user_preferences" not in tool.tables_skipped


def test_missing_user_table_fails_construction(make_tool):
    with pytest.raises(ConfigurationError):
        make_tool(user_table="accounts")


def test_transactions_required_but_unsupported(engine, settings, monkeypatch):
    from mergeusers.core.merge_config import build_merge_config
    from mergeusers.services.merge_tool import MergeUserTool

    monkeypatch.setattr(SchemaInspector, "supports_transactions", lambda self: False)
    with pytest.raises(ConfigurationError):
        MergeUserTool(engine, build_merge_config(), settings.model_copy(update={"transactions_only": True}))
    tool = MergeUserTool(engine, build_merge_config(), settings.model_copy(update={"transactions_only": False}))
    assert tool.transactions_supported is False


def test_rehearsal_needs_transactions(engine, settings, monkeypatch):
    from mergeusers.core.merge_config import build_merge_config
    from mergeusers.services.merge_tool import MergeUserTool

    monkeypatch.setattr(SchemaInspector, "supports_transactions", lambda self: False)
    with pytest.raises(ConfigurationError, match="alwaysrollback"):
        MergeUserTool(
            engine,
            build_merge_config({"alwaysrollback": True}),
            settings.model_copy(update={"transactions_only": False}),
        )


def test_missing_merge_log_table_fails_construction(engine, make_tool):
    from mergeusers.models.merge_log import MergeLog

    MergeLog.__table__.drop(engine)
    with pytest.raises(ConfigurationError, match="merge_logs"):
        make_tool()
