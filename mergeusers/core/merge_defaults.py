"""
Default merge configuration. Custom settings (CUSTOM_DB_SETTINGS) are merged on top.

Table names are given without any database prefix.

  exceptions       tables never touched by a merge (logging, security, per-user singletons)
  compoundindexes  tables with a unique index spanning a user column and other columns
  userfieldnames   candidate user-related columns per table; "default" applies to any other table
  tablemergers     table merger per table; "default" applies to any other table
"""
DEFAULT_MERGE_CONFIG: dict = {
    "exceptions": [
        "user",
        "user_preferences",
        "user_private_key",
        "user_info_data",
        "my_pages",
        "merge_logs",
    ],
    "compoundindexes": {
        "grade_grades": {"userfield": "userid", "otherfields": ["itemid"]},
        "groups_members": {"userfield": "userid", "otherfields": ["groupid"]},
        "journal_entries": {"userfield": "userid", "otherfields": ["journal"]},
        "course_completions": {"userfield": "userid", "otherfields": ["course"]},
        "message_contacts": {"userfield": "userid", "otherfields": ["contactid"], "both": True},
        "role_assignments": {"userfield": "userid", "otherfields": ["contextid", "roleid"]},
        "user_enrolments": {"userfield": "userid", "otherfields": ["enrolid"]},
        "user_lastaccess": {"userfield": "userid", "otherfields": ["courseid"]},
        "enrol_records": {"userfield": "userid", "otherfields": ["courseid"]},
    },
    "userfieldnames": {
        "message_contacts": ["userid", "contactid"],
        "logstore_standard_log": ["userid", "relateduserid", "realuserid"],
        "default": ["authorid", "reviewerid", "userid", "user_id", "id_user", "usermodified"],
    },
    "tablemergers": {
        "default": "default",
        "quiz_attempts": "quiz_attempts",
    },
    "alwaysrollback": False,
    "debugdb": False,
}
