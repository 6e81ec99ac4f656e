"""merge_logs: one row per merge attempt (append-only)."""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "merge_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("touserid", sa.Integer(), nullable=False),
        sa.Column("fromuserid", sa.Integer(), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("timemodified", sa.Integer(), nullable=False),
        sa.Column("log_json", sa.Text(), nullable=False, server_default="[]"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_merge_logs_touserid", "merge_logs", ["touserid"])
    op.create_index("ix_merge_logs_fromuserid", "merge_logs", ["fromuserid"])
    op.create_index("ix_merge_logs_timemodified", "merge_logs", ["timemodified"])


def downgrade() -> None:
    op.drop_index("ix_merge_logs_timemodified", table_name="merge_logs")
    op.drop_index("ix_merge_logs_fromuserid", table_name="merge_logs")
    op.drop_index("ix_merge_logs_touserid", table_name="merge_logs")
    op.drop_table("merge_logs")
