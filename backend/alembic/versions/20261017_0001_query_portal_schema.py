"""query portal schema

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 00:00:01
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261017_0001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "query_requests",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("requester_id", sa.String(length=128), nullable=False),
        sa.Column("requester_name", sa.String(length=255), nullable=True),
        sa.Column("requester_email", sa.String(length=255), nullable=True),
        sa.Column("db_type", sa.String(length=32), nullable=False),
        sa.Column("instance_name", sa.String(length=255), nullable=False),
        sa.Column("database_name", sa.String(length=255), nullable=False),
        sa.Column("submission_type", sa.String(length=16), nullable=False),
        sa.Column("query_content", sa.Text(), nullable=True),
        sa.Column("script_path", sa.String(length=1024), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("pod_name", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
        sa.Column("approver_id", sa.String(length=128), nullable=True),
        sa.Column("approver_name", sa.String(length=255), nullable=True),
        sa.Column("approver_email", sa.String(length=255), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_reason", sa.Text(), nullable=True),
        sa.Column("destructive_warnings_json", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "(submission_type = 'QUERY' AND query_content IS NOT NULL AND script_path IS NULL) OR "
            "(submission_type = 'SCRIPT' AND script_path IS NOT NULL AND query_content IS NULL)",
            name="ck_query_requests_single_payload",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_query_requests_requester_id", "query_requests", ["requester_id"], unique=False)
    op.create_index("ix_query_requests_pod_name", "query_requests", ["pod_name"], unique=False)
    op.create_index("ix_query_requests_status", "query_requests", ["status"], unique=False)
    op.create_index("ix_query_requests_approver_id", "query_requests", ["approver_id"], unique=False)
    op.create_index(
        "ix_query_requests_pod_status_created",
        "query_requests",
        ["pod_name", "status", "created_at"],
        unique=False,
    )

    op.create_table(
        "query_executions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("request_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("result_data", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("is_truncated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("total_rows", sa.Integer(), nullable=True),
        sa.Column("result_file_path", sa.String(length=2048), nullable=True),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["request_id"], ["query_requests.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_query_executions_request_id", "query_executions", ["request_id"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_query_executions_request_id", table_name="query_executions")
    op.drop_table("query_executions")

    op.drop_index("ix_query_requests_pod_status_created", table_name="query_requests")
    op.drop_index("ix_query_requests_approver_id", table_name="query_requests")
    op.drop_index("ix_query_requests_status", table_name="query_requests")
    op.drop_index("ix_query_requests_pod_name", table_name="query_requests")
    op.drop_index("ix_query_requests_requester_id", table_name="query_requests")
    op.drop_table("query_requests")
