"""create posts and worker heartbeats tables

Revision ID: 20261005_0002
Revises: 20261005_0001
Create Date: 2026-10-05 09:45:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261005_0002"
down_revision: Union[str, Sequence[str], None] = "20261005_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "posts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("operation_id", sa.Integer(), sa.ForeignKey("operations.id"), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("original_content", sa.Text(), nullable=False),
        sa.Column("processed_content", sa.Text(), nullable=False),
        sa.Column("quality_score", sa.Integer(), nullable=False, server_default=sa.text("100")),
        sa.Column("issues_detected", sa.JSON(), nullable=False),
        sa.Column("corrections_applied", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="queued"),
        sa.Column("publisher_response", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_posts_status", "posts", ["status"])
    op.create_index("ix_posts_next_retry_at", "posts", ["next_retry_at"])
    op.create_index("ix_posts_operation_id", "posts", ["operation_id"])

    op.create_table(
        "worker_heartbeats",
        sa.Column("worker_id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("last_heartbeat", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )


def downgrade() -> None:
    op.drop_table("worker_heartbeats")
    op.drop_index("ix_posts_operation_id", table_name="posts")
    op.drop_index("ix_posts_next_retry_at", table_name="posts")
    op.drop_index("ix_posts_status", table_name="posts")
    op.drop_table("posts")
