"""create clients and operations tables

Revision ID: 20261005_0001
Revises:
Create Date: 2026-10-05 09:20:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261005_0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "clients",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("api_key", sa.Text(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )

    op.create_table(
        "operations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("operation_type", sa.String(length=32), nullable=False),
        sa.Column("source_url", sa.Text(), nullable=True),
        sa.Column("total_posts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("successful_posts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("failed_posts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("corrected_posts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("rejected_posts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_operations_client_id", "operations", ["client_id"])
    op.create_index("ix_operations_status", "operations", ["status"])
    op.create_index("ix_operations_started_at", "operations", ["started_at"])


def downgrade() -> None:
    op.drop_index("ix_operations_started_at", table_name="operations")
    op.drop_index("ix_operations_status", table_name="operations")
    op.drop_index("ix_operations_client_id", table_name="operations")
    op.drop_table("operations")
    op.drop_table("clients")
