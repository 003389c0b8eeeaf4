"""add requested scheduled time to posts

Revision ID: 20261018_0003
Revises: 20261005_0002
Create Date: 2026-10-18 10:20:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261018_0003"
down_revision: Union[str, Sequence[str], None] = "20261005_0002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("posts", sa.Column("scheduled_time", sa.Text(), nullable=True))


def downgrade() -> None:
    op.drop_column("posts", "scheduled_time")
