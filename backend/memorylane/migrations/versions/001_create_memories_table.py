"""Create memories table

Revision ID: 001
Revises: None
Create Date: 2024-05-01 00:00:00.000000+00:00

What:  Creates the `memories` table in its original shape (no image columns).
How:   Skips creation when the table already exists, which is the case for
       databases that predate the migration history.

Rollback: downgrade() drops the table (destructive).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    inspector = sa.inspect(op.get_bind())

    if "memories" not in inspector.get_table_names():
        op.create_table(
            "memories",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("date", sa.TIMESTAMP(timezone=True), nullable=False),
            sa.Column("mood", sa.String(50), nullable=True),
            sa.Column(
                "tags",
                sa.JSON().with_variant(postgresql.ARRAY(sa.Text()), "postgresql"),
                nullable=True,
            ),
            sa.PrimaryKeyConstraint("id"),
        )

    indexes = {ix["name"] for ix in sa.inspect(op.get_bind()).get_indexes("memories")}
    if "idx_memories_date" not in indexes:
        # List is always ORDER BY date DESC
        op.create_index("idx_memories_date", "memories", [sa.text("date DESC")])


def downgrade() -> None:
    op.drop_index("idx_memories_date", table_name="memories")
    op.drop_table("memories")
