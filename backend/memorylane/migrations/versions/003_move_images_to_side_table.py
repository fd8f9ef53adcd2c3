"""Retire image_path and add the memory_images side table

Revision ID: 003
Revises: 002
Create Date: 2024-07-22 00:00:00.000000+00:00

What:  1. If the disk-era `image_path` column exists, mark every memory that
          had a path with has_image = true, then drop the column.
       2. Create `memory_images` (one image per memory, cascade on delete).

The files referenced by image_path are not imported. The startup integrity
check reports those memories as flagged without a stored image.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    inspector = sa.inspect(op.get_bind())
    columns = {col["name"] for col in inspector.get_columns("memories")}

    if "image_path" in columns:
        memories = sa.table(
            "memories",
            sa.column("has_image", sa.Boolean()),
            sa.column("image_path", sa.String()),
        )
        op.execute(
            memories.update()
            .where(memories.c.image_path.is_not(None))
            .where(memories.c.image_path != "")
            .values(has_image=True)
        )
        with op.batch_alter_table("memories") as batch_op:
            batch_op.drop_column("image_path")

    if "memory_images" not in inspector.get_table_names():
        op.create_table(
            "memory_images",
            sa.Column("memory_id", sa.Uuid(), nullable=False),
            sa.Column("data", sa.LargeBinary(), nullable=False),
            sa.Column("mime_type", sa.String(50), nullable=False),
            sa.Column(
                "created_at",
                sa.TIMESTAMP(timezone=True),
                nullable=False,
                server_default=sa.text("CURRENT_TIMESTAMP"),
            ),
            sa.ForeignKeyConstraint(["memory_id"], ["memories.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("memory_id"),
        )


def downgrade() -> None:
    """
    Drops memory_images and restores an empty image_path column.

    Image bytes stored in the side table are lost.
    """
    op.drop_table("memory_images")
    with op.batch_alter_table("memories") as batch_op:
        batch_op.add_column(sa.Column("image_path", sa.String(255), nullable=True))
