"""Add image columns to memories

Revision ID: 002
Revises: 001
Create Date: 2024-06-10 00:00:00.000000+00:00

What:  Adds has_image (flag) and image_data / image_mime_type (base64
       payload used by the inline storage strategy).
How:   Each column is added only if missing; databases from the blob era
       already have some of them.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NEW_COLUMNS = (
    ("has_image", lambda: sa.Column("has_image", sa.Boolean(), nullable=False, server_default=sa.false())),
    ("image_data", lambda: sa.Column("image_data", sa.Text(), nullable=True)),
    ("image_mime_type", lambda: sa.Column("image_mime_type", sa.String(50), nullable=True)),
)


def _existing_columns() -> set:
    return {col["name"] for col in sa.inspect(op.get_bind()).get_columns("memories")}


def upgrade() -> None:
    existing = _existing_columns()
    missing = [make for name, make in NEW_COLUMNS if name not in existing]
    if not missing:
        return

    with op.batch_alter_table("memories") as batch_op:
        for make in missing:
            batch_op.add_column(make())


def downgrade() -> None:
    existing = _existing_columns()
    with op.batch_alter_table("memories") as batch_op:
        for name, _ in reversed(NEW_COLUMNS):
            if name in existing:
                batch_op.drop_column(name)
