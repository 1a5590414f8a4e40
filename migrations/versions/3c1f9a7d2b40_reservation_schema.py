"""reservation schema

Revision ID: 3c1f9a7d2b40
Revises: 
Create Date: 2026-10-19 09:12:44.318204

"""
from pathlib import Path
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '3c1f9a7d2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    project_root = Path(__file__).resolve().parents[2]
    sql_dir = project_root / "sql"

    for filename in ("001_extensions.sql", "010_schema.sql"):
        op.execute((sql_dir / filename).read_text())


def downgrade() -> None:
    op.drop_table("reservation_table", schema="public")
    op.drop_table("reservation", schema="public")
    op.drop_table("comment", schema="public")
    op.drop_table("opening_hours", schema="public")
    op.drop_table("restaurant_table", schema="public")
    op.drop_table("restaurant_image", schema="public")
    op.drop_table("restaurant", schema="public")
    op.execute("DROP EXTENSION IF EXISTS btree_gist;")
    op.execute("DROP EXTENSION IF EXISTS pgcrypto;")
