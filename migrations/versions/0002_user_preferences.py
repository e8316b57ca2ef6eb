"""add preferences column to users

Revision ID: 0002_user_preferences
Revises: 0001_initial_schema
Create Date: 2026-10-08
"""
from alembic import op
import sqlalchemy as sa

revision = "0002_user_preferences"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "users",
        sa.Column("preferences", sa.Text(), nullable=True),
    )


def downgrade() -> None:
    with op.batch_alter_table("users") as batch_op:
        batch_op.drop_column("preferences")
