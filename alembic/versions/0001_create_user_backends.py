"""create user_backends table

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "user_backends",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("owner_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("db_type", sa.String(length=20), nullable=False, server_default="mysql"),
        sa.Column("db_config", sa.JSON(), nullable=True),
        sa.Column("modules", sa.JSON(), nullable=False),
        sa.Column("generated_modules", sa.JSON(), nullable=False),
        sa.Column("settings", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("schema_version", sa.Integer(), nullable=False, server_default="2"),
    )
    op.create_index("ix_user_backends_user_id", "user_backends", ["user_id"])

def downgrade():
    op.drop_index("ix_user_backends_user_id", table_name="user_backends")
    op.drop_table("user_backends")
