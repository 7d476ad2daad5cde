"""Add target band columns to user_custom_exercises

Revision ID: 001_add_custom_exercise_bands
Revises: 
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision = '001_add_custom_exercise_bands'
down_revision = None
branch_labels = None
depends_on = None

TABLE = 'user_custom_exercises'

BAND_COLUMNS = [
    ('mode', sa.String()),
    ('sets_min', sa.Integer()),
    ('sets_max', sa.Integer()),
    ('reps_min', sa.Integer()),
    ('reps_max', sa.Integer()),
    ('duration_sec_min', sa.Integer()),
    ('duration_sec_max', sa.Integer()),
]


def upgrade():
    """Add band columns if they don't exist. Legacy rows keep NULLs (no band)."""
    conn = op.get_bind()
    inspector = inspect(conn)

    if TABLE not in inspector.get_table_names():
        print(f"⚠️  {TABLE} table doesn't exist yet - will be created by init_db()")
        return

    existing_columns = [col['name'] for col in inspector.get_columns(TABLE)]

    for name, col_type in BAND_COLUMNS:
        if name not in existing_columns:
            op.add_column(TABLE, sa.Column(name, col_type, nullable=True))
            print(f"✅ Added {name} column")
        else:
            print(f"ℹ️  {name} column already exists")


def downgrade():
    """Remove the band columns (for rollback)."""
    conn = op.get_bind()
    inspector = inspect(conn)

    if TABLE not in inspector.get_table_names():
        print(f"⚠️  {TABLE} table doesn't exist")
        return

    existing_columns = [col['name'] for col in inspector.get_columns(TABLE)]

    for name, _ in reversed(BAND_COLUMNS):
        if name in existing_columns:
            op.drop_column(TABLE, name)
            print(f"⚠️  Removed {name} column")
