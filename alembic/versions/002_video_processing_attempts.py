"""Count processing claims per video so stuck videos are not requeued forever.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18 00:00:00.000000
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add processing_attempts column to videos table."""
    op.add_column(
        "videos",
        sa.Column("processing_attempts", sa.Integer(), nullable=False, server_default="0"),
    )


def downgrade() -> None:
    """Remove processing_attempts column from videos table."""
    op.drop_column("videos", "processing_attempts")
