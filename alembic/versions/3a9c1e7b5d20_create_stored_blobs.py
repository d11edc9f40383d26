"""Create stored_blobs table

Versioned JSON documents (session log, learner state, notification history,
baby profile), one row per profile and key.

Revision ID: 3a9c1e7b5d20
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3a9c1e7b5d20"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create stored_blobs."""
    op.create_table(
        "stored_blobs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("profile_id", sa.String(100), nullable=False),
        sa.Column("key", sa.String(50), nullable=False),
        sa.Column("schema_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("profile_id", "key", name="uq_stored_blob_key"),
        comment="Versioned JSON documents keyed per profile",
    )
    op.create_index("ix_stored_blobs_profile_id", "stored_blobs", ["profile_id"])


def downgrade() -> None:
    """Drop stored_blobs."""
    op.drop_index("ix_stored_blobs_profile_id", table_name="stored_blobs")
    op.drop_table("stored_blobs")
