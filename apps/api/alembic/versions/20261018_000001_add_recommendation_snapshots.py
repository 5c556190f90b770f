"""add recommendations and channel snapshot tables

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18 00:00:01.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261018_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "recommendations",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("target_id", sa.String(), nullable=False),
        sa.Column("target_type", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("priority", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("action_items", sa.JSON(), nullable=False),
        sa.Column("expected_impact", sa.JSON(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("generated_by", sa.String(), nullable=False),
        sa.Column("reasoning", sa.Text(), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("project_value", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("implemented_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("implementation_notes", sa.Text(), nullable=True),
        sa.Column("user_rating", sa.Integer(), nullable=True),
        sa.Column("user_feedback", sa.Text(), nullable=True),
        sa.Column("helpful", sa.Boolean(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("user_rating IS NULL OR (user_rating BETWEEN 1 AND 5)", name="ck_recommendations_rating"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_recommendations_target_id", "recommendations", ["target_id"], unique=False)
    op.create_index("ix_recommendations_priority", "recommendations", ["priority"], unique=False)
    op.create_index("ix_recommendations_status", "recommendations", ["status"], unique=False)
    op.create_index(
        "ix_recommendations_target_created",
        "recommendations",
        ["target_id", "target_type", "created_at"],
        unique=False,
    )

    op.create_table(
        "channel_snapshots",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("channel_id", sa.String(), nullable=False),
        sa.Column("algorithm_score", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("channel_id", "created_at", name="uq_channel_snapshots_channel_created"),
    )
    op.create_index("ix_channel_snapshots_channel_id", "channel_snapshots", ["channel_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_channel_snapshots_channel_id", table_name="channel_snapshots")
    op.drop_table("channel_snapshots")
    op.drop_index("ix_recommendations_target_created", table_name="recommendations")
    op.drop_index("ix_recommendations_status", table_name="recommendations")
    op.drop_index("ix_recommendations_priority", table_name="recommendations")
    op.drop_index("ix_recommendations_target_id", table_name="recommendations")
    op.drop_table("recommendations")
