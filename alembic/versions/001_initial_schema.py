"""Initial schema — profiles, match_records, blocks.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── 1. profiles (owned by the platform; read by discovery) ──────
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("first_name", sa.String, nullable=False),
        sa.Column("age", sa.Integer, nullable=False),
        sa.Column(
            "gender",
            sa.String,
            nullable=False,
            comment="male / female / other",
        ),
        sa.Column(
            "location",
            postgresql.JSONB,
            nullable=True,
            comment="{city, country, coordinates, isAutoDetected}",
        ),
        sa.Column("interests", postgresql.JSONB, nullable=True),
        sa.Column("lifestyle", postgresql.JSONB, nullable=True),
        sa.Column(
            "preferences",
            postgresql.JSONB,
            nullable=True,
            comment="{lookingFor, ageRange, videoChat}",
        ),
        sa.Column(
            "is_active",
            sa.Boolean,
            server_default="true",
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_profiles_user_id", "profiles", ["user_id"], unique=True)

    # ── 2. match_records (one row per unordered pair) ───────────────
    op.create_table(
        "match_records",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_a_id", sa.String(64), nullable=False),
        sa.Column("user_b_id", sa.String(64), nullable=False),
        sa.Column("liked_by_a", sa.Boolean, nullable=False),
        sa.Column("liked_by_b", sa.Boolean, nullable=False),
        sa.Column("is_mutual", sa.Boolean, nullable=False),
        sa.Column(
            "matched_at",
            sa.DateTime(timezone=True),
            nullable=True,
            comment="Stamped once on the mutual transition",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_a_id", "user_b_id", name="uq_match_pair"),
        sa.CheckConstraint("user_a_id < user_b_id", name="ck_match_pair_canonical"),
    )
    op.create_index("ix_match_records_user_a_id", "match_records", ["user_a_id"])
    op.create_index("ix_match_records_user_b_id", "match_records", ["user_b_id"])

    # ── 3. blocks ───────────────────────────────────────────────────
    op.create_table(
        "blocks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("blocker_id", sa.String(64), nullable=False),
        sa.Column("blocked_id", sa.String(64), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("blocker_id", "blocked_id", name="uq_block_pair"),
    )
    op.create_index("ix_blocks_blocker_id", "blocks", ["blocker_id"])
    op.create_index("ix_blocks_blocked_id", "blocks", ["blocked_id"])


def downgrade() -> None:
    op.drop_index("ix_blocks_blocked_id", table_name="blocks")
    op.drop_index("ix_blocks_blocker_id", table_name="blocks")
    op.drop_table("blocks")

    op.drop_index("ix_match_records_user_b_id", table_name="match_records")
    op.drop_index("ix_match_records_user_a_id", table_name="match_records")
    op.drop_table("match_records")

    op.drop_index("ix_profiles_user_id", table_name="profiles")
    op.drop_table("profiles")
