"""Create users table with scan quota columns

Revision ID: 001_users_scan_quota
Revises:
Create Date: 2026-10-19

Adds:
  - users table (id, email, subscription_tier, scans_used, scans_reset_at,
    created_at, is_active)
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers
revision: str = "001_users_scan_quota"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column(
            "subscription_tier",
            sa.String(),
            server_default="free",
            nullable=False,
            comment="Subscription tier: free | power | dealer | admin",
        ),
        sa.Column(
            "scans_used",
            sa.Integer(),
            server_default="0",
            nullable=False,
            comment="Successful scans this billing month",
        ),
        sa.Column(
            "scans_reset_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="Last monthly scan counter reset",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "is_active",
            sa.BOOLEAN(),
            server_default="true",
            nullable=False,
        ),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
