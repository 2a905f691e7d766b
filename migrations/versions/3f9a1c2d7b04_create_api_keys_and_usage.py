"""create tenant_api_keys and tenant_usage

Revision ID: 3f9a1c2d7b04
Revises:
Create Date: 2026-10-19 10:12:41.208331

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "3f9a1c2d7b04"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create key and usage tables."""
    op.create_table(
        "tenant_api_keys",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("key_id", sa.String(length=128), nullable=False),
        sa.Column("secret_hash", sa.String(length=255), nullable=False),
        sa.Column("permissions", postgresql.JSONB(), nullable=False),
        sa.Column("rate_limits", postgresql.JSONB(), nullable=False),
        sa.Column("allowed_ips", postgresql.JSONB(), nullable=True),
        sa.Column(
            "environment",
            sa.Enum("test", "live", name="key_environment_enum"),
            nullable=False,
        ),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_tenant_api_keys_key_id", "tenant_api_keys", ["key_id"], unique=True
    )
    op.create_index("ix_tenant_api_keys_tenant_id", "tenant_api_keys", ["tenant_id"])

    op.create_table(
        "tenant_usage",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("usage_date", sa.Date(), nullable=False),
        sa.Column("requests_count", sa.Integer(), nullable=False),
        sa.Column("quota_limit", sa.Integer(), nullable=False),
        sa.Column("last_reset", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "tenant_id", "usage_date", name="uq_tenant_usage_tenant_date"
        ),
        sa.CheckConstraint(
            "requests_count >= 0", name="ck_tenant_usage_count_non_negative"
        ),
    )
    op.create_index("ix_tenant_usage_tenant_id", "tenant_usage", ["tenant_id"])
    op.create_index("ix_tenant_usage_usage_date", "tenant_usage", ["usage_date"])


def downgrade() -> None:
    """Drop key and usage tables."""
    op.drop_index("ix_tenant_usage_usage_date", table_name="tenant_usage")
    op.drop_index("ix_tenant_usage_tenant_id", table_name="tenant_usage")
    op.drop_table("tenant_usage")
    op.drop_index("ix_tenant_api_keys_tenant_id", table_name="tenant_api_keys")
    op.drop_index("ix_tenant_api_keys_key_id", table_name="tenant_api_keys")
    op.drop_table("tenant_api_keys")
    sa.Enum(name="key_environment_enum").drop(op.get_bind(), checkfirst=True)
