"""Create subscriptions table.

Revision ID: 001
Revises:
Create Date: 2026-10-17

Creates:
- subscriptions : one row per registered webhook endpoint

Columns:
- endpoint   : String(2000) primary key, the webhook URL, immutable
- watermark  : Integer, highest notice id already accounted for
- category   : nullable filter field
- department : nullable filter field
- search     : nullable filter field
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "subscriptions",
        sa.Column("endpoint", sa.String(2000), primary_key=True),
        sa.Column("watermark", sa.Integer, nullable=False, server_default="0"),
        sa.Column("category", sa.String(200), nullable=True),
        sa.Column("department", sa.String(200), nullable=True),
        sa.Column("search", sa.String(500), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("watermark >= 0", name="ck_subscriptions_watermark_non_negative"),
    )


def downgrade() -> None:
    op.drop_table("subscriptions")
