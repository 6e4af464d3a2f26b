"""Track when each feed was last attempted for staleness scheduling."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261017_0002"
down_revision = "20261017_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "feeds",
        sa.Column(
            "last_fetched_at",
            sa.DateTime(timezone=True),
            nullable=True,
        ),
    )
    op.create_index("ix_feeds_last_fetched_at", "feeds", ["last_fetched_at"])


def downgrade() -> None:
    op.drop_index("ix_feeds_last_fetched_at", table_name="feeds")
    op.drop_column("feeds", "last_fetched_at")
