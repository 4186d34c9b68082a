"""Daily TCGdex price snapshots (USD/EUR, derived flag)

Revision ID: 003_tcgdex_snapshots
Revises: 002_revalue_jobs
Create Date: 2026-10-14
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers
revision: str = "003_tcgdex_snapshots"
down_revision: Union[str, None] = "002_revalue_jobs"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "tcgdex_price_snapshots_daily",
        sa.Column("card_id", sa.String(), nullable=False, comment="tcgdex_cards.id"),
        sa.Column("as_of_date", sa.DATE(), nullable=False),
        sa.Column("currency", sa.String(), nullable=False, comment="USD | EUR"),
        sa.Column("market_price_cents", sa.INTEGER(), nullable=False),
        sa.Column(
            "derived",
            sa.BOOLEAN(),
            nullable=False,
            server_default=sa.false(),
            comment="True when computed from the other currency via configured FX",
        ),
        sa.Column("raw_json", JSONB(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("card_id", "as_of_date", "currency"),
    )


def downgrade() -> None:
    op.drop_table("tcgdex_price_snapshots_daily")
