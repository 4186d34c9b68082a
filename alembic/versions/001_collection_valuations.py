"""Collection items, per-item valuations, daily portfolio totals

Revision ID: 001_collection_valuations
Revises: None
Create Date: 2026-10-12
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

# revision identifiers
revision: str = "001_collection_valuations"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- user_collection_items ---
    op.create_table(
        "user_collection_items",
        sa.Column(
            "id",
            UUID(as_uuid=False),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("user_id", sa.String(), nullable=False, comment="Owning user (external identity)"),
        sa.Column("game", sa.String(), nullable=False, comment="pokemon | mtg | yugioh (legacy labels normalized on read)"),
        sa.Column("card_id", sa.String(), nullable=False),
        sa.Column("card_name", sa.String(), nullable=False, server_default=""),
        sa.Column("variant_type", sa.String(), nullable=False, server_default="normal"),
        sa.Column("grading_company", sa.String(), nullable=False, server_default=""),
        sa.Column("grade_label", sa.String(), nullable=False, server_default=""),
        sa.Column("cert_number", sa.String(), nullable=True),
        sa.Column("folder", sa.String(), nullable=False, server_default=""),
        sa.Column("quantity", sa.INTEGER(), nullable=False, server_default="1"),
        sa.Column("cost_cents", sa.INTEGER(), nullable=True, comment="Cost basis per unit"),
        sa.Column("last_value_cents", sa.INTEGER(), nullable=True, comment="Total value from last revaluation"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_user_collection_items_quantity_positive"),
        sa.UniqueConstraint(
            "user_id", "game", "card_id", "variant_type",
            "grading_company", "grade_label", "folder",
            name="ux_user_collection_items_holding",
        ),
    )
    op.create_index("ix_user_collection_items_user", "user_collection_items", ["user_id"])

    # --- user_collection_item_valuations ---
    op.create_table(
        "user_collection_item_valuations",
        sa.Column(
            "id",
            UUID(as_uuid=False),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column(
            "item_id",
            UUID(as_uuid=False),
            sa.ForeignKey("user_collection_items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("as_of_date", sa.DATE(), nullable=False),
        sa.Column("game", sa.String(), nullable=False),
        sa.Column("value_cents", sa.INTEGER(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(), nullable=False, server_default="USD"),
        sa.Column("source", sa.String(), nullable=False, comment="e.g. tcg_card_prices_tcgplayer:holofoil"),
        sa.Column("confidence", sa.String(), nullable=True, comment="variant_column | market_or_mid | live_fallback"),
        sa.Column("meta", JSONB(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint(
            "user_id", "item_id", "as_of_date", "source",
            name="ux_item_valuations_user_item_date_source",
        ),
    )
    op.create_index(
        "ix_item_valuations_item_date",
        "user_collection_item_valuations",
        ["item_id", "as_of_date"],
    )

    # --- user_collection_daily_valuations ---
    op.create_table(
        "user_collection_daily_valuations",
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("as_of_date", sa.DATE(), nullable=False),
        sa.Column("total_quantity", sa.INTEGER(), nullable=False, server_default="0"),
        sa.Column("distinct_items", sa.INTEGER(), nullable=False, server_default="0"),
        sa.Column("total_cost_cents", sa.BIGINT(), nullable=False, server_default="0"),
        sa.Column("total_value_cents", sa.BIGINT(), nullable=False, server_default="0"),
        sa.Column("realized_pnl_cents", sa.BIGINT(), nullable=True, comment="Reserved; sales are not tracked"),
        sa.Column("unrealized_pnl_cents", sa.BIGINT(), nullable=True, comment="NULL when no valued items"),
        sa.Column("breakdown", JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("user_id", "as_of_date"),
    )


def downgrade() -> None:
    op.drop_table("user_collection_daily_valuations")
    op.drop_index("ix_item_valuations_item_date", table_name="user_collection_item_valuations")
    op.drop_table("user_collection_item_valuations")
    op.drop_index("ix_user_collection_items_user", table_name="user_collection_items")
    op.drop_table("user_collection_items")
