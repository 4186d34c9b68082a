"""
TCG Value — Collection Item Model

A user's holding of one printing of one card. Rows are created by the
"add to collection" path; only the revaluation pipeline writes
last_value_cents.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import INTEGER, TIMESTAMP, CheckConstraint, Index, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from tcgvalue.models.base import Base, UUIDText


class CollectionItem(Base):
    """
    One holding row per (user, game, card, variant, grading, folder).

    The optional parts of the key (grading_company, grade_label, folder) are
    NOT NULL with '' as "none" so the key is a plain unique constraint and a
    repeated add can upsert into it.
    """

    __tablename__ = "user_collection_items"

    id: Mapped[str] = mapped_column(
        UUIDText,
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Item id",
    )
    user_id: Mapped[str] = mapped_column(String, nullable=False, comment="Owning user (external identity)")
    game: Mapped[str] = mapped_column(
        String, nullable=False, comment="Stored game label; normalized to pokemon|mtg|yugioh on read"
    )
    card_id: Mapped[str] = mapped_column(
        String, nullable=False, comment="Canonical vendor card id (tcgdex id, scryfall uuid, ygo passcode)"
    )
    card_name: Mapped[str] = mapped_column(String, nullable=False, server_default="", default="")
    variant_type: Mapped[str] = mapped_column(
        String, nullable=False, server_default="normal", default="normal",
        comment="normal | holofoil | reverse_holofoil | first_edition | promo",
    )
    grading_company: Mapped[str] = mapped_column(String, nullable=False, server_default="", default="")
    grade_label: Mapped[str] = mapped_column(String, nullable=False, server_default="", default="")
    cert_number: Mapped[str | None] = mapped_column(String, nullable=True)
    folder: Mapped[str] = mapped_column(String, nullable=False, server_default="", default="")
    quantity: Mapped[int] = mapped_column(INTEGER, nullable=False, server_default="1", default=1)
    cost_cents: Mapped[int | None] = mapped_column(
        INTEGER, nullable=True, comment="Cost basis per unit, cents"
    )
    last_value_cents: Mapped[int | None] = mapped_column(
        INTEGER, nullable=True, comment="Total value (unit x quantity) from the last revaluation"
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "game", "card_id", "variant_type",
            "grading_company", "grade_label", "folder",
            name="ux_user_collection_items_holding",
        ),
        Index("ix_user_collection_items_user", "user_id"),
        CheckConstraint("quantity > 0", name="ck_user_collection_items_quantity_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<CollectionItem id={self.id!r} user_id={self.user_id!r} game={self.game!r} "
            f"card_id={self.card_id!r} qty={self.quantity} value={self.last_value_cents}>"
        )
