"""
TCG Value — Collection Writes

add_collection_item is the "add to collection" path. A repeat add of the
same holding (user, game, card, variant, grading, folder) increments
quantity instead of creating a second row. After the commit a revaluation
is queued in the background; the add never waits on it and never fails
because of it.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tcgvalue.config import Game, VariantType
from tcgvalue.pipeline.jobs import enqueue_revalue_background
from tcgvalue.utils.normalize import normalize_game, normalize_variant_type

logger = structlog.get_logger(__name__)

_UPSERT_ITEM = text("""
    INSERT INTO user_collection_items (
        id, user_id, game, card_id, card_name, variant_type,
        grading_company, grade_label, cert_number, folder,
        quantity, cost_cents
    ) VALUES (
        :id, :user_id, :game, :card_id, :card_name, :variant_type,
        :grading_company, :grade_label, :cert_number, :folder,
        :quantity, :cost_cents
    )
    ON CONFLICT (user_id, game, card_id, variant_type, grading_company, grade_label, folder)
    DO UPDATE SET
        quantity = user_collection_items.quantity + EXCLUDED.quantity,
        cost_cents = COALESCE(EXCLUDED.cost_cents, user_collection_items.cost_cents),
        card_name = CASE
            WHEN EXCLUDED.card_name <> '' THEN EXCLUDED.card_name
            ELSE user_collection_items.card_name
        END,
        cert_number = COALESCE(EXCLUDED.cert_number, user_collection_items.cert_number),
        updated_at = CURRENT_TIMESTAMP
    RETURNING id, quantity
""")


@dataclass(frozen=True)
class CollectionAddResult:
    item_id: str
    quantity: int
    created: bool


async def add_collection_item(
    session: AsyncSession,
    user_id: str,
    game: str,
    card_id: str,
    *,
    quantity: int = 1,
    card_name: str = "",
    variant_type: str | None = None,
    cost_cents: int | None = None,
    grading_company: str | None = None,
    grade_label: str | None = None,
    cert_number: str | None = None,
    folder: str | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> CollectionAddResult:
    """
    Add (or increment) a holding and commit.

    When session_factory is given, a revaluation for the user is queued in
    the background after the commit.

    Raises:
        ValueError: unknown game, blank card id, non-positive quantity or
            negative cost.
    """
    canonical = normalize_game(game)
    if canonical is None:
        raise ValueError(f"Unsupported game: {game!r}")
    card_id = (card_id or "").strip()
    if not card_id:
        raise ValueError("card_id is required")
    if quantity <= 0:
        raise ValueError(f"quantity must be positive, got {quantity}")
    if cost_cents is not None and cost_cents < 0:
        raise ValueError(f"cost_cents must be non-negative, got {cost_cents}")

    # Only Pokémon prices distinguish printings; other games hold 'normal'.
    variant = (
        normalize_variant_type(variant_type) if canonical is Game.POKEMON else VariantType.NORMAL
    )

    new_id = str(uuid.uuid4())
    result = await session.execute(
        _UPSERT_ITEM,
        {
            "id": new_id,
            "user_id": user_id,
            "game": canonical.value,
            "card_id": card_id,
            "card_name": (card_name or "").strip(),
            "variant_type": variant.value,
            "grading_company": (grading_company or "").strip(),
            "grade_label": (grade_label or "").strip(),
            "cert_number": cert_number,
            "folder": (folder or "").strip(),
            "quantity": quantity,
            "cost_cents": cost_cents,
        },
    )
    row = result.one()
    await session.commit()

    added = CollectionAddResult(
        item_id=str(row.id),
        quantity=int(row.quantity),
        created=str(row.id) == new_id,
    )
    logger.info(
        "collection_item_added",
        user_id=user_id,
        item_id=added.item_id,
        game=canonical.value,
        card_id=card_id,
        quantity=added.quantity,
        created=added.created,
    )

    if session_factory is not None:
        enqueue_revalue_background(session_factory, user_id)

    return added
