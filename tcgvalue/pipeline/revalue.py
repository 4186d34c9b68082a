"""
TCG Value — Revaluation Pipeline

Recomputes collection values for one day (as_of_date, UTC):

1. Load collection items (everyone, or one user), ordered by user.
2. Resolve a unit price per item (PriceResolver). Unknown games and misses
   are counted, never fatal.
3. total = unit_cents × quantity → user_collection_items.last_value_cents
   and a ValuationRecord upsert keyed (user, item, day, source).
4. Aggregate per user and per game → one PortfolioDailyValuation upsert per
   user.

Every write is an upsert, so re-running a day overwrites instead of
duplicating and a crashed full run can simply be restarted. Writes happen in
one transaction per run, or per chunk of complete users when
REVALUE_USERS_PER_TRANSACTION > 0. A write failure rolls the current
transaction back and surfaces as RevalueError with the counts reached.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from itertools import groupby
from typing import Any, Mapping, Sequence

import structlog
from sqlalchemy import JSON, Date, bindparam, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tcgvalue.config import settings
from tcgvalue.engine.resolver import PriceObservation, PriceResolver
from tcgvalue.models.collection_item import CollectionItem
from tcgvalue.pipeline.live_prices import LivePriceLookup
from tcgvalue.utils.normalize import normalize_game

logger = structlog.get_logger(__name__)

_UPSERT_VALUATION = text("""
    INSERT INTO user_collection_item_valuations (
        id, user_id, item_id, as_of_date, game,
        value_cents, currency, source, confidence, meta
    ) VALUES (
        :id, :user_id, :item_id, :as_of_date, :game,
        :value_cents, :currency, :source, :confidence, :meta
    )
    ON CONFLICT (user_id, item_id, as_of_date, source) DO UPDATE SET
        game = EXCLUDED.game,
        value_cents = EXCLUDED.value_cents,
        currency = EXCLUDED.currency,
        confidence = EXCLUDED.confidence,
        meta = EXCLUDED.meta,
        updated_at = CURRENT_TIMESTAMP
""").bindparams(
    bindparam("as_of_date", type_=Date),
    bindparam("meta", type_=JSON),
)

_UPSERT_PORTFOLIO = text("""
    INSERT INTO user_collection_daily_valuations (
        user_id, as_of_date, total_quantity, distinct_items,
        total_cost_cents, total_value_cents,
        realized_pnl_cents, unrealized_pnl_cents, breakdown
    ) VALUES (
        :user_id, :as_of_date, :total_quantity, :distinct_items,
        :total_cost_cents, :total_value_cents,
        NULL, :unrealized_pnl_cents, :breakdown
    )
    ON CONFLICT (user_id, as_of_date) DO UPDATE SET
        total_quantity = EXCLUDED.total_quantity,
        distinct_items = EXCLUDED.distinct_items,
        total_cost_cents = EXCLUDED.total_cost_cents,
        total_value_cents = EXCLUDED.total_value_cents,
        realized_pnl_cents = NULL,
        unrealized_pnl_cents = EXCLUDED.unrealized_pnl_cents,
        breakdown = EXCLUDED.breakdown,
        updated_at = CURRENT_TIMESTAMP
""").bindparams(
    bindparam("as_of_date", type_=Date),
    bindparam("breakdown", type_=JSON),
)


@dataclass
class RevalueResult:
    ok: bool
    as_of_date: date
    updated_items: int = 0
    skipped_no_price: int = 0
    skipped_unsupported_game: int = 0
    users: int = 0
    user_id: str | None = None

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["as_of_date"] = self.as_of_date.isoformat()
        return data


class RevalueError(RuntimeError):
    """A write failed; the current transaction was rolled back."""

    def __init__(self, message: str, result: RevalueResult):
        super().__init__(message)
        self.result = result


@dataclass
class PortfolioTotals:
    """Running per-user totals over valued items."""
    total_quantity: int = 0
    distinct_items: int = 0
    total_cost_cents: int = 0
    total_value_cents: int = 0
    by_game: dict[str, PortfolioTotals] = field(default_factory=dict)

    def add(self, game: str, quantity: int, cost_cents: int, value_cents: int) -> None:
        self._add(quantity, cost_cents, value_cents)
        self.by_game.setdefault(game, PortfolioTotals())._add(quantity, cost_cents, value_cents)

    def _add(self, quantity: int, cost_cents: int, value_cents: int) -> None:
        self.total_quantity += quantity
        self.distinct_items += 1
        self.total_cost_cents += cost_cents
        self.total_value_cents += value_cents

    @property
    def unrealized_pnl_cents(self) -> int | None:
        if self.distinct_items == 0:
            return None
        return self.total_value_cents - self.total_cost_cents

    def breakdown(self) -> dict[str, Any]:
        return {
            "byGame": {
                game: {
                    "totalQuantity": t.total_quantity,
                    "distinctItems": t.distinct_items,
                    "totalCostCents": t.total_cost_cents,
                    "totalValueCents": t.total_value_cents,
                }
                for game, t in sorted(self.by_game.items())
            }
        }


def _today_utc() -> date:
    return datetime.now(timezone.utc).date()


class RevaluationPipeline:
    """
    Batch revaluation over the collection store.

    Usage:
        pipeline = RevaluationPipeline(session_factory, live_lookup=client)
        result = await pipeline.run_for_user("user-1")
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        live_lookup: LivePriceLookup | None = None,
        users_per_transaction: int | None = None,
        max_items_per_user: int | None = None,
    ):
        self.session_factory = session_factory
        self.live_lookup = live_lookup
        self.users_per_transaction = (
            users_per_transaction
            if users_per_transaction is not None
            else settings.REVALUE_USERS_PER_TRANSACTION
        )
        self.max_items_per_user = (
            max_items_per_user if max_items_per_user is not None else settings.REVALUE_MAX_ITEMS_PER_JOB
        )

    # -----------------------------------------------------------------------
    # Entry points
    # -----------------------------------------------------------------------

    async def run_full(self, as_of_date: date | None = None) -> RevalueResult:
        """Revalue every user's collection for as_of_date (default: today UTC)."""
        as_of = as_of_date or _today_utc()
        result = RevalueResult(ok=False, as_of_date=as_of)

        table = CollectionItem.__table__
        async with self.session_factory() as session:
            rows = (
                await session.execute(select(table).order_by(table.c.user_id, table.c.id))
            ).mappings().all()

        groups = [(user_id, list(items)) for user_id, items in groupby(rows, key=lambda r: r["user_id"])]
        chunk_size = self.users_per_transaction if self.users_per_transaction > 0 else max(len(groups), 1)

        logger.info(
            "revalue_full_start",
            as_of_date=as_of.isoformat(),
            users=len(groups),
            items=len(rows),
            users_per_transaction=chunk_size,
        )

        for start in range(0, len(groups), chunk_size):
            await self._write_chunk(groups[start:start + chunk_size], as_of, result)

        result.ok = True
        logger.info("revalue_full_complete", **result.as_dict())
        return result

    async def run_for_user(self, user_id: str, as_of_date: date | None = None) -> RevalueResult:
        """
        Revalue one user's collection.

        The user's portfolio row is written even when nothing priced, so the
        day shows up with zero totals and a NULL P&L.
        """
        as_of = as_of_date or _today_utc()
        result = RevalueResult(ok=False, as_of_date=as_of, user_id=user_id)

        table = CollectionItem.__table__
        async with self.session_factory() as session:
            stmt = (
                select(table)
                .where(table.c.user_id == user_id)
                .order_by(table.c.created_at, table.c.id)
                .limit(self.max_items_per_user)
            )
            rows = (await session.execute(stmt)).mappings().all()

        if len(rows) >= self.max_items_per_user:
            logger.warning(
                "revalue_user_item_cap_reached",
                user_id=user_id,
                max_items=self.max_items_per_user,
            )

        await self._write_chunk([(user_id, list(rows))], as_of, result)

        result.ok = True
        logger.info("revalue_user_complete", **result.as_dict())
        return result

    # -----------------------------------------------------------------------
    # Transactional work
    # -----------------------------------------------------------------------

    async def _write_chunk(
        self,
        groups: Sequence[tuple[str, Sequence[Mapping[str, Any]]]],
        as_of: date,
        result: RevalueResult,
    ) -> None:
        """Value and persist complete users in a single transaction."""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    resolver = PriceResolver(session, live_lookup=self.live_lookup)
                    for user_id, items in groups:
                        totals = PortfolioTotals()
                        for item in items:
                            await self._value_item(session, resolver, item, as_of, totals, result)
                        await self._upsert_portfolio(session, user_id, as_of, totals)
                        result.users += 1
        except SQLAlchemyError as e:
            logger.error(
                "revalue_write_failed",
                error=str(e),
                error_type=type(e).__name__,
                **result.as_dict(),
            )
            raise RevalueError(f"Revaluation write failed: {e}", result) from e

    async def _resolve_isolated(
        self,
        session: AsyncSession,
        resolver: PriceResolver,
        item: Mapping[str, Any],
        game: str,
        card_id: str,
    ) -> PriceObservation | None:
        """Resolve inside a SAVEPOINT so a failed read cannot poison the transaction."""
        try:
            async with session.begin_nested():
                return await resolver.resolve(game, card_id, item["variant_type"])
        except Exception as e:
            logger.warning(
                "revalue_resolver_error",
                item_id=item["id"],
                game=game,
                card_id=card_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def _value_item(
        self,
        session: AsyncSession,
        resolver: PriceResolver,
        item: Mapping[str, Any],
        as_of: date,
        totals: PortfolioTotals,
        result: RevalueResult,
    ) -> None:
        game = normalize_game(item["game"])
        if game is None:
            result.skipped_unsupported_game += 1
            logger.debug("revalue_item_skipped_unsupported_game", item_id=item["id"], game=item["game"])
            return

        card_id = (item["card_id"] or "").strip()
        observation = None
        if card_id:
            observation = await self._resolve_isolated(session, resolver, item, game.value, card_id)

        if observation is None:
            result.skipped_no_price += 1
            logger.debug(
                "revalue_item_skipped_no_price",
                item_id=item["id"],
                game=game.value,
                card_id=card_id,
                variant_type=item["variant_type"],
            )
            return

        quantity = int(item["quantity"] or 0)
        unit_cents = observation.unit_cents
        value_cents = unit_cents * quantity
        cost_cents = int(item["cost_cents"] or 0) * quantity

        await session.execute(
            update(CollectionItem.__table__)
            .where(CollectionItem.__table__.c.id == item["id"])
            .values(last_value_cents=value_cents)
        )
        await session.execute(
            _UPSERT_VALUATION,
            {
                "id": str(uuid.uuid4()),
                "user_id": item["user_id"],
                "item_id": item["id"],
                "as_of_date": as_of,
                "game": game.value,
                "value_cents": value_cents,
                "currency": observation.currency,
                "source": observation.source,
                "confidence": observation.confidence.value,
                "meta": {
                    "unit_price_cents": unit_cents,
                    "quantity": quantity,
                    "card_id": card_id,
                    "variant_type": item["variant_type"],
                    "grading_company": item["grading_company"] or None,
                    "grade_label": item["grade_label"] or None,
                    "cert_number": item["cert_number"],
                },
            },
        )

        totals.add(game.value, quantity, cost_cents, value_cents)
        result.updated_items += 1

    async def _upsert_portfolio(
        self,
        session: AsyncSession,
        user_id: str,
        as_of: date,
        totals: PortfolioTotals,
    ) -> None:
        await session.execute(
            _UPSERT_PORTFOLIO,
            {
                "user_id": user_id,
                "as_of_date": as_of,
                "total_quantity": totals.total_quantity,
                "distinct_items": totals.distinct_items,
                "total_cost_cents": totals.total_cost_cents,
                "total_value_cents": totals.total_value_cents,
                "unrealized_pnl_cents": totals.unrealized_pnl_cents,
                "breakdown": totals.breakdown(),
            },
        )
        logger.debug(
            "revalue_portfolio_upserted",
            user_id=user_id,
            as_of_date=as_of.isoformat(),
            total_value_cents=totals.total_value_cents,
            distinct_items=totals.distinct_items,
        )
