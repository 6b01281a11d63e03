# Overview: Service-layer operations for the stock movement ledger; encapsulates business logic and database work.

from __future__ import annotations

import logging
from datetime import datetime

from ..errors import InsufficientStock, ValidationError
from ..extensions import db
from ..models import Article, StockMovement
from ..time_utils import utcnow
from .concurrency import run_with_retry
from .money import apply_stock_delta
from .tenant_service import get_scoped

"""
ProPartner Stock Invariants (authoritative)

Stock model:
- Each tracked article's quantity is the fold of an append-only sequence of
  signed StockMovement rows.
- Article.current_stock caches that fold and always equals the
  quantity_after of the article's most recent movement.
- Cache and log are written in the same DB transaction; never one without
  the other.

Business invariants:
- quantity_after = quantity_before + quantity_delta, snapshotted on insert.
- quantity_after may never be negative; the movement is rejected instead.
- quantity_delta is authoritative for direction. movement_type is a label:
  an ADJUSTMENT of +3 is an inbound correction, -3 an outbound one.

Reversal:
- Reversing a movement appends a compensating ADJUSTMENT of -delta and
  removes the original row, atomically.
- The insufficient-stock check runs against the article's current stock,
  not the historical snapshot: later movements may have consumed it.

Concurrency:
- The article row is locked (SELECT ... FOR UPDATE) and version-checked
  for the whole read-stock / insert-movement / update-stock unit.
"""


logger = logging.getLogger(__name__)


MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_INVENTORY = "INVENTORY"
MOVEMENT_RETURN = "RETURN"

VALID_MOVEMENT_TYPES = [
    MOVEMENT_IN,
    MOVEMENT_OUT,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_INVENTORY,
    MOVEMENT_RETURN,
]


def validate_movement_type(movement_type: str) -> None:
    if movement_type not in VALID_MOVEMENT_TYPES:
        raise ValidationError(
            f"Invalid movement type: {movement_type}. Must be one of {VALID_MOVEMENT_TYPES}"
        )


def _ensure_tracked_article(org_id: int, article_id: int, *, lock: bool = False) -> Article:
    article = get_scoped(Article, org_id, article_id, lock=lock, label="Article")
    if not article.track_stock:
        raise ValidationError(f"Stock tracking is not enabled for article {article.reference}")
    return article


def _append_movement(
    *,
    article: Article,
    movement_type: str,
    quantity_delta: int,
    reason: str | None,
    reference: str | None,
    notes: str | None,
    created_by: str | None,
) -> StockMovement:
    """Core append without locking, retry, or commit. Caller holds the article lock."""
    quantity_before = article.current_stock
    quantity_after = apply_stock_delta(quantity_before, quantity_delta)

    movement = StockMovement(
        org_id=article.org_id,
        article_id=article.id,
        movement_type=movement_type,
        quantity_delta=quantity_delta,
        quantity_before=quantity_before,
        quantity_after=quantity_after,
        reason=reason,
        reference=reference,
        notes=notes,
        created_by=created_by,
        occurred_at=utcnow(),
    )
    db.session.add(movement)
    article.current_stock = quantity_after
    db.session.flush()
    return movement


def record_movement(
    *,
    org_id: int,
    article_id: int,
    movement_type: str,
    quantity_delta: int,
    reason: str | None = None,
    reference: str | None = None,
    notes: str | None = None,
    created_by: str | None = None,
) -> StockMovement:
    """
    Record one signed stock change for an article.

    Raises:
        NotFound: article missing or owned by another organization
        ValidationError: bad type, zero delta, untracked article
        InsufficientStock: the change would take stock below zero
    """
    validate_movement_type(movement_type)
    if isinstance(quantity_delta, bool) or not isinstance(quantity_delta, int):
        raise ValidationError("quantity_delta must be an integer")
    # An INVENTORY count may confirm the current level unchanged
    if quantity_delta == 0 and movement_type != MOVEMENT_INVENTORY:
        raise ValidationError(f"quantity_delta must be non-zero for {movement_type}")

    def _op():
        article = _ensure_tracked_article(org_id, article_id, lock=True)
        movement = _append_movement(
            article=article,
            movement_type=movement_type,
            quantity_delta=quantity_delta,
            reason=reason,
            reference=reference,
            notes=notes,
            created_by=created_by,
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def record_inventory_count(
    *,
    org_id: int,
    article_id: int,
    counted_quantity: int,
    notes: str | None = None,
    created_by: str | None = None,
) -> StockMovement:
    """
    Align stock with a physical count.

    Writes an INVENTORY movement of counted_quantity - current_stock,
    computed under the article lock.
    """
    if isinstance(counted_quantity, bool) or not isinstance(counted_quantity, int):
        raise ValidationError("counted_quantity must be an integer")
    if counted_quantity < 0:
        raise ValidationError("counted_quantity must be >= 0")

    def _op():
        article = _ensure_tracked_article(org_id, article_id, lock=True)
        movement = _append_movement(
            article=article,
            movement_type=MOVEMENT_INVENTORY,
            quantity_delta=counted_quantity - article.current_stock,
            reason="Physical inventory count",
            reference=None,
            notes=notes,
            created_by=created_by,
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def reverse_movement(
    *,
    org_id: int,
    movement_id: int,
    created_by: str | None = None,
) -> StockMovement:
    """
    Cancel a movement with a compensating ADJUSTMENT and remove the original.

    Returns:
        The compensating movement

    Raises:
        NotFound: movement missing or owned by another organization
        InsufficientStock: compensation would take current stock below zero
    """
    def _op():
        original = get_scoped(StockMovement, org_id, movement_id, label="Stock movement")
        article = get_scoped(Article, org_id, original.article_id, lock=True, label="Article")

        try:
            compensation = _append_movement(
                article=article,
                movement_type=MOVEMENT_ADJUSTMENT,
                quantity_delta=-original.quantity_delta,
                reason=f"Reversal of movement {original.id}",
                reference=original.reference,
                notes=f"Compensates {original.movement_type} of {original.quantity_delta:+d}",
                created_by=created_by,
            )
        except InsufficientStock:
            raise InsufficientStock("cannot reverse: insufficient stock") from None

        db.session.delete(original)
        db.session.commit()

        logger.info(
            "Stock movement %s reversed by %s (article %s, org %s)",
            movement_id, compensation.id, article.id, org_id,
        )
        return compensation

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_movement(*, org_id: int, movement_id: int) -> StockMovement:
    return get_scoped(StockMovement, org_id, movement_id, label="Stock movement")


def list_movements(
    *,
    org_id: int,
    article_id: int | None = None,
    movement_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[StockMovement], int]:
    """
    Movements newest first, with the total row count for pagination.

    start/end filters are inclusive on occurred_at.
    """
    if movement_type is not None:
        validate_movement_type(movement_type)

    q = db.session.query(StockMovement).filter(StockMovement.org_id == org_id)
    if article_id is not None:
        q = q.filter(StockMovement.article_id == article_id)
    if movement_type is not None:
        q = q.filter(StockMovement.movement_type == movement_type)
    if start is not None:
        q = q.filter(StockMovement.occurred_at >= start)
    if end is not None:
        q = q.filter(StockMovement.occurred_at <= end)

    total = q.count()
    rows = (
        q.order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total


def get_stock_alerts(*, org_id: int) -> list[Article]:
    """Active tracked articles at or below their minimum stock."""
    return (
        db.session.query(Article)
        .filter(
            Article.org_id == org_id,
            Article.is_active.is_(True),
            Article.track_stock.is_(True),
            Article.stock_minimum.isnot(None),
            Article.current_stock <= Article.stock_minimum,
        )
        .order_by(Article.current_stock, Article.reference)
        .all()
    )


# =============================================================================
# REPAIR TOOLS (not a runtime path)
# =============================================================================

def _last_movement(article: Article) -> StockMovement | None:
    return (
        db.session.query(StockMovement)
        .filter_by(article_id=article.id)
        .order_by(StockMovement.id.desc())
        .first()
    )


def verify_stock(*, org_id: int, article_id: int) -> dict:
    """
    Compare the cached current_stock with the movement log.

    An article without movements is consistent by definition (its stock was
    set at creation).
    """
    article = get_scoped(Article, org_id, article_id, label="Article")
    last = _last_movement(article)
    expected = last.quantity_after if last is not None else article.current_stock
    return {
        "article_id": article.id,
        "reference": article.reference,
        "current_stock": article.current_stock,
        "ledger_stock": expected,
        "consistent": expected == article.current_stock,
    }


def repair_stock(*, org_id: int, article_id: int) -> dict:
    """Realign current_stock with the last movement's quantity_after."""
    def _op():
        article = get_scoped(Article, org_id, article_id, lock=True, label="Article")
        last = _last_movement(article)
        before = article.current_stock
        if last is not None and last.quantity_after != before:
            article.current_stock = last.quantity_after
            logger.warning(
                "Stock cache repaired for article %s: %s -> %s", article.id, before, last.quantity_after
            )
        db.session.commit()
        return {"article_id": article.id, "previous_stock": before, "current_stock": article.current_stock}

    return run_with_retry(_op)
