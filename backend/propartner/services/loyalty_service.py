# Overview: Service-layer operations for the loyalty points ledger; encapsulates business logic and database work.

"""
Loyalty Points Service

WHY: Reward clients with points that can be redeemed, adjusted by staff,
and that expire on schedule.

DESIGN:
- LoyaltyMovement is an append-only log of signed point changes
- Client.points_balance is a cache of that log, changed only here and only
  in the same transaction as the movement that explains it
- Every GAIN carries expirable_remaining: the part of the grant not yet
  consumed. Redemptions and negative adjustments consume grants soonest
  expiring first; the expiration sweep consumes what is left of due grants.
  This is what makes the sweep idempotent: a grant is expired at most once.
- Loyalty levels are re-evaluated after every balance change
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from flask import current_app

from ..errors import InsufficientPoints, InvalidAmount, ValidationError
from ..extensions import db
from ..models import Client, LoyaltyLevel, LoyaltyMovement
from ..time_utils import normalize_datetime, utcnow
from .concurrency import lock_for_update, run_with_retry
from .money import format_currency
from .tenant_service import get_scoped


logger = logging.getLogger(__name__)


MOVEMENT_GAIN = "GAIN"
MOVEMENT_REDEMPTION = "REDEMPTION"
MOVEMENT_EXPIRATION = "EXPIRATION"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"

VALID_MOVEMENT_TYPES = [
    MOVEMENT_GAIN,
    MOVEMENT_REDEMPTION,
    MOVEMENT_EXPIRATION,
    MOVEMENT_ADJUSTMENT,
]


def _require_positive_points(points) -> None:
    if isinstance(points, bool) or not isinstance(points, int):
        raise ValidationError("points must be an integer")
    if points <= 0:
        raise InvalidAmount("points must be greater than zero")


def _lock_client(org_id: int, client_id: int) -> Client:
    return get_scoped(Client, org_id, client_id, lock=True, label="Client")


def calculate_points(amount_cents: int) -> int:
    """Points earned for an amount spent: floor(units * LOYALTY_POINTS_PER_UNIT)."""
    per_unit = current_app.config.get("LOYALTY_POINTS_PER_UNIT", 1)
    if amount_cents <= 0:
        return 0
    return (amount_cents * per_unit) // 100


def default_expiration(now: datetime | None = None) -> datetime:
    days = current_app.config.get("LOYALTY_DEFAULT_EXPIRATION_DAYS", 365)
    return (now or utcnow()) + timedelta(days=days)


# =============================================================================
# LEVELS
# =============================================================================

def _resolve_level(client: Client) -> LoyaltyLevel | None:
    return (
        db.session.query(LoyaltyLevel)
        .filter(
            LoyaltyLevel.org_id == client.org_id,
            LoyaltyLevel.is_active.is_(True),
            LoyaltyLevel.points_threshold <= client.points_balance,
        )
        .order_by(LoyaltyLevel.points_threshold.desc(), LoyaltyLevel.id)
        .first()
    )


def _apply_level(client: Client) -> None:
    level = _resolve_level(client)
    level_id = level.id if level else None
    if client.loyalty_level_id != level_id:
        client.loyalty_level_id = level_id


def assign_loyalty_level(*, org_id: int, client_id: int) -> Client:
    """Re-evaluate and persist a client's level from their current balance."""
    def _op():
        client = _lock_client(org_id, client_id)
        _apply_level(client)
        db.session.commit()
        return client

    return run_with_retry(_op)


def get_client_discount_bps(*, org_id: int, client_id: int) -> int:
    client = get_scoped(Client, org_id, client_id, label="Client")
    level = client.loyalty_level
    if level is None or not level.is_active:
        return 0
    return level.discount_bps


def get_next_level(*, org_id: int, client_id: int) -> dict | None:
    """
    Next level the client can reach.

    Returns None when the client already holds the highest level.
    """
    client = get_scoped(Client, org_id, client_id, label="Client")
    level = (
        db.session.query(LoyaltyLevel)
        .filter(
            LoyaltyLevel.org_id == org_id,
            LoyaltyLevel.is_active.is_(True),
            LoyaltyLevel.points_threshold > client.points_balance,
        )
        .order_by(LoyaltyLevel.points_threshold, LoyaltyLevel.id)
        .first()
    )
    if level is None:
        return None
    return {
        "level": level.to_dict(),
        "points_needed": level.points_threshold - client.points_balance,
        "current_points": client.points_balance,
        "progress_percent": round(client.points_balance * 100 / level.points_threshold, 1),
    }


# =============================================================================
# MOVEMENTS
# =============================================================================

def _append(
    client: Client,
    movement_type: str,
    points: int,
    *,
    description: str | None = None,
    reference: str | None = None,
    expires_at: datetime | None = None,
    occurred_at: datetime | None = None,
) -> LoyaltyMovement:
    movement = LoyaltyMovement(
        org_id=client.org_id,
        client_id=client.id,
        movement_type=movement_type,
        points=points,
        expires_at=expires_at,
        expirable_remaining=points if movement_type == MOVEMENT_GAIN else None,
        description=description,
        reference=reference,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(movement)
    client.points_balance = client.points_balance + points
    return movement


def _consume_grants(client: Client, points: int) -> None:
    """Consume open grants, soonest expiring first (grants without expiry last)."""
    grants = lock_for_update(
        db.session.query(LoyaltyMovement).filter(
            LoyaltyMovement.client_id == client.id,
            LoyaltyMovement.movement_type == MOVEMENT_GAIN,
            LoyaltyMovement.expirable_remaining > 0,
        )
    ).order_by(
        LoyaltyMovement.expires_at.is_(None),
        LoyaltyMovement.expires_at,
        LoyaltyMovement.id,
    ).all()

    left = points
    for grant in grants:
        if left <= 0:
            break
        used = min(grant.expirable_remaining, left)
        grant.expirable_remaining = grant.expirable_remaining - used
        left -= used


def grant_points(
    *,
    org_id: int,
    client_id: int,
    points: int,
    expires_at: datetime | None = None,
    description: str | None = None,
    reference: str | None = None,
) -> LoyaltyMovement:
    """
    Append a GAIN and credit the client's balance.

    expires_at defaults to now + LOYALTY_DEFAULT_EXPIRATION_DAYS.
    No upper bound is enforced here.
    """
    _require_positive_points(points)

    def _op():
        client = _lock_client(org_id, client_id)
        movement = _append(
            client,
            MOVEMENT_GAIN,
            points,
            description=description or f"Gain of {points} points",
            reference=reference,
            expires_at=normalize_datetime(expires_at) or default_expiration(),
        )
        client.lifetime_points_earned = client.lifetime_points_earned + points
        _apply_level(client)
        db.session.commit()
        return movement

    return run_with_retry(_op)


def earn_points_for_purchase(
    *,
    org_id: int,
    client_id: int,
    amount_cents: int,
    reference: str | None = None,
    expires_at: datetime | None = None,
) -> LoyaltyMovement:
    """Grant the points earned for a purchase of amount_cents."""
    points = calculate_points(amount_cents)
    if points <= 0:
        raise InvalidAmount("Amount is too small to earn points")
    currency = current_app.config.get("DEFAULT_CURRENCY", "EUR")
    return grant_points(
        org_id=org_id,
        client_id=client_id,
        points=points,
        expires_at=expires_at,
        description=f"Gain of {points} points for {format_currency(amount_cents, currency)}",
        reference=reference,
    )


def redeem_points(
    *,
    org_id: int,
    client_id: int,
    points: int,
    description: str | None = None,
    reference: str | None = None,
) -> LoyaltyMovement:
    """
    Spend points.

    Raises:
        InsufficientPoints: balance lower than points
    """
    _require_positive_points(points)

    def _op():
        client = _lock_client(org_id, client_id)
        if client.points_balance < points:
            raise InsufficientPoints(
                f"Insufficient points balance: {client.points_balance} available, {points} requested"
            )
        _consume_grants(client, points)
        movement = _append(
            client,
            MOVEMENT_REDEMPTION,
            -points,
            description=description or f"Redemption of {points} points",
            reference=reference,
        )
        client.lifetime_points_redeemed = client.lifetime_points_redeemed + points
        _apply_level(client)
        db.session.commit()
        return movement

    return run_with_retry(_op)


def adjust_points(
    *,
    org_id: int,
    client_id: int,
    points_delta: int,
    description: str | None = None,
    reference: str | None = None,
) -> LoyaltyMovement:
    """
    Manual correction of either sign.

    Positive adjustments are not grants and never expire. Negative ones
    consume grants like a redemption and cannot take the balance below 0.
    """
    if isinstance(points_delta, bool) or not isinstance(points_delta, int):
        raise ValidationError("points_delta must be an integer")
    if points_delta == 0:
        raise InvalidAmount("points_delta must be non-zero")

    def _op():
        client = _lock_client(org_id, client_id)
        if client.points_balance + points_delta < 0:
            raise InsufficientPoints("Points balance cannot become negative")
        if points_delta < 0:
            _consume_grants(client, -points_delta)
        movement = _append(
            client,
            MOVEMENT_ADJUSTMENT,
            points_delta,
            description=description or "Manual adjustment",
            reference=reference,
        )
        _apply_level(client)
        db.session.commit()
        return movement

    return run_with_retry(_op)


def expire_due_points(*, org_id: int, now: datetime | None = None) -> dict:
    """
    Expiration sweep for one organization.

    1. Collect GAINs with expires_at <= now and expirable_remaining > 0
    2. Group pending points per client
    3. Expire min(pending, points_balance) per client, never more than held
    4. Skip clients where that is 0
    5. One EXPIRATION per affected client, balances decremented, processed
       grants closed, all in one transaction

    Safe to schedule repeatedly: a second run right after finds nothing due.

    Returns:
        {"clients": affected client count, "total_points": points expired}
    """
    cutoff = normalize_datetime(now) or utcnow()

    def _op():
        due = lock_for_update(
            db.session.query(LoyaltyMovement).filter(
                LoyaltyMovement.org_id == org_id,
                LoyaltyMovement.movement_type == MOVEMENT_GAIN,
                LoyaltyMovement.expires_at <= cutoff,
                LoyaltyMovement.expirable_remaining > 0,
            )
        ).order_by(LoyaltyMovement.client_id, LoyaltyMovement.id).all()

        pending_by_client: dict[int, list[LoyaltyMovement]] = {}
        for grant in due:
            pending_by_client.setdefault(grant.client_id, []).append(grant)

        affected = 0
        total = 0
        for client_id, grants in pending_by_client.items():
            client = _lock_client(org_id, client_id)
            pending = sum(g.expirable_remaining for g in grants)
            actual = min(pending, client.points_balance)

            for grant in grants:
                grant.expirable_remaining = 0

            if actual == 0:
                continue

            _append(
                client,
                MOVEMENT_EXPIRATION,
                -actual,
                description="Automatic expiration of points",
                occurred_at=cutoff,
            )
            _apply_level(client)
            affected += 1
            total += actual

        db.session.commit()
        return {"clients": affected, "total_points": total}

    result = run_with_retry(_op)
    if result["clients"]:
        logger.info(
            "Expired %s points for %s clients (org %s)", result["total_points"], result["clients"], org_id
        )
    return result


# =============================================================================
# QUERIES / REPAIR
# =============================================================================

def list_movements(
    *,
    org_id: int,
    client_id: int | None = None,
    movement_type: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[LoyaltyMovement], int]:
    if movement_type is not None and movement_type not in VALID_MOVEMENT_TYPES:
        raise ValidationError(f"Invalid movement type: {movement_type}. Must be one of {VALID_MOVEMENT_TYPES}")

    q = db.session.query(LoyaltyMovement).filter(LoyaltyMovement.org_id == org_id)
    if client_id is not None:
        q = q.filter(LoyaltyMovement.client_id == client_id)
    if movement_type is not None:
        q = q.filter(LoyaltyMovement.movement_type == movement_type)

    total = q.count()
    rows = (
        q.order_by(LoyaltyMovement.occurred_at.desc(), LoyaltyMovement.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total


def get_client_loyalty(*, org_id: int, client_id: int) -> dict:
    client = get_scoped(Client, org_id, client_id, label="Client")
    return {
        "client_id": client.id,
        "points_balance": client.points_balance,
        "lifetime_points_earned": client.lifetime_points_earned,
        "lifetime_points_redeemed": client.lifetime_points_redeemed,
        "level": client.loyalty_level.to_dict() if client.loyalty_level else None,
        "next_level": get_next_level(org_id=org_id, client_id=client_id),
    }


def recompute_points_balance(*, org_id: int, client_id: int, repair: bool = False) -> dict:
    """
    Rebuild a client's balance from the movement log.

    Diagnostic by default; with repair=True the cache is overwritten.
    """
    def _op():
        client = _lock_client(org_id, client_id)
        ledger = (
            db.session.query(db.func.coalesce(db.func.sum(LoyaltyMovement.points), 0))
            .filter(LoyaltyMovement.client_id == client.id)
            .scalar()
        )
        ledger = int(ledger or 0)
        cached = client.points_balance
        if repair and ledger != cached and ledger >= 0:
            client.points_balance = ledger
            _apply_level(client)
            logger.warning("Points balance repaired for client %s: %s -> %s", client.id, cached, ledger)
        db.session.commit()
        return {
            "client_id": client.id,
            "cached_balance": cached,
            "ledger_balance": ledger,
            "consistent": ledger == cached,
        }

    return run_with_retry(_op)
