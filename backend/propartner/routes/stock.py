# Overview: Flask API routes for stock movements; parses input and returns JSON responses.

# backend/propartner/routes/stock.py
from __future__ import annotations

from flask import Blueprint, current_app, g, request

from ..decorators import require_org
from ..errors import ProPartnerError, ValidationError
from ..models import StockMovement
from ..services import stock_service
from ..time_utils import parse_iso_datetime
from ..validation import ModelValidationPolicy, enforce_rules_stock_movement, validate_payload


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


STOCK_MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields={"article_id", "movement_type", "quantity_delta", "reason", "reference", "notes", "created_by"},
    required_on_create={"article_id", "movement_type", "quantity_delta"},
)


def _int_arg(name: str, default: int | None = None, *, minimum: int = 0, maximum: int | None = None):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")
    if value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{name} must be <= {maximum}")
    return value


def _datetime_arg(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


@stock_bp.post("/movements")
@require_org
def create_movement():
    """
    Record a signed stock movement.

    The sign of quantity_delta gives the direction; movement_type is a label.
    Returns 409 if the movement would take stock below zero.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=StockMovement,
            payload=payload,
            policy=STOCK_MOVEMENT_POLICY,
            partial=False,
        )
        enforce_rules_stock_movement(patch)

        movement = stock_service.record_movement(org_id=g.org_id, **patch)
    except ProPartnerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record stock movement")
        return {"error": "Internal server error"}, 500

    return {
        "movement": movement.to_dict(),
        "article": movement.article.to_dict(),
    }, 201


@stock_bp.get("/movements")
@require_org
def list_movements():
    """
    Movement history, newest first.

    Query params: article_id, movement_type, start, end (ISO-8601), limit (<= 200), offset.
    """
    try:
        rows, total = stock_service.list_movements(
            org_id=g.org_id,
            article_id=_int_arg("article_id", minimum=1),
            movement_type=request.args.get("movement_type") or None,
            start=_datetime_arg("start"),
            end=_datetime_arg("end"),
            limit=_int_arg("limit", 50, minimum=1, maximum=200),
            offset=_int_arg("offset", 0),
        )
    except ProPartnerError as e:
        return e.to_dict(), e.status_code

    return {
        "movements": [m.to_dict() for m in rows],
        "total": total,
    }, 200


@stock_bp.get("/movements/<int:movement_id>")
@require_org
def get_movement(movement_id: int):
    try:
        movement = stock_service.get_movement(org_id=g.org_id, movement_id=movement_id)
    except ProPartnerError as e:
        return e.to_dict(), e.status_code
    return {"movement": movement.to_dict()}, 200


@stock_bp.delete("/movements/<int:movement_id>")
@require_org
def reverse_movement(movement_id: int):
    """
    Cancel a movement.

    A compensating ADJUSTMENT is written and the original removed. Returns
    409 if current stock cannot absorb the compensation.
    """
    payload = request.get_json(silent=True) or {}

    try:
        compensation = stock_service.reverse_movement(
            org_id=g.org_id,
            movement_id=movement_id,
            created_by=payload.get("created_by"),
        )
    except ProPartnerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reverse stock movement")
        return {"error": "Internal server error"}, 500

    return {
        "compensation": compensation.to_dict(),
        "article": compensation.article.to_dict(),
    }, 200


@stock_bp.post("/articles/<int:article_id>/count")
@require_org
def record_count(article_id: int):
    """Physical inventory count: body {"counted_quantity": 12, "notes": "..."}."""
    payload = request.get_json(silent=True) or {}

    counted = payload.get("counted_quantity")
    if counted is None:
        return {"error": "counted_quantity required", "kind": "ValidationError"}, 400

    try:
        movement = stock_service.record_inventory_count(
            org_id=g.org_id,
            article_id=article_id,
            counted_quantity=counted,
            notes=payload.get("notes"),
            created_by=payload.get("created_by"),
        )
    except ProPartnerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record inventory count")
        return {"error": "Internal server error"}, 500

    return {
        "movement": movement.to_dict(),
        "article": movement.article.to_dict(),
    }, 201


@stock_bp.get("/alerts")
@require_org
def stock_alerts():
    """Tracked articles at or below their minimum stock."""
    try:
        articles = stock_service.get_stock_alerts(org_id=g.org_id)
    except ProPartnerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load stock alerts")
        return {"error": "Internal server error"}, 500

    return {
        "alerts": [a.to_dict() for a in articles],
        "count": len(articles),
    }, 200
