# Overview: Flask API routes for the loyalty points ledger; parses input and returns JSON responses.

# backend/propartner/routes/loyalty.py
"""
Loyalty API Routes

WHY: Grant, redeem and correct client points, and run the expiration
sweep on demand (the CLI runs the same sweep on a schedule).
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ProPartnerError, ValidationError
from ..models import LoyaltyMovement
from ..services import loyalty_service
from ..decorators import require_org
from ..time_utils import parse_iso_datetime
from ..validation import ModelValidationPolicy, enforce_rules_loyalty_movement, validate_payload


loyalty_bp = Blueprint("loyalty", __name__, url_prefix="/api/loyalty")


LOYALTY_MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields={"client_id", "movement_type", "points", "expires_at", "description", "reference"},
    required_on_create={"client_id", "movement_type", "points"},
)


@loyalty_bp.post("/movements")
@require_org
def create_movement_route():
    """
    Record a loyalty movement.

    Request body:
    {
        "client_id": 3,
        "movement_type": "GAIN",  (GAIN, REDEMPTION or ADJUSTMENT)
        "points": 120,  (positive for GAIN/REDEMPTION, signed for ADJUSTMENT)
        "expires_at": "2027-01-01T00:00:00Z",  (optional, GAIN only)
        "description": "...",  (optional)
        "reference": "FAC-00012"  (optional)
    }
    """
    try:
        patch = validate_payload(
            model=LoyaltyMovement,
            payload=request.get_json(silent=True),
            policy=LOYALTY_MOVEMENT_POLICY,
            partial=False,
        )
        enforce_rules_loyalty_movement(patch)

        movement_type = patch["movement_type"]
        common = {
            "org_id": g.org_id,
            "client_id": patch["client_id"],
            "description": patch.get("description"),
            "reference": patch.get("reference"),
        }

        if movement_type == loyalty_service.MOVEMENT_GAIN:
            movement = loyalty_service.grant_points(
                points=patch["points"], expires_at=patch.get("expires_at"), **common
            )
        elif movement_type == loyalty_service.MOVEMENT_REDEMPTION:
            movement = loyalty_service.redeem_points(points=patch["points"], **common)
        elif movement_type == loyalty_service.MOVEMENT_ADJUSTMENT:
            movement = loyalty_service.adjust_points(points_delta=patch["points"], **common)
        else:
            raise ValidationError(
                f"Invalid movement type: {movement_type}. Must be one of GAIN, REDEMPTION, ADJUSTMENT"
            )

        loyalty = loyalty_service.get_client_loyalty(org_id=g.org_id, client_id=patch["client_id"])
        return jsonify({"movement": movement.to_dict(), "loyalty": loyalty}), 201

    except ProPartnerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record loyalty movement")
        return jsonify({"error": "Internal server error"}), 500


@loyalty_bp.get("/clients/<int:client_id>")
@require_org
def get_client_loyalty_route(client_id: int):
    """Balance, level and the most recent movements of a client."""
    try:
        loyalty = loyalty_service.get_client_loyalty(org_id=g.org_id, client_id=client_id)
        movements, total = loyalty_service.list_movements(org_id=g.org_id, client_id=client_id, limit=20)
        return jsonify({
            "loyalty": loyalty,
            "movements": [m.to_dict() for m in movements],
            "movement_count": total,
        }), 200

    except ProPartnerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get client loyalty")
        return jsonify({"error": "Internal server error"}), 500


@loyalty_bp.post("/expire")
@require_org
def expire_points_route():
    """
    Run the expiration sweep for the current organization.

    Optional body {"now": "<ISO-8601>"} sets the cutoff (defaults to now).
    """
    try:
        data = request.get_json(silent=True) or {}
        try:
            now = parse_iso_datetime(data.get("now"))
        except (TypeError, ValueError, AttributeError):
            return jsonify({"error": "now must be an ISO-8601 datetime", "kind": "ValidationError"}), 400

        result = loyalty_service.expire_due_points(org_id=g.org_id, now=now)
        current_app.logger.info(
            "Expiration sweep for org %s: %s points, %s clients",
            g.org_id, result["total_points"], result["clients"],
        )
        return jsonify(result), 200

    except ProPartnerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to expire loyalty points")
        return jsonify({"error": "Internal server error"}), 500
