# Overview: Flask API routes for invoice payments; parses input and returns JSON responses.

# backend/propartner/routes/payments.py
"""
Payment API Routes

WHY: Record money received against an invoice via REST API.
Supports cash, check, transfer, card and direct debit.

DESIGN:
- Partial payments allowed, overpayment rejected
- The invoice becomes PAID when its balance reaches exactly 0
- Payments are immutable (no update, no delete endpoint)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ProPartnerError
from ..models import Payment
from ..services import payment_service
from ..decorators import require_org
from ..validation import ModelValidationPolicy, enforce_rules_payment, validate_payload


payments_bp = Blueprint("payments", __name__, url_prefix="/api/documents")


PAYMENT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"amount_cents", "method", "paid_at", "reference", "notes"},
    required_on_create={"method"},
    extra_fields={"amount"},
)


# =============================================================================
# PAYMENT CREATION
# =============================================================================

@payments_bp.post("/<int:document_id>/payments")
@require_org
def apply_payment_route(document_id: int):
    """
    Apply a payment to an invoice.

    Request body:
    {
        "amount_cents": 6000,  (or "amount": "60.00")
        "method": "TRANSFER",
        "paid_at": "2026-03-02T10:00:00Z",  (optional)
        "reference": "VIR-2026-0042",  (optional)
        "notes": "..."  (optional)
    }

    Returns:
        201: Payment and updated invoice
        400: Invalid amount, amount above balance due, not an invoice
        404: Unknown invoice
        409: Invoice cancelled
        503: Concurrent update conflict, retry
    """
    try:
        patch = validate_payload(
            model=Payment,
            payload=request.get_json(silent=True),
            policy=PAYMENT_CREATE_POLICY,
            partial=False,
        )
        enforce_rules_payment(patch)

        payment, invoice = payment_service.apply_payment(
            org_id=g.org_id,
            document_id=document_id,
            **patch,
        )

        current_app.logger.info(
            "Payment %s recorded on document %s for org %s", payment.id, document_id, g.org_id
        )
        return jsonify({
            "payment": payment.to_dict(),
            "document": invoice.to_dict(),
        }), 201

    except ProPartnerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to apply payment")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

@payments_bp.get("/<int:document_id>/payments")
@require_org
def list_payments_route(document_id: int):
    """Payments of a document, oldest first, with the invoice summary."""
    try:
        payments = payment_service.list_payments(org_id=g.org_id, document_id=document_id)
        summary = payment_service.get_payment_summary(org_id=g.org_id, document_id=document_id)
        return jsonify({
            "payments": [p.to_dict() for p in payments],
            "summary": summary,
        }), 200

    except ProPartnerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list payments")
        return jsonify({"error": "Internal server error"}), 500
