# Overview: Flask API routes for commercial documents; parses input and returns JSON responses.

# backend/propartner/routes/documents.py
"""
Document API Routes

WHY: Create quotes, invoices and credit notes, drive their status, and
convert accepted quotes to invoices.

MULTI-TENANT: every route requires the tenant header; documents of other
organizations are reported as 404.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ProPartnerError
from ..models import Document
from ..services import document_service, lifecycle_service, payment_service
from ..decorators import require_org
from ..validation import ModelValidationPolicy, validate_payload


documents_bp = Blueprint("documents", __name__, url_prefix="/api/documents")


DOCUMENT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"client_id", "document_type", "issue_date", "due_date", "notes"},
    required_on_create={"client_id", "document_type", "lines"},
    extra_fields={"lines"},
)


def _document_payload(document: Document) -> dict:
    body = {"document": document.to_dict(include_lines=True)}
    if document.document_type == lifecycle_service.TYPE_INVOICE:
        body["payment_summary"] = payment_service.get_payment_summary(
            org_id=document.org_id, document_id=document.id
        )
    body["allowed_transitions"] = sorted(
        lifecycle_service.allowed_transitions(document.document_type, document.status)
    )
    return body


@documents_bp.post("")
@require_org
def create_document_route():
    """
    Create a DRAFT document.

    Request body:
    {
        "client_id": 12,
        "document_type": "INVOICE",
        "issue_date": "2026-03-01",  (optional, defaults to today)
        "due_date": "2026-03-31",  (optional)
        "notes": "...",  (optional)
        "lines": [
            {"designation": "Audit", "quantity": 2, "unit_price_cents": 5000, "tax_rate_bps": 2000},
            {"article_id": 7, "quantity": 1}
        ]
    }
    """
    try:
        patch = validate_payload(
            model=Document,
            payload=request.get_json(silent=True),
            policy=DOCUMENT_CREATE_POLICY,
            partial=False,
        )
        lines = patch.pop("lines")
        if not isinstance(lines, list):
            return jsonify({"error": "lines must be a list", "kind": "ValidationError"}), 400

        document = document_service.create_document(org_id=g.org_id, lines=lines, **patch)
        return jsonify(_document_payload(document)), 201

    except ProPartnerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/<int:document_id>")
@require_org
def get_document_route(document_id: int):
    """Document with lines; invoices include their payment summary."""
    try:
        document = document_service.get_document(org_id=g.org_id, document_id=document_id)
        return jsonify(_document_payload(document)), 200

    except ProPartnerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/<int:document_id>/status")
@require_org
def change_status_route(document_id: int):
    """
    Move a document to another status.

    Request body:
    {
        "status": "SENT"
    }

    Returns:
        200: Updated document
        404: Unknown document
        409: Transition not allowed from the current status
    """
    try:
        data = request.get_json(silent=True) or {}
        target = data.get("status")
        if not target:
            return jsonify({"error": "status required", "kind": "ValidationError"}), 400

        document = lifecycle_service.change_status(
            org_id=g.org_id, document_id=document_id, target_status=target
        )
        return jsonify(_document_payload(document)), 200

    except ProPartnerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to change document status")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/<int:document_id>/convert")
@require_org
def convert_quote_route(document_id: int):
    """Convert an ACCEPTED quote to an invoice (once)."""
    try:
        invoice = document_service.convert_quote_to_invoice(org_id=g.org_id, quote_id=document_id)
        return jsonify(_document_payload(invoice)), 201

    except ProPartnerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to convert quote")
        return jsonify({"error": "Internal server error"}), 500
