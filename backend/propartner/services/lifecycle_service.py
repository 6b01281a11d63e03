# Overview: Document status state machine; per-type transition tables and persisted status changes.

"""
ProPartner Document Lifecycle Service

================================================================================
PURPOSE: Enforce legal status transitions for quotes, invoices and credit notes
================================================================================

STATE MACHINES (keyed by document type, no shared base behaviour):

    QUOTE / CREDIT_NOTE:
        DRAFT    -> SENT, CANCELLED
        SENT     -> ACCEPTED, REFUSED, CANCELLED
        ACCEPTED -> CANCELLED
        REFUSED, CANCELLED: terminal

    INVOICE:
        DRAFT -> SENT, CANCELLED
        SENT  -> PAID, CANCELLED
        PAID, CANCELLED: terminal

RULES:
1. Any (type, from, to) triple absent from the table is rejected with
   IllegalTransition. Same-state requests are rejected too.
2. Rejection is permanent for that input; it is never retried.
3. transition() only decides and mutates the in-memory object. Persistence
   and side effects (emails, PDFs) belong to the caller.
4. Invoices reach PAID through payment_service, when the balance hits zero.

================================================================================
"""

from __future__ import annotations

import logging
from typing import Literal

from ..errors import IllegalTransition, ValidationError
from ..extensions import db
from ..models import Document
from ..time_utils import utcnow
from .concurrency import run_with_retry
from .tenant_service import get_scoped


logger = logging.getLogger(__name__)


DocumentStatus = Literal["DRAFT", "SENT", "ACCEPTED", "REFUSED", "PAID", "CANCELLED"]

STATUS_DRAFT = "DRAFT"
STATUS_SENT = "SENT"
STATUS_ACCEPTED = "ACCEPTED"
STATUS_REFUSED = "REFUSED"
STATUS_PAID = "PAID"
STATUS_CANCELLED = "CANCELLED"

VALID_STATUSES = frozenset({
    STATUS_DRAFT,
    STATUS_SENT,
    STATUS_ACCEPTED,
    STATUS_REFUSED,
    STATUS_PAID,
    STATUS_CANCELLED,
})

TYPE_QUOTE = "QUOTE"
TYPE_INVOICE = "INVOICE"
TYPE_CREDIT_NOTE = "CREDIT_NOTE"

VALID_DOCUMENT_TYPES = frozenset({TYPE_QUOTE, TYPE_INVOICE, TYPE_CREDIT_NOTE})


QUOTE_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_DRAFT: frozenset({STATUS_SENT, STATUS_CANCELLED}),
    STATUS_SENT: frozenset({STATUS_ACCEPTED, STATUS_REFUSED, STATUS_CANCELLED}),
    STATUS_ACCEPTED: frozenset({STATUS_CANCELLED}),
    STATUS_REFUSED: frozenset(),
    STATUS_CANCELLED: frozenset(),
}

INVOICE_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_DRAFT: frozenset({STATUS_SENT, STATUS_CANCELLED}),
    STATUS_SENT: frozenset({STATUS_PAID, STATUS_CANCELLED}),
    STATUS_PAID: frozenset(),
    STATUS_CANCELLED: frozenset(),
}

TRANSITIONS_BY_TYPE: dict[str, dict[str, frozenset[str]]] = {
    TYPE_QUOTE: QUOTE_TRANSITIONS,
    TYPE_INVOICE: INVOICE_TRANSITIONS,
    TYPE_CREDIT_NOTE: QUOTE_TRANSITIONS,
}

IMMUTABLE_STATUSES = frozenset({STATUS_CANCELLED, STATUS_REFUSED, STATUS_PAID})


def validate_document_type(document_type: str) -> None:
    if document_type not in VALID_DOCUMENT_TYPES:
        raise ValidationError(
            f"Invalid document type '{document_type}'. "
            f"Must be one of: {', '.join(sorted(VALID_DOCUMENT_TYPES))}"
        )


def allowed_transitions(document_type: str, status: str) -> frozenset[str]:
    """Statuses reachable in one step; empty for terminal or unknown states."""
    table = TRANSITIONS_BY_TYPE.get(document_type)
    if table is None:
        return frozenset()
    return table.get(status, frozenset())


def can_transition(document_type: str, from_status: str, to_status: str) -> bool:
    return to_status in allowed_transitions(document_type, from_status)


def is_immutable(document: Document) -> bool:
    return document.status in IMMUTABLE_STATUSES


def transition(document: Document, target_status: str) -> Document:
    """
    Move a document to target_status if its type's table allows it.

    Raises:
        IllegalTransition: unknown status, unknown type, or a triple not in the table
    """
    if target_status not in VALID_STATUSES:
        raise IllegalTransition(
            f"Invalid status '{target_status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )

    if not can_transition(document.document_type, document.status, target_status):
        allowed = allowed_transitions(document.document_type, document.status)
        raise IllegalTransition(
            f"Cannot change {document.document_type} from {document.status} to {target_status}; "
            f"allowed: {', '.join(sorted(allowed)) or 'none'}"
        )

    document.status = target_status
    document.status_changed_at = utcnow()
    return document


def change_status(*, org_id: int, document_id: int, target_status: str) -> Document:
    """
    Persisted status change requested by a user.

    WHY the PAID guard: an invoice is PAID when its balance reaches zero.
    Marking it PAID by hand while money is still due would break
    balance_due_cents = total_cents - amount_paid_cents.

    Raises:
        NotFound: document missing or owned by another organization
        IllegalTransition: transition not allowed
    """
    def _op():
        document = get_scoped(Document, org_id, document_id, lock=True, label="Document")

        if (
            target_status == STATUS_PAID
            and document.document_type == TYPE_INVOICE
            and (document.balance_due_cents or 0) > 0
        ):
            raise IllegalTransition("Invoice still has a balance due; record a payment instead")

        previous = document.status
        transition(document, target_status)
        db.session.commit()

        logger.info(
            "Document %s %s -> %s (org %s)",
            document.document_number, previous, target_status, org_id,
        )
        return document

    return run_with_retry(_op)
