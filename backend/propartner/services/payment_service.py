# Overview: Service-layer operations for invoice payments; encapsulates business logic and database work.

"""
Payment Application Service

WHY: Record money received against an invoice and keep its outstanding
balance and status consistent.

DESIGN PRINCIPLES:
- Payments belong to exactly one invoice (many-to-one)
- Partial payments allowed; overpayment never (amount <= balance due)
- Immutable: a Payment row is never updated or deleted
- The invoice row is locked and version-checked for the whole
  read-balance / insert-payment / update-balance unit, so two concurrent
  payments can never both pass against the same stale balance
- The invoice moves to PAID if and only if its balance reaches exactly 0
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..errors import AlreadyCancelled, ExceedsBalance, NotAnInvoice, ValidationError
from ..extensions import db
from ..models import Document, Payment
from ..time_utils import normalize_datetime, to_utc_z, utcnow
from .concurrency import run_with_retry
from .lifecycle_service import (
    STATUS_CANCELLED,
    STATUS_DRAFT,
    STATUS_PAID,
    STATUS_SENT,
    TYPE_INVOICE,
    transition,
)
from .money import remaining_balance_cents, validate_payment_amount
from .tenant_service import get_scoped


logger = logging.getLogger(__name__)


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "CASH"
METHOD_CHECK = "CHECK"
METHOD_TRANSFER = "TRANSFER"
METHOD_CARD = "CARD"
METHOD_DIRECT_DEBIT = "DIRECT_DEBIT"

VALID_METHODS = [
    METHOD_CASH,
    METHOD_CHECK,
    METHOD_TRANSFER,
    METHOD_CARD,
    METHOD_DIRECT_DEBIT,
]


def validate_method(method: str) -> None:
    if method not in VALID_METHODS:
        raise ValidationError(f"Invalid payment method: {method}. Must be one of {VALID_METHODS}")


def _check_payable(document: Document) -> None:
    if document.document_type != TYPE_INVOICE:
        raise NotAnInvoice(f"Only invoices can be paid ({document.document_number} is a {document.document_type})")
    if document.status == STATUS_CANCELLED:
        raise AlreadyCancelled(f"Invoice {document.document_number} is cancelled")


# =============================================================================
# PAYMENT APPLICATION
# =============================================================================

def apply_payment(
    *,
    org_id: int,
    document_id: int,
    amount_cents: int,
    method: str,
    paid_at: datetime | None = None,
    reference: str | None = None,
    notes: str | None = None,
) -> tuple[Payment, Document]:
    """
    Apply a payment to an invoice.

    Args:
        org_id: Tenant
        document_id: Invoice being paid
        amount_cents: Amount received (in cents), 0 < amount <= balance due
        method: CASH, CHECK, TRANSFER, CARD, DIRECT_DEBIT
        paid_at: Business time of the payment (defaults to now)
        reference: Check number, transfer id, processor intent id (optional)
        notes: Free text (optional)

    Returns:
        (created Payment, updated invoice)

    Raises:
        NotFound, NotAnInvoice, AlreadyCancelled, InvalidAmount,
        ExceedsBalance, ValidationError, TransientFailure

    A DRAFT invoice that receives money is advanced to SENT first, in the
    same transaction: money can only be owed on an issued invoice.
    """
    validate_method(method)
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValidationError("amount_cents must be an integer")

    def _op():
        invoice = get_scoped(Document, org_id, document_id, lock=True, label="Document")
        _check_payable(invoice)

        remaining = remaining_balance_cents(invoice.total_cents, invoice.amount_paid_cents)
        validate_payment_amount(amount_cents, remaining)

        if invoice.status == STATUS_DRAFT:
            transition(invoice, STATUS_SENT)

        payment = Payment(
            org_id=org_id,
            document_id=invoice.id,
            amount_cents=amount_cents,
            method=method,
            paid_at=normalize_datetime(paid_at) or utcnow(),
            reference=reference,
            notes=notes,
        )
        db.session.add(payment)

        invoice.amount_paid_cents = invoice.amount_paid_cents + amount_cents
        invoice.balance_due_cents = remaining - amount_cents

        if invoice.balance_due_cents == 0:
            transition(invoice, STATUS_PAID)

        db.session.commit()

        logger.info(
            "Payment %s of %s cents applied to %s (org %s), balance due %s",
            payment.id, amount_cents, invoice.document_number, org_id, invoice.balance_due_cents,
        )
        return payment, invoice

    return run_with_retry(_op)


# =============================================================================
# PAYMENT PROCESSOR BOUNDARY
# =============================================================================

def checkout_amount_cents(*, org_id: int, document_id: int) -> int:
    """
    Amount to hand to an external payment processor (minor units).

    Raises:
        NotAnInvoice, AlreadyCancelled
        ExceedsBalance: nothing is left to pay
    """
    invoice = get_scoped(Document, org_id, document_id, label="Document")
    _check_payable(invoice)
    remaining = remaining_balance_cents(invoice.total_cents, invoice.amount_paid_cents)
    if remaining <= 0:
        raise ExceedsBalance(f"Invoice {invoice.document_number} is already paid")
    return remaining


def record_processor_payment(
    *,
    org_id: int,
    document_id: int,
    amount_cents: int,
    processor_reference: str,
    session_reference: str | None = None,
) -> tuple[Payment, Document]:
    """Record a card payment confirmed by the payment processor."""
    notes = f"Processor session {session_reference}" if session_reference else None
    return apply_payment(
        org_id=org_id,
        document_id=document_id,
        amount_cents=amount_cents,
        method=METHOD_CARD,
        reference=processor_reference,
        notes=notes,
    )


# =============================================================================
# QUERIES
# =============================================================================

def list_payments(*, org_id: int, document_id: int) -> list[Payment]:
    """Payments of a document, oldest first."""
    get_scoped(Document, org_id, document_id, label="Document")
    return (
        db.session.query(Payment)
        .filter_by(org_id=org_id, document_id=document_id)
        .order_by(Payment.paid_at, Payment.id)
        .all()
    )


def get_payment_summary(*, org_id: int, document_id: int) -> dict:
    """
    Payment summary for an invoice.

    Returns:
        - total_cents: Invoice total
        - amount_paid_cents: Sum of payments
        - balance_due_cents: Amount still owed (never negative)
        - payment_count / last_payment_at
        - status: Document status
    """
    invoice = get_scoped(Document, org_id, document_id, label="Document")
    payments = list_payments(org_id=org_id, document_id=document_id)
    last = max((p.paid_at for p in payments), default=None)

    return {
        "document_id": invoice.id,
        "total_cents": invoice.total_cents,
        "amount_paid_cents": invoice.amount_paid_cents,
        "balance_due_cents": remaining_balance_cents(invoice.total_cents, invoice.amount_paid_cents),
        "payment_count": len(payments),
        "last_payment_at": to_utc_z(last),
        "status": invoice.status,
    }
