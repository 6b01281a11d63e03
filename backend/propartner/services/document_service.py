# Overview: Service-layer operations for commercial documents; numbering, creation and quote conversion.

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, TransientFailure, ValidationError
from ..extensions import db
from ..models import Article, Client, Document, DocumentLine, DocumentSequence
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .lifecycle_service import (
    STATUS_ACCEPTED,
    STATUS_DRAFT,
    TYPE_CREDIT_NOTE,
    TYPE_INVOICE,
    TYPE_QUOTE,
    validate_document_type,
)
from .money import compute_document_totals, compute_line_amounts
from .tenant_service import get_scoped


logger = logging.getLogger(__name__)


DOCUMENT_PREFIXES = {
    TYPE_QUOTE: "DEV",
    TYPE_INVOICE: "FAC",
    TYPE_CREDIT_NOTE: "AV",
}


# =============================================================================
# NUMBERING
# =============================================================================

def _bump_sequence(org_id: int, document_type: str) -> int | None:
    """Increment an existing sequence row; None when the row does not exist yet."""
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.org_id == org_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(org_id=org_id, document_type=document_type)
        .scalar()
    )
    return current - 1


def _insert_sequence(org_id: int, document_type: str) -> bool:
    """
    Create the sequence row handing out number 1.

    Returns False when a concurrent transaction created it first; the
    savepoint is rolled back and the caller's transaction stays usable.
    """
    try:
        with db.session.begin_nested():
            db.session.add(DocumentSequence(org_id=org_id, document_type=document_type, next_number=2))
            db.session.flush()
    except IntegrityError:
        logger.info("Sequence %s for org %s created concurrently", document_type, org_id)
        return False
    return True


def _allocate_number(org_id: int, document_type: str, pad: int) -> str:
    """Sequence bump inside the caller's transaction (no retry, no commit)."""
    next_num = _bump_sequence(org_id, document_type)
    if next_num is None:
        if _insert_sequence(org_id, document_type):
            next_num = 1
        else:
            next_num = _bump_sequence(org_id, document_type)
            if next_num is None:
                raise TransientFailure("Document sequence unavailable, please retry")

    return f"{DOCUMENT_PREFIXES[document_type]}-{next_num:0{pad}d}"


def next_document_number(*, org_id: int, document_type: str, pad: int = 5) -> str:
    """
    Atomically allocate the next document number for an organization/type.

    Uses a single UPDATE on (org_id, document_type) so concurrent callers
    serialize on the sequence row.
    """
    validate_document_type(document_type)

    def _op() -> str:
        number = _allocate_number(org_id, document_type, pad)
        db.session.commit()
        return number

    return run_with_retry(_op)


# =============================================================================
# CREATION
# =============================================================================

def _build_line(org_id: int, position: int, data: dict) -> DocumentLine:
    if not isinstance(data, dict):
        raise ValidationError(f"Line {position}: must be an object")

    article = None
    if data.get("article_id") is not None:
        article = get_scoped(Article, org_id, data["article_id"], label="Article")

    designation = data.get("designation") or (article.name if article else None)
    if not designation:
        raise ValidationError(f"Line {position}: designation is required")

    unit_price_cents = data.get("unit_price_cents")
    if unit_price_cents is None and article is not None:
        unit_price_cents = article.price_cents
    if unit_price_cents is None:
        raise ValidationError(f"Line {position}: unit_price_cents is required")

    tax_rate_bps = data.get("tax_rate_bps")
    if tax_rate_bps is None:
        tax_rate_bps = article.tax_rate_bps if article is not None else 0

    quantity = data.get("quantity", 1)
    discount_bps = data.get("discount_bps", 0) or 0
    for field, value in (
        ("quantity", quantity),
        ("unit_price_cents", unit_price_cents),
        ("tax_rate_bps", tax_rate_bps),
        ("discount_bps", discount_bps),
    ):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"Line {position}: {field} must be an integer")

    try:
        amounts = compute_line_amounts(quantity, unit_price_cents, tax_rate_bps, discount_bps)
    except ValidationError as exc:
        raise ValidationError(f"Line {position}: {exc}") from None

    return DocumentLine(
        position=position,
        article_id=article.id if article else None,
        designation=designation,
        description=data.get("description"),
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        tax_rate_bps=tax_rate_bps,
        discount_bps=discount_bps,
        line_subtotal_cents=amounts.subtotal_cents,
        line_tax_cents=amounts.tax_cents,
        line_total_cents=amounts.total_cents,
    )


def _set_totals(document: Document) -> None:
    totals = compute_document_totals(
        compute_line_amounts(l.quantity, l.unit_price_cents, l.tax_rate_bps, l.discount_bps)
        for l in document.lines
    )
    document.subtotal_cents = totals.subtotal_cents
    document.tax_cents = totals.tax_cents
    document.total_cents = totals.total_cents
    document.amount_paid_cents = 0
    document.balance_due_cents = totals.total_cents if document.document_type == TYPE_INVOICE else None


def create_document(
    *,
    org_id: int,
    client_id: int,
    document_type: str,
    lines: list[dict],
    issue_date: date | None = None,
    due_date: date | None = None,
    notes: str | None = None,
) -> Document:
    """
    Create a DRAFT quote, invoice or credit note with computed totals.

    Line fields: designation, quantity, unit_price_cents, tax_rate_bps,
    discount_bps, description, article_id. Article defaults fill in
    designation, price and tax rate when omitted.
    """
    validate_document_type(document_type)
    if not lines:
        raise ValidationError("At least one line is required")

    issued = issue_date or utcnow().date()
    if due_date is not None and due_date < issued:
        raise ValidationError("due_date cannot be before issue_date")

    def _op():
        get_scoped(Client, org_id, client_id, label="Client")
        built = [_build_line(org_id, i, data) for i, data in enumerate(lines, start=1)]

        document = Document(
            org_id=org_id,
            client_id=client_id,
            document_number=_allocate_number(org_id, document_type, 5),
            document_type=document_type,
            status=STATUS_DRAFT,
            issue_date=issued,
            due_date=due_date,
            notes=notes,
        )
        document.lines.extend(built)
        _set_totals(document)

        db.session.add(document)
        db.session.commit()
        return document

    return run_with_retry(_op)


def get_document(*, org_id: int, document_id: int) -> Document:
    return get_scoped(Document, org_id, document_id, label="Document")


def convert_quote_to_invoice(*, org_id: int, quote_id: int) -> Document:
    """
    Create the invoice for an accepted quote.

    The invoice is a DRAFT dated today carrying the quote's lines and
    totals; sending it goes through the usual status change.
    A quote converts at most once.

    Raises:
        NotFound, ValidationError (not a quote), ConflictError (not accepted,
        already converted)
    """
    def _op():
        quote = get_scoped(Document, org_id, quote_id, lock=True, label="Document")
        if quote.document_type != TYPE_QUOTE:
            raise ValidationError(f"{quote.document_number} is not a quote")
        if quote.status != STATUS_ACCEPTED:
            raise ConflictError("Only accepted quotes can be converted to an invoice")

        existing = lock_for_update(
            db.session.query(Document).filter_by(org_id=org_id, source_quote_id=quote.id)
        ).first()
        if existing is not None:
            raise ConflictError(f"Quote already converted to invoice {existing.document_number}")

        invoice = Document(
            org_id=org_id,
            client_id=quote.client_id,
            document_number=_allocate_number(org_id, TYPE_INVOICE, 5),
            document_type=TYPE_INVOICE,
            status=STATUS_DRAFT,
            issue_date=utcnow().date(),
            due_date=quote.due_date,
            notes=quote.notes,
            source_quote_id=quote.id,
        )
        invoice.lines.extend(
            DocumentLine(
                position=l.position,
                article_id=l.article_id,
                designation=l.designation,
                description=l.description,
                quantity=l.quantity,
                unit_price_cents=l.unit_price_cents,
                tax_rate_bps=l.tax_rate_bps,
                discount_bps=l.discount_bps,
                line_subtotal_cents=l.line_subtotal_cents,
                line_tax_cents=l.line_tax_cents,
                line_total_cents=l.line_total_cents,
            )
            for l in quote.lines
        )
        _set_totals(invoice)

        db.session.add(invoice)
        db.session.commit()

        logger.info("Quote %s converted to invoice %s (org %s)", quote.document_number, invoice.document_number, org_id)
        return invoice

    return run_with_retry(_op)
