from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


class Document(db.Model):
    """
    Commercial document: quote, invoice or credit note.

    LIFECYCLE: created in DRAFT; status only changes through
    lifecycle_service.transition (see the per-type tables there).

    PAYMENT TRACKING (invoices only, all amounts in cents):
    - amount_paid_cents: sum of applied payments
    - balance_due_cents: total_cents - amount_paid_cents, never negative
    Other document types keep balance_due_cents NULL.
    """
    __tablename__ = "documents"
    __table_args__ = (
        db.UniqueConstraint("org_id", "document_number", name="uq_documents_org_number"),
        db.Index("ix_documents_org_type_status", "org_id", "document_type", "status"),
        db.CheckConstraint("balance_due_cents IS NULL OR balance_due_cents >= 0", name="ck_documents_balance_non_negative"),
        db.CheckConstraint("amount_paid_cents >= 0", name="ck_documents_paid_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    # Human-readable document number (e.g., "FAC-00012")
    document_number = db.Column(db.String(64), nullable=False)
    document_type = db.Column(db.String(16), nullable=False)  # QUOTE, INVOICE, CREDIT_NOTE

    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)
    status_changed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    issue_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Totals computed from lines
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_due_cents = db.Column(db.Integer, nullable=True)

    # Invoice converted from a quote
    source_quote_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=True, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client", backref=db.backref("documents", lazy=True))
    lines = db.relationship(
        "DocumentLine",
        backref="document",
        lazy=True,
        order_by="DocumentLine.position",
        cascade="all, delete-orphan",
    )
    source_quote = db.relationship("Document", remote_side=[id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Document id={self.id} {self.document_type} {self.document_number} status={self.status}>"

    def to_dict(self, *, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "client_id": self.client_id,
            "document_number": self.document_number,
            "document_type": self.document_type,
            "status": self.status,
            "status_changed_at": to_utc_z(self.status_changed_at),
            "issue_date": to_iso_date(self.issue_date),
            "due_date": to_iso_date(self.due_date),
            "notes": self.notes,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "balance_due_cents": self.balance_due_cents,
            "source_quote_id": self.source_quote_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class DocumentLine(db.Model):
    __tablename__ = "document_lines"
    __table_args__ = (
        db.Index("ix_document_lines_document_position", "document_id", "position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=False, index=True)
    article_id = db.Column(db.Integer, db.ForeignKey("articles.id"), nullable=True, index=True)

    position = db.Column(db.Integer, nullable=False)
    designation = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)

    line_subtotal_cents = db.Column(db.Integer, nullable=False)
    line_tax_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "article_id": self.article_id,
            "position": self.position,
            "designation": self.designation,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "discount_bps": self.discount_bps,
            "line_subtotal_cents": self.line_subtotal_cents,
            "line_tax_cents": self.line_tax_cents,
            "line_total_cents": self.line_total_cents,
        }


class Payment(db.Model):
    """
    Payment applied to exactly one invoice.

    IMMUTABLE: payments are never updated or deleted. Corrections are new
    rows, not edits.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        db.Index("ix_payments_document_paid", "document_id", "paid_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(16), nullable=False)  # CASH, CHECK, TRANSFER, CARD, DIRECT_DEBIT

    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)
    reference = db.Column(db.String(128), nullable=True)  # check number, processor intent id, ...
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    document = db.relationship("Document", backref=db.backref("payments", lazy=True, order_by="Payment.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "document_id": self.document_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "paid_at": to_utc_z(self.paid_at),
            "reference": self.reference,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-organization document sequences.

    WHY: Prevent race conditions when generating document numbers
    (quotes, invoices, credit notes).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("org_id", "document_type", name="uq_doc_sequences_org_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    document_type = db.Column(db.String(16), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
