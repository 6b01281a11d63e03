import unittest
from datetime import date
from unittest import mock

from propartner import create_app
from propartner.errors import ConflictError, NotFound, ValidationError
from propartner.extensions import db
from propartner.models import Article, Client, Document, DocumentSequence, Organization
from propartner.services import document_service, lifecycle_service
from propartner.services.lifecycle_service import (
    STATUS_ACCEPTED,
    STATUS_DRAFT,
    STATUS_SENT,
    TYPE_CREDIT_NOTE,
    TYPE_INVOICE,
    TYPE_QUOTE,
)


class DocumentServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app({
            "SECRET_KEY": "test",
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SQLALCHEMY_TRACK_MODIFICATIONS": False,
            "TESTING": True,
            "TRANSACTION_RETRY_BACKOFF": 0,
        })
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        self.org = Organization(name="Test Org", code="TEST")
        self.other_org = Organization(name="Other Org", code="OTHER")
        db.session.add_all([self.org, self.other_org])
        db.session.flush()

        self.customer = Client(org_id=self.org.id, last_name="Lefebvre", email="contact@lefebvre.fr")
        self.foreign_customer = Client(org_id=self.other_org.id, last_name="Roux")
        self.article = Article(
            org_id=self.org.id,
            reference="CONS-01",
            name="Consulting day",
            price_cents=65000,
            tax_rate_bps=2000,
            track_stock=False,
        )
        db.session.add_all([self.customer, self.foreign_customer, self.article])
        db.session.commit()

    def _create(self, document_type=TYPE_QUOTE, lines=None, **kwargs):
        return document_service.create_document(
            org_id=self.org.id,
            client_id=self.customer.id,
            document_type=document_type,
            lines=lines if lines is not None else [
                {"designation": "Audit", "quantity": 2, "unit_price_cents": 5000, "tax_rate_bps": 2000}
            ],
            **kwargs,
        )

    def _accept(self, quote):
        for status in (STATUS_SENT, STATUS_ACCEPTED):
            quote = lifecycle_service.change_status(
                org_id=self.org.id, document_id=quote.id, target_status=status
            )
        return quote

    # ------------------------------------------------------------------
    # Numbering
    # ------------------------------------------------------------------

    def test_numbers_are_sequential_per_type(self):
        self.assertEqual(self._create(TYPE_INVOICE).document_number, "FAC-00001")
        self.assertEqual(self._create(TYPE_INVOICE).document_number, "FAC-00002")
        self.assertEqual(self._create(TYPE_QUOTE).document_number, "DEV-00001")
        self.assertEqual(self._create(TYPE_CREDIT_NOTE).document_number, "AV-00001")

    def test_numbers_are_per_organization(self):
        self._create(TYPE_INVOICE)
        number = document_service.next_document_number(org_id=self.other_org.id, document_type=TYPE_INVOICE)
        self.assertEqual(number, "FAC-00001")

        seq = db.session.query(DocumentSequence).filter_by(
            org_id=self.org.id, document_type=TYPE_INVOICE
        ).one()
        self.assertEqual(seq.next_number, 2)

    def test_sequence_created_concurrently_falls_back_to_update(self):
        self._create(TYPE_INVOICE)

        # The row already exists: the insert fails inside its savepoint only
        self.assertFalse(document_service._insert_sequence(self.org.id, TYPE_INVOICE))
        self.assertEqual(
            document_service.next_document_number(org_id=self.org.id, document_type=TYPE_INVOICE),
            "FAC-00002",
        )

    def test_first_number_race_uses_existing_sequence(self):
        self._create(TYPE_INVOICE)
        real_bump = document_service._bump_sequence
        calls = []

        def _missing_once(org_id, document_type):
            calls.append(document_type)
            if len(calls) == 1:
                return None
            return real_bump(org_id, document_type)

        with mock.patch.object(document_service, "_bump_sequence", side_effect=_missing_once):
            invoice = self._create(TYPE_INVOICE)

        self.assertEqual(len(calls), 2)
        self.assertEqual(invoice.document_number, "FAC-00002")
        seqs = db.session.query(DocumentSequence).filter_by(org_id=self.org.id, document_type=TYPE_INVOICE).all()
        self.assertEqual([s.next_number for s in seqs], [3])

    def test_next_number_rejects_unknown_type(self):
        with self.assertRaises(ValidationError):
            document_service.next_document_number(org_id=self.org.id, document_type="RECEIPT")

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def test_quote_totals(self):
        quote = self._create(TYPE_QUOTE)
        self.assertEqual(quote.status, STATUS_DRAFT)
        self.assertEqual(quote.subtotal_cents, 10000)
        self.assertEqual(quote.tax_cents, 2000)
        self.assertEqual(quote.total_cents, 12000)
        self.assertIsNone(quote.balance_due_cents)

    def test_invoice_starts_with_full_balance(self):
        invoice = self._create(TYPE_INVOICE)
        self.assertEqual(invoice.amount_paid_cents, 0)
        self.assertEqual(invoice.balance_due_cents, invoice.total_cents)

    def test_article_defaults_fill_line(self):
        doc = self._create(TYPE_INVOICE, lines=[{"article_id": self.article.id, "quantity": 3}])
        line = doc.lines[0]
        self.assertEqual(line.designation, "Consulting day")
        self.assertEqual(line.unit_price_cents, 65000)
        self.assertEqual(line.tax_rate_bps, 2000)
        self.assertEqual(doc.total_cents, 234000)

    def test_lines_keep_position(self):
        doc = self._create(TYPE_QUOTE, lines=[
            {"designation": "B", "quantity": 1, "unit_price_cents": 100},
            {"designation": "A", "quantity": 1, "unit_price_cents": 200},
        ])
        self.assertEqual([l.designation for l in doc.lines], ["B", "A"])
        self.assertEqual([l.position for l in doc.lines], [1, 2])

    def test_rejects_invalid_input(self):
        with self.assertRaises(ValidationError):
            self._create(TYPE_QUOTE, lines=[])
        with self.assertRaises(ValidationError):
            self._create("ORDER")
        with self.assertRaises(ValidationError):
            self._create(TYPE_QUOTE, lines=[{"designation": "X", "quantity": 1.5, "unit_price_cents": 100}])
        with self.assertRaises(ValidationError):
            self._create(TYPE_INVOICE, issue_date=date(2026, 5, 10), due_date=date(2026, 5, 1))
        self.assertEqual(db.session.query(Document).count(), 0)

    def test_foreign_client_not_found(self):
        with self.assertRaises(NotFound):
            document_service.create_document(
                org_id=self.org.id,
                client_id=self.foreign_customer.id,
                document_type=TYPE_QUOTE,
                lines=[{"designation": "X", "quantity": 1, "unit_price_cents": 100}],
            )

    # ------------------------------------------------------------------
    # Quote conversion
    # ------------------------------------------------------------------

    def test_convert_accepted_quote(self):
        quote = self._accept(self._create(TYPE_QUOTE))

        invoice = document_service.convert_quote_to_invoice(org_id=self.org.id, quote_id=quote.id)

        self.assertEqual(invoice.document_type, TYPE_INVOICE)
        self.assertEqual(invoice.status, STATUS_DRAFT)
        self.assertIsNone(invoice.status_changed_at)
        self.assertEqual(invoice.source_quote_id, quote.id)
        self.assertEqual(invoice.total_cents, quote.total_cents)
        self.assertEqual(invoice.balance_due_cents, quote.total_cents)
        self.assertEqual(len(invoice.lines), len(quote.lines))
        self.assertTrue(invoice.document_number.startswith("FAC-"))

        sent = lifecycle_service.change_status(
            org_id=self.org.id, document_id=invoice.id, target_status=STATUS_SENT
        )
        self.assertEqual(sent.status, STATUS_SENT)

    def test_convert_only_once(self):
        quote = self._accept(self._create(TYPE_QUOTE))
        document_service.convert_quote_to_invoice(org_id=self.org.id, quote_id=quote.id)

        with self.assertRaises(ConflictError):
            document_service.convert_quote_to_invoice(org_id=self.org.id, quote_id=quote.id)

    def test_convert_requires_accepted_quote(self):
        quote = self._create(TYPE_QUOTE)
        with self.assertRaises(ConflictError):
            document_service.convert_quote_to_invoice(org_id=self.org.id, quote_id=quote.id)

        invoice = self._create(TYPE_INVOICE)
        with self.assertRaises(ValidationError):
            document_service.convert_quote_to_invoice(org_id=self.org.id, quote_id=invoice.id)


if __name__ == "__main__":
    unittest.main()
