# Overview: Pytest coverage for the document status state machine.

import itertools

import pytest

from propartner.errors import IllegalTransition, NotFound
from propartner.models import Document
from propartner.services import lifecycle_service
from propartner.services.lifecycle_service import (
    STATUS_ACCEPTED,
    STATUS_CANCELLED,
    STATUS_DRAFT,
    STATUS_PAID,
    STATUS_REFUSED,
    STATUS_SENT,
    TYPE_CREDIT_NOTE,
    TYPE_INVOICE,
    TYPE_QUOTE,
    VALID_STATUSES,
    can_transition,
    is_immutable,
    transition,
)


QUOTE_EDGES = {
    (STATUS_DRAFT, STATUS_SENT),
    (STATUS_DRAFT, STATUS_CANCELLED),
    (STATUS_SENT, STATUS_ACCEPTED),
    (STATUS_SENT, STATUS_REFUSED),
    (STATUS_SENT, STATUS_CANCELLED),
    (STATUS_ACCEPTED, STATUS_CANCELLED),
}

INVOICE_EDGES = {
    (STATUS_DRAFT, STATUS_SENT),
    (STATUS_DRAFT, STATUS_CANCELLED),
    (STATUS_SENT, STATUS_PAID),
    (STATUS_SENT, STATUS_CANCELLED),
}

EXPECTED_EDGES = {
    TYPE_QUOTE: QUOTE_EDGES,
    TYPE_INVOICE: INVOICE_EDGES,
    TYPE_CREDIT_NOTE: QUOTE_EDGES,
}


def _doc(document_type, status):
    return Document(document_type=document_type, status=status, document_number="TEST-1")


class TestTransitionTable:
    @pytest.mark.parametrize(
        "document_type, from_status, to_status",
        [
            (t, f, s)
            for t in EXPECTED_EDGES
            for f, s in itertools.product(sorted(VALID_STATUSES), repeat=2)
        ],
    )
    def test_every_triple(self, document_type, from_status, to_status):
        expected = (from_status, to_status) in EXPECTED_EDGES[document_type]
        assert can_transition(document_type, from_status, to_status) is expected

        doc = _doc(document_type, from_status)
        if expected:
            assert transition(doc, to_status) is doc
            assert doc.status == to_status
            assert doc.status_changed_at is not None
        else:
            with pytest.raises(IllegalTransition):
                transition(doc, to_status)
            assert doc.status == from_status

    def test_same_state_is_rejected(self):
        with pytest.raises(IllegalTransition):
            transition(_doc(TYPE_INVOICE, STATUS_SENT), STATUS_SENT)

    def test_unknown_target_status(self):
        with pytest.raises(IllegalTransition):
            transition(_doc(TYPE_QUOTE, STATUS_DRAFT), "ARCHIVED")

    def test_unknown_current_status(self):
        with pytest.raises(IllegalTransition):
            transition(_doc(TYPE_QUOTE, "ARCHIVED"), STATUS_SENT)

    def test_terminal_states(self):
        for status in (STATUS_PAID, STATUS_CANCELLED):
            assert lifecycle_service.allowed_transitions(TYPE_INVOICE, status) == frozenset()
        for status in (STATUS_REFUSED, STATUS_CANCELLED):
            assert lifecycle_service.allowed_transitions(TYPE_QUOTE, status) == frozenset()

    def test_immutable_statuses(self):
        assert is_immutable(_doc(TYPE_INVOICE, STATUS_PAID))
        assert is_immutable(_doc(TYPE_QUOTE, STATUS_REFUSED))
        assert is_immutable(_doc(TYPE_QUOTE, STATUS_CANCELLED))
        assert not is_immutable(_doc(TYPE_QUOTE, STATUS_ACCEPTED))


class TestChangeStatus:
    def test_quote_workflow_persists(self, db_session, org_a, quote_a):
        lifecycle_service.change_status(org_id=org_a.id, document_id=quote_a.id, target_status=STATUS_SENT)
        lifecycle_service.change_status(org_id=org_a.id, document_id=quote_a.id, target_status=STATUS_ACCEPTED)

        stored = db_session.get(Document, quote_a.id)
        assert stored.status == STATUS_ACCEPTED
        assert stored.status_changed_at is not None

    def test_illegal_change_leaves_status(self, db_session, org_a, quote_a):
        with pytest.raises(IllegalTransition):
            lifecycle_service.change_status(org_id=org_a.id, document_id=quote_a.id, target_status=STATUS_ACCEPTED)

        assert db_session.get(Document, quote_a.id).status == STATUS_DRAFT

    def test_manual_paid_with_balance_due_rejected(self, db_session, org_a, invoice_a):
        with pytest.raises(IllegalTransition):
            lifecycle_service.change_status(org_id=org_a.id, document_id=invoice_a.id, target_status=STATUS_PAID)

        assert db_session.get(Document, invoice_a.id).status == STATUS_SENT

    def test_cancel_sent_invoice(self, db_session, org_a, invoice_a):
        doc = lifecycle_service.change_status(
            org_id=org_a.id, document_id=invoice_a.id, target_status=STATUS_CANCELLED
        )
        assert doc.status == STATUS_CANCELLED
        assert is_immutable(doc)

    def test_unknown_document(self, db_session, org_a):
        with pytest.raises(NotFound):
            lifecycle_service.change_status(org_id=org_a.id, document_id=424242, target_status=STATUS_SENT)
