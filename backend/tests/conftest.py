"""
Pytest fixtures for ProPartner backend tests.

Provides test database setup, tenant fixtures, and test client.
"""

import pytest
from propartner import create_app
from propartner.extensions import db
from propartner.models import Organization, Client, Article
from propartner.services import document_service, lifecycle_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TRANSACTION_RETRY_BACKOFF': 0,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Atelier Durand", code="DURAND", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Bureau Martin", code="MARTIN", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def client_a(db_session, org_a):
    """Create a Client in Organization A."""
    customer = Client(org_id=org_a.id, first_name="Alice", last_name="Durand", email="alice@durand.fr")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def client_b(db_session, org_b):
    """Create a Client in Organization B."""
    customer = Client(org_id=org_b.id, first_name="Bruno", last_name="Martin", email="bruno@martin.fr")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def article_a(db_session, org_a):
    """Create a stock-tracked Article in Organization A (empty stock)."""
    article = Article(
        org_id=org_a.id,
        reference="ART-A-001",
        name="Cartouche encre",
        unit="pcs",
        price_cents=2500,
        tax_rate_bps=2000,
        track_stock=True,
        current_stock=0,
        stock_minimum=2,
    )
    db_session.add(article)
    db_session.commit()
    return article


@pytest.fixture(scope='function')
def article_b(db_session, org_b):
    """Create a stock-tracked Article in Organization B."""
    article = Article(
        org_id=org_b.id,
        reference="ART-B-001",
        name="Ramette papier",
        price_cents=600,
        track_stock=True,
        current_stock=10,
    )
    db_session.add(article)
    db_session.commit()
    return article


def make_invoice(org, customer, total_cents=10000, *, send=True):
    """Invoice with a single untaxed line of total_cents, SENT unless send=False."""
    invoice = document_service.create_document(
        org_id=org.id,
        client_id=customer.id,
        document_type=lifecycle_service.TYPE_INVOICE,
        lines=[{"designation": "Prestation", "quantity": 1, "unit_price_cents": total_cents, "tax_rate_bps": 0}],
    )
    if send:
        invoice = lifecycle_service.change_status(
            org_id=org.id, document_id=invoice.id, target_status=lifecycle_service.STATUS_SENT
        )
    return invoice


@pytest.fixture(scope='function')
def invoice_a(db_session, org_a, client_a):
    """SENT invoice of 100.00 in Organization A."""
    return make_invoice(org_a, client_a, 10000)


@pytest.fixture(scope='function')
def quote_a(db_session, org_a, client_a):
    """DRAFT quote in Organization A: 2 x 50.00 at 20% tax."""
    return document_service.create_document(
        org_id=org_a.id,
        client_id=client_a.id,
        document_type=lifecycle_service.TYPE_QUOTE,
        lines=[{"designation": "Audit", "quantity": 2, "unit_price_cents": 5000, "tax_rate_bps": 2000}],
    )


def org_headers(org) -> dict:
    """Helper to create tenant headers for an organization."""
    return {'X-Org-Id': str(org.id)}
