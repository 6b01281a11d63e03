# Overview: Pytest coverage for the JSON API through the Flask test client.

from datetime import timedelta

from conftest import org_headers
from propartner.models import Article, Document
from propartner.services import stock_service
from propartner.time_utils import to_utc_z, utcnow


class TestSystemRoutes:
    def test_health(self, client, db_session):
        response = client.get('/api/health')
        assert response.status_code == 200
        assert response.json['status'] == 'healthy'
        assert response.json['checks']['database']['status'] == 'healthy'

    def test_missing_tenant_header(self, client, db_session):
        response = client.get('/api/stock/alerts')
        assert response.status_code == 400
        assert response.json['kind'] == 'TenantRequired'

    def test_unknown_tenant(self, client, db_session):
        response = client.get('/api/stock/alerts', headers={'X-Org-Id': '999'})
        assert response.status_code == 404

    def test_non_integer_tenant(self, client, db_session):
        response = client.get('/api/stock/alerts', headers={'X-Org-Id': 'acme'})
        assert response.status_code == 400


class TestDocumentRoutes:
    def test_create_and_get(self, client, db_session, org_a, client_a):
        response = client.post('/api/documents', headers=org_headers(org_a), json={
            'client_id': client_a.id,
            'document_type': 'INVOICE',
            'issue_date': '2026-03-01',
            'due_date': '2026-03-31',
            'lines': [{'designation': 'Maintenance', 'quantity': 1, 'unit_price_cents': 10000, 'tax_rate_bps': 2000}],
        })
        assert response.status_code == 201
        body = response.json
        assert body['document']['status'] == 'DRAFT'
        assert body['document']['total_cents'] == 12000
        assert body['payment_summary']['balance_due_cents'] == 12000
        assert body['allowed_transitions'] == ['CANCELLED', 'SENT']

        doc_id = body['document']['id']
        response = client.get(f'/api/documents/{doc_id}', headers=org_headers(org_a))
        assert response.status_code == 200
        assert len(response.json['document']['lines']) == 1

    def test_create_rejects_unknown_field(self, client, db_session, org_a, client_a):
        response = client.post('/api/documents', headers=org_headers(org_a), json={
            'client_id': client_a.id,
            'document_type': 'QUOTE',
            'status': 'PAID',
            'lines': [{'designation': 'X', 'quantity': 1, 'unit_price_cents': 100}],
        })
        assert response.status_code == 400
        assert 'status' in response.json['error']

    def test_create_requires_lines(self, client, db_session, org_a, client_a):
        response = client.post('/api/documents', headers=org_headers(org_a), json={
            'client_id': client_a.id,
            'document_type': 'QUOTE',
        })
        assert response.status_code == 400

    def test_status_change(self, client, db_session, org_a, quote_a):
        response = client.post(
            f'/api/documents/{quote_a.id}/status', headers=org_headers(org_a), json={'status': 'SENT'}
        )
        assert response.status_code == 200
        assert response.json['document']['status'] == 'SENT'

    def test_illegal_status_change(self, client, db_session, org_a, quote_a):
        response = client.post(
            f'/api/documents/{quote_a.id}/status', headers=org_headers(org_a), json={'status': 'PAID'}
        )
        assert response.status_code == 409
        assert response.json['kind'] == 'IllegalTransition'

    def test_convert(self, client, db_session, org_a, quote_a):
        for status in ('SENT', 'ACCEPTED'):
            client.post(f'/api/documents/{quote_a.id}/status', headers=org_headers(org_a), json={'status': status})

        response = client.post(f'/api/documents/{quote_a.id}/convert', headers=org_headers(org_a))
        assert response.status_code == 201
        assert response.json['document']['document_type'] == 'INVOICE'
        assert response.json['document']['status'] == 'DRAFT'
        assert response.json['allowed_transitions'] == ['CANCELLED', 'SENT']

        again = client.post(f'/api/documents/{quote_a.id}/convert', headers=org_headers(org_a))
        assert again.status_code == 409


class TestPaymentRoutes:
    def test_payment_flow(self, client, db_session, org_a, invoice_a):
        url = f'/api/documents/{invoice_a.id}/payments'

        response = client.post(url, headers=org_headers(org_a), json={'amount': '60.00', 'method': 'TRANSFER'})
        assert response.status_code == 201
        assert response.json['payment']['amount_cents'] == 6000
        assert response.json['document']['balance_due_cents'] == 4000

        response = client.post(url, headers=org_headers(org_a), json={'amount_cents': 4001, 'method': 'CASH'})
        assert response.status_code == 400
        assert response.json['kind'] == 'ExceedsBalance'

        response = client.post(url, headers=org_headers(org_a), json={'amount_cents': 4000, 'method': 'CASH'})
        assert response.status_code == 201
        assert response.json['document']['status'] == 'PAID'

        response = client.get(url, headers=org_headers(org_a))
        assert response.status_code == 200
        assert [p['amount_cents'] for p in response.json['payments']] == [6000, 4000]
        assert response.json['summary']['balance_due_cents'] == 0

    def test_amount_required_once(self, client, db_session, org_a, invoice_a):
        url = f'/api/documents/{invoice_a.id}/payments'
        response = client.post(url, headers=org_headers(org_a), json={'method': 'CASH'})
        assert response.status_code == 400

        response = client.post(
            url, headers=org_headers(org_a), json={'method': 'CASH', 'amount': '1.00', 'amount_cents': 100}
        )
        assert response.status_code == 400

    def test_float_cents_rejected(self, client, db_session, org_a, invoice_a):
        response = client.post(
            f'/api/documents/{invoice_a.id}/payments',
            headers=org_headers(org_a),
            json={'method': 'CASH', 'amount_cents': 12.5},
        )
        assert response.status_code == 400

    def test_quote_payment_rejected(self, client, db_session, org_a, quote_a):
        response = client.post(
            f'/api/documents/{quote_a.id}/payments',
            headers=org_headers(org_a),
            json={'method': 'CASH', 'amount_cents': 100},
        )
        assert response.status_code == 400
        assert response.json['kind'] == 'NotAnInvoice'


class TestStockRoutes:
    def test_movement_lifecycle(self, client, db_session, org_a, article_a):
        headers = org_headers(org_a)

        response = client.post('/api/stock/movements', headers=headers, json={
            'article_id': article_a.id, 'movement_type': 'IN', 'quantity_delta': 5, 'reason': 'Reception',
        })
        assert response.status_code == 201
        assert response.json['article']['current_stock'] == 5

        response = client.post('/api/stock/movements', headers=headers, json={
            'article_id': article_a.id, 'movement_type': 'OUT', 'quantity_delta': -6,
        })
        assert response.status_code == 409
        assert response.json['kind'] == 'InsufficientStock'

        response = client.post('/api/stock/movements', headers=headers, json={
            'article_id': article_a.id, 'movement_type': 'OUT', 'quantity_delta': -2,
        })
        out_id = response.json['movement']['id']

        response = client.get(f'/api/stock/movements/{out_id}', headers=headers)
        assert response.status_code == 200
        assert response.json['movement']['quantity_after'] == 3

        response = client.delete(f'/api/stock/movements/{out_id}', headers=headers)
        assert response.status_code == 200
        assert response.json['article']['current_stock'] == 5

        response = client.get(f'/api/stock/movements?article_id={article_a.id}', headers=headers)
        assert response.json['total'] == 2

        assert db_session.get(Article, article_a.id).current_stock == 5

    def test_list_filters_by_window(self, client, db_session, org_a, article_a):
        headers = org_headers(org_a)
        client.post('/api/stock/movements', headers=headers, json={
            'article_id': article_a.id, 'movement_type': 'IN', 'quantity_delta': 1,
        })
        future = to_utc_z(utcnow() + timedelta(hours=1))

        response = client.get(f'/api/stock/movements?start={future}', headers=headers)
        assert response.status_code == 200
        assert response.json['total'] == 0

        response = client.get('/api/stock/movements?limit=abc', headers=headers)
        assert response.status_code == 400

    def test_zero_delta_rejected(self, client, db_session, org_a, article_a):
        response = client.post('/api/stock/movements', headers=org_headers(org_a), json={
            'article_id': article_a.id, 'movement_type': 'IN', 'quantity_delta': 0,
        })
        assert response.status_code == 400

    def test_count_and_alerts(self, client, db_session, org_a, article_a):
        headers = org_headers(org_a)
        response = client.post(
            f'/api/stock/articles/{article_a.id}/count', headers=headers, json={'counted_quantity': 1}
        )
        assert response.status_code == 201
        assert response.json['movement']['movement_type'] == 'INVENTORY'

        response = client.get('/api/stock/alerts', headers=headers)
        assert response.json['count'] == 1
        assert response.json['alerts'][0]['reference'] == 'ART-A-001'

    def test_alerts_failure_is_logged(self, client, db_session, org_a, monkeypatch, caplog):
        def _broken(**kwargs):
            raise RuntimeError("connection dropped")

        monkeypatch.setattr(stock_service, 'get_stock_alerts', _broken)
        response = client.get('/api/stock/alerts', headers=org_headers(org_a))

        assert response.status_code == 500
        assert response.json == {'error': 'Internal server error'}
        assert 'Failed to load stock alerts' in caplog.text


class TestLoyaltyRoutes:
    def test_grant_redeem_and_read(self, client, db_session, org_a, client_a):
        headers = org_headers(org_a)

        response = client.post('/api/loyalty/movements', headers=headers, json={
            'client_id': client_a.id, 'movement_type': 'GAIN', 'points': 100,
        })
        assert response.status_code == 201
        assert response.json['loyalty']['points_balance'] == 100

        response = client.post('/api/loyalty/movements', headers=headers, json={
            'client_id': client_a.id, 'movement_type': 'REDEMPTION', 'points': 150,
        })
        assert response.status_code == 409
        assert response.json['kind'] == 'InsufficientPoints'

        response = client.post('/api/loyalty/movements', headers=headers, json={
            'client_id': client_a.id, 'movement_type': 'ADJUSTMENT', 'points': -10, 'description': 'Erreur de saisie',
        })
        assert response.status_code == 201

        response = client.get(f'/api/loyalty/clients/{client_a.id}', headers=headers)
        assert response.status_code == 200
        assert response.json['loyalty']['points_balance'] == 90
        assert response.json['movement_count'] == 2

    def test_expiration_movement_not_accepted(self, client, db_session, org_a, client_a):
        response = client.post('/api/loyalty/movements', headers=org_headers(org_a), json={
            'client_id': client_a.id, 'movement_type': 'EXPIRATION', 'points': -5,
        })
        assert response.status_code == 400

    def test_expire_endpoint(self, client, db_session, org_a, client_a):
        headers = org_headers(org_a)
        client.post('/api/loyalty/movements', headers=headers, json={
            'client_id': client_a.id, 'movement_type': 'GAIN', 'points': 100,
            'expires_at': to_utc_z(utcnow() + timedelta(days=1)),
        })

        response = client.post('/api/loyalty/expire', headers=headers, json={})
        assert response.json == {'clients': 0, 'total_points': 0}

        later = to_utc_z(utcnow() + timedelta(days=2))
        response = client.post('/api/loyalty/expire', headers=headers, json={'now': later})
        assert response.status_code == 200
        assert response.json == {'clients': 1, 'total_points': 100}

        response = client.post('/api/loyalty/expire', headers=headers, json={'now': 'tomorrow'})
        assert response.status_code == 400


def test_foreign_document_is_not_found(client, db_session, org_a, org_b, invoice_a):
    response = client.get(f'/api/documents/{invoice_a.id}', headers=org_headers(org_b))
    assert response.status_code == 404
    assert db_session.get(Document, invoice_a.id).org_id == org_a.id
