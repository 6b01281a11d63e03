# Overview: Pytest coverage for the maintenance CLI commands.

from datetime import timedelta

import pytest

from propartner.models import Article, Client, LoyaltyLevel, Organization
from propartner.services import loyalty_service, stock_service
from propartner.time_utils import to_utc_z, utcnow


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def test_orgs_create_and_list(runner, db_session):
    result = runner.invoke(args=['orgs', 'create', '--name', 'Garage Petit', '--code', 'PETIT'])
    assert result.exit_code == 0
    assert 'PASS Created organization' in result.output

    org = db_session.query(Organization).filter_by(code='PETIT').one()
    assert org.currency == 'EUR'

    duplicate = runner.invoke(args=['orgs', 'create', '--name', 'Other', '--code', 'PETIT'])
    assert 'already exists' in duplicate.output

    listing = runner.invoke(args=['orgs', 'list'])
    assert 'Garage Petit' in listing.output


def test_expire_points(runner, db_session, org_a, client_a):
    loyalty_service.grant_points(
        org_id=org_a.id, client_id=client_a.id, points=40, expires_at=utcnow() + timedelta(days=1)
    )

    result = runner.invoke(args=['loyalty', 'expire-points'])
    assert result.exit_code == 0
    assert 'PASS Expired 0 points' in result.output

    later = to_utc_z(utcnow() + timedelta(days=3))
    result = runner.invoke(args=['loyalty', 'expire-points', '--org-id', str(org_a.id), '--now', later])
    assert result.exit_code == 0
    assert 'PASS Expired 40 points for 1 clients' in result.output

    db_session.expire_all()
    assert db_session.get(Client, client_a.id).points_balance == 0


def test_expire_points_bad_cutoff(runner, db_session, org_a):
    result = runner.invoke(args=['loyalty', 'expire-points', '--now', 'soon'])
    assert result.exit_code != 0


def test_loyalty_verify_and_repair(runner, db_session, org_a, client_a):
    loyalty_service.grant_points(org_id=org_a.id, client_id=client_a.id, points=25)
    customer = db_session.get(Client, client_a.id)
    customer.points_balance = 70
    db_session.commit()

    result = runner.invoke(args=['loyalty', 'verify'])
    assert result.exit_code == 1
    assert 'FAIL 1 inconsistent balances' in result.output

    result = runner.invoke(args=['loyalty', 'verify', '--repair'])
    assert result.exit_code == 0

    db_session.expire_all()
    assert db_session.get(Client, client_a.id).points_balance == 25


def test_stock_verify_and_repair(runner, db_session, org_a, article_a):
    stock_service.record_movement(org_id=org_a.id, article_id=article_a.id, movement_type="IN", quantity_delta=7)

    result = runner.invoke(args=['stock', 'verify'])
    assert result.exit_code == 0
    assert 'PASS Stock consistent' in result.output

    article = db_session.get(Article, article_a.id)
    article.current_stock = 3
    db_session.commit()

    result = runner.invoke(args=['stock', 'verify', '--org-id', str(org_a.id)])
    assert result.exit_code == 1
    assert 'ART-A-001' in result.output

    result = runner.invoke(args=['stock', 'verify', '--repair'])
    assert result.exit_code == 0
    assert 'PASS Stock verified (1 repaired)' in result.output

    db_session.expire_all()
    assert db_session.get(Article, article_a.id).current_stock == 7


def test_loyalty_repair_assigns_new_levels(runner, db_session, org_a, client_a):
    loyalty_service.grant_points(org_id=org_a.id, client_id=client_a.id, points=120)
    gold = LoyaltyLevel(org_id=org_a.id, name="Or", points_threshold=100, discount_bps=500)
    db_session.add(gold)
    db_session.commit()
    gold_id = gold.id

    result = runner.invoke(args=['loyalty', 'verify', '--repair', '--org-id', str(org_a.id)])
    assert result.exit_code == 0
    assert f'level None -> {gold_id}' in result.output

    db_session.expire_all()
    assert db_session.get(Client, client_a.id).loyalty_level_id == gold_id
