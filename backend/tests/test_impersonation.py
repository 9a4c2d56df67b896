"""Admin impersonation boundary."""
import json

import pytest
from flask import session

from mfa_gate.errors import Forbidden
from mfa_gate.models import Role
from mfa_gate.services import session as auth_session
from conftest import login, totp_now


@pytest.fixture
def admin_client(client, make_account):
    """Client signed in as an admin who passed TOTP."""
    admin = make_account(email='admin@example.com', role=Role.ADMIN, totp=True)
    token = login(client, admin.email).get_json()['challengeToken']
    resp = client.post('/login/mfa', json={'challengeToken': token, 'code': totp_now(admin)})
    assert resp.status_code == 200
    client.admin = admin
    return client


def test_unverified_admin_cannot_impersonate(app, make_account):
    admin = make_account(email='admin@example.com', role=Role.ADMIN, totp=True)
    target = make_account(email='client@example.com', mfa_required=False)

    with app.test_request_context():
        session['account_id'] = admin.id
        session['role'] = Role.ADMIN
        session['mfa_verified'] = False

        with pytest.raises(Forbidden):
            auth_session.impersonate(target.id)
        assert 'impersonating' not in session


def test_impersonation_round_trip(admin_client, make_account):
    target = make_account(email='client@example.com', mfa_required=False)

    resp = admin_client.post('/admin/impersonate', json={'userId': target.id})
    assert resp.status_code == 200
    data = resp.get_json()
    assert data['isImpersonating'] is True
    assert data['id'] == admin_client.admin.id
    assert data['impersonatedUser']['id'] == target.id

    user = admin_client.get('/auth/user').get_json()
    assert user['effectiveAccountId'] == target.id

    resp = admin_client.post('/admin/stop-impersonate', json={})
    assert resp.status_code == 200
    assert resp.get_json()['isImpersonating'] is False
    assert admin_client.get('/auth/user').get_json()['effectiveAccountId'] == admin_client.admin.id


def test_audit_records_true_actor_while_impersonating(admin_client, make_account, audit_log_file):
    target = make_account(email='client@example.com', mfa_required=False)
    admin_client.post('/admin/impersonate', json={'userId': target.id})
    admin_client.get('/auth/user')

    last = json.loads(audit_log_file.read_text().strip().splitlines()[-1])
    assert last['action'] == 'READ'
    assert last['actor_id'] == str(admin_client.admin.id)
    assert last['acting_as'] == str(target.id)


def test_only_client_accounts_can_be_impersonated(admin_client, make_account):
    other_admin = make_account(email='admin2@example.com', role=Role.ADMIN, mfa_required=False)
    resp = admin_client.post('/admin/impersonate', json={'userId': other_admin.id})
    assert resp.status_code == 400


def test_unknown_target(admin_client):
    resp = admin_client.post('/admin/impersonate', json={'userId': 9999})
    assert resp.status_code == 404


def test_nested_impersonation_is_refused(admin_client, make_account):
    first = make_account(email='one@example.com', mfa_required=False)
    second = make_account(email='two@example.com', mfa_required=False)
    admin_client.post('/admin/impersonate', json={'userId': first.id})

    resp = admin_client.post('/admin/impersonate', json={'userId': second.id})
    assert resp.status_code == 400


def test_client_cannot_impersonate(client, make_account):
    make_account(email='client@example.com', mfa_required=False)
    other = make_account(email='other@example.com', mfa_required=False)
    login(client, 'client@example.com')

    resp = client.post('/admin/impersonate', json={'userId': other.id})
    assert resp.status_code == 403
    assert client.post('/admin/stop-impersonate', json={}).status_code == 403


def test_stop_without_impersonating(admin_client):
    resp = admin_client.post('/admin/stop-impersonate', json={})
    assert resp.status_code == 400


def test_impersonate_requires_user_id(admin_client):
    assert admin_client.post('/admin/impersonate', json={}).status_code == 400
