"""Enrollment: forced setup, TOTP confirmation, email setup, channel management."""
import calendar
from datetime import datetime

import pyotp
import pytest

from mfa_gate.errors import Forbidden, InvalidCredentials, SetupIncomplete, TotpInvalid
from mfa_gate.models import EnrollmentState, BackupCode
from mfa_gate.services import enrollment
from conftest import PASSWORD, login, totp_now

T = datetime(2026, 3, 1, 9, 0, 0)
T_TS = calendar.timegm(T.utctimetuple())


def test_new_required_account_starts_setup_pending(make_account):
    account = make_account(mfa_required=True)
    assert account.enrollment_state is EnrollmentState.SETUP_PENDING


def test_optional_account_without_channel_is_unenrolled(make_account):
    account = make_account(mfa_required=False)
    assert account.enrollment_state is EnrollmentState.UNENROLLED


def test_confirm_totp_within_drift_window(make_account):
    account = make_account()
    secret, uri = enrollment.setup_totp(account)
    assert uri.startswith('otpauth://')
    assert not account.mfa_totp_enabled

    codes = enrollment.confirm_totp(account, pyotp.TOTP(secret).at(T_TS - 30), now=T)

    assert len(codes) == 10
    assert account.mfa_totp_enabled
    assert account.totp_secret == secret
    assert account.pending_totp_secret is None
    assert account.enrollment_state is EnrollmentState.ENROLLED
    assert BackupCode.remaining(account.id) == 10


def test_confirm_totp_rejects_stale_code(make_account):
    account = make_account()
    secret, _ = enrollment.setup_totp(account)

    with pytest.raises(TotpInvalid):
        enrollment.confirm_totp(account, pyotp.TOTP(secret).at(T_TS - 90), now=T)
    assert not account.mfa_totp_enabled
    assert account.enrollment_state is EnrollmentState.SETUP_PENDING


def test_confirm_without_setup_is_rejected(make_account):
    account = make_account()
    with pytest.raises(SetupIncomplete):
        enrollment.confirm_totp(account, '123456')


def test_setup_refused_once_enrolled(make_account):
    account = make_account(totp=True)
    with pytest.raises(Forbidden):
        enrollment.setup_totp(account)
    with pytest.raises(Forbidden):
        enrollment.setup_email(account)


def test_second_channel_is_added_through_management(make_account):
    account = make_account(totp=True)

    with pytest.raises(InvalidCredentials):
        enrollment.add_email(account, 'wrong-password')
    enrollment.add_email(account, PASSWORD)

    assert account.mfa_totp_enabled and account.mfa_email_enabled
    assert account.available_methods() == {'totp': True, 'email': True}
    with pytest.raises(Forbidden):
        enrollment.add_email(account, PASSWORD)
    with pytest.raises(Forbidden):
        enrollment.add_totp(account, PASSWORD)


def test_email_account_adds_totp_and_gets_backup_codes(make_account):
    account = make_account(email_mfa=True)
    secret, _ = enrollment.add_totp(account, PASSWORD)

    codes = enrollment.confirm_added_totp(account, pyotp.TOTP(secret).at(T_TS), now=T)

    assert len(codes) == 10
    assert account.mfa_totp_enabled and account.mfa_email_enabled
    assert account.totp_secret == secret


def test_email_setup_issues_no_backup_codes(make_account):
    account = make_account()
    enrollment.setup_email(account)

    assert account.mfa_email_enabled
    assert account.enrollment_state is EnrollmentState.ENROLLED
    assert BackupCode.remaining(account.id) == 0


def test_disabling_last_channel_returns_to_setup_pending(make_account, backup_codes):
    account = make_account(totp=True)
    backup_codes(account)

    state = enrollment.disable_totp(account, PASSWORD)

    assert state is EnrollmentState.SETUP_PENDING
    assert account.totp_secret is None
    assert BackupCode.remaining(account.id) == 0


def test_management_requires_password(make_account):
    account = make_account(totp=True)
    with pytest.raises(InvalidCredentials):
        enrollment.regenerate_backup_codes(account, 'wrong-password')


# ---------- HTTP ----------

def test_setup_pending_session_is_confined_to_enrollment(client, make_account):
    account = make_account(email='new-admin@example.com')

    resp = login(client, account.email)
    assert resp.status_code == 200
    assert resp.get_json()['mfaSetupRequired'] is True

    assert client.get('/mfa/status').status_code == 200
    assert client.get('/auth/user').status_code == 200

    resp = client.post('/mfa/backup-codes/regenerate', json={'password': PASSWORD})
    assert resp.status_code == 403
    assert resp.get_json()['mfaSetupRequired'] is True

    resp = client.post('/admin/impersonate', json={'userId': 1})
    assert resp.status_code == 403


def test_totp_enrollment_over_http(client, make_account):
    account = make_account(email='enroll@example.com')
    login(client, account.email)

    resp = client.post('/mfa/setup/totp', json={})
    assert resp.status_code == 200
    secret = resp.get_json()['secret']
    assert resp.get_json()['provisioningUri'].startswith('otpauth://totp/')

    resp = client.post('/mfa/setup/totp/confirm', json={'code': pyotp.TOTP(secret).now()})
    assert resp.status_code == 200
    codes = resp.get_json()['backupCodes']
    assert len(codes) == 10

    # Session leaves setup-pending and counts as verified
    user = client.get('/auth/user').get_json()
    assert user['setupPending'] is False
    assert user['mfaVerified'] is True
    assert user['mfaState'] == 'enrolled'

    resp = client.post('/mfa/backup-codes/regenerate', json={'password': PASSWORD})
    assert resp.status_code == 200
    assert set(resp.get_json()['backupCodes']).isdisjoint(codes)


def test_confirm_with_wrong_code_over_http(client, make_account):
    account = make_account(email='enroll@example.com')
    login(client, account.email)
    client.post('/mfa/setup/totp', json={})

    resp = client.post('/mfa/setup/totp/confirm', json={'code': 'abcdef'})
    assert resp.status_code == 401
    assert resp.get_json()['error'] == 'Invalid verification code'


def test_status_reports_channels(client, make_account):
    account = make_account(email='status@example.com', mfa_required=False)
    login(client, account.email)

    status = client.get('/mfa/status').get_json()
    assert status['state'] == 'unenrolled'
    assert status['totpEnabled'] is False
    assert status['emailEnabled'] is False
    assert status['backupCodesRemaining'] == 0


def test_disable_totp_over_http_drops_session_to_setup(client, make_account):
    account = make_account(email='disable@example.com', totp=True)
    resp = login(client, account.email)
    token = resp.get_json()['challengeToken']
    client.post('/login/mfa', json={'challengeToken': token, 'code': totp_now(account)})

    resp = client.post('/mfa/totp/disable', json={'password': PASSWORD})
    assert resp.status_code == 200
    assert resp.get_json()['state'] == 'setup_pending'

    assert client.get('/auth/user').get_json()['setupPending'] is True
    assert client.post('/mfa/email/disable', json={'password': PASSWORD}).status_code == 403


def test_management_needs_password_over_http(client, make_account):
    account = make_account(email='pw@example.com', totp=True)
    token = login(client, account.email).get_json()['challengeToken']
    client.post('/login/mfa', json={'challengeToken': token, 'code': totp_now(account)})

    assert client.post('/mfa/totp/disable', json={}).status_code == 400
    resp = client.post('/mfa/totp/disable', json={'password': 'nope'})
    assert resp.status_code == 401
    assert account.mfa_totp_enabled


def test_both_channels_enrolled_over_http_show_at_login(client, make_account):
    account = make_account(email='two-channels@example.com')
    login(client, account.email)
    secret = client.post('/mfa/setup/totp', json={}).get_json()['secret']
    client.post('/mfa/setup/totp/confirm', json={'code': pyotp.TOTP(secret).now()})

    resp = client.post('/mfa/email/enable', json={'password': PASSWORD})
    assert resp.status_code == 200
    status = client.get('/mfa/status').get_json()
    assert status['totpEnabled'] is True
    assert status['emailEnabled'] is True

    client.post('/logout', json={})
    data = login(client, account.email).get_json()
    assert data['mfaTotp'] is True
    assert data['mfaEmail'] is True


def test_email_account_adds_totp_over_http(client, make_account, sent_codes):
    account = make_account(email='mail-first@example.com', email_mfa=True)
    token = login(client, account.email).get_json()['challengeToken']
    token = client.post('/mfa/email/send-login-otp', json={'challengeToken': token}).get_json()['challengeToken']
    client.post('/mfa/email/verify-login-otp', json={'challengeToken': token, 'otp': sent_codes[0][1]})

    assert client.post('/mfa/totp/enable', json={'password': 'nope'}).status_code == 401
    resp = client.post('/mfa/totp/enable', json={'password': PASSWORD})
    assert resp.status_code == 200
    secret = resp.get_json()['secret']

    resp = client.post('/mfa/totp/enable/confirm', json={'code': pyotp.TOTP(secret).now()})
    assert resp.status_code == 200
    assert len(resp.get_json()['backupCodes']) == 10
    assert client.get('/mfa/status').get_json()['backupCodesRemaining'] == 10


def test_adding_a_channel_needs_a_verified_session(client, make_account):
    account = make_account(email='pending@example.com')
    login(client, account.email)

    resp = client.post('/mfa/email/enable', json={'password': PASSWORD})
    assert resp.status_code == 403
    assert client.post('/mfa/totp/enable', json={'password': PASSWORD}).status_code == 403
