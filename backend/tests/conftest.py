import base64
import os

import pyotp
import pytest

os.environ.setdefault('FIELD_ENCRYPTION_KEY', base64.b64encode(b'k' * 32).decode())

from mfa_gate import create_app, db, DEFAULT_RATE_LIMITS  # noqa: E402
from mfa_gate.models import Account, Role, BackupCode  # noqa: E402

PASSWORD = 'correct-horse-battery'


@pytest.fixture(scope='session')
def audit_log_file(tmp_path_factory):
    return tmp_path_factory.mktemp('logs') / 'audit.log'


def _test_config(database_uri, audit_log_file):
    rate_limits = dict(DEFAULT_RATE_LIMITS)
    rate_limits['login'] = (1000, 60)
    return {
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'JWT_SECRET_KEY': 'test-jwt-secret',
        'SQLALCHEMY_DATABASE_URI': database_uri,
        'AUDIT_LOG_FILE': str(audit_log_file),
        'CODE_HASH_METHOD': 'pbkdf2:sha256:1000',
        'RATE_LIMITS': rate_limits,
    }


@pytest.fixture
def app(audit_log_file):
    app = create_app(_test_config('sqlite://', audit_log_file))
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def file_app(tmp_path, audit_log_file):
    """App on a file-backed SQLite database, so several threads share the data."""
    app = create_app(_test_config(f"sqlite:///{tmp_path / 'mfa.db'}", audit_log_file))
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_account(app):
    def _make(email='user@example.com', role=Role.CLIENT, mfa_required=True,
              totp=False, email_mfa=False, is_active=True):
        account = Account(email=email, role=role, mfa_required=mfa_required, is_active=is_active)
        account.set_password(PASSWORD)
        if totp:
            account.totp_secret = pyotp.random_base32()
            account.mfa_totp_enabled = True
        account.mfa_email_enabled = email_mfa
        account.sync_enrollment_state()
        db.session.add(account)
        db.session.commit()
        return account
    return _make


@pytest.fixture
def backup_codes(app):
    """Issue a fresh batch for an account and return the plaintext codes."""
    def _issue(account):
        return BackupCode.generate(account.id)
    return _issue


@pytest.fixture
def sent_codes(monkeypatch):
    """Capture email login codes instead of delivering them."""
    outbox = []

    def _capture(to_email, code, expires_minutes=5):
        outbox.append((to_email, code))

    monkeypatch.setattr('mfa_gate.services.otp_issuer.send_login_otp_email', _capture)
    return outbox


def login(client, email, password=PASSWORD):
    return client.post('/login', json={'email': email, 'password': password})


def totp_now(account):
    return pyotp.TOTP(account.totp_secret).now()
