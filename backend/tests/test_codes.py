"""Code generation, normalization and TOTP window checks."""
import calendar
from datetime import datetime

import pyotp

from mfa_gate.utils import codes, totp


def test_numeric_code_is_six_digits():
    for _ in range(50):
        code = codes.generate_numeric_code()
        assert len(code) == 6
        assert code.isdigit()


def test_backup_code_format():
    for _ in range(50):
        code = codes.generate_backup_code()
        assert codes.BACKUP_CODE_PATTERN.match(code)


def test_backup_code_normalization():
    assert codes.normalize_backup_code(' ab12-cd34 ') == 'AB12-CD34'
    assert codes.backup_code_digest_input('ab12cd34') == 'AB12CD34'
    assert codes.backup_code_digest_input('AB12-CD34') == 'AB12CD34'
    assert codes.backup_code_digest_input(None) == ''


def test_hashed_code_checks_out(app):
    hashed = codes.hash_code('123456')
    assert hashed != '123456'
    assert codes.check_code(hashed, '123456')
    assert not codes.check_code(hashed, '654321')
    assert not codes.check_code(hashed, '')


def test_totp_accepts_one_step_of_drift(app):
    secret = pyotp.random_base32()
    now = datetime(2026, 1, 1, 12, 0, 15)
    ts = calendar.timegm(now.utctimetuple())

    assert totp.verify_totp(secret, pyotp.TOTP(secret).at(ts), now=now)
    assert totp.verify_totp(secret, pyotp.TOTP(secret).at(ts - 30), now=now)
    assert totp.verify_totp(secret, pyotp.TOTP(secret).at(ts + 30), now=now)
    assert not totp.verify_totp(secret, pyotp.TOTP(secret).at(ts - 90), now=now)
    assert not totp.verify_totp(secret, pyotp.TOTP(secret).at(ts + 90), now=now)


def test_totp_rejects_malformed_codes(app):
    secret = pyotp.random_base32()
    assert not totp.verify_totp(secret, 'abcdef')
    assert not totp.verify_totp(secret, '12345')
    assert not totp.verify_totp(None, '123456')


def test_provisioning_uri_carries_issuer(app):
    secret = totp.generate_secret()
    uri = totp.provisioning_uri(secret, 'user@example.com')
    assert uri.startswith('otpauth://totp/')
    assert 'issuer=' in uri
    assert secret in uri
