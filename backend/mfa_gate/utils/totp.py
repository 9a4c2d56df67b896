"""
TOTP validation (RFC 6238): 30-second steps, one step of drift tolerated.
"""
import calendar
from datetime import datetime
import pyotp
from flask import current_app

VALID_WINDOW = 1


def generate_secret() -> str:
    return pyotp.random_base32()


def provisioning_uri(secret: str, email: str) -> str:
    """otpauth:// URI for QR rendering in the authenticator app."""
    return pyotp.TOTP(secret).provisioning_uri(
        name=email,
        issuer_name=current_app.config.get('MFA_ISSUER_NAME', 'Secure2Send'),
    )


def _as_timestamp(now) -> int:
    # Naive datetimes throughout the app are UTC; pyotp would read them as local time
    if now is None:
        now = datetime.utcnow()
    if isinstance(now, datetime):
        return calendar.timegm(now.utctimetuple())
    return int(now)


def verify_totp(secret: str, code, now=None) -> bool:
    """True if ``code`` matches the current, previous or next time step."""
    if not secret:
        return False
    code = str(code or '').strip().replace(' ', '')
    if len(code) != 6 or not code.isdigit():
        return False
    return pyotp.TOTP(secret).verify(code, for_time=_as_timestamp(now), valid_window=VALID_WINDOW)
