"""
Challenge tokens and route guards.

A challenge token is a short-lived signed JWT minted when a password check
succeeds for an MFA-enabled account. Verification endpoints identify the
user only through it.
"""
import secrets
import jwt
from datetime import datetime, timedelta
from functools import wraps
from flask import request, g, current_app

CHALLENGE_PURPOSE = 'mfa_challenge'

# Endpoints a setup-pending session may reach
_SETUP_ALLOWLIST = {
    'auth.logout',
    'auth.current_user',
    'mfa.status',
    'mfa.setup_totp',
    'mfa.confirm_totp',
    'mfa.setup_email',
}


def new_jti() -> str:
    return secrets.token_hex(16)


def challenge_expiry(now=None) -> datetime:
    now = now or datetime.utcnow()
    return now + timedelta(seconds=current_app.config.get('CHALLENGE_TOKEN_TTL', 600))


def encode_challenge_token(claims: dict) -> str:
    payload = dict(claims)
    payload['purpose'] = CHALLENGE_PURPOSE
    payload.setdefault('iat', datetime.utcnow())
    return jwt.encode(payload, current_app.config['JWT_SECRET_KEY'], algorithm='HS256')


def decode_challenge_token(token: str) -> dict:
    """Decode and validate a challenge token. Returns None when unusable."""
    if not token or not isinstance(token, str):
        return None
    try:
        payload = jwt.decode(token, current_app.config['JWT_SECRET_KEY'], algorithms=['HS256'])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None
    if payload.get('purpose') != CHALLENGE_PURPOSE:
        return None
    return payload


def login_required(f):
    """Require an authenticated cookie session.

    Also checks:
    - the account still exists and is active
    - setup-pending sessions only reach enrollment endpoints
    Sets g.account_id / g.actor_id (true actor) and g.effective_account_id
    (impersonation target if any).
    """
    @wraps(f)
    def wrapper(*args, **kwargs):
        from mfa_gate.errors import Unauthorized, SetupIncomplete
        from mfa_gate import db
        from mfa_gate.models import Account, EnrollmentState
        from mfa_gate.services import session as auth_session

        ctx = auth_session.current()
        if ctx is None:
            raise Unauthorized()

        account = db.session.get(Account, ctx.account_id)
        if not account or not account.is_active:
            auth_session.end()
            raise Unauthorized('Account is deactivated')

        g.account = account
        g.account_id = account.id
        g.actor_id = account.id
        g.impersonated_id = ctx.target_id
        g.effective_account_id = ctx.effective_account_id
        g.session_ctx = ctx

        if request.endpoint not in _SETUP_ALLOWLIST:
            pending = ctx.setup_pending or account.enrollment_state == EnrollmentState.SETUP_PENDING
            if pending:
                raise SetupIncomplete()

        return f(*args, **kwargs)
    return wrapper


def verified_session_required(f):
    """Require a session that passed a second factor (management operations)."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        from mfa_gate.errors import Forbidden
        if not g.session_ctx.mfa_verified:
            raise Forbidden('A verified session is required')
        return f(*args, **kwargs)
    return wrapper
