"""
Password check and the decision on what follows it.
"""
import enum
from werkzeug.security import generate_password_hash, check_password_hash
from mfa_gate.errors import InvalidCredentials
from mfa_gate.models import Account
from mfa_gate.services.challenge import Challenge
from mfa_gate.utils.audit_logger import audit_log
from mfa_gate.utils.rate_limiter import login_failure_limiter

# Compared against when the email is unknown so both paths cost the same
_DUMMY_HASH = generate_password_hash('not-a-real-password')


class LoginOutcome(str, enum.Enum):
    AUTHENTICATED = 'authenticated'
    CHALLENGE_ISSUED = 'challenge_issued'
    SETUP_REQUIRED = 'setup_required'


class LoginResult:
    def __init__(self, outcome, account, challenge=None):
        self.outcome = outcome
        self.account = account
        self.challenge = challenge

    @property
    def available_methods(self):
        return self.account.available_methods()


def _failure_key(email):
    return f'email:{email}'


def authenticate(email, password) -> LoginResult:
    """Check credentials.

    Raises InvalidCredentials for any unknown email, wrong password or
    inactive account, with one message for all three.
    """
    email = (email or '').strip().lower()
    key = _failure_key(email)
    login_failure_limiter.check(key)

    account = Account.find_by_email(email)
    if account is None:
        check_password_hash(_DUMMY_HASH, password or '')
        password_ok = False
    else:
        password_ok = account.check_password(password)

    if not password_ok or not account.is_active:
        login_failure_limiter.record(key)
        audit_log('LOGIN_FAILED', 'account',
                  resource_id=str(account.id) if account else None,
                  details={'reason': 'invalid_credentials'},
                  user_id=str(account.id) if account else None)
        raise InvalidCredentials()

    login_failure_limiter.reset(key)

    if account.has_mfa_channel:
        audit_log('LOGIN_MFA_REQUIRED', 'account', resource_id=str(account.id),
                  details={'methods': account.available_methods()}, user_id=str(account.id))
        return LoginResult(LoginOutcome.CHALLENGE_ISSUED, account, Challenge.start(account))

    if account.mfa_required:
        audit_log('LOGIN_MFA_SETUP_REQUIRED', 'account', resource_id=str(account.id),
                  user_id=str(account.id))
        return LoginResult(LoginOutcome.SETUP_REQUIRED, account)

    audit_log('LOGIN', 'account', resource_id=str(account.id), user_id=str(account.id))
    return LoginResult(LoginOutcome.AUTHENTICATED, account)
