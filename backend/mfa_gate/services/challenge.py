"""
Second-factor challenge for a single login attempt.

State machine::

    awaiting_method_selection -> awaiting_code -> verified
                                      ^   |     -> cancelled
                                      +---+  (failed attempt)

The challenge is carried by a signed, short-lived token returned to the
client; nothing is held server side except the revocation of spent tokens.
"""
import enum
import logging
from datetime import datetime, timezone
from mfa_gate import db
from mfa_gate.errors import (
    BadRequest, InvalidChallenge, TotpInvalid, OtpInvalid, OtpExpired,
    OtpAlreadyUsed, BackupCodeInvalid, TooManyAttempts, VerificationFailed,
)
from mfa_gate.models import Account, BackupCode, OtpResult, RevokedToken
from mfa_gate.services import otp_issuer
from mfa_gate.utils.audit_logger import audit_log
from mfa_gate.utils.auth import (
    new_jti, challenge_expiry, encode_challenge_token, decode_challenge_token,
)
from mfa_gate.utils.email_sender import send_backup_code_used_email
from mfa_gate.utils.rate_limiter import mfa_verify_limiter, user_key
from mfa_gate.utils.totp import verify_totp

logger = logging.getLogger(__name__)


class Method(str, enum.Enum):
    TOTP = 'totp'
    EMAIL = 'email'
    BACKUP = 'backup'


class ChallengeState(str, enum.Enum):
    AWAITING_METHOD_SELECTION = 'awaiting_method_selection'
    AWAITING_CODE = 'awaiting_code'
    VERIFIED = 'verified'
    CANCELLED = 'cancelled'


_OTP_ERRORS = {
    OtpResult.EXPIRED: OtpExpired,
    OtpResult.INVALID: OtpInvalid,
    OtpResult.ALREADY_USED: OtpAlreadyUsed,
}


class VerificationAttempt:
    """A code tagged with the channel it belongs to."""

    def __init__(self, method, code):
        try:
            self.method = Method(method)
        except ValueError:
            raise BadRequest('method must be one of: totp, email, backup')
        self.code = str(code or '').strip()
        if not self.code:
            raise BadRequest('Verification code is required')

    @classmethod
    def totp(cls, code):
        return cls(Method.TOTP, code)

    @classmethod
    def email(cls, code):
        return cls(Method.EMAIL, code)

    @classmethod
    def backup(cls, code):
        return cls(Method.BACKUP, code)

    def __repr__(self):
        return f'<VerificationAttempt {self.method.value}>'


class VerificationResult:
    def __init__(self, account, method, backup_codes_remaining=None):
        self.account = account
        self.method = method
        self.backup_codes_remaining = backup_codes_remaining

    @property
    def used_backup_code(self):
        return self.method is Method.BACKUP


class Challenge:

    def __init__(self, user_id, available_methods, state=ChallengeState.AWAITING_METHOD_SELECTION,
                 method=None, jti=None, expires_at=None):
        self.user_id = user_id
        self.available_methods = dict(available_methods)
        self.state = ChallengeState(state)
        self.method = Method(method) if method else None
        self.jti = jti or new_jti()
        self.expires_at = expires_at or challenge_expiry()

    @classmethod
    def start(cls, account, now=None):
        return cls(account.id, account.available_methods(), expires_at=challenge_expiry(now))

    @classmethod
    def from_token(cls, token):
        payload = decode_challenge_token(token)
        if payload is None or RevokedToken.is_token_revoked(payload.get('jti')):
            raise InvalidChallenge()
        try:
            return cls(
                user_id=int(payload['sub']),
                available_methods=payload.get('methods', {}),
                state=payload.get('state', ChallengeState.AWAITING_METHOD_SELECTION),
                method=payload.get('method'),
                jti=payload['jti'],
                expires_at=datetime.fromtimestamp(payload['exp'], timezone.utc).replace(tzinfo=None),
            )
        except (KeyError, TypeError, ValueError):
            raise InvalidChallenge()

    def to_token(self):
        return encode_challenge_token({
            'sub': str(self.user_id),
            'methods': self.available_methods,
            'state': self.state.value,
            'method': self.method.value if self.method else None,
            'jti': self.jti,
            'exp': self.expires_at,
        })

    @property
    def is_open(self):
        return self.state in (ChallengeState.AWAITING_METHOD_SELECTION, ChallengeState.AWAITING_CODE)

    def _ensure_open(self):
        if not self.is_open:
            raise InvalidChallenge()

    def _account(self):
        account = db.session.get(Account, self.user_id)
        if not account or not account.is_active:
            raise InvalidChallenge()
        return account

    def _close(self, state):
        if not RevokedToken.revoke(self.jti, self.user_id, self.expires_at):
            raise InvalidChallenge()
        self.state = state

    def select_method(self, method, now=None):
        """Choose the channel to answer with. Email sends a code right away.

        Returns the OTP expiry for email, None otherwise.
        """
        self._ensure_open()
        method = Method(method)
        account = self._account()

        if method is Method.TOTP and not account.mfa_totp_enabled:
            raise BadRequest('Authenticator app verification is not enabled for this account')
        if method is Method.EMAIL and not account.mfa_email_enabled:
            raise BadRequest('Email verification is not enabled for this account')

        expires_at = None
        if method is Method.EMAIL:
            expires_at = otp_issuer.issue(account, now=now)
        self.method = method
        self.state = ChallengeState.AWAITING_CODE
        return expires_at

    def resend(self, now=None):
        """Reissue the email code and restart its 5-minute window."""
        self._ensure_open()
        if self.method is not Method.EMAIL or self.state is not ChallengeState.AWAITING_CODE:
            raise BadRequest('Resend is only available for email verification')
        return otp_issuer.issue(self._account(), now=now)

    def verify(self, attempt, now=None):
        """Check a VerificationAttempt; raises a VerificationFailed subclass on failure."""
        self._ensure_open()
        now = now or datetime.utcnow()
        account = self._account()
        key = user_key(account.id)

        if mfa_verify_limiter.is_limited(key):
            audit_log('MFA_VERIFY_FAILED', 'account', resource_id=str(account.id),
                      details={'reason': 'too_many_attempts'}, user_id=str(account.id))
            raise TooManyAttempts()

        if attempt.method is not Method.EMAIL:
            # Switching to TOTP or falling back to a backup code needs no extra step
            self.method = attempt.method
            self.state = ChallengeState.AWAITING_CODE

        try:
            remaining = self._dispatch(account, attempt, now)
        except VerificationFailed as error:
            mfa_verify_limiter.record(key)
            audit_log('MFA_VERIFY_FAILED', 'account', resource_id=str(account.id),
                      details={'method': attempt.method.value, 'reason': error.code},
                      user_id=str(account.id))
            raise

        mfa_verify_limiter.reset(key)
        account.mfa_last_used_at = now
        db.session.commit()
        self._close(ChallengeState.VERIFIED)

        audit_log('MFA_VERIFY_SUCCESS', 'account', resource_id=str(account.id),
                  details={'method': attempt.method.value}, user_id=str(account.id))
        if attempt.method is Method.BACKUP:
            logger.info('Backup code used for account %s, %s left', account.id, remaining)
            send_backup_code_used_email(account.email, remaining)
        return VerificationResult(account, attempt.method, backup_codes_remaining=remaining)

    def _dispatch(self, account, attempt, now):
        if attempt.method is Method.TOTP:
            if not account.mfa_totp_enabled or not verify_totp(account.totp_secret, attempt.code, now=now):
                raise TotpInvalid()
            return None

        if attempt.method is Method.BACKUP:
            remaining = BackupCode.consume(account.id, attempt.code, now=now)
            if remaining is None:
                raise BackupCodeInvalid()
            return remaining

        # Email codes are only accepted once email was selected for this challenge
        if self.method is not Method.EMAIL or not account.mfa_email_enabled:
            raise OtpInvalid()
        result = otp_issuer.verify(account.id, attempt.code, now=now)
        if result is not OtpResult.OK:
            raise _OTP_ERRORS[result]()
        return None

    def cancel(self):
        """Abandon the challenge. Any issued OTP simply runs out."""
        self._ensure_open()
        self._close(ChallengeState.CANCELLED)
        audit_log('MFA_CHALLENGE_CANCELLED', 'account', resource_id=str(self.user_id),
                  user_id=str(self.user_id))
