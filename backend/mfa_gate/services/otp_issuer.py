"""
Email OTP issuing and verification.
"""
import logging
from mfa_gate.errors import DeliveryFailed
from mfa_gate.models import EmailOtp, OtpResult
from mfa_gate.models.email_otp import OTP_TTL
from mfa_gate.utils.audit_logger import audit_log
from mfa_gate.utils.email_sender import send_login_otp_email
from mfa_gate.utils.rate_limiter import otp_send_limiter, user_key

logger = logging.getLogger(__name__)


def issue(account, now=None):
    """Issue a fresh login code to ``account.email``.

    Any outstanding code stops working. Returns the new expiry; the code
    itself only ever goes to the delivery backend. A backend failure surfaces
    as DeliveryFailed; the send still counts against the limit.
    """
    key = user_key(account.id)
    otp_send_limiter.check(key)

    otp, code = EmailOtp.create_for_user(account.id, now=now)
    otp_send_limiter.record(key)

    try:
        send_login_otp_email(account.email, code, expires_minutes=int(OTP_TTL.total_seconds() // 60))
    except Exception as error:
        logger.exception('Login code delivery failed for account %s', account.id)
        audit_log('MFA_OTP_SEND_FAILED', 'account', resource_id=str(account.id),
                  details={'reason': type(error).__name__}, user_id=str(account.id))
        raise DeliveryFailed() from error

    audit_log('MFA_OTP_SENT', 'account', resource_id=str(account.id),
              details={'expires_at': otp.expires_at.isoformat()}, user_id=str(account.id))
    return otp.expires_at


def verify(user_id, candidate, now=None) -> OtpResult:
    result = EmailOtp.verify(user_id, candidate, now=now)
    if result is not OtpResult.OK:
        logger.info('Email OTP verification failed for account %s: %s', user_id, result.value)
    return result
