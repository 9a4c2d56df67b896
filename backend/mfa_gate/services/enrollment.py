"""
MFA enrollment (first-time setup) and channel management.
"""
from datetime import datetime
from mfa_gate import db
from mfa_gate.errors import Forbidden, InvalidCredentials, SetupIncomplete, TotpInvalid
from mfa_gate.models import BackupCode, EnrollmentState
from mfa_gate.utils import totp
from mfa_gate.utils.audit_logger import audit_log
from mfa_gate.utils.email_sender import send_mfa_enabled_email, send_mfa_disabled_email


def _ensure_not_enrolled(account):
    if account.enrollment_state == EnrollmentState.ENROLLED:
        raise Forbidden('MFA is already configured for this account')


def _confirm_password(account, password):
    if not account.check_password(password):
        audit_log('MFA_PASSWORD_CONFIRM_FAILED', 'account', resource_id=str(account.id),
                  user_id=str(account.id))
        raise InvalidCredentials('Invalid password')


def _ensure_channel_off(enabled, label):
    if enabled:
        raise Forbidden(f'{label} MFA is already enabled')


def _start_totp(account):
    secret = totp.generate_secret()
    account.pending_totp_secret = secret
    db.session.commit()

    audit_log('MFA_SETUP_STARTED', 'account', resource_id=str(account.id),
              details={'method': 'totp'}, user_id=str(account.id))
    return secret, totp.provisioning_uri(secret, account.email)


def setup_totp(account):
    """Start first-time TOTP enrollment with a new pending secret.

    Nothing is enabled until confirm_totp succeeds.
    """
    _ensure_not_enrolled(account)
    return _start_totp(account)


def add_totp(account, password):
    """Start TOTP on an account that already verifies with email."""
    _confirm_password(account, password)
    _ensure_channel_off(account.mfa_totp_enabled, 'Authenticator app')
    return _start_totp(account)


def confirm_totp(account, code, now=None):
    """Activate TOTP after the first code from the authenticator app checks out.

    Returns the 10 plaintext backup codes; they are not retrievable later.
    """
    _ensure_not_enrolled(account)
    return _activate_totp(account, code, now)


def confirm_added_totp(account, code, now=None):
    _ensure_channel_off(account.mfa_totp_enabled, 'Authenticator app')
    return _activate_totp(account, code, now)


def _activate_totp(account, code, now):
    pending = account.pending_totp_secret
    if not pending:
        raise SetupIncomplete('TOTP setup not initiated. Request a new authenticator secret first.')

    if not totp.verify_totp(pending, code, now=now):
        audit_log('MFA_SETUP_FAILED', 'account', resource_id=str(account.id),
                  details={'method': 'totp', 'reason': 'totp_invalid'}, user_id=str(account.id))
        raise TotpInvalid()

    account.totp_secret = pending
    account.pending_totp_secret = None
    account.mfa_totp_enabled = True
    account.mfa_setup_at = now or datetime.utcnow()
    account.sync_enrollment_state()
    db.session.commit()

    backup_codes = BackupCode.generate(account.id)

    audit_log('MFA_SETUP_COMPLETE', 'account', resource_id=str(account.id),
              details={'method': 'totp'}, user_id=str(account.id))
    send_mfa_enabled_email(account.email, 'totp')
    return backup_codes


def setup_email(account):
    """Enable email codes as the second factor. No backup codes for this channel."""
    _ensure_not_enrolled(account)
    _enable_email(account)


def add_email(account, password):
    """Turn on email codes next to an authenticator app."""
    _confirm_password(account, password)
    _ensure_channel_off(account.mfa_email_enabled, 'Email')
    _enable_email(account)


def _enable_email(account):
    account.mfa_email_enabled = True
    account.mfa_setup_at = datetime.utcnow()
    account.sync_enrollment_state()
    db.session.commit()

    audit_log('MFA_SETUP_COMPLETE', 'account', resource_id=str(account.id),
              details={'method': 'email'}, user_id=str(account.id))
    send_mfa_enabled_email(account.email, 'email')


def regenerate_backup_codes(account, password):
    _confirm_password(account, password)
    if not account.mfa_totp_enabled:
        raise Forbidden('Backup codes are only available with authenticator app MFA')

    codes = BackupCode.generate(account.id)
    audit_log('MFA_BACKUP_CODES_REGENERATED', 'account', resource_id=str(account.id),
              user_id=str(account.id))
    return codes


def disable_totp(account, password):
    _confirm_password(account, password)
    if not account.mfa_totp_enabled:
        raise Forbidden('Authenticator app MFA is not enabled')

    account.mfa_totp_enabled = False
    account.totp_secret = None
    BackupCode.invalidate_all(account.id)
    state = account.sync_enrollment_state()
    db.session.commit()

    audit_log('MFA_DISABLED', 'account', resource_id=str(account.id),
              details={'method': 'totp', 'state': state.value}, user_id=str(account.id))
    send_mfa_disabled_email(account.email, 'totp')
    return state


def disable_email(account, password):
    _confirm_password(account, password)
    if not account.mfa_email_enabled:
        raise Forbidden('Email MFA is not enabled')

    account.mfa_email_enabled = False
    state = account.sync_enrollment_state()
    db.session.commit()

    audit_log('MFA_DISABLED', 'account', resource_id=str(account.id),
              details={'method': 'email', 'state': state.value}, user_id=str(account.id))
    send_mfa_disabled_email(account.email, 'email')
    return state


def mfa_status(account):
    return {
        'state': account.mfa_state,
        'required': bool(account.mfa_required),
        'totpEnabled': bool(account.mfa_totp_enabled),
        'emailEnabled': bool(account.mfa_email_enabled),
        'setupAt': account.mfa_setup_at.isoformat() if account.mfa_setup_at else None,
        'lastUsed': account.mfa_last_used_at.isoformat() if account.mfa_last_used_at else None,
        'backupCodesRemaining': BackupCode.remaining(account.id),
    }
