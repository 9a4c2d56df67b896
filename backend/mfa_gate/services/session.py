"""
Session materialization and the admin impersonation boundary.

Sessions live in Flask's signed cookie. Only this module writes them.
"""
import logging
from flask import session
from mfa_gate import db
from mfa_gate.errors import Forbidden, NotFound, BadRequest
from mfa_gate.models import Account, Role
from mfa_gate.utils.audit_logger import audit_log

logger = logging.getLogger(__name__)


class SessionContext:
    """Read-only view of the cookie session."""

    def __init__(self, account_id, role, mfa_verified=False, setup_pending=False,
                 impersonating=None):
        self.account_id = account_id
        self.role = role
        self.mfa_verified = bool(mfa_verified)
        self.setup_pending = bool(setup_pending)
        self.impersonating = impersonating

    @property
    def target_id(self):
        return self.impersonating['target_id'] if self.impersonating else None

    @property
    def effective_account_id(self):
        """Account that data access resolves against."""
        return self.target_id or self.account_id

    def to_dict(self):
        return {
            'accountId': self.account_id,
            'role': self.role,
            'mfaVerified': self.mfa_verified,
            'setupPending': self.setup_pending,
            'impersonating': dict(self.impersonating) if self.impersonating else None,
        }


def _write(account, mfa_verified, setup_pending):
    session.clear()
    session.permanent = True
    session['account_id'] = account.id
    session['role'] = account.role
    session['mfa_verified'] = mfa_verified
    session['setup_pending'] = setup_pending
    return current()


def materialize(account):
    """Full session after a verified challenge, or direct login with no MFA in play."""
    return _write(account, mfa_verified=True, setup_pending=False)


def begin_setup_session(account):
    """Restricted session for an account that must enroll before anything else."""
    return _write(account, mfa_verified=False, setup_pending=True)


def complete_setup(account, factor_verified):
    """Leave setup-pending once enrollment finished.

    ``factor_verified`` is True when enrollment itself proved possession of
    the factor (TOTP confirmation).
    """
    ctx = current()
    verified = bool(factor_verified or (ctx and ctx.mfa_verified))
    return _write(account, mfa_verified=verified, setup_pending=False)


def current():
    """The current SessionContext, or None when nobody is signed in."""
    account_id = session.get('account_id')
    if account_id is None:
        return None
    return SessionContext(
        account_id=account_id,
        role=session.get('role'),
        mfa_verified=session.get('mfa_verified', False),
        setup_pending=session.get('setup_pending', False),
        impersonating=session.get('impersonating'),
    )


def effective_account_id():
    ctx = current()
    return ctx.effective_account_id if ctx else None


def end():
    session.clear()


def impersonate(target_id):
    """Bind the admin's session to ``target_id``.

    The admin's own session must hold role ADMIN and a verified second factor.
    """
    ctx = current()
    admin = db.session.get(Account, ctx.account_id) if ctx else None
    if not admin or admin.role != Role.ADMIN or not ctx.mfa_verified:
        audit_log('IMPERSONATION_DENIED', 'session',
                  resource_id=str(target_id) if target_id else None,
                  user_id=str(ctx.account_id) if ctx else None)
        raise Forbidden('Admin access with verified MFA required')

    if ctx.impersonating:
        raise BadRequest('Already impersonating. Stop the current impersonation first.')

    target = db.session.get(Account, target_id) if target_id else None
    if not target:
        raise NotFound('User not found')
    if target.role != Role.CLIENT:
        raise BadRequest('Can only impersonate client users')

    session['impersonating'] = {'admin_id': admin.id, 'target_id': target.id}
    audit_log('IMPERSONATION_START', 'session', resource_id=str(target.id),
              details={'target_email': target.email}, user_id=str(admin.id))
    logger.info('Admin %s started impersonating account %s', admin.id, target.id)
    return current(), admin, target


def stop_impersonation():
    ctx = current()
    if not ctx or not ctx.impersonating:
        raise BadRequest('Not currently impersonating')

    binding = session.pop('impersonating')
    audit_log('IMPERSONATION_END', 'session', resource_id=str(binding['target_id']),
              user_id=str(binding['admin_id']))
    logger.info('Admin %s stopped impersonating account %s',
                binding['admin_id'], binding['target_id'])
    return current()
