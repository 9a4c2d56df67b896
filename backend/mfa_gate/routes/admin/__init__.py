"""
Admin API routes.
"""
from functools import wraps
from flask import Blueprint, g
from mfa_gate.errors import Forbidden

admin_bp = Blueprint('admin', __name__)


def admin_required(f):
    """Decorator that requires the signed-in account (never the impersonated one) to be an admin.

    Must be stacked under login_required.
    """
    @wraps(f)
    def wrapper(*args, **kwargs):
        account = getattr(g, 'account', None)
        if not account or not account.is_admin:
            raise Forbidden('Admin access required')
        return f(*args, **kwargs)
    return wrapper


# Import submodules to register routes on admin_bp
from . import impersonation  # noqa: E402, F401
