"""
Audit trail for authentication, MFA and impersonation events.

One JSON object per line in AUDIT_LOG_FILE. While an admin is impersonating,
entries carry both the admin (actor_id) and the account acted upon
(acting_as). Codes, secrets and passwords never go in ``details``.
"""
import os
import logging
import structlog
from datetime import datetime, timezone
from functools import wraps
from flask import current_app, request, g, has_request_context, has_app_context

AUDIT_LOGGER_NAME = 'audit'

_PROCESSORS = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.format_exc_info,
    structlog.processors.JSONRenderer(),
]


def setup_audit_logging(app):
    """Point the audit logger at AUDIT_LOG_FILE and store a bound logger on the app."""
    log_file = app.config.get('AUDIT_LOG_FILE') or os.getenv('AUDIT_LOG_FILE', 'logs/audit.log')
    if os.path.dirname(log_file):
        os.makedirs(os.path.dirname(log_file), exist_ok=True)

    structlog.configure(
        processors=_PROCESSORS,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    stdlib_logger = logging.getLogger(AUDIT_LOGGER_NAME)
    stdlib_logger.setLevel(logging.INFO)
    # create_app may run more than once per process (tests, CLI)
    target = os.path.abspath(log_file)
    if not any(getattr(h, 'baseFilename', None) == target for h in stdlib_logger.handlers):
        handler = logging.FileHandler(log_file)
        handler.setFormatter(logging.Formatter('%(message)s'))
        stdlib_logger.addHandler(handler)

    app.config['AUDIT_LOGGER'] = structlog.get_logger(AUDIT_LOGGER_NAME)


def get_audit_logger():
    if has_app_context() and 'AUDIT_LOGGER' in current_app.config:
        return current_app.config['AUDIT_LOGGER']
    return structlog.get_logger(AUDIT_LOGGER_NAME)


def _request_meta():
    if not has_request_context():
        return 'unknown', 'unknown'
    return request.remote_addr or 'unknown', request.headers.get('User-Agent', 'unknown')


def audit_log(action: str, resource_type: str, resource_id: str = None,
              details: dict = None, user_id: str = None):
    """
    Record an audit event.

    Args:
        action: LOGIN, LOGIN_FAILED, MFA_VERIFY_SUCCESS, IMPERSONATION_START, ...
        resource_type: 'account' or 'session'
        resource_id: the account or session the event concerns (optional)
        details: extra structured fields, e.g. {'method': 'totp', 'reason': 'otp_expired'}
        user_id: who acted; defaults to g.actor_id, then 'anonymous'
    """
    acting_as = None
    if has_app_context():
        if user_id is None:
            user_id = getattr(g, 'actor_id', None)
        acting_as = getattr(g, 'impersonated_id', None)

    client_ip, user_agent = _request_meta()
    entry = {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'action': action,
        'resource_type': resource_type,
        'resource_id': resource_id,
        'user_id': str(user_id) if user_id is not None else 'anonymous',
        'client_ip': client_ip,
        'user_agent': user_agent,
        'details': details or {},
    }
    if acting_as is not None:
        entry['actor_id'] = entry['user_id']
        entry['acting_as'] = str(acting_as)

    get_audit_logger().info("audit_event", **entry)


def audit_access(action: str, resource_type: str):
    """Decorator recording each call to a protected view against the effective account."""
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            resource_id = getattr(g, 'effective_account_id', None)
            audit_log(action, resource_type, resource_id=str(resource_id) if resource_id else None)
            return f(*args, **kwargs)
        return wrapper
    return decorator
