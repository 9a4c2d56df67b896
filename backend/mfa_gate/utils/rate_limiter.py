"""
Sliding-window attempt limits stored in the database.

Each limiter has a name that doubles as its key in app.config['RATE_LIMITS'],
so thresholds are configuration rather than code.
"""
from datetime import datetime, timedelta
from functools import wraps
from flask import request, current_app
from mfa_gate.errors import TooManyAttempts


class DBRateLimiter:
    """Count attempts per key inside a rolling window.

    ``default`` is used only when the app config has no entry for ``name``.
    """

    def __init__(self, name, default):
        self.name = name
        self.default = default

    def limits(self):
        """(max_attempts, window_seconds) currently in force."""
        return current_app.config.get('RATE_LIMITS', {}).get(self.name, self.default)

    def attempts(self, key):
        from mfa_gate.models.rate_limit_entry import RateLimitEntry
        _, window = self.limits()
        return RateLimitEntry.count_since(key, self.name, datetime.utcnow() - timedelta(seconds=window))

    def is_limited(self, key):
        max_attempts, _ = self.limits()
        return self.attempts(key) >= max_attempts

    def check(self, key):
        if self.is_limited(key):
            raise TooManyAttempts()

    def record(self, key):
        from mfa_gate.models.rate_limit_entry import RateLimitEntry
        RateLimitEntry.add(key, self.name)

    def reset(self, key):
        from mfa_gate.models.rate_limit_entry import RateLimitEntry
        RateLimitEntry.clear(key, self.name)


# Every login request, per client IP
login_limiter = DBRateLimiter('login', (5, 60))

# Wrong passwords, per email
login_failure_limiter = DBRateLimiter('login_failures', (10, 900))

# Failed second-factor attempts, per user; cleared on success
mfa_verify_limiter = DBRateLimiter('mfa_verify', (5, 600))

# Email codes sent, per user
otp_send_limiter = DBRateLimiter('otp_send', (3, 900))


def user_key(user_id):
    return f'user:{user_id}'


def rate_limit(limiter):
    """Decorator factory: count every call to the view against the client IP."""
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            client_ip = request.remote_addr or 'unknown'
            limiter.check(client_ip)
            limiter.record(client_ip)
            return f(*args, **kwargs)
        return wrapper
    return decorator


rate_limit_login = rate_limit(login_limiter)
