from .encryption import encrypt_field, decrypt_field
from .audit_logger import audit_log, audit_access
from .auth import login_required, verified_session_required
from .rate_limiter import rate_limit_login
