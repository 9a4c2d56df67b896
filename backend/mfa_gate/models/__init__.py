from .account import Account, Role, EnrollmentState
from .email_otp import EmailOtp, OtpResult
from .backup_code import BackupCode
from .rate_limit_entry import RateLimitEntry
from .revoked_token import RevokedToken
