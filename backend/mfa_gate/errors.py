"""
Error taxonomy for the authentication and MFA flows.

Services raise these; the handler registered in ``create_app`` renders them.
``code`` is the structured reason for callers and audit records, ``message``
is what the client sees. Verification failures all share one message so the
response does not reveal which channel or check failed.
"""


class AuthError(Exception):
    code = 'auth_error'
    status_code = 400
    message = 'Request could not be completed'

    def __init__(self, message=None, **extra):
        super().__init__(message or self.message)
        if message:
            self.message = message
        self.extra = extra

    def to_dict(self):
        data = {'error': self.message}
        data.update(self.extra)
        return data


class BadRequest(AuthError):
    code = 'bad_request'
    status_code = 400
    message = 'Invalid request'


class InvalidCredentials(AuthError):
    code = 'invalid_credentials'
    status_code = 401
    message = 'Invalid email or password'


class Unauthorized(AuthError):
    code = 'unauthorized'
    status_code = 401
    message = 'Authentication required'


class InvalidChallenge(AuthError):
    code = 'invalid_challenge'
    status_code = 401
    message = 'Verification session expired. Please log in again.'


class Forbidden(AuthError):
    code = 'forbidden'
    status_code = 403
    message = 'Forbidden'


class SetupIncomplete(AuthError):
    code = 'setup_incomplete'
    status_code = 403
    message = 'MFA setup required before accessing this resource'

    def __init__(self, message=None, **extra):
        extra.setdefault('mfaSetupRequired', True)
        super().__init__(message, **extra)


class NotFound(AuthError):
    code = 'not_found'
    status_code = 404
    message = 'Not found'


class TooManyAttempts(AuthError):
    code = 'too_many_attempts'
    status_code = 429
    message = 'Too many attempts. Try again later.'


class VerificationFailed(AuthError):
    """Base for every second-factor failure. Recoverable by retry or resend."""
    code = 'verification_failed'
    status_code = 401
    message = 'Invalid verification code'

    # Email-code failures where requesting a fresh code is the way forward
    suggests_resend = False

    def to_dict(self):
        data = super().to_dict()
        if self.suggests_resend:
            data['resend'] = True
        return data


class TotpInvalid(VerificationFailed):
    code = 'totp_invalid'


class OtpInvalid(VerificationFailed):
    code = 'otp_invalid'


class OtpExpired(VerificationFailed):
    code = 'otp_expired'
    suggests_resend = True


class OtpAlreadyUsed(VerificationFailed):
    code = 'otp_already_used'
    suggests_resend = True


class BackupCodeInvalid(VerificationFailed):
    code = 'backup_code_invalid'


class DeliveryFailed(AuthError):
    """The email backend could not take the message; asking again may work."""
    code = 'delivery_failed'
    status_code = 503
    message = 'Could not send verification code. Try again shortly.'

    def to_dict(self):
        data = super().to_dict()
        data['resend'] = True
        return data
