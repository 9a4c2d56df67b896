"""
Outbound security mail: login codes and account notices.

Delivery goes through a pluggable backend picked by EMAIL_BACKEND:
'console' (log only, the default for development and tests), 'smtp' or
'sendgrid'.
"""
import os
import logging
import smtplib
from email.message import EmailMessage
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

METHOD_LABELS = {
    'totp': 'authenticator app',
    'email': 'email verification code',
}

TEMPLATES = {
    'login_otp': (
        'Your sign-in code',
        'Your sign-in code is {code}.\n\n'
        'It expires in {minutes} minutes and works once. If you did not try to '
        'sign in, change your password.',
    ),
    'mfa_enabled': (
        'Two-factor authentication enabled',
        'Two-factor authentication using your {label} was turned on for your account.\n\n'
        'If you did not make this change, contact support immediately.',
    ),
    'mfa_disabled': (
        'Two-factor authentication disabled',
        'Two-factor authentication using your {label} was turned off for your account.\n\n'
        'If you did not make this change, contact support immediately.',
    ),
    'backup_code_used': (
        'A backup code was used to sign in',
        'A backup code was just used to sign in to your account. '
        '{remaining} backup code(s) left.\n\n'
        'If this was not you, change your password and regenerate your backup codes.',
    ),
}


class EmailBackend(ABC):

    @abstractmethod
    def send(self, to_email, subject, body):
        """Deliver one plain-text message. Raises on failure."""


class ConsoleBackend(EmailBackend):
    """Logs the recipient and subject only; bodies can carry codes."""

    def send(self, to_email, subject, body):
        logger.info("[EMAIL] to=%s subject=%r (%d chars)", to_email, subject, len(body))


class SMTPBackend(EmailBackend):

    def __init__(self):
        self.host = os.getenv('SMTP_HOST')
        self.port = int(os.getenv('SMTP_PORT', '587'))
        self.user = os.getenv('SMTP_USER')
        self.password = os.getenv('SMTP_PASS')
        self.sender = os.getenv('SMTP_FROM_EMAIL') or self.user
        self.starttls = os.getenv('SMTP_USE_TLS', 'true').lower() == 'true'
        missing = [name for name, value in (('SMTP_HOST', self.host), ('SMTP_USER', self.user),
                                            ('SMTP_PASS', self.password)) if not value]
        if missing:
            raise ValueError(f"SMTP backend is missing {', '.join(missing)}")

    def send(self, to_email, subject, body):
        message = EmailMessage()
        message['From'] = self.sender
        message['To'] = to_email
        message['Subject'] = subject
        message.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=10) as server:
            if self.starttls:
                server.starttls()
            server.login(self.user, self.password)
            server.send_message(message)
        logger.info("Security email sent via SMTP to %s", to_email)


class SendGridBackend(EmailBackend):

    def __init__(self):
        self.api_key = os.getenv('SENDGRID_API_KEY')
        self.sender = os.getenv('SENDGRID_FROM_EMAIL', 'security@mfa-gate.local')
        if not self.api_key:
            raise ValueError("SendGrid backend requires SENDGRID_API_KEY")

    def send(self, to_email, subject, body):
        # Optional extra: pip install 'mfa-gate[sendgrid]'
        from sendgrid import SendGridAPIClient
        from sendgrid.helpers.mail import Mail

        message = Mail(from_email=self.sender, to_emails=to_email,
                       subject=subject, plain_text_content=body)
        response = SendGridAPIClient(self.api_key).send(message)
        logger.info("Security email sent via SendGrid to %s (status %s)",
                    to_email, response.status_code)


BACKENDS = {
    'console': ConsoleBackend,
    'smtp': SMTPBackend,
    'sendgrid': SendGridBackend,
}


def get_email_backend():
    name = os.getenv('EMAIL_BACKEND', 'console').lower()
    if name not in BACKENDS:
        raise ValueError(f"Unknown EMAIL_BACKEND: {name}")
    return BACKENDS[name]()


def send_template(to_email, template, **context):
    subject, body = TEMPLATES[template]
    get_email_backend().send(to_email, subject, body.format(**context))


def _notify(to_email, template, **context):
    """Account notices are best effort; a delivery failure must not fail the request."""
    try:
        send_template(to_email, template, **context)
    except Exception:
        logger.exception("Could not deliver '%s' notice to %s", template, to_email)


def send_login_otp_email(to_email, code, expires_minutes=5):
    """Deliver a login code. Errors propagate so the caller can report them."""
    send_template(to_email, 'login_otp', code=code, minutes=expires_minutes)


def send_mfa_enabled_email(to_email, method):
    _notify(to_email, 'mfa_enabled', label=METHOD_LABELS.get(method, method))


def send_mfa_disabled_email(to_email, method):
    _notify(to_email, 'mfa_disabled', label=METHOD_LABELS.get(method, method))


def send_backup_code_used_email(to_email, remaining):
    _notify(to_email, 'backup_code_used', remaining=remaining)
