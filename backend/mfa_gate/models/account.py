"""
Account model. Owned by account management; the MFA flows only read it and
flip the MFA flags and secret.
"""
import enum
import logging
from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash
from sqlalchemy.orm import validates
from mfa_gate import db
from mfa_gate.utils.encryption import encrypt_field, decrypt_field

logger = logging.getLogger(__name__)


class Role:
    ADMIN = 'ADMIN'
    CLIENT = 'CLIENT'
    AGENT = 'AGENT'


class EnrollmentState(str, enum.Enum):
    UNENROLLED = 'unenrolled'        # no channel, MFA optional
    SETUP_PENDING = 'setup_pending'  # no channel, MFA required before any protected access
    ENROLLED = 'enrolled'            # at least one channel active


class Account(db.Model):
    __tablename__ = 'accounts'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(254), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(16), nullable=False, default=Role.CLIENT, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    mfa_totp_enabled = db.Column(db.Boolean, nullable=False, default=False)
    mfa_email_enabled = db.Column(db.Boolean, nullable=False, default=False)
    mfa_required = db.Column(db.Boolean, nullable=False, default=True)
    mfa_state = db.Column(db.String(20), nullable=False, default=EnrollmentState.SETUP_PENDING.value)
    _totp_secret_encrypted = db.Column('totp_secret', db.Text, nullable=True)
    _pending_totp_secret_encrypted = db.Column('pending_totp_secret', db.Text, nullable=True)
    mfa_setup_at = db.Column(db.DateTime, nullable=True)
    mfa_last_used_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    backup_codes = db.relationship('BackupCode', backref='account', lazy='dynamic')
    email_otps = db.relationship('EmailOtp', backref='account', lazy='dynamic')

    @property
    def totp_secret(self) -> str:
        return decrypt_field(self._totp_secret_encrypted) if self._totp_secret_encrypted else None

    @totp_secret.setter
    def totp_secret(self, value: str):
        self._totp_secret_encrypted = encrypt_field(value) if value else None

    @property
    def pending_totp_secret(self) -> str:
        if not self._pending_totp_secret_encrypted:
            return None
        return decrypt_field(self._pending_totp_secret_encrypted)

    @pending_totp_secret.setter
    def pending_totp_secret(self, value: str):
        self._pending_totp_secret_encrypted = encrypt_field(value) if value else None

    @validates('email')
    def _normalize_email(self, key, value):
        return value.strip().lower() if value else value

    def set_password(self, raw: str) -> None:
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        if not self.password_hash or not raw:
            return False
        return check_password_hash(self.password_hash, raw)

    @property
    def is_admin(self):
        return self.role == Role.ADMIN

    @property
    def enrollment_state(self) -> EnrollmentState:
        return EnrollmentState(self.mfa_state)

    @property
    def has_mfa_channel(self):
        return bool(self.mfa_totp_enabled or self.mfa_email_enabled)

    def sync_enrollment_state(self):
        """Recompute mfa_state from the channel flags and the mfa_required policy."""
        if self.has_mfa_channel:
            state = EnrollmentState.ENROLLED
        elif self.mfa_required:
            state = EnrollmentState.SETUP_PENDING
        else:
            state = EnrollmentState.UNENROLLED
        if self.mfa_state != state.value:
            logger.info('Account %s enrollment state %s -> %s', self.id, self.mfa_state, state.value)
        self.mfa_state = state.value
        return state

    def available_methods(self) -> dict:
        return {'totp': bool(self.mfa_totp_enabled), 'email': bool(self.mfa_email_enabled)}

    def to_dict(self):
        """Public account representation. Never includes hashes or secrets."""
        return {
            'id': self.id,
            'email': self.email,
            'role': self.role,
            'isActive': self.is_active,
            'mfaEnabled': bool(self.mfa_totp_enabled),
            'mfaEmailEnabled': bool(self.mfa_email_enabled),
            'mfaRequired': bool(self.mfa_required),
            'mfaState': self.mfa_state,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    @staticmethod
    def find_by_email(email: str):
        if not email:
            return None
        return Account.query.filter_by(email=email.strip().lower()).first()

    def __repr__(self):
        return f'<Account {self.id} {self.role}>'
