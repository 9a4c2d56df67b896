"""
Email one-time codes for login verification.
"""
import enum
from datetime import datetime, timedelta
from mfa_gate import db
from mfa_gate.utils.codes import hash_code, check_code, generate_numeric_code

OTP_TTL = timedelta(minutes=5)


class OtpResult(str, enum.Enum):
    OK = 'ok'
    EXPIRED = 'otp_expired'
    INVALID = 'otp_invalid'
    ALREADY_USED = 'otp_already_used'


class EmailOtp(db.Model):
    """One row per issued code. Only the salted hash is stored."""
    __tablename__ = 'email_otps'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('accounts.id'), nullable=False, index=True)
    code_hash = db.Column(db.String(255), nullable=False)
    issued_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)
    consumed = db.Column(db.Boolean, nullable=False, default=False)
    consumed_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.Index('ix_email_otps_user_issued', 'user_id', 'issued_at'),
    )

    @classmethod
    def create_for_user(cls, user_id, now=None):
        """Invalidate outstanding codes and store a new one (5-min expiry).

        Returns ``(otp, plaintext_code)``; the plaintext exists only for delivery.
        """
        now = now or datetime.utcnow()
        # Mark every unconsumed code as consumed, expired or not
        cls.query.filter_by(user_id=user_id, consumed=False).update(
            {'consumed': True, 'consumed_at': now}, synchronize_session=False
        )

        code = generate_numeric_code()
        otp = cls(
            user_id=user_id,
            code_hash=hash_code(code),
            issued_at=now,
            expires_at=now + OTP_TTL,
        )
        db.session.add(otp)
        db.session.commit()
        return otp, code

    @classmethod
    def latest_for_user(cls, user_id):
        return (
            cls.query.filter_by(user_id=user_id)
            .order_by(cls.issued_at.desc(), cls.id.desc())
            .first()
        )

    @classmethod
    def verify(cls, user_id, candidate, now=None) -> OtpResult:
        """Check ``candidate`` against the user's latest code and consume it on match."""
        now = now or datetime.utcnow()
        otp = cls.latest_for_user(user_id)
        if otp is None:
            return OtpResult.INVALID
        if now > otp.expires_at:
            return OtpResult.EXPIRED
        if otp.consumed:
            return OtpResult.ALREADY_USED
        if not check_code(otp.code_hash, str(candidate or '').strip()):
            return OtpResult.INVALID
        if not otp.mark_consumed(now):
            return OtpResult.ALREADY_USED
        return OtpResult.OK

    def mark_consumed(self, now=None) -> bool:
        """Conditional consume: only the caller whose UPDATE hits the row wins."""
        updated = type(self).query.filter_by(id=self.id, consumed=False).update(
            {'consumed': True, 'consumed_at': now or datetime.utcnow()},
            synchronize_session=False,
        )
        db.session.commit()
        return updated == 1

    def __repr__(self):
        return f'<EmailOtp user={self.user_id} consumed={self.consumed}>'
