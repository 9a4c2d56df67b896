"""
Single-use recovery codes issued alongside TOTP enrollment.
"""
from datetime import datetime
from mfa_gate import db
from mfa_gate.utils.codes import (
    hash_code, check_code, generate_backup_code, backup_code_digest_input,
)

BACKUP_CODES_COUNT = 10


class BackupCode(db.Model):
    """Hashed recovery code. A code is live while unused and not superseded."""
    __tablename__ = 'backup_codes'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('accounts.id'), nullable=False, index=True)
    code_hash = db.Column(db.String(255), nullable=False)
    used = db.Column(db.Boolean, nullable=False, default=False)
    used_at = db.Column(db.DateTime, nullable=True)
    invalidated_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @classmethod
    def live_query(cls, user_id):
        return cls.query.filter_by(user_id=user_id, used=False, invalidated_at=None)

    @classmethod
    def invalidate_all(cls, user_id, now=None):
        return cls.live_query(user_id).update(
            {'invalidated_at': now or datetime.utcnow()}, synchronize_session=False
        )

    @classmethod
    def generate(cls, user_id, count=BACKUP_CODES_COUNT):
        """Replace the user's codes with a fresh batch and return the plaintext once."""
        now = datetime.utcnow()
        cls.invalidate_all(user_id, now)

        codes = []
        while len(codes) < count:
            code = generate_backup_code()
            if code in codes:
                continue
            codes.append(code)
            db.session.add(cls(
                user_id=user_id,
                code_hash=hash_code(backup_code_digest_input(code)),
                created_at=now,
            ))
        db.session.commit()
        return codes

    @classmethod
    def consume(cls, user_id, candidate, now=None):
        """Use a backup code.

        Returns the number of live codes left, or None when nothing matched
        (unknown code, already used, or superseded). Callers must test for
        ``None`` since 0 remaining is a success.
        """
        digest_input = backup_code_digest_input(candidate)
        if len(digest_input) != 8:
            return None

        for code in cls.live_query(user_id).order_by(cls.id).all():
            if not check_code(code.code_hash, digest_input):
                continue
            updated = cls.query.filter_by(id=code.id, used=False, invalidated_at=None).update(
                {'used': True, 'used_at': now or datetime.utcnow()},
                synchronize_session=False,
            )
            db.session.commit()
            if updated != 1:
                # Lost the race for this code
                return None
            return cls.remaining(user_id)
        return None

    @classmethod
    def remaining(cls, user_id):
        return cls.live_query(user_id).count()

    def __repr__(self):
        return f'<BackupCode user={self.user_id} used={self.used}>'
