"""
Revoked challenge tokens. A challenge token is retired once its challenge is
verified or cancelled so it cannot be replayed.
"""
from datetime import datetime
from sqlalchemy.exc import IntegrityError
from mfa_gate import db


class RevokedToken(db.Model):
    __tablename__ = 'revoked_tokens'

    id = db.Column(db.Integer, primary_key=True)
    jti = db.Column(db.String(64), unique=True, nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('accounts.id'), nullable=False)
    revoked_at = db.Column(db.DateTime, default=datetime.utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)

    @staticmethod
    def is_token_revoked(jti):
        return db.session.query(
            db.exists().where(RevokedToken.jti == jti)
        ).scalar()

    @staticmethod
    def revoke(jti, user_id, expires_at):
        """Record ``jti`` as spent. Returns False if it was already revoked."""
        db.session.add(RevokedToken(jti=jti, user_id=user_id, expires_at=expires_at))
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return False
        return True

    @staticmethod
    def cleanup_expired():
        """Delete revoked token entries that have already expired."""
        count = RevokedToken.query.filter(
            RevokedToken.expires_at < datetime.utcnow()
        ).delete()
        db.session.commit()
        return count

    def __repr__(self):
        return f'<RevokedToken {self.jti}>'
