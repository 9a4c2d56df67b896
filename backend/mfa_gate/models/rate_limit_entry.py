"""
Counted attempts behind DBRateLimiter. Rows live in the database so limits
hold across workers and restarts.
"""
from datetime import datetime, timedelta
from mfa_gate import db


class RateLimitEntry(db.Model):
    __tablename__ = 'rate_limit_entries'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(255), nullable=False, index=True)  # 'user:<id>', 'email:<addr>' or an IP
    endpoint = db.Column(db.String(64), nullable=False, index=True)  # limiter name
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.Index('ix_rate_limit_key_endpoint_ts', 'key', 'endpoint', 'timestamp'),
    )

    @classmethod
    def count_since(cls, key, endpoint, since):
        return cls.query.filter(
            cls.key == key,
            cls.endpoint == endpoint,
            cls.timestamp > since,
        ).count()

    @classmethod
    def add(cls, key, endpoint, at=None):
        db.session.add(cls(key=key, endpoint=endpoint, timestamp=at or datetime.utcnow()))
        db.session.commit()

    @classmethod
    def clear(cls, key, endpoint):
        cls.query.filter_by(key=key, endpoint=endpoint).delete()
        db.session.commit()

    @classmethod
    def cleanup_older_than(cls, seconds):
        """Drop rows no limiter window can reach any more. Returns the count removed."""
        cutoff = datetime.utcnow() - timedelta(seconds=seconds)
        count = cls.query.filter(cls.timestamp < cutoff).delete()
        db.session.commit()
        return count

    def __repr__(self):
        return f'<RateLimitEntry {self.endpoint} {self.key}>'
