"""
Generation and salted hashing of one-time codes (email OTPs, backup codes).
"""
import re
import secrets
import string
from flask import current_app
from werkzeug.security import generate_password_hash, check_password_hash

BACKUP_CODE_CHARSET = string.ascii_uppercase + string.digits
BACKUP_CODE_PATTERN = re.compile(r'^[A-Z0-9]{4}-[A-Z0-9]{4}$')

_NOT_BACKUP_CHARS = re.compile(r'[^A-Z0-9-]')


def hash_code(code: str) -> str:
    method = current_app.config.get('CODE_HASH_METHOD', 'scrypt')
    return generate_password_hash(code, method=method)


def check_code(code_hash: str, candidate: str) -> bool:
    if not code_hash or not candidate:
        return False
    return check_password_hash(code_hash, candidate)


def generate_numeric_code(digits=6) -> str:
    """Generate a zero-padded numeric code, e.g. '048213'."""
    return str(secrets.randbelow(10 ** digits)).zfill(digits)


def generate_backup_code() -> str:
    """Generate one recovery code in XXXX-XXXX form."""
    raw = ''.join(secrets.choice(BACKUP_CODE_CHARSET) for _ in range(8))
    return f'{raw[:4]}-{raw[4:]}'


def normalize_backup_code(candidate) -> str:
    """Uppercase and drop anything outside [A-Z0-9-]."""
    return _NOT_BACKUP_CHARS.sub('', str(candidate or '').upper())


def backup_code_digest_input(code: str) -> str:
    """Backup codes are hashed without the hyphen so it stays optional on entry."""
    return normalize_backup_code(code).replace('-', '')
