"""
At-rest encryption for TOTP secrets (AES-256-GCM).

FIELD_ENCRYPTION_KEY holds the current key, base64 of 32 bytes. During a key
rotation the previous keys go in FIELD_ENCRYPTION_OLD_KEYS (comma separated);
they are only tried for decryption, and values are re-encrypted under the
current key the next time they are written.
"""
import os
import base64
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

NONCE_SIZE = 12
# Binds ciphertexts to this use so they cannot be swapped in from another column type
ASSOCIATED_DATA = b'mfa_gate.secret'


def _load_key(key_b64):
    key = base64.b64decode(key_b64)
    if len(key) != 32:
        raise ValueError("Field encryption keys must be 32 bytes (256 bits)")
    return AESGCM(key)


class SecretCipher:

    def __init__(self, key_b64=None, old_keys_b64=None):
        key_b64 = key_b64 or os.getenv('FIELD_ENCRYPTION_KEY')
        if not key_b64:
            raise ValueError("FIELD_ENCRYPTION_KEY environment variable not set")
        if old_keys_b64 is None:
            old_keys_b64 = [k for k in os.getenv('FIELD_ENCRYPTION_OLD_KEYS', '').split(',') if k.strip()]

        self._current = _load_key(key_b64)
        self._fallbacks = [_load_key(k.strip()) for k in old_keys_b64]

    def encrypt(self, plaintext: str) -> str:
        """Return base64(nonce || ciphertext || tag)."""
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._current.encrypt(nonce, plaintext.encode('utf-8'), ASSOCIATED_DATA)
        return base64.b64encode(nonce + sealed).decode('ascii')

    def decrypt(self, token: str) -> str:
        raw = base64.b64decode(token)
        nonce, sealed = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        for aead in [self._current] + self._fallbacks:
            try:
                return aead.decrypt(nonce, sealed, ASSOCIATED_DATA).decode('utf-8')
            except InvalidTag:
                continue
        raise ValueError("Encrypted field could not be decrypted with any configured key")


_cipher = None


def get_cipher() -> SecretCipher:
    """Process-wide cipher, built from the environment on first use."""
    global _cipher
    if _cipher is None:
        _cipher = SecretCipher()
    return _cipher


def encrypt_field(value: str) -> str:
    return get_cipher().encrypt(value) if value else value


def decrypt_field(value: str) -> str:
    return get_cipher().decrypt(value) if value else value
