"""Encryption of provider OAuth tokens at rest.

Access and refresh tokens are encrypted with Fernet (AES-128-CBC +
HMAC-SHA256) before they reach the social_accounts table. Keys are derived
from configured key material with SHA-256, so any sufficiently random
string works as TOKEN_ENCRYPTION_KEY. Previous keys stay valid for
decryption to allow rotation.
"""

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from invoice_easy.core.config import settings


class TokenEncryptionError(Exception):
    """Raised when token encryption is unconfigured or a ciphertext is invalid."""


def _derive_fernet_key(key_material: str) -> bytes:
    # Derive 32-byte key then base64-url encode for Fernet
    digest = hashlib.sha256(key_material.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


class TokenCipher:
    """Encrypts and decrypts provider tokens.

    The first key encrypts; every key is tried for decryption.

    Args:
        keys: Key material, newest first.

    Raises:
        TokenEncryptionError: If no key material is given.
    """

    def __init__(self, keys: list[str]) -> None:
        usable = [k for k in keys if k]
        if not usable:
            msg = "TOKEN_ENCRYPTION_KEY not configured"
            raise TokenEncryptionError(msg)
        self._fernet = MultiFernet([Fernet(_derive_fernet_key(k)) for k in usable])

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a token for storage."""
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def encrypt_optional(self, plaintext: str | None) -> str | None:
        """Encrypt a token that may be absent (e.g., refresh token)."""
        if plaintext is None:
            return None
        return self.encrypt(plaintext)

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a stored token.

        Raises:
            TokenEncryptionError: If the ciphertext was not produced by any
                configured key or has been modified.
        """
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as exc:
            msg = "Stored token could not be decrypted"
            raise TokenEncryptionError(msg) from exc


def get_token_cipher() -> TokenCipher:
    """Build a TokenCipher from settings.

    Raises:
        TokenEncryptionError: If TOKEN_ENCRYPTION_KEY is not configured.
    """
    keys = [settings.token_encryption_key.get_secret_value()]
    keys.extend(k.get_secret_value() for k in settings.token_encryption_previous_keys)
    return TokenCipher(keys)
