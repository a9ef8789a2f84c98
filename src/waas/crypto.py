"""Cryptographic utilities for custodial key storage.

Uses AES-256-GCM with a key derived from the server secret via scrypt.
The salt is fixed per application, not per user, so every stored ciphertext
is bound to the server secret: rotating JWT_SECRET invalidates all of them.

Ciphertext format: ``b64(nonce).b64(ciphertext).b64(tag)``
"""

import base64
import binascii
import logging
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from waas.errors import DecryptionFailed

logger = logging.getLogger(__name__)

APP_SALT = b"waas-salt"
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32

# scrypt cost parameters
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1


def derive_key(secret: str, salt: bytes = APP_SALT) -> bytes:
    """Derive a 256-bit AES key from the server secret.

    Args:
        secret: Server-held secret
        salt: Application-level salt

    Returns:
        32 raw key bytes
    """
    kdf = Scrypt(salt=salt, length=KEY_SIZE, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(secret.encode("utf-8"))


class KeyCipher:
    """Encrypts and decrypts custodial private keys.

    Usage:
        cipher = KeyCipher(secret)
        blob = cipher.encrypt("0xabc...")
        plaintext = cipher.decrypt(blob)
    """

    def __init__(self, secret: str):
        """Initialize with the server secret.

        Args:
            secret: Server-held secret (JWT_SECRET)
        """
        if not secret:
            raise ValueError("Server secret is required for key encryption")
        self._aes = AESGCM(derive_key(secret))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a private key with a fresh nonce.

        Returns:
            Dot-separated base64 blob of nonce, ciphertext and tag
        """
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aes.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return ".".join(
            base64.b64encode(part).decode("ascii") for part in (nonce, ciphertext, tag)
        )

    def decrypt(self, blob: str) -> str:
        """Decrypt a blob produced by encrypt().

        Raises:
            DecryptionFailed: Malformed blob, wrong secret or tampered data
        """
        parts = (blob or "").split(".")
        if len(parts) != 3 or not all(parts):
            raise DecryptionFailed("Invalid encrypted key format")

        try:
            nonce, ciphertext, tag = (base64.b64decode(p, validate=True) for p in parts)
        except (binascii.Error, ValueError) as e:
            raise DecryptionFailed("Invalid encrypted key encoding") from e

        if len(nonce) != NONCE_SIZE or len(tag) != TAG_SIZE:
            raise DecryptionFailed("Invalid encrypted key format")

        try:
            plaintext = self._aes.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as e:
            raise DecryptionFailed("Authentication tag mismatch") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionFailed("Decrypted key is not valid text") from e


@lru_cache(maxsize=4)
def get_cipher(secret: str) -> KeyCipher:
    """Get a cached cipher for a secret (scrypt is deliberately slow)."""
    return KeyCipher(secret)

