"""
Key derivation and authenticated encryption for backups.

Security Design:
    - Key derived from the backup passphrase with PBKDF2-HMAC-SHA256
      (600,000 iterations) and a fresh random 256-bit salt per backup
    - Payload encrypted with AES-256-GCM under a fresh random 96-bit IV
    - The 128-bit GCM tag is verified (in constant time, by the
      cryptography library) before any plaintext is released
    - Derived keys live only in local variables of one encrypt/decrypt call

Threat Model:
    - Protects against: reading a backup file without the passphrase,
      undetected modification of a backup file, offline guessing at less
      than interactive cost per guess
    - Does NOT protect against: weak passphrases, memory inspection,
      keyloggers, or compromise of the running process
"""

from __future__ import annotations

import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

# Security parameters - do not reduce these values
# OWASP 2023 recommends 600,000 iterations for PBKDF2-SHA256
PBKDF2_ITERATIONS = 600_000
SALT_LENGTH = 32  # 256 bits
IV_LENGTH = 12  # 96 bits, the GCM native nonce size
KEY_LENGTH = 32  # AES-256
TAG_LENGTH = 16  # 128 bits

MIN_SALT_LENGTH = SALT_LENGTH
MIN_IV_LENGTH = 12
MAX_IV_LENGTH = 16


class AuthenticationError(Exception):
    """Raised when a ciphertext's authentication tag does not verify."""

    pass


def generate_salt() -> bytes:
    """Fresh random salt for one backup."""
    return secrets.token_bytes(SALT_LENGTH)


def generate_iv() -> bytes:
    """Fresh random IV for one encryption."""
    return secrets.token_bytes(IV_LENGTH)


def derive_key(passphrase: str, salt: bytes, iterations: int = PBKDF2_ITERATIONS) -> bytes:
    """
    Derive a symmetric key from a passphrase and salt.

    Deterministic for identical inputs, so decryption recomputes the key
    instead of storing it.

    Args:
        passphrase: User-provided passphrase.
        salt: Random salt bytes (at least 32).
        iterations: PBKDF2 iteration count.

    Returns:
        KEY_LENGTH bytes of key material.

    Raises:
        ValueError: If the salt is too short.
    """
    if len(salt) < MIN_SALT_LENGTH:
        raise ValueError(f"Salt must be at least {MIN_SALT_LENGTH} bytes")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode("utf-8"))


class AuthenticatedCipher:
    """
    AES-256-GCM with the tag kept separate from the ciphertext.

    Usage:
        cipher = AuthenticatedCipher(associated_data=b"LAUNDRY_BACKUP_V2")
        ciphertext, tag = cipher.encrypt(plaintext, key, iv)
        plaintext = cipher.decrypt(ciphertext, tag, key, iv)

    Attributes:
        associated_data: Bytes authenticated alongside every message but
            not encrypted (the container format marker).
    """

    def __init__(self, associated_data: bytes | None = None) -> None:
        self.associated_data = associated_data

    def encrypt(self, plaintext: bytes, key: bytes, iv: bytes) -> tuple[bytes, bytes]:
        """
        Encrypt and authenticate ``plaintext``.

        Returns:
            Tuple of (ciphertext, tag).
        """
        self._check_parameters(key, iv)
        sealed = AESGCM(key).encrypt(iv, plaintext, self.associated_data)
        return sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]

    def decrypt(self, ciphertext: bytes, tag: bytes, key: bytes, iv: bytes) -> bytes:
        """
        Verify the tag, then decrypt.

        Raises:
            AuthenticationError: If the tag does not match (wrong key or
                modified ciphertext, IV, tag or associated data).
        """
        self._check_parameters(key, iv)
        if len(tag) != TAG_LENGTH:
            raise AuthenticationError("Authentication tag has the wrong length")
        try:
            return AESGCM(key).decrypt(iv, ciphertext + tag, self.associated_data)
        except InvalidTag as e:
            raise AuthenticationError("Authentication tag verification failed") from e

    @staticmethod
    def _check_parameters(key: bytes, iv: bytes) -> None:
        if len(key) != KEY_LENGTH:
            raise ValueError(f"Key must be {KEY_LENGTH} bytes")
        if not MIN_IV_LENGTH <= len(iv) <= MAX_IV_LENGTH:
            raise ValueError(f"IV must be {MIN_IV_LENGTH}-{MAX_IV_LENGTH} bytes")
