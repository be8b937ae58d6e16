"""Passphrase encryption for backups."""

from privyledger.services.crypto.envelope import (
    NONCE_LENGTH,
    PBKDF2_ITERATIONS,
    SALT_LENGTH,
    TAG_LENGTH,
    DecryptionError,
    decrypt,
    encrypt,
    hash_passphrase,
    verify_passphrase,
)

__all__ = [
    "NONCE_LENGTH",
    "PBKDF2_ITERATIONS",
    "SALT_LENGTH",
    "TAG_LENGTH",
    "DecryptionError",
    "decrypt",
    "encrypt",
    "hash_passphrase",
    "verify_passphrase",
]
