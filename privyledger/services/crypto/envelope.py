"""
Passphrase Envelope Encryption

AES-256-GCM under a key stretched from the user's passphrase with
PBKDF2-HMAC-SHA-256. The envelope is base64 of:

    [16B salt][12B nonce][ciphertext || 16B GCM tag]

CRITICAL: Salt and nonce are drawn inside encrypt() on every call. No
function here accepts a caller-supplied salt or nonce, so a (key, nonce)
pair can never be reused by construction.

CRITICAL: Every decryption failure - wrong passphrase, truncated input,
flipped bit, bad base64 - raises the same DecryptionError with the same
message. Distinguishing them would hand an attacker an oracle.

CRITICAL: Nothing here logs. Passphrases, keys and plaintext must never
reach a log line, including on error paths.

NOTE: The iteration count is a format constant, not stored per envelope.
Raising it would make every existing envelope derive the wrong key.
"""

import base64
import binascii
import hmac
import os
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

PBKDF2_ITERATIONS = 310_000
KEY_LENGTH = 32
SALT_LENGTH = 16
NONCE_LENGTH = 12
TAG_LENGTH = 16

VERIFIER_SENTINEL = b"pl-verify"
# Each verifier key is derived from a fresh salt and encrypts exactly one
# message, so a fixed nonce is never reused under the same key.
_VERIFIER_NONCE = bytes(NONCE_LENGTH)

_DECRYPTION_FAILED = "Unable to decrypt data: wrong passphrase or corrupted input"


class DecryptionError(Exception):
    """Envelope could not be opened. Deliberately carries no detail."""

    def __init__(self, message: str = _DECRYPTION_FAILED):
        super().__init__(message)


def _derive_key(passphrase: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def _b64decode(data: Union[str, bytes]) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError, TypeError):
        raise DecryptionError() from None


def _require_passphrase(passphrase: str) -> None:
    if not isinstance(passphrase, str) or not passphrase:
        raise ValueError("Passphrase must be a non-empty string")


def encrypt(plaintext: str, passphrase: str) -> str:
    """
    Encrypt text under a passphrase.

    Returns:
        base64 envelope; two calls with the same inputs never return the
        same envelope (fresh salt and nonce each time)

    Raises:
        ValueError: If passphrase is empty
    """
    _require_passphrase(passphrase)
    salt = os.urandom(SALT_LENGTH)
    nonce = os.urandom(NONCE_LENGTH)
    key = _derive_key(passphrase, salt)
    sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    return base64.b64encode(salt + nonce + sealed).decode("ascii")


def decrypt(envelope: Union[str, bytes], passphrase: str) -> str:
    """
    Open an envelope produced by encrypt().

    Raises:
        DecryptionError: For ANY failure, always with the same message
    """
    raw = _b64decode(envelope)
    if len(raw) < SALT_LENGTH + NONCE_LENGTH + TAG_LENGTH:
        raise DecryptionError()

    salt = raw[:SALT_LENGTH]
    nonce = raw[SALT_LENGTH:SALT_LENGTH + NONCE_LENGTH]
    sealed = raw[SALT_LENGTH + NONCE_LENGTH:]

    try:
        key = _derive_key(passphrase, salt)
        plaintext = AESGCM(key).decrypt(nonce, sealed, None)
        return plaintext.decode("utf-8")
    except (InvalidTag, UnicodeError, AttributeError):
        raise DecryptionError() from None


def hash_passphrase(passphrase: str) -> str:
    """
    Build a verifier for a passphrase without storing any key material.

    Returns:
        base64 of [16B salt][AEAD(sentinel) || 16B tag]

    Raises:
        ValueError: If passphrase is empty
    """
    _require_passphrase(passphrase)
    salt = os.urandom(SALT_LENGTH)
    key = _derive_key(passphrase, salt)
    token = AESGCM(key).encrypt(_VERIFIER_NONCE, VERIFIER_SENTINEL, None)
    return base64.b64encode(salt + token).decode("ascii")


def verify_passphrase(passphrase: str, verifier: Union[str, bytes]) -> bool:
    """
    Check a passphrase against a verifier from hash_passphrase().

    Never raises for a wrong passphrase or a malformed verifier.
    """
    try:
        raw = _b64decode(verifier)
    except DecryptionError:
        return False
    if len(raw) != SALT_LENGTH + len(VERIFIER_SENTINEL) + TAG_LENGTH:
        return False
    if not isinstance(passphrase, str):
        return False

    salt, token = raw[:SALT_LENGTH], raw[SALT_LENGTH:]
    try:
        key = _derive_key(passphrase, salt)
        recovered = AESGCM(key).decrypt(_VERIFIER_NONCE, token, None)
    except InvalidTag:
        return False
    return hmac.compare_digest(recovered, VERIFIER_SENTINEL)
