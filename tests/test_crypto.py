"""
Tests for passphrase envelope encryption.

Every key derivation runs the full PBKDF2 work factor, so these tests keep
the number of encrypt/decrypt calls small.
"""

import base64

import pytest

from privyledger.services.crypto import (
    NONCE_LENGTH,
    SALT_LENGTH,
    TAG_LENGTH,
    DecryptionError,
    decrypt,
    encrypt,
    hash_passphrase,
    verify_passphrase,
)

PASSPHRASE = "correct horse battery staple"


@pytest.fixture(scope="module")
def envelope():
    return encrypt('{"version": 1, "note": "café £"}', PASSPHRASE)


def _flip(envelope: str, position: int) -> str:
    raw = bytearray(base64.b64decode(envelope))
    raw[position] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


class TestEncryptDecrypt:
    """Tests for encrypt/decrypt."""

    def test_round_trip(self, envelope):
        """Test decrypt(encrypt(p)) returns the original text."""
        assert decrypt(envelope, PASSPHRASE) == '{"version": 1, "note": "café £"}'

    def test_envelope_layout(self, envelope):
        """Test the envelope is salt, nonce, ciphertext and tag."""
        plaintext_length = len('{"version": 1, "note": "café £"}'.encode("utf-8"))
        raw = base64.b64decode(envelope, validate=True)
        assert len(raw) == SALT_LENGTH + NONCE_LENGTH + plaintext_length + TAG_LENGTH

    def test_fresh_salt_and_nonce(self):
        """Test the same input never encrypts to the same envelope."""
        first = base64.b64decode(encrypt("same", PASSPHRASE))
        second = base64.b64decode(encrypt("same", PASSPHRASE))
        assert first != second
        assert first[:SALT_LENGTH] != second[:SALT_LENGTH]
        assert first[SALT_LENGTH:SALT_LENGTH + NONCE_LENGTH] != second[SALT_LENGTH:SALT_LENGTH + NONCE_LENGTH]

    def test_empty_plaintext(self):
        """Test an empty string still round-trips."""
        assert decrypt(encrypt("", PASSPHRASE), PASSPHRASE) == ""

    def test_wrong_passphrase(self, envelope):
        """Test a wrong passphrase fails closed."""
        with pytest.raises(DecryptionError):
            decrypt(envelope, "wrong passphrase")

    @pytest.mark.parametrize("position", [0, SALT_LENGTH, SALT_LENGTH + NONCE_LENGTH, -1])
    def test_tampering_detected(self, envelope, position):
        """Test a flipped bit in salt, nonce, ciphertext or tag is rejected."""
        with pytest.raises(DecryptionError):
            decrypt(_flip(envelope, position), PASSPHRASE)

    def test_truncated_envelope(self, envelope):
        """Test an envelope shorter than its header is rejected."""
        short = base64.b64encode(base64.b64decode(envelope)[:20]).decode("ascii")
        with pytest.raises(DecryptionError):
            decrypt(short, PASSPHRASE)

    def test_not_base64(self):
        """Test garbage input is rejected."""
        with pytest.raises(DecryptionError):
            decrypt("this is not base64!!", PASSPHRASE)

    @pytest.mark.parametrize("bad_envelope", [None, 12345, ["AAAA"]])
    def test_non_text_envelope(self, bad_envelope):
        """Test an envelope of the wrong type fails like any other."""
        with pytest.raises(DecryptionError):
            decrypt(bad_envelope, PASSPHRASE)

    def test_failures_are_indistinguishable(self, envelope):
        """Test every failure carries the same message."""
        messages = set()
        for bad_envelope, passphrase in (
            (envelope, "wrong"),
            (_flip(envelope, -1), PASSPHRASE),
            ("***", PASSPHRASE),
        ):
            with pytest.raises(DecryptionError) as excinfo:
                decrypt(bad_envelope, passphrase)
            messages.add(str(excinfo.value))
        assert len(messages) == 1

    def test_empty_passphrase_rejected(self):
        """Test encrypt refuses an empty passphrase."""
        with pytest.raises(ValueError):
            encrypt("data", "")


class TestPassphraseVerifier:
    """Tests for hash_passphrase/verify_passphrase."""

    @pytest.fixture(scope="class")
    def verifier(self):
        return hash_passphrase(PASSPHRASE)

    def test_correct_passphrase(self, verifier):
        """Test the right passphrase verifies."""
        assert verify_passphrase(PASSPHRASE, verifier) is True

    def test_wrong_passphrase(self, verifier):
        """Test a wrong passphrase does not verify."""
        assert verify_passphrase("nope", verifier) is False

    def test_verifier_does_not_contain_passphrase(self, verifier):
        """Test the verifier holds no passphrase material in the clear."""
        assert PASSPHRASE.encode() not in base64.b64decode(verifier)

    def test_verifiers_are_salted(self, verifier):
        """Test two verifiers for one passphrase differ."""
        assert hash_passphrase(PASSPHRASE) != verifier

    @pytest.mark.parametrize("bad_verifier", ["", "not base64 at all", base64.b64encode(b"short").decode()])
    def test_malformed_verifier_is_false(self, bad_verifier):
        """Test a malformed verifier never raises."""
        assert verify_passphrase(PASSPHRASE, bad_verifier) is False

    def test_empty_passphrase_rejected(self):
        """Test hash_passphrase refuses an empty passphrase."""
        with pytest.raises(ValueError):
            hash_passphrase("")
