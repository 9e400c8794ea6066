"""Tests for key derivation and envelope encryption."""

import base64
import pickle

import pytest

from ledgervault.crypto import (
    KDF_ITERATIONS,
    SALT_SIZE,
    DecryptionFailed,
    InvalidKeyFormat,
    KeyNotExportable,
    decrypt,
    derive_from_password,
    encrypt,
    export_to_text,
    generate_random,
    generate_salt,
    import_from_text,
    salt_from_text,
    salt_to_text,
)
from ledgervault.crypto.envelope import NONCE_SIZE
from ledgervault.models.crypto import KEY_SIZE, EncryptedEnvelope, KeyOrigin


def _flip_first_bit(text: str) -> str:
    raw = bytearray(base64.b64decode(text))
    raw[0] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


class TestKeyDerivation:
    """Tests for password and random keys."""

    def test_constants(self):
        assert KEY_SIZE == 32
        assert SALT_SIZE == 16
        assert KDF_ITERATIONS == 100_000

    def test_same_password_and_salt_give_same_key(self):
        salt = generate_salt()
        key1, _ = derive_from_password("correct horse", salt)
        key2, _ = derive_from_password("correct horse", salt)

        envelope = encrypt({"amount": 42.5}, key1)
        assert decrypt(envelope, key2) == {"amount": 42.5}

    def test_different_salt_gives_different_key(self):
        key1, _ = derive_from_password("correct horse", generate_salt())
        key2, _ = derive_from_password("correct horse", generate_salt())

        with pytest.raises(DecryptionFailed):
            decrypt(encrypt("x", key1), key2)

    def test_generates_salt_when_missing(self):
        _, salt = derive_from_password("correct horse")
        assert len(salt) == SALT_SIZE

    def test_empty_password_rejected(self):
        with pytest.raises(ValueError):
            derive_from_password("")

    def test_wrong_salt_size_rejected(self):
        with pytest.raises(ValueError):
            derive_from_password("correct horse", b"short")

    def test_password_key_is_not_extractable(self):
        key, _ = derive_from_password("correct horse")
        assert key.origin == KeyOrigin.PASSWORD
        assert key.extractable is False
        assert key.raw_bytes() is None
        with pytest.raises(KeyNotExportable):
            export_to_text(key)

    def test_random_key_export_import_roundtrip(self):
        key = generate_random()
        text = export_to_text(key)

        restored = import_from_text(text)
        assert restored.raw_bytes() == key.raw_bytes()
        assert restored.origin == KeyOrigin.RANDOM

    def test_import_tolerates_surrounding_whitespace(self):
        key = generate_random()
        restored = import_from_text(f"  {export_to_text(key)}\n")
        assert restored.raw_bytes() == key.raw_bytes()

    @pytest.mark.parametrize("text", [
        "",
        "   ",
        "not base64 at all!",
        base64.b64encode(b"\x00" * 16).decode(),
        base64.b64encode(b"\x00" * 33).decode(),
    ])
    def test_import_rejects_bad_text(self, text):
        with pytest.raises(InvalidKeyFormat):
            import_from_text(text)

    def test_salt_text_roundtrip(self):
        salt = generate_salt()
        assert salt_from_text(salt_to_text(salt)) == salt

    def test_salt_from_text_rejects_wrong_length(self):
        with pytest.raises(InvalidKeyFormat):
            salt_from_text(base64.b64encode(b"abc").decode())


class TestKeyMaterial:
    """KeyMaterial must never leak its bytes."""

    def test_repr_hides_key(self):
        key = generate_random()
        text = export_to_text(key)
        assert text not in repr(key)
        assert "random_key" in repr(key)

    def test_is_immutable(self):
        key = generate_random()
        with pytest.raises(AttributeError):
            key._raw = b"\x00" * 32

    def test_cannot_be_pickled(self):
        with pytest.raises(TypeError):
            pickle.dumps(generate_random())


class TestEnvelope:
    """Tests for encrypt/decrypt."""

    @pytest.mark.parametrize("value", [
        {"amount": 19.99, "description": "Coffee"},
        [1, 2, 3],
        "plain string",
        0,
        None,
        True,
        {"nested": {"list": ["a", None]}},
    ])
    def test_roundtrip(self, random_key, value):
        assert decrypt(encrypt(value, random_key), random_key) == value

    def test_unicode_roundtrip(self, random_key):
        value = {"description": "Café ☕ 東京"}
        assert decrypt(encrypt(value, random_key), random_key) == value

    def test_fresh_iv_per_call(self, random_key):
        envelopes = [encrypt({"amount": 1}, random_key) for _ in range(50)]

        assert len({e.iv for e in envelopes}) == 50
        assert len({e.ciphertext for e in envelopes}) == 50
        assert all(len(e.iv_bytes()) == NONCE_SIZE for e in envelopes)

    def test_flipped_ciphertext_bit_fails(self, random_key):
        envelope = encrypt({"amount": 1}, random_key)
        tampered = EncryptedEnvelope(
            ciphertext=_flip_first_bit(envelope.ciphertext),
            iv=envelope.iv,
        )
        with pytest.raises(DecryptionFailed):
            decrypt(tampered, random_key)

    def test_flipped_iv_bit_fails(self, random_key):
        envelope = encrypt({"amount": 1}, random_key)
        tampered = EncryptedEnvelope(
            ciphertext=envelope.ciphertext,
            iv=_flip_first_bit(envelope.iv),
        )
        with pytest.raises(DecryptionFailed):
            decrypt(tampered, random_key)

    def test_wrong_key_fails(self, random_key):
        envelope = encrypt({"amount": 1}, random_key)
        with pytest.raises(DecryptionFailed):
            decrypt(envelope, generate_random())

    @pytest.mark.parametrize("ciphertext,iv", [
        ("!!!not-base64!!!", base64.b64encode(b"\x00" * 12).decode()),
        (base64.b64encode(b"\x00" * 32).decode(), base64.b64encode(b"\x00" * 8).decode()),
    ])
    def test_malformed_envelope_fails(self, random_key, ciphertext, iv):
        with pytest.raises(DecryptionFailed):
            decrypt(EncryptedEnvelope(ciphertext=ciphertext, iv=iv), random_key)

    def test_failure_message_is_generic(self, random_key):
        envelope = encrypt({"amount": 1}, random_key)

        with pytest.raises(DecryptionFailed) as exc_info:
            decrypt(envelope, generate_random())

        assert str(exc_info.value) == DecryptionFailed.user_message
        assert exc_info.value.__cause__ is None
        assert exc_info.value.__suppress_context__ is True

    def test_nan_is_rejected_before_encryption(self, random_key):
        with pytest.raises(ValueError):
            encrypt({"amount": float("nan")}, random_key)
