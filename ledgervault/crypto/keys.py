"""
Key Derivation

Two ways to obtain a session key:

1. MASTER PASSWORD: PBKDF2-HMAC-SHA256 over password + 16-byte salt,
   100,000 iterations, 256-bit output. Deterministic, so the same
   password and salt re-derive the same key in every session. The salt
   is not secret and lives in the local config.
2. RANDOM KEY: 32 bytes from the OS CSPRNG. The user saves the exported
   text and imports it again to unlock.

DESIGN DECISION: Iteration count and hash are fixed constants and are
not versioned alongside the salt. Changing them makes existing data
undecryptable with the new defaults.
"""

import base64
import binascii
import secrets

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ledgervault.errors import LedgerVaultError
from ledgervault.models.crypto import KEY_SIZE, KeyMaterial, KeyOrigin


SALT_SIZE = 16  # 128 bits
KDF_ITERATIONS = 100_000


class EncryptionError(LedgerVaultError):
    """Base exception for key and encryption errors."""
    user_message = "Encryption error. Please unlock again."


class InvalidKeyFormat(EncryptionError):
    """Imported key (or salt) text is not what we expect."""
    user_message = "That key is not valid. Please check your key file."


class KeyNotExportable(EncryptionError):
    """Tried to export a key derived from a password."""
    user_message = "Password-based keys cannot be exported."


def generate_salt() -> bytes:
    """Fresh random salt for password mode."""
    return secrets.token_bytes(SALT_SIZE)


def salt_to_text(salt: bytes) -> str:
    return base64.b64encode(salt).decode("ascii")


def salt_from_text(text: str) -> bytes:
    """
    Decode a stored salt.

    Raises:
        InvalidKeyFormat: If the text is not base64 of exactly 16 bytes
    """
    salt = _b64decode_strict(text)
    if len(salt) != SALT_SIZE:
        raise InvalidKeyFormat(f"Salt must decode to {SALT_SIZE} bytes, got {len(salt)}")
    return salt


def derive_from_password(
    password: str,
    salt: bytes | None = None,
) -> tuple[KeyMaterial, bytes]:
    """
    Derive a non-extractable key from a master password.

    This is deliberately slow (100k PBKDF2 rounds). Async callers
    should run it in a worker thread.

    Args:
        password: The master password (must not be empty)
        salt: Salt from the local config. A new one is generated if omitted.

    Returns:
        (key, salt) - the salt must be persisted for future unlocks

    Raises:
        ValueError: If password is empty or the salt has the wrong size
    """
    if not password:
        raise ValueError("Master password cannot be empty")

    if salt is None:
        salt = generate_salt()
    elif len(salt) != SALT_SIZE:
        raise ValueError(f"Salt must be {SALT_SIZE} bytes")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    key_bytes = kdf.derive(password.encode("utf-8"))

    return KeyMaterial(key_bytes, KeyOrigin.PASSWORD, extractable=False), salt


def generate_random() -> KeyMaterial:
    """Generate a random, exportable 256-bit key."""
    return KeyMaterial(secrets.token_bytes(KEY_SIZE), KeyOrigin.RANDOM, extractable=True)


def export_to_text(key: KeyMaterial) -> str:
    """
    Base64 text of a random key, for the user to save.

    Raises:
        KeyNotExportable: If the key was derived from a password
    """
    raw = key.raw_bytes()
    if raw is None:
        raise KeyNotExportable(f"{key.origin.value} keys are not extractable")
    return base64.b64encode(raw).decode("ascii")


def import_from_text(text: str) -> KeyMaterial:
    """
    Restore a random key from its exported text.

    Raises:
        InvalidKeyFormat: If the text does not decode to exactly 32 bytes
    """
    raw = _b64decode_strict(text)
    if len(raw) != KEY_SIZE:
        raise InvalidKeyFormat(f"Key must decode to {KEY_SIZE} bytes, got {len(raw)}")
    return KeyMaterial(raw, KeyOrigin.RANDOM, extractable=True)


def _b64decode_strict(text: str) -> bytes:
    if not isinstance(text, str) or not text.strip():
        raise InvalidKeyFormat("Empty key text")
    try:
        return base64.b64decode(text.strip(), validate=True)
    except (binascii.Error, ValueError):
        raise InvalidKeyFormat("Key text is not valid base64") from None
