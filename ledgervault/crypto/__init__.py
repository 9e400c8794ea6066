"""Client-side encryption: key derivation, envelopes, and the session key."""

from ledgervault.crypto.envelope import DecryptionFailed, decrypt, encrypt
from ledgervault.crypto.keys import (
    KDF_ITERATIONS,
    SALT_SIZE,
    EncryptionError,
    InvalidKeyFormat,
    KeyNotExportable,
    derive_from_password,
    export_to_text,
    generate_random,
    generate_salt,
    import_from_text,
    salt_from_text,
    salt_to_text,
)
from ledgervault.crypto.session import (
    EncryptionKeyRequired,
    EncryptionSession,
    MissingSalt,
    SessionModeError,
    SessionState,
)

__all__ = [
    # Parameters
    "KDF_ITERATIONS",
    "SALT_SIZE",
    # Errors
    "DecryptionFailed",
    "EncryptionError",
    "EncryptionKeyRequired",
    "InvalidKeyFormat",
    "KeyNotExportable",
    "MissingSalt",
    "SessionModeError",
    # Key derivation
    "derive_from_password",
    "export_to_text",
    "generate_random",
    "generate_salt",
    "import_from_text",
    "salt_from_text",
    "salt_to_text",
    # Envelope
    "decrypt",
    "encrypt",
    # Session
    "EncryptionSession",
    "SessionState",
]
