"""
Envelope Encryption

Authenticated encryption of any JSON value with AES-256-GCM.

    plaintext  -> UTF-8 JSON -> AES-GCM(key, fresh 12-byte nonce) -> base64
    ciphertext, iv  (the 16-byte GCM tag rides at the end of ciphertext)

CRITICAL: Decryption fails closed. A wrong key, a flipped bit in either
field, or any other problem raises DecryptionFailed with the same
generic message. We never say which part failed or why.
"""

import base64
import json
import secrets
from typing import Any

from cryptography.exceptions import InvalidTag

from ledgervault.crypto.keys import EncryptionError
from ledgervault.models.crypto import EncryptedEnvelope, KeyMaterial


NONCE_SIZE = 12  # 96 bits for GCM (recommended)


class DecryptionFailed(EncryptionError):
    """Stored data could not be decrypted with the given key."""
    user_message = "Could not unlock your data. Check your password or key."


def encrypt(value: Any, key: KeyMaterial) -> EncryptedEnvelope:
    """
    Encrypt a JSON-serializable value.

    Values that do not survive a JSON round trip (NaN, sets, objects) are
    rejected up front with ValueError/TypeError rather than encrypted.
    """
    plaintext = json.dumps(value, allow_nan=False, separators=(",", ":"))
    nonce = secrets.token_bytes(NONCE_SIZE)

    ciphertext = key.cipher.encrypt(nonce, plaintext.encode("utf-8"), None)

    return EncryptedEnvelope(
        ciphertext=_b64(ciphertext),
        iv=_b64(nonce),
    )


def decrypt(envelope: EncryptedEnvelope, key: KeyMaterial) -> Any:
    """
    Decrypt an envelope back to its JSON value.

    Raises:
        DecryptionFailed: On any failure, with no detail
    """
    try:
        nonce = envelope.iv_bytes()
        ciphertext = envelope.ciphertext_bytes()
        if len(nonce) != NONCE_SIZE:
            raise ValueError("bad nonce length")
        plaintext = key.cipher.decrypt(nonce, ciphertext, None)
        return json.loads(plaintext.decode("utf-8"))
    except (InvalidTag, ValueError, TypeError):
        raise DecryptionFailed() from None


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")
