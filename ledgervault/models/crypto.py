"""
Cryptographic Data Models

KeyMaterial is the in-memory key plus a tag saying how it was obtained.
EncryptedEnvelope is the (ciphertext, iv) pair one encryption produces.

DESIGN DECISION: KeyMaterial is deliberately NOT a Pydantic model.
It must never be serialized, dumped into a config file, or end up in a
log line, so it gets no model_dump() and a repr that hides the key.
"""

import base64
from enum import Enum
from typing import Optional

from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import BaseModel, ConfigDict, Field


KEY_SIZE = 32  # 256 bits for AES-256


class KeyOrigin(str, Enum):
    """How a KeyMaterial came to exist."""
    PASSWORD = "password"  # PBKDF2 over master password + salt
    RANDOM = "random_key"  # Generated (or re-imported) random key


class KeyMaterial:
    """
    A 256-bit AES-GCM key held in process memory for one session.

    Password-derived keys are non-extractable: the raw bytes are dropped
    right after the cipher is built, so there is nothing to export.
    Random keys keep their bytes so the user can save them.

    Instances are immutable. Replacing the session key means swapping
    the whole object.
    """

    __slots__ = ("_cipher", "_raw", "_origin")

    def __init__(self, key_bytes: bytes, origin: KeyOrigin, extractable: bool):
        if len(key_bytes) != KEY_SIZE:
            raise ValueError(f"Key must be exactly {KEY_SIZE} bytes")
        object.__setattr__(self, "_cipher", AESGCM(key_bytes))
        object.__setattr__(self, "_raw", bytes(key_bytes) if extractable else None)
        object.__setattr__(self, "_origin", KeyOrigin(origin))

    def __setattr__(self, name, value):
        raise AttributeError("KeyMaterial is immutable")

    def __repr__(self) -> str:
        return f"KeyMaterial(origin={self._origin.value}, extractable={self.extractable})"

    def __reduce__(self):
        raise TypeError("KeyMaterial cannot be pickled")

    @property
    def origin(self) -> KeyOrigin:
        return self._origin

    @property
    def extractable(self) -> bool:
        return self._raw is not None

    @property
    def cipher(self) -> AESGCM:
        """The AES-GCM primitive bound to this key."""
        return self._cipher

    def raw_bytes(self) -> Optional[bytes]:
        """Raw key bytes, or None for non-extractable keys."""
        return self._raw


class EncryptedEnvelope(BaseModel):
    """
    Output of one authenticated encryption.

    Both fields are base64 text. The pair is meaningless without the
    KeyMaterial that produced it.
    """
    model_config = ConfigDict(frozen=True)

    ciphertext: str = Field(
        ...,
        min_length=1,
        description="Base64 AES-GCM ciphertext with the 16-byte tag appended"
    )
    iv: str = Field(
        ...,
        min_length=1,
        description="Base64 12-byte nonce, unique per encryption"
    )

    def ciphertext_bytes(self) -> bytes:
        return base64.b64decode(self.ciphertext, validate=True)

    def iv_bytes(self) -> bytes:
        return base64.b64decode(self.iv, validate=True)
