"""
Encryption Session

Holds the one KeyMaterial of a session and tracks which of three states
we are in:

    NO_ENCRYPTION  encryption disabled, every operation runs with key=None
    LOCKED         encryption enabled, no key in memory (start of every session)
    UNLOCKED       key in memory

    LOCKED --unlock_with_password / unlock_with_key_text--> UNLOCKED
    UNLOCKED --lock--> LOCKED

DESIGN DECISION: Unlock cannot verify the secret. There is nothing to
check it against without a stored verifier, so we move to UNLOCKED
optimistically and let the first decrypt of real data be the check.
When that decrypt raises DecryptionFailed the caller locks again and
asks for a retry.

The (state, key) pair is replaced with a single assignment, so a
reader never sees UNLOCKED without a key or a key while LOCKED.
"""

import asyncio
from enum import Enum
from typing import Optional

from ledgervault.config.local import LocalConfig
from ledgervault.crypto import keys
from ledgervault.crypto.keys import EncryptionError
from ledgervault.models.crypto import KeyMaterial, KeyOrigin


class SessionState(str, Enum):
    NO_ENCRYPTION = "no_encryption"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class EncryptionKeyRequired(EncryptionError):
    """An operation on sensitive fields was attempted while locked."""
    user_message = "Your data is encrypted. Please unlock to continue."


class SessionModeError(EncryptionError):
    """Unlock attempted with the wrong kind of secret for this session."""
    user_message = "This vault uses a different unlock method."


class MissingSalt(EncryptionKeyRequired):
    """Password mode is configured but the salt is gone."""
    user_message = "Salt not found. Please run setup again."


class EncryptionSession:
    """
    The explicit replacement for a module-level "current key".

    Pass one session to every repository and service that needs to
    encrypt or decrypt. Tests can run several sessions side by side.
    """

    def __init__(
        self,
        mode: Optional[KeyOrigin] = None,
        salt: Optional[str] = None,
    ):
        """
        Args:
            mode: Encryption mode, or None when encryption is disabled
            salt: Base64 salt from the local config (password mode)
        """
        self._mode = KeyOrigin(mode) if mode is not None else None
        self._salt = salt
        initial = SessionState.LOCKED if self._mode else SessionState.NO_ENCRYPTION
        self._current: tuple[SessionState, Optional[KeyMaterial]] = (initial, None)

    @classmethod
    def from_config(cls, config: LocalConfig) -> "EncryptionSession":
        if not config.encryption_enabled:
            return cls()
        return cls(mode=config.encryption_mode, salt=config.salt)

    def __repr__(self) -> str:
        mode = self._mode.value if self._mode else None
        return f"EncryptionSession(state={self.state.value}, mode={mode})"

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._current[0]

    @property
    def mode(self) -> Optional[KeyOrigin]:
        return self._mode

    @property
    def encryption_enabled(self) -> bool:
        return self._mode is not None

    @property
    def is_locked(self) -> bool:
        return self.state == SessionState.LOCKED

    def require_key(self) -> Optional[KeyMaterial]:
        """
        Key for the next encrypt/decrypt.

        Returns:
            The key when UNLOCKED, None when encryption is disabled

        Raises:
            EncryptionKeyRequired: When LOCKED
        """
        state, key = self._current
        if state == SessionState.LOCKED:
            raise EncryptionKeyRequired()
        return key

    # ------------------------------------------------------------------
    # Unlock / lock
    # ------------------------------------------------------------------

    async def unlock_with_password(self, password: str) -> None:
        """
        Re-derive the key from the master password and the stored salt.

        Raises:
            ValueError: If password is empty
            SessionModeError: If this session is not in password mode
            MissingSalt: If no salt was persisted
        """
        if self._mode != KeyOrigin.PASSWORD:
            raise SessionModeError("Session is not in password mode")
        if not password or not password.strip():
            raise ValueError("Please enter your master password")
        if not self._salt:
            raise MissingSalt()

        salt = keys.salt_from_text(self._salt)
        key, _ = await asyncio.to_thread(keys.derive_from_password, password, salt)
        self._current = (SessionState.UNLOCKED, key)

    async def unlock_with_key_text(self, key_text: str) -> None:
        """
        Import a saved random key.

        Raises:
            SessionModeError: If this session is not in random-key mode
            InvalidKeyFormat: If the text is not a 32-byte base64 key
        """
        if self._mode != KeyOrigin.RANDOM:
            raise SessionModeError("Session is not in random-key mode")

        key = keys.import_from_text(key_text)
        self._current = (SessionState.UNLOCKED, key)

    def lock(self) -> None:
        """Discard the key. No-op when encryption is disabled."""
        if self._mode is None:
            return
        self._current = (SessionState.LOCKED, None)

    # ------------------------------------------------------------------
    # Setup (first run, or re-keying before any data exists)
    # ------------------------------------------------------------------

    async def setup_password(self, password: str, config: LocalConfig) -> LocalConfig:
        """
        Enable password mode with a fresh salt and unlock.

        Returns:
            The updated config to persist (with the new salt)

        Raises:
            ValueError: If password is empty or only whitespace
        """
        # Must accept exactly what unlock_with_password accepts
        if not password or not password.strip():
            raise ValueError("Please choose a master password")
        key, salt = await asyncio.to_thread(keys.derive_from_password, password)
        salt_text = keys.salt_to_text(salt)

        self._mode = KeyOrigin.PASSWORD
        self._salt = salt_text
        self._current = (SessionState.UNLOCKED, key)

        return config.model_copy(update={
            "encryption_enabled": True,
            "encryption_mode": KeyOrigin.PASSWORD,
            "salt": salt_text,
            "onboarded": True,
        })

    def setup_random_key(self, config: LocalConfig) -> tuple[LocalConfig, str]:
        """
        Enable random-key mode and unlock.

        Returns:
            (updated config, exported key text the user must save)
        """
        key = keys.generate_random()

        self._mode = KeyOrigin.RANDOM
        self._salt = None
        self._current = (SessionState.UNLOCKED, key)

        updated = config.model_copy(update={
            "encryption_enabled": True,
            "encryption_mode": KeyOrigin.RANDOM,
            "salt": None,
            "onboarded": True,
        })
        return updated, keys.export_to_text(key)

    def setup_disabled(self, config: LocalConfig) -> LocalConfig:
        """Run without encryption."""
        self._mode = None
        self._salt = None
        self._current = (SessionState.NO_ENCRYPTION, None)

        return config.model_copy(update={
            "encryption_enabled": False,
            "encryption_mode": None,
            "salt": None,
            "onboarded": True,
        })
