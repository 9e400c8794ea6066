"""
Local (non-sensitive) configuration persistence.

This is the small JSON file that survives between sessions:
- active currency code
- whether encryption is enabled, and its mode
- the password-mode salt (base64, not secret)
- whether initial setup completed
- a pending currency-rebase checkpoint, if a conversion did not finish

CRITICAL: The session key is NEVER written here. LocalConfig has no
field that could hold it.
"""

import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from ledgervault.models.crypto import KeyOrigin
from ledgervault.models.currency import RebaseCheckpoint


class LocalConfig(BaseModel):
    """Persisted local settings."""

    currency: str = Field(
        default="USD",
        min_length=1,
        max_length=10,
        description="Active currency code for every stored amount"
    )
    encryption_enabled: bool = False
    encryption_mode: Optional[KeyOrigin] = None
    salt: Optional[str] = Field(
        default=None,
        description="Base64 PBKDF2 salt (password mode only)"
    )
    onboarded: bool = False
    pending_rebase: Optional[RebaseCheckpoint] = None

    @model_validator(mode="after")
    def validate_encryption(self) -> "LocalConfig":
        if self.encryption_enabled and self.encryption_mode is None:
            raise ValueError("Encryption mode is required when encryption is enabled")
        return self


class LocalConfigStore:
    """
    Reads and writes LocalConfig as a JSON file.

    Writes go to a temp file in the same directory and are moved into
    place with os.replace(), so a crash never leaves a half-written
    config behind.
    """

    def __init__(self, path: str | Path, default_currency: str = "USD"):
        self._path = Path(path).expanduser()
        self._default_currency = default_currency

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> LocalConfig:
        """Load the config, or defaults if the file does not exist yet."""
        if not self._path.exists():
            return LocalConfig(currency=self._default_currency)

        return LocalConfig.model_validate_json(self._path.read_text(encoding="utf-8"))

    def save(self, config: LocalConfig) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(
            dir=self._path.parent,
            prefix=f".{self._path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(config.model_dump_json(indent=2))
            os.replace(tmp_path, self._path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def update(self, **changes: Any) -> LocalConfig:
        """Apply field changes, validate, save, and return the new config."""
        current = self.load()
        updated = LocalConfig.model_validate({**current.model_dump(), **changes})
        self.save(updated)
        return updated
