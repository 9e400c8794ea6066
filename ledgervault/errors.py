"""
Base exception for LedgerVault.

Every error raised by this package carries a ``user_message``: a short,
plain-language sentence that is safe to show to the user. The exception
text itself may hold more detail for logs, but never key material and
never cryptographic internals.
"""

from typing import Optional


class LedgerVaultError(Exception):
    """Base exception for all LedgerVault errors."""

    user_message: str = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.user_message)
