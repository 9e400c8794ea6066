"""
LedgerVault - Source Package

The privacy core of a personal finance tracker. Sensitive record fields
are encrypted on the client before they reach the hosted store.

DESIGN PRINCIPLES:
1. The key never leaves process memory
2. Fail closed: a wrong key is an error, never garbage
3. No silent cleartext fallback while encryption is enabled
4. Bulk rewrites report partial completion, they never hide it
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "LedgerVault Team"
