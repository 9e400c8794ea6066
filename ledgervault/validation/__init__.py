"""Validation package."""

from ledgervault.validation.validator import SetupValidator

__all__ = ["SetupValidator"]
