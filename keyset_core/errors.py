"""Stable error taxonomy for keyset-core.

This module defines machine-readable error codes and one exception hierarchy
used across the registry, keyset handling, and primitive wrappers.

Design goals:
- Stable `code` string suitable for programmatic handling.
- One subclass per failure family so callers can `except InvalidKeyset:`.
- Structured `details` for debugging without parsing messages.

Consume-side failures (DecryptionFailed / VerificationFailed) never carry
per-candidate details.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


# Wire / parsing
KS_E_PARSE = "KS_E_PARSE"

# Registry
KS_E_UNSUPPORTED_KEY_TYPE = "KS_E_UNSUPPORTED_KEY_TYPE"
KS_E_DUPLICATE_REGISTRATION = "KS_E_DUPLICATE_REGISTRATION"

# Keys / parameters
KS_E_INVALID_KEY = "KS_E_INVALID_KEY"
KS_E_INVALID_PARAMETERS = "KS_E_INVALID_PARAMETERS"

# Keysets
KS_E_INVALID_KEYSET = "KS_E_INVALID_KEYSET"

# Access control
KS_E_PERMISSION_DENIED = "KS_E_PERMISSION_DENIED"

# Consume-side aggregate failures
KS_E_DECRYPTION_FAILED = "KS_E_DECRYPTION_FAILED"
KS_E_VERIFICATION_FAILED = "KS_E_VERIFICATION_FAILED"


@dataclass
class KeysetError(Exception):
    """Base keyset-core exception with stable error code."""

    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            d["details"] = self.details
        return d

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ParseFailure(KeysetError):
    """Malformed bytes (wire records, key values, JSON keysets)."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(KS_E_PARSE, message, dict(details))


class UnsupportedKeyType(KeysetError):
    """No usable manager for a type url (unregistered or filtered)."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(KS_E_UNSUPPORTED_KEY_TYPE, message, dict(details))


class DuplicateRegistration(KeysetError):
    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(KS_E_DUPLICATE_REGISTRATION, message, dict(details))


class InvalidKey(KeysetError):
    """A single key failed semantic validation."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(KS_E_INVALID_KEY, message, dict(details))


class InvalidParameters(KeysetError):
    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(KS_E_INVALID_PARAMETERS, message, dict(details))


class InvalidKeyset(KeysetError):
    """A structural keyset invariant is violated. Never auto-repaired."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(KS_E_INVALID_KEYSET, message, dict(details))


class PermissionDenied(KeysetError):
    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(KS_E_PERMISSION_DENIED, message, dict(details))


class DecryptionFailed(KeysetError):
    def __init__(self, message: str = "decryption failed") -> None:
        super().__init__(KS_E_DECRYPTION_FAILED, message, {})


class VerificationFailed(KeysetError):
    def __init__(self, message: str = "invalid signature") -> None:
        super().__init__(KS_E_VERIFICATION_FAILED, message, {})
