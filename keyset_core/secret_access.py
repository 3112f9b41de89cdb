"""Secret key access tokens.

Raw key bytes are only reachable through `SecretBytes.to_bytes(access)`,
where `access` must be the one `SecretKeyAccess` instance returned by
`insecure_secret_key_access()`. The token class cannot be constructed by
callers, so every call site that touches raw secret material names the token
explicitly and stands out in review.
"""

from __future__ import annotations

import hmac
import secrets
from typing import Any, Optional

from .errors import PermissionDenied

_CONSTRUCTION_GUARD = object()


class SecretKeyAccess:
    """Marker proving that the caller explicitly asked for secret bytes."""

    __slots__ = ()

    def __init__(self, guard: Any = None) -> None:
        if guard is not _CONSTRUCTION_GUARD:
            raise PermissionDenied("SecretKeyAccess cannot be constructed directly")

    def __repr__(self) -> str:
        return "SecretKeyAccess()"


_TOKEN = SecretKeyAccess(_CONSTRUCTION_GUARD)


def insecure_secret_key_access() -> SecretKeyAccess:
    """Return the secret-access token.

    Named "insecure" on purpose: code that calls this can read raw keys.
    """
    return _TOKEN


def require_access(access: Optional[SecretKeyAccess]) -> None:
    if access is not _TOKEN:
        raise PermissionDenied("secret key access token required")


class SecretBytes:
    """Immutable secret byte string.

    Equality is constant time. `repr()` never shows the content.
    """

    __slots__ = ("_value",)

    def __init__(self, value: bytes, access: Optional[SecretKeyAccess]) -> None:
        require_access(access)
        self._value = bytes(value)

    @classmethod
    def random(cls, size: int) -> "SecretBytes":
        if size < 0:
            raise ValueError("size must be non-negative")
        return cls(secrets.token_bytes(size), _TOKEN)

    def to_bytes(self, access: Optional[SecretKeyAccess]) -> bytes:
        require_access(access)
        return self._value

    def __len__(self) -> int:
        return len(self._value)

    def equal_secret_bytes(self, other: "SecretBytes") -> bool:
        if not isinstance(other, SecretBytes):
            return False
        return hmac.compare_digest(self._value, other._value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SecretBytes):
            return NotImplemented
        return self.equal_secret_bytes(other)

    def __hash__(self) -> int:
        # Length only; content must not leak through hashing.
        return hash(("SecretBytes", len(self._value)))

    def __repr__(self) -> str:
        return f"SecretBytes(<{len(self._value)} bytes>)"
