"""Output-prefix framing.

Every ciphertext or signature produced through a keyset starts with a prefix
that names the producing key:

    RAW              -> b""
    TINK             -> 0x01 || uint32_be(key_id)
    LEGACY / CRUNCHY -> 0x00 || uint32_be(key_id)

The prefix is a pure function of (variant, key_id). It never depends on key
material, so it can be computed before any cryptographic operation and used
to pick candidate keys on the consume side.

LEGACY additionally changes the signed message to `data || 0x00`. That
formatting is kept only so that old signatures keep verifying.
"""

from __future__ import annotations

import struct
from enum import IntEnum
from typing import Optional

from .errors import InvalidKey

NON_RAW_PREFIX_SIZE = 5
TINK_START_BYTE = 0x01
LEGACY_START_BYTE = 0x00
LEGACY_MESSAGE_SUFFIX = b"\x00"

MAX_KEY_ID = 0xFFFFFFFF

_PREFIX = struct.Struct("!BI")


class OutputPrefixType(IntEnum):
    """Wire values match the keyset record encoding."""

    UNKNOWN_PREFIX = 0
    TINK = 1
    LEGACY = 2
    RAW = 3
    CRUNCHY = 4


def validate_key_id(key_id: int) -> int:
    if not isinstance(key_id, int) or isinstance(key_id, bool):
        raise InvalidKey("key id must be an integer", got=type(key_id).__name__)
    if key_id < 0 or key_id > MAX_KEY_ID:
        raise InvalidKey("key id out of uint32 range", key_id=key_id)
    return key_id


def output_prefix(variant: OutputPrefixType, key_id: Optional[int]) -> bytes:
    """Compute the prefix bytes for a (variant, key id) pair."""
    if variant == OutputPrefixType.RAW:
        return b""
    if variant == OutputPrefixType.UNKNOWN_PREFIX:
        raise InvalidKey("unknown output prefix type")
    if key_id is None:
        raise InvalidKey("non-RAW output prefix requires a key id", variant=variant.name)
    kid = validate_key_id(key_id)
    if variant == OutputPrefixType.TINK:
        return _PREFIX.pack(TINK_START_BYTE, kid)
    if variant in (OutputPrefixType.LEGACY, OutputPrefixType.CRUNCHY):
        return _PREFIX.pack(LEGACY_START_BYTE, kid)
    raise InvalidKey("unsupported output prefix type", variant=int(variant))


def extract_prefix(data: bytes) -> Optional[bytes]:
    """Return the candidate 5-byte prefix of `data`, or None if too short."""
    if len(data) < NON_RAW_PREFIX_SIZE:
        return None
    return bytes(data[:NON_RAW_PREFIX_SIZE])


def legacy_format_message(variant: OutputPrefixType, data: bytes) -> bytes:
    if variant == OutputPrefixType.LEGACY:
        return bytes(data) + LEGACY_MESSAGE_SUFFIX
    return bytes(data)
