"""Primitive sets: the runtime pairing of keyset entries with primitives.

A PrimitiveSet is built from the ENABLED entries of a keyset each time a
caller asks a KeysetHandle for a primitive. It is never persisted or cached.
Wrappers use it for output-prefix dispatch:

- produce: always the primary entry
- consume: entries whose prefix matches the first 5 input bytes, plus every
  RAW entry, tried in keyset order
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple

from .errors import InvalidKeyset
from .key import Key, KeyStatus
from .output_prefix import OutputPrefixType, extract_prefix


@dataclass(frozen=True)
class PrimitiveSetEntry:
    primitive: Any
    key_id: int
    status: KeyStatus
    output_prefix_type: OutputPrefixType
    prefix: bytes
    is_primary: bool
    key: Key


class PrimitiveSet:
    """Immutable set of primitives of one capability type."""

    def __init__(self, primitive_class: type, entries: Iterable[PrimitiveSetEntry]) -> None:
        items = tuple(entries)
        if not items:
            raise InvalidKeyset("primitive set must contain at least one entry")
        primaries = [e for e in items if e.is_primary]
        if len(primaries) > 1:
            raise InvalidKeyset("primitive set has more than one primary")
        for e in items:
            if e.status != KeyStatus.ENABLED:
                raise InvalidKeyset("primitive set entries must be ENABLED", key_id=e.key_id)
        self._primitive_class = primitive_class
        self._entries: Tuple[PrimitiveSetEntry, ...] = items
        self._primary: Optional[PrimitiveSetEntry] = primaries[0] if primaries else None

    @property
    def primitive_class(self) -> type:
        return self._primitive_class

    def entries(self) -> Tuple[PrimitiveSetEntry, ...]:
        return self._entries

    def has_primary(self) -> bool:
        return self._primary is not None

    def primary(self) -> PrimitiveSetEntry:
        if self._primary is None:
            raise InvalidKeyset("keyset has no primary key; it can only be used to consume")
        return self._primary

    def raw_entries(self) -> List[PrimitiveSetEntry]:
        return [e for e in self._entries if not e.prefix]

    def entries_for_prefix(self, prefix: bytes) -> List[PrimitiveSetEntry]:
        return [e for e in self._entries if e.prefix and e.prefix == prefix]

    def candidates(self, data: bytes) -> List[Tuple[PrimitiveSetEntry, bytes]]:
        """Return (entry, payload) pairs to try, in keyset order.

        Prefix-matching entries receive `data` with the prefix stripped; RAW
        entries receive `data` unchanged.
        """
        prefix = extract_prefix(data)
        out: List[Tuple[PrimitiveSetEntry, bytes]] = []
        for e in self._entries:
            if not e.prefix:
                out.append((e, bytes(data)))
            elif prefix is not None and e.prefix == prefix:
                out.append((e, bytes(data[len(e.prefix):])))
        return out

    def __len__(self) -> int:
        return len(self._entries)
