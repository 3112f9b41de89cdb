"""Binary record codec.

Records are sequences of TLV fields (Type=u16, Length=u32, Value=bytes),
network byte order. The encoding is canonical:

- field tags strictly ascending, each tag at most once
- unknown tags are rejected
- integer fields are exactly 4 bytes, big endian (uint32)
- optional fields are omitted when absent

Decoding enforces all of the above, so a byte string that decodes
successfully re-encodes to exactly the same bytes.
"""

from __future__ import annotations

import struct
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import ParseFailure

_TLV_HDR = struct.Struct("!HI")  # tag(u16), len(u32)
_U32 = struct.Struct("!I")

MAX_TAG = 0xFFFF


def enc_field(tag: int, value: bytes) -> bytes:
    vb = bytes(value)
    if tag < 1 or tag > MAX_TAG:
        raise ValueError("field tag out of range")
    if len(vb) > 0xFFFFFFFF:
        raise ValueError("field too long")
    return _TLV_HDR.pack(tag, len(vb)) + vb


def enc_u32(value: int) -> bytes:
    if value < 0 or value > 0xFFFFFFFF:
        raise ValueError("uint32 out of range")
    return _U32.pack(value)


def dec_u32(value: bytes, *, name: str = "field") -> int:
    if len(value) != _U32.size:
        raise ParseFailure(f"{name} must be a 4-byte uint32", got_len=len(value))
    return _U32.unpack(value)[0]


def dec_fields(blob: bytes) -> List[Tuple[int, bytes]]:
    """Split a record into (tag, value) pairs, enforcing canonical order."""
    out: List[Tuple[int, bytes]] = []
    b = bytes(blob)
    i = 0
    last_tag = 0
    while i < len(b):
        if i + _TLV_HDR.size > len(b):
            raise ParseFailure("truncated field header", offset=i)
        tag, ln = _TLV_HDR.unpack_from(b, i)
        i += _TLV_HDR.size
        if i + ln > len(b):
            raise ParseFailure("truncated field value", tag=tag)
        if tag <= last_tag:
            raise ParseFailure("field tags must be strictly ascending", tag=tag)
        out.append((int(tag), b[i : i + ln]))
        last_tag = tag
        i += ln
    return out


class RecordWriter:
    """Accumulates fields for one record."""

    def __init__(self) -> None:
        self._fields: Dict[int, bytes] = {}

    def bytes_field(self, tag: int, value: Optional[bytes]) -> "RecordWriter":
        if value is not None:
            self._put(tag, bytes(value))
        return self

    def u32_field(self, tag: int, value: Optional[int]) -> "RecordWriter":
        if value is not None:
            self._put(tag, enc_u32(int(value)))
        return self

    def str_field(self, tag: int, value: Optional[str]) -> "RecordWriter":
        if value is not None:
            self._put(tag, value.encode("utf-8"))
        return self

    def repeated_field(self, tag: int, values: Iterable[bytes]) -> "RecordWriter":
        # Repeated values are wrapped as a list of length-prefixed items
        # inside a single field so tags stay unique.
        items = [bytes(v) for v in values]
        if items:
            self._put(tag, b"".join(_U32.pack(len(v)) + v for v in items))
        return self

    def _put(self, tag: int, value: bytes) -> None:
        if tag in self._fields:
            raise ValueError(f"field {tag} written twice")
        self._fields[tag] = value

    def to_bytes(self) -> bytes:
        return b"".join(enc_field(t, v) for t, v in sorted(self._fields.items()))


class RecordReader:
    """Typed access to the fields of one decoded record.

    `allowed` lists every tag the schema defines; anything else is a
    ParseFailure.
    """

    def __init__(self, blob: bytes, allowed: Iterable[int], *, record: str = "record") -> None:
        self._record = record
        allowed_set = set(allowed)
        self._fields: Dict[int, bytes] = {}
        for tag, value in dec_fields(blob):
            if tag not in allowed_set:
                raise ParseFailure(f"unknown field in {record}", tag=tag)
            self._fields[tag] = value

    def has(self, tag: int) -> bool:
        return tag in self._fields

    def bytes_field(self, tag: int, *, required: bool = True) -> Optional[bytes]:
        if tag not in self._fields:
            if required:
                raise ParseFailure(f"missing field {tag} in {self._record}")
            return None
        return self._fields[tag]

    def u32_field(self, tag: int, *, required: bool = True) -> Optional[int]:
        raw = self.bytes_field(tag, required=required)
        if raw is None:
            return None
        return dec_u32(raw, name=f"{self._record}.{tag}")

    def str_field(self, tag: int, *, required: bool = True) -> Optional[str]:
        raw = self.bytes_field(tag, required=required)
        if raw is None:
            return None
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseFailure(f"{self._record}.{tag} is not valid UTF-8") from e

    def repeated_field(self, tag: int) -> List[bytes]:
        raw = self._fields.get(tag)
        if raw is None:
            return []
        if not raw:
            raise ParseFailure(f"empty repeated field in {self._record}.{tag}")
        out: List[bytes] = []
        i = 0
        while i < len(raw):
            if i + _U32.size > len(raw):
                raise ParseFailure(f"truncated item length in {self._record}.{tag}")
            (ln,) = _U32.unpack_from(raw, i)
            i += _U32.size
            if i + ln > len(raw):
                raise ParseFailure(f"truncated item in {self._record}.{tag}")
            out.append(raw[i : i + ln])
            i += ln
        return out
