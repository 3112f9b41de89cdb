"""Keyset wire records.

Binary encoding (see `wire`), field tags per record:

    KeyData          1 type_url (utf-8)   2 value   3 key_material_type (u32)
    KeysetKey        1 key_data (KeyData, absent when DESTROYED)
                     2 status (u32)       3 key_id (u32)
                     4 output_prefix_type (u32)
    Keyset           1 primary_key_id (u32, optional)   2 keys (repeated)
    KeyInfo          1 type_url   2 status   3 key_id   4 output_prefix_type
    KeysetInfo       1 primary_key_id (optional)        2 key_info (repeated)
    EncryptedKeyset  1 encrypted_keyset   2 keyset_info (optional)

JSON encoding uses camelCase member names, enum names for enums and
standard base64 for byte strings:

    {"primaryKeyId": 7, "key": [{"keyData": {"typeUrl": "...",
      "value": "<b64>", "keyMaterialType": "SYMMETRIC"},
      "status": "ENABLED", "keyId": 7, "outputPrefixType": "TINK"}]}

These classes are plain data; structural keyset rules (unique ids, one
primary) are enforced by `KeysetHandle`, not here.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

from .errors import ParseFailure
from .key import KeyMaterialType, KeyStatus
from .output_prefix import OutputPrefixType
from .wire import RecordReader, RecordWriter

E = TypeVar("E", bound=IntEnum)


def _wire_enum(enum_cls: Type[E], value: Optional[int], name: str) -> E:
    try:
        return enum_cls(value)
    except ValueError as e:
        raise ParseFailure(f"unknown {name} value", value=value) from e


def _json_enum(enum_cls: Type[E], value: Any, name: str) -> E:
    if not isinstance(value, str):
        raise ParseFailure(f"{name} must be a string", got=type(value).__name__)
    try:
        return enum_cls[value]
    except KeyError as e:
        raise ParseFailure(f"unknown {name} value", value=value) from e


def _json_uint32(obj: Dict[str, Any], name: str, *, required: bool = True) -> Optional[int]:
    if name not in obj:
        if required:
            raise ParseFailure(f"missing member {name}")
        return None
    v = obj[name]
    if not isinstance(v, int) or isinstance(v, bool) or v < 0 or v > 0xFFFFFFFF:
        raise ParseFailure(f"{name} must be a uint32")
    return v


def _json_str(obj: Dict[str, Any], name: str) -> str:
    v = obj.get(name)
    if not isinstance(v, str):
        raise ParseFailure(f"missing or non-string member {name}")
    return v


def _json_object(v: Any, name: str) -> Dict[str, Any]:
    if not isinstance(v, dict):
        raise ParseFailure(f"{name} must be a JSON object")
    return v


def b64e(b: bytes) -> str:
    return base64.b64encode(bytes(b)).decode("ascii")


def b64d(s: Any, name: str = "value") -> bytes:
    if not isinstance(s, str):
        raise ParseFailure(f"{name} must be a base64 string")
    try:
        return base64.b64decode(s.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ParseFailure(f"{name} is not valid base64") from e


@dataclass(frozen=True)
class KeyData:
    type_url: str
    value: bytes = field(repr=False)
    key_material_type: KeyMaterialType

    def to_bytes(self) -> bytes:
        return (
            RecordWriter()
            .str_field(1, self.type_url)
            .bytes_field(2, self.value)
            .u32_field(3, int(self.key_material_type))
            .to_bytes()
        )

    @classmethod
    def from_bytes(cls, blob: bytes) -> "KeyData":
        r = RecordReader(blob, (1, 2, 3), record="KeyData")
        return cls(
            type_url=r.str_field(1),  # type: ignore[arg-type]
            value=r.bytes_field(2),  # type: ignore[arg-type]
            key_material_type=_wire_enum(KeyMaterialType, r.u32_field(3), "key_material_type"),
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "typeUrl": self.type_url,
            "value": b64e(self.value),
            "keyMaterialType": self.key_material_type.name,
        }

    @classmethod
    def from_json(cls, obj: Any) -> "KeyData":
        o = _json_object(obj, "keyData")
        return cls(
            type_url=_json_str(o, "typeUrl"),
            value=b64d(o.get("value"), "keyData.value"),
            key_material_type=_json_enum(KeyMaterialType, o.get("keyMaterialType"), "keyMaterialType"),
        )


@dataclass(frozen=True)
class KeysetKey:
    key_data: Optional[KeyData]
    status: KeyStatus
    key_id: int
    output_prefix_type: OutputPrefixType

    def to_bytes(self) -> bytes:
        return (
            RecordWriter()
            .bytes_field(1, self.key_data.to_bytes() if self.key_data is not None else None)
            .u32_field(2, int(self.status))
            .u32_field(3, self.key_id)
            .u32_field(4, int(self.output_prefix_type))
            .to_bytes()
        )

    @classmethod
    def from_bytes(cls, blob: bytes) -> "KeysetKey":
        r = RecordReader(blob, (1, 2, 3, 4), record="KeysetKey")
        raw_key_data = r.bytes_field(1, required=False)
        return cls(
            key_data=KeyData.from_bytes(raw_key_data) if raw_key_data is not None else None,
            status=_wire_enum(KeyStatus, r.u32_field(2), "status"),
            key_id=r.u32_field(3),  # type: ignore[arg-type]
            output_prefix_type=_wire_enum(OutputPrefixType, r.u32_field(4), "output_prefix_type"),
        )

    def to_json(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.key_data is not None:
            d["keyData"] = self.key_data.to_json()
        d["status"] = self.status.name
        d["keyId"] = self.key_id
        d["outputPrefixType"] = self.output_prefix_type.name
        return d

    @classmethod
    def from_json(cls, obj: Any) -> "KeysetKey":
        o = _json_object(obj, "key")
        return cls(
            key_data=KeyData.from_json(o["keyData"]) if "keyData" in o else None,
            status=_json_enum(KeyStatus, o.get("status"), "status"),
            key_id=_json_uint32(o, "keyId"),  # type: ignore[arg-type]
            output_prefix_type=_json_enum(OutputPrefixType, o.get("outputPrefixType"), "outputPrefixType"),
        )


@dataclass(frozen=True)
class Keyset:
    primary_key_id: Optional[int]
    keys: Tuple[KeysetKey, ...]

    def to_bytes(self) -> bytes:
        return (
            RecordWriter()
            .u32_field(1, self.primary_key_id)
            .repeated_field(2, (k.to_bytes() for k in self.keys))
            .to_bytes()
        )

    @classmethod
    def from_bytes(cls, blob: bytes) -> "Keyset":
        r = RecordReader(blob, (1, 2), record="Keyset")
        return cls(
            primary_key_id=r.u32_field(1, required=False),
            keys=tuple(KeysetKey.from_bytes(b) for b in r.repeated_field(2)),
        )

    def to_json(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.primary_key_id is not None:
            d["primaryKeyId"] = self.primary_key_id
        d["key"] = [k.to_json() for k in self.keys]
        return d

    @classmethod
    def from_json(cls, obj: Any) -> "Keyset":
        o = _json_object(obj, "keyset")
        keys = o.get("key", [])
        if not isinstance(keys, list):
            raise ParseFailure("key must be a JSON array")
        return cls(
            primary_key_id=_json_uint32(o, "primaryKeyId", required=False),
            keys=tuple(KeysetKey.from_json(k) for k in keys),
        )


@dataclass(frozen=True)
class KeyInfo:
    type_url: str
    status: KeyStatus
    key_id: int
    output_prefix_type: OutputPrefixType

    def to_bytes(self) -> bytes:
        return (
            RecordWriter()
            .str_field(1, self.type_url)
            .u32_field(2, int(self.status))
            .u32_field(3, self.key_id)
            .u32_field(4, int(self.output_prefix_type))
            .to_bytes()
        )

    @classmethod
    def from_bytes(cls, blob: bytes) -> "KeyInfo":
        r = RecordReader(blob, (1, 2, 3, 4), record="KeyInfo")
        return cls(
            type_url=r.str_field(1),  # type: ignore[arg-type]
            status=_wire_enum(KeyStatus, r.u32_field(2), "status"),
            key_id=r.u32_field(3),  # type: ignore[arg-type]
            output_prefix_type=_wire_enum(OutputPrefixType, r.u32_field(4), "output_prefix_type"),
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "typeUrl": self.type_url,
            "status": self.status.name,
            "keyId": self.key_id,
            "outputPrefixType": self.output_prefix_type.name,
        }

    @classmethod
    def from_json(cls, obj: Any) -> "KeyInfo":
        o = _json_object(obj, "keyInfo")
        return cls(
            type_url=_json_str(o, "typeUrl"),
            status=_json_enum(KeyStatus, o.get("status"), "status"),
            key_id=_json_uint32(o, "keyId"),  # type: ignore[arg-type]
            output_prefix_type=_json_enum(OutputPrefixType, o.get("outputPrefixType"), "outputPrefixType"),
        )


@dataclass(frozen=True)
class KeysetInfo:
    """Secret-free description of a keyset."""

    primary_key_id: Optional[int]
    key_info: Tuple[KeyInfo, ...]

    def to_bytes(self) -> bytes:
        return (
            RecordWriter()
            .u32_field(1, self.primary_key_id)
            .repeated_field(2, (k.to_bytes() for k in self.key_info))
            .to_bytes()
        )

    @classmethod
    def from_bytes(cls, blob: bytes) -> "KeysetInfo":
        r = RecordReader(blob, (1, 2), record="KeysetInfo")
        return cls(
            primary_key_id=r.u32_field(1, required=False),
            key_info=tuple(KeyInfo.from_bytes(b) for b in r.repeated_field(2)),
        )

    def to_json(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.primary_key_id is not None:
            d["primaryKeyId"] = self.primary_key_id
        d["keyInfo"] = [k.to_json() for k in self.key_info]
        return d

    @classmethod
    def from_json(cls, obj: Any) -> "KeysetInfo":
        o = _json_object(obj, "keysetInfo")
        infos = o.get("keyInfo", [])
        if not isinstance(infos, list):
            raise ParseFailure("keyInfo must be a JSON array")
        return cls(
            primary_key_id=_json_uint32(o, "primaryKeyId", required=False),
            key_info=tuple(KeyInfo.from_json(k) for k in infos),
        )


@dataclass(frozen=True)
class EncryptedKeyset:
    encrypted_keyset: bytes
    keyset_info: Optional[KeysetInfo] = None

    def to_bytes(self) -> bytes:
        return (
            RecordWriter()
            .bytes_field(1, self.encrypted_keyset)
            .bytes_field(2, self.keyset_info.to_bytes() if self.keyset_info is not None else None)
            .to_bytes()
        )

    @classmethod
    def from_bytes(cls, blob: bytes) -> "EncryptedKeyset":
        r = RecordReader(blob, (1, 2), record="EncryptedKeyset")
        raw_info = r.bytes_field(2, required=False)
        return cls(
            encrypted_keyset=r.bytes_field(1),  # type: ignore[arg-type]
            keyset_info=KeysetInfo.from_bytes(raw_info) if raw_info is not None else None,
        )

    def to_json(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"encryptedKeyset": b64e(self.encrypted_keyset)}
        if self.keyset_info is not None:
            d["keysetInfo"] = self.keyset_info.to_json()
        return d

    @classmethod
    def from_json(cls, obj: Any) -> "EncryptedKeyset":
        o = _json_object(obj, "encryptedKeyset")
        return cls(
            encrypted_keyset=b64d(o.get("encryptedKeyset"), "encryptedKeyset"),
            keyset_info=KeysetInfo.from_json(o["keysetInfo"]) if "keysetInfo" in o else None,
        )


def keyset_info(keyset: Keyset) -> KeysetInfo:
    return KeysetInfo(
        primary_key_id=keyset.primary_key_id,
        key_info=tuple(
            KeyInfo(
                type_url=k.key_data.type_url if k.key_data is not None else "",
                status=k.status,
                key_id=k.key_id,
                output_prefix_type=k.output_prefix_type,
            )
            for k in keyset.keys
        ),
    )
