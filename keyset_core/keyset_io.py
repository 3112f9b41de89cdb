"""Keyset readers and writers.

Readers take the serialized form directly; writers take a stream. Both come
in a binary (canonical TLV) and a JSON flavour.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, BinaryIO, TextIO, Union

from .errors import ParseFailure
from .keyset import EncryptedKeyset, Keyset


class KeysetReader(ABC):
    @abstractmethod
    def read(self) -> Keyset: ...

    @abstractmethod
    def read_encrypted(self) -> EncryptedKeyset: ...


class KeysetWriter(ABC):
    @abstractmethod
    def write(self, keyset: Keyset) -> None: ...

    @abstractmethod
    def write_encrypted(self, encrypted_keyset: EncryptedKeyset) -> None: ...


class BinaryKeysetReader(KeysetReader):
    def __init__(self, serialized_keyset: bytes) -> None:
        self._data = bytes(serialized_keyset)

    def read(self) -> Keyset:
        if not self._data:
            raise ParseFailure("empty keyset")
        return Keyset.from_bytes(self._data)

    def read_encrypted(self) -> EncryptedKeyset:
        if not self._data:
            raise ParseFailure("empty encrypted keyset")
        return EncryptedKeyset.from_bytes(self._data)


class BinaryKeysetWriter(KeysetWriter):
    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream

    def write(self, keyset: Keyset) -> None:
        self._stream.write(keyset.to_bytes())
        self._stream.flush()

    def write_encrypted(self, encrypted_keyset: EncryptedKeyset) -> None:
        self._stream.write(encrypted_keyset.to_bytes())
        self._stream.flush()


class JsonKeysetReader(KeysetReader):
    def __init__(self, serialized_keyset: Union[str, bytes]) -> None:
        if isinstance(serialized_keyset, bytes):
            try:
                serialized_keyset = serialized_keyset.decode("utf-8")
            except UnicodeDecodeError as e:
                raise ParseFailure("JSON keyset is not valid UTF-8") from e
        self._text = serialized_keyset

    def _load(self) -> Any:
        try:
            return json.loads(self._text)
        except json.JSONDecodeError as e:
            raise ParseFailure("invalid JSON keyset", error=str(e)) from e

    def read(self) -> Keyset:
        return Keyset.from_json(self._load())

    def read_encrypted(self) -> EncryptedKeyset:
        return EncryptedKeyset.from_json(self._load())


class JsonKeysetWriter(KeysetWriter):
    def __init__(self, stream: TextIO) -> None:
        self._stream = stream

    def _dump(self, obj: Any) -> None:
        self._stream.write(json.dumps(obj, indent=2, sort_keys=True))
        self._stream.flush()

    def write(self, keyset: Keyset) -> None:
        self._dump(keyset.to_json())

    def write_encrypted(self, encrypted_keyset: EncryptedKeyset) -> None:
        self._dump(encrypted_keyset.to_json())
