"""Key rotation and lifecycle management on top of KeysetHandle.

Every operation produces a new immutable KeysetHandle; the previous handle
stays valid. The primary key can never be disabled, destroyed or deleted;
promote another key first.

DESTROYED keys keep their id and metadata but lose their key data. Their id
stays reserved, so it is never handed out again by this keyset.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from .errors import InvalidKeyset
from .key import KeyStatus, Parameters
from .keyset_handle import KeysetHandle, KeysetHandleBuilder
from .registry import Registry

logger = logging.getLogger("keyset_core.keyset_manager")

ParametersOrName = Union[Parameters, str]


class KeysetManager:
    def __init__(self, handle: Optional[KeysetHandle] = None, registry: Optional[Registry] = None) -> None:
        self._handle = handle
        self._registry = registry if registry is not None else (handle.registry if handle is not None else None)

    @classmethod
    def with_keyset_handle(cls, handle: KeysetHandle) -> "KeysetManager":
        return cls(handle)

    @classmethod
    def with_empty_keyset(cls, registry: Optional[Registry] = None) -> "KeysetManager":
        return cls(None, registry)

    def keyset_handle(self) -> KeysetHandle:
        if self._handle is None:
            raise InvalidKeyset("keyset is empty")
        return self._handle

    # ------------------------------------------------------------------

    def _builder(self) -> KeysetHandleBuilder:
        return KeysetHandle.new_builder(self._handle, self._registry)

    def _index_of(self, key_id: int) -> int:
        handle = self.keyset_handle()
        for i, e in enumerate(handle):
            if e.id == key_id:
                return i
        raise InvalidKeyset("key not found", key_id=key_id)

    @staticmethod
    def _entry_for(template: ParametersOrName):
        if isinstance(template, str):
            return KeysetHandleBuilder.generate_entry_from_template_name(template)
        return KeysetHandleBuilder.generate_entry_from_parameters(template)

    # ------------------------------------------------------------------

    def add_new_key(self, template: ParametersOrName, as_primary: bool = False) -> int:
        """Generate a key from parameters or a template name; return its id.

        The first key added to an empty keyset always becomes primary.
        """
        builder = self._builder()
        entry = self._entry_for(template).with_random_id()
        builder.add_entry(entry)
        if as_primary or self._handle is None:
            entry.make_primary()
        self._handle = builder.build()
        new_id = self._handle[self._handle.size() - 1].id
        logger.info("added key to keyset (primary=%s)", entry.is_primary)
        return new_id

    def add(self, template: ParametersOrName) -> "KeysetManager":
        self.add_new_key(template)
        return self

    def rotate(self, template: ParametersOrName) -> "KeysetManager":
        """Add a new key and make it the primary."""
        self.add_new_key(template, as_primary=True)
        return self

    def set_primary(self, key_id: int) -> "KeysetManager":
        i = self._index_of(key_id)
        if self.keyset_handle()[i].status != KeyStatus.ENABLED:
            raise InvalidKeyset("cannot make a key primary unless it is ENABLED", key_id=key_id)
        builder = self._builder()
        builder.get_at(i).make_primary()
        self._handle = builder.build()
        return self

    promote = set_primary

    def _set_status(self, key_id: int, status: KeyStatus, verb: str) -> "KeysetManager":
        i = self._index_of(key_id)
        entry = self.keyset_handle()[i]
        if entry.is_primary and status != KeyStatus.ENABLED:
            raise InvalidKeyset(f"cannot {verb} the primary key", key_id=key_id)
        if entry.status == KeyStatus.DESTROYED and status != KeyStatus.DESTROYED:
            raise InvalidKeyset(f"cannot {verb} a DESTROYED key", key_id=key_id)
        builder = self._builder()
        builder.get_at(i).set_status(status)
        self._handle = builder.build()
        return self

    def enable(self, key_id: int) -> "KeysetManager":
        return self._set_status(key_id, KeyStatus.ENABLED, "enable")

    def disable(self, key_id: int) -> "KeysetManager":
        return self._set_status(key_id, KeyStatus.DISABLED, "disable")

    def destroy(self, key_id: int) -> "KeysetManager":
        return self._set_status(key_id, KeyStatus.DESTROYED, "destroy")

    def delete(self, key_id: int) -> "KeysetManager":
        """Remove a key entry. DESTROYED entries stay so their id remains reserved."""
        i = self._index_of(key_id)
        entry = self.keyset_handle()[i]
        if entry.is_primary:
            raise InvalidKeyset("cannot delete the primary key", key_id=key_id)
        if entry.status == KeyStatus.DESTROYED:
            raise InvalidKeyset("cannot delete a DESTROYED key, its id stays reserved", key_id=key_id)
        builder = self._builder()
        builder.remove_at(i)
        self._handle = builder.build()
        return self
