"""KeysetHandle and KeysetHandleBuilder.

A KeysetHandle is an immutable, validated keyset. Handles are produced by
`KeysetHandleBuilder.build()` or by one of the `read*` class methods; both
paths go through the same validation:

- at least one entry, key ids unique
- no entry with UNKNOWN status or UNKNOWN output prefix type
- the primary exists and is ENABLED
- a keyset without a primary is only accepted when every stored key is a
  public key (verification-only keysets)
- every non-DESTROYED entry parses through the registry

Handles never expose raw key bytes. Reading or writing secret material in
cleartext needs the secret-access token.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, List, Optional, Set, Union

from .errors import InvalidKeyset, PermissionDenied
from .key import Key, KeyMaterialType, KeyStatus, Parameters
from .keyset import EncryptedKeyset, KeyData, Keyset, KeysetInfo, KeysetKey, keyset_info
from .keyset_io import BinaryKeysetReader, KeysetReader, KeysetWriter
from .output_prefix import OutputPrefixType, output_prefix
from .primitive_set import PrimitiveSet, PrimitiveSetEntry
from .primitives import Aead
from .registry import Registry, resolve
from .secret_access import SecretKeyAccess, insecure_secret_key_access, require_access

logger = logging.getLogger("keyset_core.keyset_handle")

_SECRET_MATERIAL = (
    KeyMaterialType.UNKNOWN_KEYMATERIAL,
    KeyMaterialType.SYMMETRIC,
    KeyMaterialType.ASYMMETRIC_PRIVATE,
)


def _random_key_id(used: Set[int]) -> int:
    while True:
        candidate = secrets.randbits(32)
        if candidate != 0 and candidate not in used:
            return candidate


def _check_no_secret(keyset: Keyset) -> None:
    for k in keyset.keys:
        if k.key_data is not None and k.key_data.key_material_type in _SECRET_MATERIAL:
            raise PermissionDenied("keyset contains secret key material")


@dataclass(frozen=True)
class KeysetHandleEntry:
    """Read-only view of one keyset entry. `key` is None for DESTROYED entries."""

    key: Optional[Key]
    id: int
    status: KeyStatus
    is_primary: bool
    output_prefix_type: OutputPrefixType
    type_url: str


class KeysetHandle:
    """Immutable, validated keyset bound to a registry."""

    def __init__(self, keyset: Keyset, entries: List[KeysetHandleEntry], registry: Registry) -> None:
        # Use the build/read entry points; this constructor trusts its input.
        self._keyset = keyset
        self._entries = tuple(entries)
        self._registry = registry

    # ------------------------------------------------------------------
    # construction
    # ------------------------------------------------------------------

    @classmethod
    def _from_keyset(
        cls,
        keyset: Keyset,
        registry: Optional[Registry] = None,
        access: Optional[SecretKeyAccess] = None,
    ) -> "KeysetHandle":
        reg = resolve(registry)
        if not keyset.keys:
            raise InvalidKeyset("keyset must contain at least one key")

        if any(k.status == KeyStatus.DESTROYED and k.key_data is not None for k in keyset.keys):
            logger.warning("dropping stored key material of DESTROYED keys")
            keyset = replace(
                keyset,
                keys=tuple(
                    replace(k, key_data=None) if k.status == KeyStatus.DESTROYED else k for k in keyset.keys
                ),
            )

        seen: Set[int] = set()
        for k in keyset.keys:
            if k.key_id in seen:
                raise InvalidKeyset("duplicate key id in keyset", key_id=k.key_id)
            seen.add(k.key_id)
            if k.status == KeyStatus.UNKNOWN_STATUS:
                raise InvalidKeyset("key has unknown status", key_id=k.key_id)
            if k.output_prefix_type == OutputPrefixType.UNKNOWN_PREFIX:
                raise InvalidKeyset("key has unknown output prefix type", key_id=k.key_id)
            if k.status != KeyStatus.DESTROYED and k.key_data is None:
                raise InvalidKeyset("key has no key data", key_id=k.key_id)

        if keyset.primary_key_id is None:
            live = [k for k in keyset.keys if k.key_data is not None]
            if not live or any(k.key_data.key_material_type != KeyMaterialType.ASYMMETRIC_PUBLIC for k in live):  # type: ignore[union-attr]
                raise InvalidKeyset("keyset has no primary key")
        else:
            primaries = [k for k in keyset.keys if k.key_id == keyset.primary_key_id]
            if not primaries:
                raise InvalidKeyset("primary key id does not match any key", primary_key_id=keyset.primary_key_id)
            if primaries[0].status != KeyStatus.ENABLED:
                raise InvalidKeyset("primary key is not ENABLED", primary_key_id=keyset.primary_key_id)

        entries: List[KeysetHandleEntry] = []
        for k in keyset.keys:
            key: Optional[Key] = None
            type_url = ""
            if k.key_data is not None:
                type_url = k.key_data.type_url
            if k.status != KeyStatus.DESTROYED:
                id_requirement = None if k.output_prefix_type == OutputPrefixType.RAW else k.key_id
                key = reg.parse_key(k.key_data, k.output_prefix_type, id_requirement, access)
            entries.append(
                KeysetHandleEntry(
                    key=key,
                    id=k.key_id,
                    status=k.status,
                    is_primary=k.key_id == keyset.primary_key_id,
                    output_prefix_type=k.output_prefix_type,
                    type_url=type_url,
                )
            )
        return cls(keyset, entries, reg)

    @classmethod
    def generate_new(cls, parameters: Parameters, registry: Optional[Registry] = None) -> "KeysetHandle":
        """New keyset with one ENABLED primary key generated from `parameters`."""
        builder = KeysetHandleBuilder(registry)
        builder.add_entry(
            KeysetHandleBuilder.generate_entry_from_parameters(parameters).with_random_id().make_primary()
        )
        return builder.build()

    @classmethod
    def new_builder(cls, handle: Optional["KeysetHandle"] = None, registry: Optional[Registry] = None) -> "KeysetHandleBuilder":
        """Builder seeded with the entries of `handle` (ids, status and primary kept)."""
        builder = KeysetHandleBuilder(registry if registry is not None else (handle._registry if handle else None))
        if handle is not None:
            for raw, entry in zip(handle._keyset.keys, handle._entries):
                staged = _StagedEntry(key=entry.key, existing=raw).with_fixed_id(entry.id).set_status(entry.status)
                if entry.is_primary:
                    staged.make_primary()
                builder.add_entry(staged)
        return builder

    # ------------------------------------------------------------------
    # accessors
    # ------------------------------------------------------------------

    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> KeysetHandleEntry:
        return self._entries[index]

    def __iter__(self) -> Iterator[KeysetHandleEntry]:
        return iter(self._entries)

    def primary(self) -> KeysetHandleEntry:
        for e in self._entries:
            if e.is_primary:
                return e
        raise InvalidKeyset("keyset has no primary key")

    def keyset_info(self) -> KeysetInfo:
        return keyset_info(self._keyset)

    @property
    def registry(self) -> Registry:
        return self._registry

    def __repr__(self) -> str:
        return f"KeysetHandle({self.keyset_info()!r})"

    # ------------------------------------------------------------------
    # primitives
    # ------------------------------------------------------------------

    def get_primitive(self, primitive_class: type, registry: Optional[Registry] = None) -> Any:
        """Return a keyset-level primitive of type `primitive_class`.

        One primitive is created per ENABLED entry; DISABLED and DESTROYED
        entries are skipped.
        """
        reg = registry if registry is not None else self._registry
        items: List[PrimitiveSetEntry] = []
        for e in self._entries:
            if e.status != KeyStatus.ENABLED or e.key is None:
                continue
            items.append(
                PrimitiveSetEntry(
                    primitive=reg.get_primitive(e.key, primitive_class),
                    key_id=e.id,
                    status=e.status,
                    output_prefix_type=e.output_prefix_type,
                    prefix=output_prefix(e.output_prefix_type, e.id),
                    is_primary=e.is_primary,
                    key=e.key,
                )
            )
        return reg.wrap(PrimitiveSet(primitive_class, items))

    def get_public_keyset_handle(self) -> "KeysetHandle":
        """Public-only projection; ids, status and primary are preserved."""
        keys: List[KeysetKey] = []
        for raw, e in zip(self._keyset.keys, self._entries):
            if e.key is None:
                keys.append(raw)
                continue
            if raw.key_data is None or raw.key_data.key_material_type != KeyMaterialType.ASYMMETRIC_PRIVATE:
                raise InvalidKeyset("keyset contains a key that is not a private key", key_id=e.id)
            public = self._registry.public_key(e.key)
            ser = self._registry.serialize_key(public)
            keys.append(
                KeysetKey(
                    key_data=KeyData(ser.type_url, ser.value, ser.key_material_type),
                    status=raw.status,
                    key_id=raw.key_id,
                    output_prefix_type=raw.output_prefix_type,
                )
            )
        public_keyset = Keyset(primary_key_id=self._keyset.primary_key_id, keys=tuple(keys))
        return KeysetHandle._from_keyset(public_keyset, self._registry)

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------

    def write(self, writer: KeysetWriter, master_aead: Aead, associated_data: bytes = b"") -> None:
        """Write the keyset encrypted under `master_aead`."""
        encrypted = master_aead.encrypt(self._keyset.to_bytes(), associated_data)
        writer.write_encrypted(EncryptedKeyset(encrypted_keyset=encrypted, keyset_info=self.keyset_info()))

    @classmethod
    def read(
        cls,
        reader: KeysetReader,
        master_aead: Aead,
        associated_data: bytes = b"",
        registry: Optional[Registry] = None,
    ) -> "KeysetHandle":
        encrypted = reader.read_encrypted()
        plaintext = master_aead.decrypt(encrypted.encrypted_keyset, associated_data)
        keyset = BinaryKeysetReader(plaintext).read()
        return cls._from_keyset(keyset, registry, insecure_secret_key_access())

    def write_no_secret(self, writer: KeysetWriter) -> None:
        _check_no_secret(self._keyset)
        writer.write(self._keyset)

    @classmethod
    def read_no_secret(cls, reader: KeysetReader, registry: Optional[Registry] = None) -> "KeysetHandle":
        keyset = reader.read()
        _check_no_secret(keyset)
        return cls._from_keyset(keyset, registry)

    def write_cleartext(self, writer: KeysetWriter, access: Optional[SecretKeyAccess]) -> None:
        require_access(access)
        writer.write(self._keyset)

    @classmethod
    def read_cleartext(
        cls,
        reader: KeysetReader,
        access: Optional[SecretKeyAccess],
        registry: Optional[Registry] = None,
    ) -> "KeysetHandle":
        require_access(access)
        return cls._from_keyset(reader.read(), registry, access)


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

_RANDOM_ID = "random"


class _StagedEntry:
    """Mutable entry staged in a KeysetHandleBuilder."""

    def __init__(
        self,
        *,
        key: Optional[Key] = None,
        parameters: Optional[Parameters] = None,
        template_name: Optional[str] = None,
        existing: Optional[KeysetKey] = None,
    ) -> None:
        self._key = key
        self._parameters = parameters
        self._template_name = template_name
        self._existing = existing
        self._id_strategy: Union[None, str, int] = None
        self._status = KeyStatus.ENABLED
        self._primary = False
        self._builder: Optional["KeysetHandleBuilder"] = None

    def with_random_id(self) -> "_StagedEntry":
        self._id_strategy = _RANDOM_ID
        return self

    def with_fixed_id(self, key_id: int) -> "_StagedEntry":
        self._id_strategy = int(key_id)
        return self

    def make_primary(self) -> "_StagedEntry":
        if self._builder is not None:
            self._builder._clear_primary()
        self._primary = True
        return self

    def unset_primary(self) -> "_StagedEntry":
        self._primary = False
        return self

    def set_status(self, status: KeyStatus) -> "_StagedEntry":
        self._status = KeyStatus(status)
        return self

    @property
    def is_primary(self) -> bool:
        return self._primary

    @property
    def status(self) -> KeyStatus:
        return self._status

    def _forced_id(self) -> Optional[int]:
        """The id this entry must get, or None if it may be random."""
        requirement = self._key.id_requirement if self._key is not None else None
        if requirement is not None:
            if self._id_strategy == _RANDOM_ID:
                raise InvalidKeyset("key has an id requirement; a random id cannot be used", key_id=requirement)
            if isinstance(self._id_strategy, int) and self._id_strategy != requirement:
                raise InvalidKeyset(
                    "fixed id conflicts with the key's id requirement",
                    key_id=self._id_strategy,
                    id_requirement=requirement,
                )
            return requirement
        if isinstance(self._id_strategy, int):
            return self._id_strategy
        return None


class KeysetHandleBuilder:
    """Mutable staging area for a new KeysetHandle.

    Entries are created with `import_key`, `generate_entry_from_parameters`
    or `generate_entry_from_template_name`, configured, and added with
    `add_entry`. `build()` validates everything at once and either returns a
    KeysetHandle or raises without side effects.
    """

    def __init__(self, registry: Optional[Registry] = None) -> None:
        self._registry = resolve(registry)
        self._entries: List[_StagedEntry] = []

    @staticmethod
    def import_key(key: Key) -> _StagedEntry:
        return _StagedEntry(key=key)

    @staticmethod
    def generate_entry_from_parameters(parameters: Parameters) -> _StagedEntry:
        return _StagedEntry(parameters=parameters)

    @staticmethod
    def generate_entry_from_template_name(name: str) -> _StagedEntry:
        return _StagedEntry(template_name=name)

    def add_entry(self, entry: _StagedEntry) -> "KeysetHandleBuilder":
        if entry._builder is not None:
            raise InvalidKeyset("entry was already added to a builder")
        entry._builder = self
        self._entries.append(entry)
        return self

    def size(self) -> int:
        return len(self._entries)

    def get_at(self, index: int) -> _StagedEntry:
        return self._entries[index]

    def remove_at(self, index: int) -> _StagedEntry:
        entry = self._entries.pop(index)
        entry._builder = None
        return entry

    def _clear_primary(self) -> None:
        for e in self._entries:
            e._primary = False

    def _resolve_parameters(self, entry: _StagedEntry) -> Parameters:
        if entry._parameters is not None:
            return entry._parameters
        return self._registry.parameters.get(entry._template_name)  # type: ignore[arg-type]

    def build(self) -> KeysetHandle:
        if not self._entries:
            raise InvalidKeyset("keyset must contain at least one key")

        primaries = [e for e in self._entries if e.is_primary]
        if len(primaries) != 1:
            raise InvalidKeyset("keyset must have exactly one primary key", primaries=len(primaries))
        if primaries[0].status != KeyStatus.ENABLED:
            raise InvalidKeyset("primary key must be ENABLED")

        used: Set[int] = set()
        forced: Dict[int, int] = {}
        for i, e in enumerate(self._entries):
            if e.status == KeyStatus.UNKNOWN_STATUS:
                raise InvalidKeyset("key status must be set")
            kid = e._forced_id()
            if kid is None:
                continue
            if kid in used:
                raise InvalidKeyset("duplicate key id", key_id=kid)
            used.add(kid)
            forced[i] = kid

        access = insecure_secret_key_access()
        keys: List[KeysetKey] = []
        primary_id: Optional[int] = None
        for i, e in enumerate(self._entries):
            kid = forced.get(i)
            if kid is None:
                kid = _random_key_id(used)
                used.add(kid)
            keys.append(self._materialize(e, kid, access))
            if e.is_primary:
                primary_id = kid

        keyset = Keyset(primary_key_id=primary_id, keys=tuple(keys))
        handle = KeysetHandle._from_keyset(keyset, self._registry, access)
        logger.debug("built keyset with %d key(s)", len(keys))
        return handle

    def _materialize(self, e: _StagedEntry, kid: int, access: SecretKeyAccess) -> KeysetKey:
        if e._existing is not None:
            raw = e._existing
            if raw.status == KeyStatus.DESTROYED and e.status != KeyStatus.DESTROYED:
                raise InvalidKeyset("a DESTROYED key cannot be re-enabled", key_id=kid)
            key_data = None if e.status == KeyStatus.DESTROYED else raw.key_data
            return KeysetKey(key_data, e.status, kid, raw.output_prefix_type)

        key = e._key
        if key is None:
            params = self._resolve_parameters(e)
            key = self._registry.new_key(params, kid if params.has_id_requirement else None)
        ser = self._registry.serialize_key(key, access)
        key_data = None if e.status == KeyStatus.DESTROYED else KeyData(ser.type_url, ser.value, ser.key_material_type)
        return KeysetKey(key_data, e.status, kid, ser.output_prefix_type)
