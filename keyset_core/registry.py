"""Type & serialization registry.

The registry maps type urls to key managers and serializers, parameter and
key classes back to type urls, and primitive classes to wrappers. It is an
ordinary object: tests and embedders create their own `Registry()`, while
`default_registry()` returns the process-wide instance used when no
registry is passed explicitly.

Concurrency model:
- registrations are serialized by a lock
- every registration publishes a new immutable `_Snapshot`
- lookups read the current snapshot reference without locking

Restricted mode:
- lookups only resolve COMPLIANT managers; anything else is reported
  exactly like an unregistered type url
- registering a NOT_COMPLIANT manager while restricted is refused
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from . import metrics
from .errors import DuplicateRegistration, PermissionDenied, UnsupportedKeyType
from .key import Compliance, Key, KeyMaterialType, Parameters
from .key_manager import (
    KeySerialization,
    KeySerializer,
    KeyTypeManager,
    ParametersSerialization,
    PrivateKeyTypeManager,
)
from .kms import KmsClientRegistry
from .output_prefix import OutputPrefixType
from .primitive_set import PrimitiveSet
from .primitives import ALL_PRIMITIVES
from .secret_access import SecretKeyAccess
from .settings import Settings
from .templates import ParametersRegistry

logger = logging.getLogger("keyset_core.registry")

_NOT_FOUND = "no key manager registered for type url"


@dataclass(frozen=True)
class _ManagerRecord:
    manager: KeyTypeManager
    new_key_allowed: bool


@dataclass(frozen=True)
class _Snapshot:
    managers: Mapping[str, _ManagerRecord]
    serializers: Mapping[str, Any]
    key_classes: Mapping[type, str]
    parameters_classes: Mapping[type, str]
    wrappers: Mapping[type, Any]
    restricted: bool = False


def _empty_snapshot(restricted: bool) -> _Snapshot:
    empty: Mapping[Any, Any] = MappingProxyType({})
    return _Snapshot(empty, empty, empty, empty, empty, restricted)


def _identity(obj: Any) -> Tuple[type, str]:
    return (type(obj), str(getattr(obj, "type_url", "")))


def _compliance_of(obj: Any) -> Compliance:
    return getattr(obj, "compliance", Compliance.NOT_COMPLIANT)


def _primitive_name(primitive_class: type) -> str:
    return getattr(primitive_class, "__name__", str(primitive_class))


class Registry:
    """Registry of key managers, serializers and primitive wrappers."""

    def __init__(self, *, restricted: bool = False) -> None:
        self._lock = threading.Lock()
        self._snapshot = _empty_snapshot(bool(restricted))
        self.parameters = ParametersRegistry()
        self.kms_clients = KmsClientRegistry()

    # ------------------------------------------------------------------
    # restricted mode
    # ------------------------------------------------------------------

    @property
    def restricted_mode(self) -> bool:
        return self._snapshot.restricted

    def set_restricted_mode(self, restricted: bool) -> None:
        with self._lock:
            self._snapshot = replace(self._snapshot, restricted=bool(restricted))
        logger.info("restricted algorithm mode %s", "enabled" if restricted else "disabled")

    # ------------------------------------------------------------------
    # registration
    # ------------------------------------------------------------------

    def register_key_manager(self, manager: KeyTypeManager, new_key_allowed: bool = True) -> None:
        """Register `manager` for its type url.

        Registering the same manager class for the same type url again is a
        no-op apart from possibly turning key generation off. Any other
        manager for a taken type url raises DuplicateRegistration.
        """
        self._register_managers([(manager, bool(new_key_allowed))])

    def register_asymmetric_key_managers(
        self,
        private_manager: PrivateKeyTypeManager,
        public_manager: KeyTypeManager,
        new_key_allowed: bool = True,
    ) -> None:
        """Register a private/public manager pair in one step."""
        if not isinstance(private_manager, PrivateKeyTypeManager):
            raise TypeError(f"expected a PrivateKeyTypeManager, got {type(private_manager)}")
        if public_manager.key_material_type != KeyMaterialType.ASYMMETRIC_PUBLIC:
            raise TypeError(f"expected a public key manager, got {type(public_manager)}")
        if private_manager.public_key_type_url != public_manager.type_url:
            raise ValueError(
                "private key manager names public type url %r, got manager for %r"
                % (private_manager.public_key_type_url, public_manager.type_url)
            )
        self._register_managers(
            [(private_manager, bool(new_key_allowed)), (public_manager, bool(new_key_allowed))]
        )

    def register_serializer(self, serializer: KeySerializer) -> None:
        if not isinstance(serializer, KeySerializer):
            raise TypeError(f"Unsupported serializer type: {type(serializer)}")
        with self._lock:
            snap = self._snapshot
            try:
                serializers, key_classes, params_classes = self._merge_serializer(snap, serializer)
            except DuplicateRegistration:
                metrics.record_registration("serializer", "duplicate")
                raise
            self._snapshot = replace(
                snap,
                serializers=serializers,
                key_classes=key_classes,
                parameters_classes=params_classes,
            )
        metrics.record_registration("serializer", "ok")

    def register_primitive_wrapper(self, wrapper: Any) -> None:
        primitive_class = getattr(wrapper, "primitive_class", None)
        if primitive_class not in ALL_PRIMITIVES:
            raise TypeError(f"wrapper does not target a known primitive interface: {type(wrapper)}")
        with self._lock:
            snap = self._snapshot
            existing = snap.wrappers.get(primitive_class)
            if existing is not None:
                if type(existing) is type(wrapper):
                    metrics.record_registration("wrapper", "noop")
                    return
                metrics.record_registration("wrapper", "duplicate")
                raise DuplicateRegistration(
                    "a different wrapper is already registered for primitive",
                    primitive=_primitive_name(primitive_class),
                )
            wrappers = dict(snap.wrappers)
            wrappers[primitive_class] = wrapper
            self._snapshot = replace(snap, wrappers=MappingProxyType(wrappers))
        metrics.record_registration("wrapper", "ok")

    def _register_managers(self, items: List[Tuple[KeyTypeManager, bool]]) -> None:
        for manager, _ in items:
            if not isinstance(manager, KeyTypeManager):
                raise TypeError(f"Unsupported key manager type: {type(manager)}")
            if not manager.type_url:
                raise ValueError("key manager must define a type_url")

        with self._lock:
            snap = self._snapshot
            if snap.restricted:
                for manager, _ in items:
                    if manager.compliance != Compliance.COMPLIANT:
                        metrics.record_registration("key_manager", "refused")
                        raise UnsupportedKeyType(
                            "key manager is not compliant and restricted mode is active",
                            type_url=manager.type_url,
                        )

            managers: Dict[str, _ManagerRecord] = dict(snap.managers)
            serializers: Mapping[str, Any] = snap.serializers
            key_classes: Mapping[type, str] = snap.key_classes
            params_classes: Mapping[type, str] = snap.parameters_classes
            named: Dict[str, Parameters] = {}
            changed = False
            try:
                for manager, allowed in items:
                    existing = managers.get(manager.type_url)
                    if existing is not None:
                        if existing.manager.identity() != manager.identity():
                            raise DuplicateRegistration(
                                "a different key manager is already registered for type url",
                                type_url=manager.type_url,
                                registered=type(existing.manager).__name__,
                            )
                        if allowed and not existing.new_key_allowed:
                            raise DuplicateRegistration(
                                "key generation was disabled for type url and cannot be re-enabled",
                                type_url=manager.type_url,
                            )
                        if existing.new_key_allowed and not allowed:
                            managers[manager.type_url] = replace(existing, new_key_allowed=False)
                            changed = True
                        continue
                    managers[manager.type_url] = _ManagerRecord(manager, allowed)
                    serializers, key_classes, params_classes = self._merge_serializer(
                        replace(
                            snap,
                            serializers=serializers,
                            key_classes=key_classes,
                            parameters_classes=params_classes,
                        ),
                        manager,
                    )
                    named.update(manager.named_parameters())
                    changed = True
                if named:
                    self.parameters.put_all(named)
            except DuplicateRegistration:
                metrics.record_registration("key_manager", "duplicate")
                raise

            if not changed:
                metrics.record_registration("key_manager", "noop")
                return
            self._snapshot = replace(
                snap,
                managers=MappingProxyType(managers),
                serializers=serializers,
                key_classes=key_classes,
                parameters_classes=params_classes,
            )
        for manager, allowed in items:
            logger.debug("registered key manager %s (new_key_allowed=%s)", manager.type_url, allowed)
        metrics.record_registration("key_manager", "ok")

    @staticmethod
    def _merge_serializer(
        snap: _Snapshot, serializer: Any
    ) -> Tuple[Mapping[str, Any], Mapping[type, str], Mapping[type, str]]:
        type_url = str(serializer.type_url)
        serializers = dict(snap.serializers)
        key_classes = dict(snap.key_classes)
        params_classes = dict(snap.parameters_classes)

        existing = serializers.get(type_url)
        if existing is not None:
            if _identity(existing) != _identity(serializer):
                raise DuplicateRegistration(
                    "a different serializer is already registered for type url",
                    type_url=type_url,
                )
            return snap.serializers, snap.key_classes, snap.parameters_classes
        serializers[type_url] = serializer

        other = key_classes.get(serializer.key_class)
        if other is not None and other != type_url:
            raise DuplicateRegistration(
                "key class already bound to another type url",
                key_class=serializer.key_class.__name__,
                type_url=other,
            )
        key_classes[serializer.key_class] = type_url

        if getattr(serializer, "supports_key_creation", True):
            other = params_classes.get(serializer.parameters_class)
            if other is not None and other != type_url:
                raise DuplicateRegistration(
                    "parameters class already bound to another type url",
                    parameters_class=serializer.parameters_class.__name__,
                    type_url=other,
                )
            params_classes[serializer.parameters_class] = type_url

        return (
            MappingProxyType(serializers),
            MappingProxyType(key_classes),
            MappingProxyType(params_classes),
        )

    # ------------------------------------------------------------------
    # lookups
    # ------------------------------------------------------------------

    def _usable(self, snap: _Snapshot, obj: Any) -> bool:
        return not snap.restricted or _compliance_of(obj) == Compliance.COMPLIANT

    def _record(self, type_url: str) -> _ManagerRecord:
        snap = self._snapshot
        record = snap.managers.get(type_url)
        if record is None or not self._usable(snap, record.manager):
            raise UnsupportedKeyType(_NOT_FOUND, type_url=type_url)
        return record

    def _serializer(self, type_url: str) -> Any:
        snap = self._snapshot
        serializer = snap.serializers.get(type_url)
        if serializer is None or not self._usable(snap, serializer):
            raise UnsupportedKeyType(_NOT_FOUND, type_url=type_url)
        return serializer

    def _type_url_for_key(self, key: Key) -> str:
        type_url = self._snapshot.key_classes.get(type(key))
        if type_url is None:
            raise UnsupportedKeyType(_NOT_FOUND, key_class=type(key).__name__)
        return type_url

    def _type_url_for_parameters(self, parameters: Parameters) -> str:
        type_url = self._snapshot.parameters_classes.get(type(parameters))
        if type_url is None:
            raise UnsupportedKeyType(_NOT_FOUND, parameters_class=type(parameters).__name__)
        return type_url

    def get_key_manager(self, type_url: str) -> KeyTypeManager:
        return self._record(type_url).manager

    def key_manager_for_parameters(self, parameters: Parameters) -> KeyTypeManager:
        return self.get_key_manager(self._type_url_for_parameters(parameters))

    def key_manager_for_key(self, key: Key) -> KeyTypeManager:
        return self.get_key_manager(self._type_url_for_key(key))

    def type_urls(self) -> List[str]:
        snap = self._snapshot
        return sorted(u for u, r in snap.managers.items() if self._usable(snap, r.manager))

    def new_key_allowed(self, type_url: str) -> bool:
        return self._record(type_url).new_key_allowed

    # ------------------------------------------------------------------
    # serialization
    # ------------------------------------------------------------------

    def parse_key(
        self,
        key_data: Any,
        output_prefix_type: OutputPrefixType,
        id_requirement: Optional[int],
        access: Optional[SecretKeyAccess] = None,
    ) -> Key:
        """Parse the KeyData of one keyset entry into a Key."""
        serialization = KeySerialization(
            type_url=key_data.type_url,
            value=key_data.value,
            key_material_type=KeyMaterialType(key_data.key_material_type),
            output_prefix_type=OutputPrefixType(output_prefix_type),
            id_requirement=id_requirement,
        )
        return self._serializer(serialization.type_url).parse_key(serialization, access)

    def serialize_key(self, key: Key, access: Optional[SecretKeyAccess] = None) -> KeySerialization:
        return self._serializer(self._type_url_for_key(key)).serialize_key(key, access)

    def parse_parameters(self, template: ParametersSerialization) -> Parameters:
        return self._serializer(template.type_url).parse_parameters(template)

    def serialize_parameters(self, parameters: Parameters) -> ParametersSerialization:
        return self._serializer(self._type_url_for_parameters(parameters)).serialize_parameters(parameters)

    # ------------------------------------------------------------------
    # keys and primitives
    # ------------------------------------------------------------------

    def new_key(self, parameters: Parameters, id_requirement: Optional[int] = None) -> Key:
        type_url = self._type_url_for_parameters(parameters)
        record = self._record(type_url)
        if not record.new_key_allowed:
            raise PermissionDenied("key generation is disabled for type url", type_url=type_url)
        return record.manager.create_key(parameters, id_requirement)

    def public_key(self, key: Key) -> Key:
        manager = self.key_manager_for_key(key)
        if not isinstance(manager, PrivateKeyTypeManager):
            raise UnsupportedKeyType("key type has no public key", type_url=manager.type_url)
        return manager.public_key(key)

    def get_primitive(self, key: Key, primitive_class: type) -> Any:
        return self.key_manager_for_key(key).get_primitive(key, primitive_class)

    def wrap(self, primitive_set: PrimitiveSet) -> Any:
        primitive_class = primitive_set.primitive_class
        wrapper = self._snapshot.wrappers.get(primitive_class)
        if wrapper is None:
            raise UnsupportedKeyType(
                "no wrapper registered for primitive", primitive=_primitive_name(primitive_class)
            )
        wrapped = wrapper.wrap(primitive_set)
        metrics.record_primitive_created(_primitive_name(primitive_class))
        return wrapped


_DEFAULT_LOCK = threading.Lock()
_DEFAULT: Optional[Registry] = None


def default_registry() -> Registry:
    """Return the process-wide registry, creating it on first use."""
    global _DEFAULT
    reg = _DEFAULT
    if reg is not None:
        return reg
    with _DEFAULT_LOCK:
        if _DEFAULT is None:
            _DEFAULT = Registry(restricted=Settings.from_env().restricted_algorithms)
        return _DEFAULT


def resolve(registry: Optional[Registry]) -> Registry:
    return registry if registry is not None else default_registry()

