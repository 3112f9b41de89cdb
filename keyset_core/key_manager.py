"""Key type managers: the per-algorithm extension point.

A manager bridges three representations of one key type:

    wire bytes (KeySerialization)  <->  Key object  ->  primitive instance

The core never special-cases an algorithm; everything algorithm-specific
lives behind `KeyTypeManager`. Third parties add key types by subclassing it
and registering an instance with a `Registry`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple, Type, runtime_checkable

from .errors import InvalidKey, InvalidParameters, ParseFailure, UnsupportedKeyType
from .key import Compliance, Key, KeyMaterialType, Parameters
from .output_prefix import OutputPrefixType
from .secret_access import SecretKeyAccess, require_access


@dataclass(frozen=True)
class KeySerialization:
    """A key as it appears inside a keyset entry.

    `id_requirement` is the entry's key id for prefixed variants and None for
    RAW.
    """

    type_url: str
    value: bytes
    key_material_type: KeyMaterialType
    output_prefix_type: OutputPrefixType
    id_requirement: Optional[int] = None

    def __post_init__(self) -> None:
        if self.output_prefix_type == OutputPrefixType.RAW and self.id_requirement is not None:
            raise ParseFailure("RAW key serialization must not carry an id requirement")
        if self.output_prefix_type != OutputPrefixType.RAW and self.id_requirement is None:
            raise ParseFailure("prefixed key serialization requires an id requirement")


@dataclass(frozen=True)
class ParametersSerialization:
    """A key template: what a keyset stores to generate new keys."""

    type_url: str
    value: bytes
    output_prefix_type: OutputPrefixType


@runtime_checkable
class KeySerializer(Protocol):
    """Parser/serializer pair for one type url."""

    type_url: str
    key_class: type
    parameters_class: type

    def parse_key(self, serialization: KeySerialization, access: Optional[SecretKeyAccess] = None) -> Key: ...

    def serialize_key(self, key: Key, access: Optional[SecretKeyAccess] = None) -> KeySerialization: ...

    def parse_parameters(self, template: ParametersSerialization) -> Parameters: ...

    def serialize_parameters(self, parameters: Parameters) -> ParametersSerialization: ...


def validate_version(version: int, max_expected: int) -> None:
    if version < 0 or version > max_expected:
        raise InvalidKey(
            "key has version %d; only keys with version in range [0..%d] are supported"
            % (version, max_expected)
        )


class KeyTypeManager(ABC):
    """Base class for algorithm plugins.

    Subclasses set the class attributes and implement `_parse_key_value`,
    `_serialize_key_value`, `_parse_parameters_value`,
    `_serialize_parameters_value`, `create_key` and `_create_primitive`.
    """

    type_url: str = ""
    version: int = 0
    key_material_type: KeyMaterialType = KeyMaterialType.UNKNOWN_KEYMATERIAL
    compliance: Compliance = Compliance.NOT_COMPLIANT
    key_class: Type[Key] = Key
    parameters_class: Type[Parameters] = Parameters
    primitive_classes: Tuple[type, ...] = ()
    supports_key_creation: bool = True

    @property
    def holds_secret(self) -> bool:
        return self.key_material_type in (KeyMaterialType.SYMMETRIC, KeyMaterialType.ASYMMETRIC_PRIVATE)

    def identity(self) -> Tuple[type, str]:
        """Two managers are interchangeable iff their identities are equal."""
        return (type(self), self.type_url)

    # --- serialization ---------------------------------------------------

    def parse_key(self, serialization: KeySerialization, access: Optional[SecretKeyAccess] = None) -> Key:
        if serialization.type_url != self.type_url:
            raise ParseFailure("type url mismatch", expected=self.type_url, got=serialization.type_url)
        if serialization.key_material_type != self.key_material_type:
            raise ParseFailure(
                "wrong key material type",
                type_url=self.type_url,
                got=serialization.key_material_type.name,
            )
        if self.holds_secret:
            require_access(access)
        key = self._parse_key_value(
            bytes(serialization.value),
            serialization.output_prefix_type,
            serialization.id_requirement,
        )
        self.validate_key(key)
        return key

    def serialize_key(self, key: Key, access: Optional[SecretKeyAccess] = None) -> KeySerialization:
        self._check_key_class(key)
        if self.holds_secret:
            require_access(access)
        return KeySerialization(
            type_url=self.type_url,
            value=self._serialize_key_value(key),
            key_material_type=self.key_material_type,
            output_prefix_type=key.parameters.variant,
            id_requirement=key.id_requirement,
        )

    def parse_parameters(self, template: ParametersSerialization) -> Parameters:
        if template.type_url != self.type_url:
            raise ParseFailure("type url mismatch", expected=self.type_url, got=template.type_url)
        params = self._parse_parameters_value(bytes(template.value), template.output_prefix_type)
        self.validate_parameters(params)
        return params

    def serialize_parameters(self, parameters: Parameters) -> ParametersSerialization:
        self.validate_parameters(parameters)
        return ParametersSerialization(
            type_url=self.type_url,
            value=self._serialize_parameters_value(parameters),
            output_prefix_type=parameters.variant,
        )

    @abstractmethod
    def _parse_key_value(self, value: bytes, variant: OutputPrefixType, id_requirement: Optional[int]) -> Key: ...

    @abstractmethod
    def _serialize_key_value(self, key: Key) -> bytes: ...

    @abstractmethod
    def _parse_parameters_value(self, value: bytes, variant: OutputPrefixType) -> Parameters: ...

    @abstractmethod
    def _serialize_parameters_value(self, parameters: Parameters) -> bytes: ...

    # --- validation ------------------------------------------------------

    def validate_parameters(self, parameters: Parameters) -> None:
        if not isinstance(parameters, self.parameters_class):
            raise InvalidParameters(
                "unexpected parameters class",
                type_url=self.type_url,
                got=type(parameters).__name__,
            )
        if parameters.variant == OutputPrefixType.UNKNOWN_PREFIX:
            raise InvalidParameters("unknown output prefix type", type_url=self.type_url)

    def validate_key(self, key: Key) -> None:
        self._check_key_class(key)
        try:
            self.validate_parameters(key.parameters)
        except InvalidParameters as e:
            raise InvalidKey(e.message, **e.details) from e

    def _check_key_class(self, key: Key) -> None:
        if not isinstance(key, self.key_class):
            raise InvalidKey("unexpected key class", type_url=self.type_url, got=type(key).__name__)

    # --- creation / primitives ------------------------------------------

    @abstractmethod
    def create_key(self, parameters: Parameters, id_requirement: Optional[int]) -> Key: ...

    def get_primitive(self, key: Key, primitive_class: type) -> Any:
        if primitive_class not in self.primitive_classes:
            raise UnsupportedKeyType(
                "primitive not supported by key type",
                type_url=self.type_url,
                primitive=getattr(primitive_class, "__name__", str(primitive_class)),
            )
        self.validate_key(key)
        return self._create_primitive(key, primitive_class)

    @abstractmethod
    def _create_primitive(self, key: Key, primitive_class: type) -> Any: ...

    def named_parameters(self) -> Dict[str, Parameters]:
        return {}


class PrivateKeyTypeManager(KeyTypeManager):
    """Manager for private keys that have a public counterpart."""

    key_material_type = KeyMaterialType.ASYMMETRIC_PRIVATE
    public_key_type_url: str = ""

    def public_key(self, key: Key) -> Key:
        self._check_key_class(key)
        return key.public_key()  # type: ignore[attr-defined]


class PublicKeyTypeManager(KeyTypeManager):
    """Manager for public keys. Public keys are never generated directly."""

    key_material_type = KeyMaterialType.ASYMMETRIC_PUBLIC
    supports_key_creation = False

    def create_key(self, parameters: Parameters, id_requirement: Optional[int]) -> Key:
        raise UnsupportedKeyType("public keys cannot be generated directly", type_url=self.type_url)
