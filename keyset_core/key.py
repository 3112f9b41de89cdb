"""Parameters and Key value objects.

Parameters describe an algorithm configuration and never contain secrets.
Keys bundle Parameters with key material and an optional id requirement.
Algorithm modules subclass these as frozen dataclasses.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum, IntEnum
from typing import Optional

from .errors import InvalidKey
from .output_prefix import OutputPrefixType, output_prefix, validate_key_id


class KeyStatus(IntEnum):
    UNKNOWN_STATUS = 0
    ENABLED = 1
    DISABLED = 2
    DESTROYED = 3


class KeyMaterialType(IntEnum):
    UNKNOWN_KEYMATERIAL = 0
    SYMMETRIC = 1
    ASYMMETRIC_PRIVATE = 2
    ASYMMETRIC_PUBLIC = 3
    REMOTE = 4


class Compliance(Enum):
    """Compliance tag reported by each key manager.

    Restricted mode only admits COMPLIANT managers.
    """

    COMPLIANT = "compliant"
    NOT_COMPLIANT = "not_compliant"


class Parameters:
    """Base class for secret-free algorithm configuration.

    Subclasses are frozen dataclasses with a `variant` field.
    """

    variant: OutputPrefixType

    @property
    def has_id_requirement(self) -> bool:
        return self.variant != OutputPrefixType.RAW


class Key:
    """Base class for keys.

    Subclasses are frozen dataclasses with `parameters` and `id_requirement`
    fields and call `_check_id_requirement()` from `__post_init__`.
    """

    parameters: Parameters
    id_requirement: Optional[int]

    def _check_id_requirement(self) -> None:
        if self.parameters.has_id_requirement:
            if self.id_requirement is None:
                raise InvalidKey(
                    "parameters with an output prefix require an id_requirement",
                    variant=self.parameters.variant.name,
                )
            validate_key_id(self.id_requirement)
        elif self.id_requirement is not None:
            raise InvalidKey("RAW parameters must not carry an id_requirement")

    @property
    def output_prefix(self) -> bytes:
        return output_prefix(self.parameters.variant, self.id_requirement)

    def equal_key(self, other: "Key") -> bool:
        return self == other


class PrivateKey(Key, ABC):
    @abstractmethod
    def public_key(self) -> Key: ...
