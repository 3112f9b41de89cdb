"""KMS-AEAD key type: an Aead whose key lives in a remote KMS.

The key value only names the remote key (`key_uri`). Creating such a key
does not generate any material, it only records the reference. The
primitive is whatever Aead the matching KmsClient returns.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from .errors import InvalidKey, InvalidParameters
from .key import Key, KeyMaterialType, Parameters
from .key_manager import KeyTypeManager, validate_version
from .kms import KmsClientRegistry
from .output_prefix import OutputPrefixType
from .primitives import Aead
from .wire import RecordReader, RecordWriter

TYPE_URL = "type.keyset-core.dev/KmsAeadKey"


@dataclass(frozen=True)
class KmsAeadParameters(Parameters):
    key_uri: str
    variant: OutputPrefixType = OutputPrefixType.RAW

    def __post_init__(self) -> None:
        if not self.key_uri:
            raise InvalidParameters("KMS key uri must not be empty")


@dataclass(frozen=True)
class KmsAeadKey(Key):
    parameters: KmsAeadParameters
    id_requirement: Optional[int] = None

    def __post_init__(self) -> None:
        self._check_id_requirement()


def create_key_template(key_uri: str) -> KmsAeadParameters:
    """Parameters for a RAW KMS-AEAD key, so ciphertexts match the KMS's own."""
    return KmsAeadParameters(key_uri, OutputPrefixType.RAW)


class KmsAeadKeyManager(KeyTypeManager):
    type_url = TYPE_URL
    key_material_type = KeyMaterialType.REMOTE
    key_class = KmsAeadKey
    parameters_class = KmsAeadParameters
    primitive_classes = (Aead,)

    def __init__(self, kms_clients: KmsClientRegistry) -> None:
        self._kms_clients = kms_clients

    def _parse_key_value(self, value: bytes, variant: OutputPrefixType, id_requirement: Optional[int]) -> Key:
        r = RecordReader(value, (1, 2), record="KmsAeadKey")
        validate_version(r.u32_field(1), self.version)  # type: ignore[arg-type]
        try:
            params = self._parse_parameters_value(r.bytes_field(2), variant)  # type: ignore[arg-type]
        except InvalidParameters as e:
            raise InvalidKey(e.message, **e.details) from e
        return KmsAeadKey(params, id_requirement)  # type: ignore[arg-type]

    def _serialize_key_value(self, key: Key) -> bytes:
        return (
            RecordWriter()
            .u32_field(1, self.version)
            .bytes_field(2, self._serialize_parameters_value(key.parameters))
            .to_bytes()
        )

    def _parse_parameters_value(self, value: bytes, variant: OutputPrefixType) -> Parameters:
        r = RecordReader(value, (1,), record="KmsAeadParameters")
        return KmsAeadParameters(r.str_field(1), variant)  # type: ignore[arg-type]

    def _serialize_parameters_value(self, parameters: Parameters) -> bytes:
        return RecordWriter().str_field(1, parameters.key_uri).to_bytes()  # type: ignore[attr-defined]

    def create_key(self, parameters: Parameters, id_requirement: Optional[int]) -> Key:
        self.validate_parameters(parameters)
        return KmsAeadKey(parameters, id_requirement)  # type: ignore[arg-type]

    def _create_primitive(self, key: Key, primitive_class: type) -> Any:
        key_uri = key.parameters.key_uri  # type: ignore[attr-defined]
        return self._kms_clients.get(key_uri).get_aead(key_uri)
