"""AES-SIV key type (DeterministicAead).

Keys are 64 bytes (two AES-256 keys). Ciphertext layout: SIV (16 bytes) ||
ciphertext. The associated data is passed as a single SIV component.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESSIV

from .errors import DecryptionFailed, InvalidKey, InvalidParameters
from .key import Key, KeyMaterialType, Parameters
from .key_manager import KeyTypeManager, validate_version
from .output_prefix import OutputPrefixType
from .primitives import DeterministicAead
from .secret_access import SecretBytes, insecure_secret_key_access
from .wire import RecordReader, RecordWriter

TYPE_URL = "type.keyset-core.dev/AesSivKey"

KEY_SIZE = 64
SIV_SIZE = 16


@dataclass(frozen=True)
class AesSivParameters(Parameters):
    key_size: int = KEY_SIZE
    variant: OutputPrefixType = OutputPrefixType.TINK

    def __post_init__(self) -> None:
        if self.key_size != KEY_SIZE:
            raise InvalidParameters(
                "invalid AES-SIV key size; valid keys must have 64 bytes", key_size=self.key_size
            )


@dataclass(frozen=True)
class AesSivKey(Key):
    parameters: AesSivParameters
    key_bytes: SecretBytes
    id_requirement: Optional[int] = None

    def __post_init__(self) -> None:
        if len(self.key_bytes) != self.parameters.key_size:
            raise InvalidKey("invalid AES-SIV key size", size=len(self.key_bytes))
        self._check_id_requirement()


class _AesSiv:
    def __init__(self, key: bytes) -> None:
        self._siv = AESSIV(key)

    def encrypt_deterministically(self, plaintext: bytes, associated_data: bytes) -> bytes:
        return self._siv.encrypt(bytes(plaintext), [bytes(associated_data)])

    def decrypt_deterministically(self, ciphertext: bytes, associated_data: bytes) -> bytes:
        if len(ciphertext) < SIV_SIZE:
            raise DecryptionFailed()
        try:
            return self._siv.decrypt(bytes(ciphertext), [bytes(associated_data)])
        except (InvalidTag, ValueError) as e:
            raise DecryptionFailed() from e


class AesSivKeyManager(KeyTypeManager):
    type_url = TYPE_URL
    key_material_type = KeyMaterialType.SYMMETRIC
    key_class = AesSivKey
    parameters_class = AesSivParameters
    primitive_classes = (DeterministicAead,)

    def _parse_key_value(self, value: bytes, variant: OutputPrefixType, id_requirement: Optional[int]) -> Key:
        r = RecordReader(value, (1, 2), record="AesSivKey")
        validate_version(r.u32_field(1), self.version)  # type: ignore[arg-type]
        raw = r.bytes_field(2)
        if len(raw) != KEY_SIZE:  # type: ignore[arg-type]
            raise InvalidKey("invalid AES-SIV key size; valid keys must have 64 bytes", size=len(raw))  # type: ignore[arg-type]
        return AesSivKey(
            AesSivParameters(KEY_SIZE, variant),
            SecretBytes(raw, insecure_secret_key_access()),  # type: ignore[arg-type]
            id_requirement,
        )

    def _serialize_key_value(self, key: Key) -> bytes:
        return (
            RecordWriter()
            .u32_field(1, self.version)
            .bytes_field(2, key.key_bytes.to_bytes(insecure_secret_key_access()))
            .to_bytes()
        )

    def _parse_parameters_value(self, value: bytes, variant: OutputPrefixType) -> Parameters:
        r = RecordReader(value, (1,), record="AesSivParameters")
        return AesSivParameters(r.u32_field(1), variant)  # type: ignore[arg-type]

    def _serialize_parameters_value(self, parameters: Parameters) -> bytes:
        return RecordWriter().u32_field(1, parameters.key_size).to_bytes()

    def create_key(self, parameters: Parameters, id_requirement: Optional[int]) -> Key:
        self.validate_parameters(parameters)
        raw = AESSIV.generate_key(bit_length=parameters.key_size * 8)
        return AesSivKey(parameters, SecretBytes(raw, insecure_secret_key_access()), id_requirement)

    def _create_primitive(self, key: Key, primitive_class: type) -> Any:
        return _AesSiv(key.key_bytes.to_bytes(insecure_secret_key_access()))

    def named_parameters(self) -> Dict[str, Parameters]:
        return {
            "AES256_SIV": AesSivParameters(KEY_SIZE, OutputPrefixType.TINK),
            "AES256_SIV_RAW": AesSivParameters(KEY_SIZE, OutputPrefixType.RAW),
        }
