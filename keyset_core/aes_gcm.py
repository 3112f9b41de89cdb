"""AES-GCM key type (Aead).

Ciphertext layout: nonce (12 bytes) || ciphertext || tag (16 bytes).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import DecryptionFailed, InvalidKey, InvalidParameters
from .key import Compliance, Key, KeyMaterialType, Parameters
from .key_manager import KeyTypeManager, validate_version
from .output_prefix import OutputPrefixType
from .primitives import Aead
from .secret_access import SecretBytes, insecure_secret_key_access
from .wire import RecordReader, RecordWriter

TYPE_URL = "type.keyset-core.dev/AesGcmKey"

IV_SIZE = 12
TAG_SIZE = 16
KEY_SIZES = (16, 32)


@dataclass(frozen=True)
class AesGcmParameters(Parameters):
    key_size: int
    variant: OutputPrefixType = OutputPrefixType.TINK

    def __post_init__(self) -> None:
        if self.key_size not in KEY_SIZES:
            raise InvalidParameters("invalid AES-GCM key size", key_size=self.key_size)


@dataclass(frozen=True)
class AesGcmKey(Key):
    parameters: AesGcmParameters
    key_bytes: SecretBytes
    id_requirement: Optional[int] = None

    def __post_init__(self) -> None:
        if len(self.key_bytes) != self.parameters.key_size:
            raise InvalidKey("key size does not match parameters", size=len(self.key_bytes))
        self._check_id_requirement()


class _AesGcmAead:
    def __init__(self, key: bytes) -> None:
        self._aead = AESGCM(key)

    def encrypt(self, plaintext: bytes, associated_data: bytes) -> bytes:
        nonce = os.urandom(IV_SIZE)
        return nonce + self._aead.encrypt(nonce, bytes(plaintext), bytes(associated_data))

    def decrypt(self, ciphertext: bytes, associated_data: bytes) -> bytes:
        if len(ciphertext) < IV_SIZE + TAG_SIZE:
            raise DecryptionFailed()
        nonce, body = ciphertext[:IV_SIZE], ciphertext[IV_SIZE:]
        try:
            return self._aead.decrypt(bytes(nonce), bytes(body), bytes(associated_data))
        except InvalidTag as e:
            raise DecryptionFailed() from e


class AesGcmKeyManager(KeyTypeManager):
    type_url = TYPE_URL
    version = 0
    key_material_type = KeyMaterialType.SYMMETRIC
    compliance = Compliance.COMPLIANT
    key_class = AesGcmKey
    parameters_class = AesGcmParameters
    primitive_classes = (Aead,)

    def _parse_key_value(self, value: bytes, variant: OutputPrefixType, id_requirement: Optional[int]) -> Key:
        r = RecordReader(value, (1, 2), record="AesGcmKey")
        validate_version(r.u32_field(1), self.version)  # type: ignore[arg-type]
        raw = r.bytes_field(2)
        try:
            params = AesGcmParameters(key_size=len(raw), variant=variant)  # type: ignore[arg-type]
        except InvalidParameters as e:
            raise InvalidKey(e.message, **e.details) from e
        return AesGcmKey(params, SecretBytes(raw, insecure_secret_key_access()), id_requirement)  # type: ignore[arg-type]

    def _serialize_key_value(self, key: Key) -> bytes:
        return (
            RecordWriter()
            .u32_field(1, self.version)
            .bytes_field(2, key.key_bytes.to_bytes(insecure_secret_key_access()))
            .to_bytes()
        )

    def _parse_parameters_value(self, value: bytes, variant: OutputPrefixType) -> Parameters:
        r = RecordReader(value, (1,), record="AesGcmParameters")
        return AesGcmParameters(key_size=r.u32_field(1), variant=variant)  # type: ignore[arg-type]

    def _serialize_parameters_value(self, parameters: Parameters) -> bytes:
        return RecordWriter().u32_field(1, parameters.key_size).to_bytes()

    def create_key(self, parameters: Parameters, id_requirement: Optional[int]) -> Key:
        self.validate_parameters(parameters)
        raw = AESGCM.generate_key(bit_length=parameters.key_size * 8)
        return AesGcmKey(parameters, SecretBytes(raw, insecure_secret_key_access()), id_requirement)

    def _create_primitive(self, key: Key, primitive_class: type) -> Any:
        return _AesGcmAead(key.key_bytes.to_bytes(insecure_secret_key_access()))

    def named_parameters(self) -> Dict[str, Parameters]:
        return {
            "AES128_GCM": AesGcmParameters(16, OutputPrefixType.TINK),
            "AES128_GCM_RAW": AesGcmParameters(16, OutputPrefixType.RAW),
            "AES256_GCM": AesGcmParameters(32, OutputPrefixType.TINK),
            "AES256_GCM_RAW": AesGcmParameters(32, OutputPrefixType.RAW),
        }
