"""ChaCha20-Poly1305 key type (Aead)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from .errors import DecryptionFailed, InvalidKey
from .key import Key, KeyMaterialType, Parameters
from .key_manager import KeyTypeManager, validate_version
from .output_prefix import OutputPrefixType
from .primitives import Aead
from .secret_access import SecretBytes, insecure_secret_key_access
from .wire import RecordReader, RecordWriter

TYPE_URL = "type.keyset-core.dev/ChaCha20Poly1305Key"

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16


@dataclass(frozen=True)
class ChaCha20Poly1305Parameters(Parameters):
    variant: OutputPrefixType = OutputPrefixType.TINK


@dataclass(frozen=True)
class ChaCha20Poly1305Key(Key):
    parameters: ChaCha20Poly1305Parameters
    key_bytes: SecretBytes
    id_requirement: Optional[int] = None

    def __post_init__(self) -> None:
        if len(self.key_bytes) != KEY_SIZE:
            raise InvalidKey("ChaCha20-Poly1305 keys must be 32 bytes", size=len(self.key_bytes))
        self._check_id_requirement()


class _ChaCha20Poly1305Aead:
    def __init__(self, key: bytes) -> None:
        self._aead = ChaCha20Poly1305(key)

    def encrypt(self, plaintext: bytes, associated_data: bytes) -> bytes:
        nonce = os.urandom(NONCE_SIZE)
        return nonce + self._aead.encrypt(nonce, bytes(plaintext), bytes(associated_data))

    def decrypt(self, ciphertext: bytes, associated_data: bytes) -> bytes:
        if len(ciphertext) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionFailed()
        try:
            return self._aead.decrypt(
                bytes(ciphertext[:NONCE_SIZE]), bytes(ciphertext[NONCE_SIZE:]), bytes(associated_data)
            )
        except InvalidTag as e:
            raise DecryptionFailed() from e


class ChaCha20Poly1305KeyManager(KeyTypeManager):
    type_url = TYPE_URL
    key_material_type = KeyMaterialType.SYMMETRIC
    key_class = ChaCha20Poly1305Key
    parameters_class = ChaCha20Poly1305Parameters
    primitive_classes = (Aead,)

    def _parse_key_value(self, value: bytes, variant: OutputPrefixType, id_requirement: Optional[int]) -> Key:
        r = RecordReader(value, (1, 2), record="ChaCha20Poly1305Key")
        validate_version(r.u32_field(1), self.version)  # type: ignore[arg-type]
        return ChaCha20Poly1305Key(
            ChaCha20Poly1305Parameters(variant),
            SecretBytes(r.bytes_field(2), insecure_secret_key_access()),  # type: ignore[arg-type]
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
        RecordReader(value, (), record="ChaCha20Poly1305Parameters")
        return ChaCha20Poly1305Parameters(variant)

    def _serialize_parameters_value(self, parameters: Parameters) -> bytes:
        return b""

    def create_key(self, parameters: Parameters, id_requirement: Optional[int]) -> Key:
        self.validate_parameters(parameters)
        raw = ChaCha20Poly1305.generate_key()
        return ChaCha20Poly1305Key(parameters, SecretBytes(raw, insecure_secret_key_access()), id_requirement)

    def _create_primitive(self, key: Key, primitive_class: type) -> Any:
        return _ChaCha20Poly1305Aead(key.key_bytes.to_bytes(insecure_secret_key_access()))

    def named_parameters(self) -> Dict[str, Parameters]:
        return {
            "CHACHA20_POLY1305": ChaCha20Poly1305Parameters(OutputPrefixType.TINK),
            "CHACHA20_POLY1305_RAW": ChaCha20Poly1305Parameters(OutputPrefixType.RAW),
        }
