"""ECIES over X25519 with HKDF-SHA256 and AES-GCM (HybridEncrypt/HybridDecrypt).

Encryption:
- generate an ephemeral X25519 key pair and compute the shared secret
- derive the DEM key with HKDF-SHA256 over `ephemeral_public || shared`,
  using the parameters' salt and `context_info` as HKDF info
- seal the plaintext with AES-GCM under a fresh nonce

Ciphertext layout: ephemeral public key (32) || nonce (12) || ct || tag (16).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .errors import DecryptionFailed, InvalidKey, InvalidParameters, ParseFailure
from .key import Key, Parameters, PrivateKey
from .key_manager import PrivateKeyTypeManager, PublicKeyTypeManager, validate_version
from .output_prefix import OutputPrefixType
from .primitives import HybridDecrypt, HybridEncrypt
from .secret_access import SecretBytes, insecure_secret_key_access
from .wire import RecordReader, RecordWriter

PRIVATE_TYPE_URL = "type.keyset-core.dev/EciesX25519PrivateKey"
PUBLIC_TYPE_URL = "type.keyset-core.dev/EciesX25519PublicKey"

X25519_KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16
DEM_KEY_SIZES = (16, 32)


def _raw_public(pub: X25519PublicKey) -> bytes:
    return pub.public_bytes(encoding=serialization.Encoding.Raw, format=serialization.PublicFormat.Raw)


def _derive_dem_key(ephemeral_public: bytes, shared: bytes, *, salt: bytes, info: bytes, length: int) -> bytes:
    hkdf = HKDF(algorithm=hashes.SHA256(), length=length, salt=salt or None, info=bytes(info))
    return hkdf.derive(ephemeral_public + shared)


@dataclass(frozen=True)
class EciesParameters(Parameters):
    dem_key_size: int = 16
    salt: bytes = b""
    variant: OutputPrefixType = OutputPrefixType.TINK

    def __post_init__(self) -> None:
        if self.dem_key_size not in DEM_KEY_SIZES:
            raise InvalidParameters("invalid AES-GCM DEM key size", dem_key_size=self.dem_key_size)


@dataclass(frozen=True)
class EciesPublicKey(Key):
    parameters: EciesParameters
    public_key_bytes: bytes
    id_requirement: Optional[int] = None

    def __post_init__(self) -> None:
        if len(self.public_key_bytes) != X25519_KEY_SIZE:
            raise InvalidKey("X25519 public keys must be 32 bytes", size=len(self.public_key_bytes))
        self._check_id_requirement()


@dataclass(frozen=True)
class EciesPrivateKey(PrivateKey):
    parameters: EciesParameters
    public_key_bytes: bytes
    private_key_bytes: SecretBytes
    id_requirement: Optional[int] = None

    def __post_init__(self) -> None:
        if len(self.private_key_bytes) != X25519_KEY_SIZE:
            raise InvalidKey("X25519 private keys must be 32 bytes", size=len(self.private_key_bytes))
        derived = X25519PrivateKey.from_private_bytes(
            self.private_key_bytes.to_bytes(insecure_secret_key_access())
        ).public_key()
        if _raw_public(derived) != bytes(self.public_key_bytes):
            raise InvalidKey("X25519 public key does not match private key")
        self._check_id_requirement()

    def public_key(self) -> EciesPublicKey:
        return EciesPublicKey(self.parameters, self.public_key_bytes, self.id_requirement)


class _EciesHybridEncrypt:
    def __init__(self, key: EciesPublicKey) -> None:
        self._peer = X25519PublicKey.from_public_bytes(key.public_key_bytes)
        self._params = key.parameters

    def encrypt(self, plaintext: bytes, context_info: bytes) -> bytes:
        ephemeral = X25519PrivateKey.generate()
        ephemeral_public = _raw_public(ephemeral.public_key())
        shared = ephemeral.exchange(self._peer)
        dem_key = _derive_dem_key(
            ephemeral_public,
            shared,
            salt=self._params.salt,
            info=context_info,
            length=self._params.dem_key_size,
        )
        nonce = os.urandom(NONCE_SIZE)
        return ephemeral_public + nonce + AESGCM(dem_key).encrypt(nonce, bytes(plaintext), b"")


class _EciesHybridDecrypt:
    def __init__(self, key: EciesPrivateKey) -> None:
        self._private = X25519PrivateKey.from_private_bytes(
            key.private_key_bytes.to_bytes(insecure_secret_key_access())
        )
        self._params = key.parameters

    def decrypt(self, ciphertext: bytes, context_info: bytes) -> bytes:
        if len(ciphertext) < X25519_KEY_SIZE + NONCE_SIZE + TAG_SIZE:
            raise DecryptionFailed()
        ephemeral_public = bytes(ciphertext[:X25519_KEY_SIZE])
        nonce = bytes(ciphertext[X25519_KEY_SIZE : X25519_KEY_SIZE + NONCE_SIZE])
        body = bytes(ciphertext[X25519_KEY_SIZE + NONCE_SIZE :])
        try:
            shared = self._private.exchange(X25519PublicKey.from_public_bytes(ephemeral_public))
            dem_key = _derive_dem_key(
                ephemeral_public,
                shared,
                salt=self._params.salt,
                info=context_info,
                length=self._params.dem_key_size,
            )
            return AESGCM(dem_key).decrypt(nonce, body, b"")
        except (InvalidTag, ValueError) as e:
            raise DecryptionFailed() from e


def _params_record(params: EciesParameters) -> bytes:
    return RecordWriter().u32_field(1, params.dem_key_size).bytes_field(2, params.salt or None).to_bytes()


def _parse_params_record(value: bytes, variant: OutputPrefixType) -> EciesParameters:
    r = RecordReader(value, (1, 2), record="EciesParameters")
    salt = r.bytes_field(2, required=False)
    if salt is not None and not salt:
        # An empty salt is written by omitting the field.
        raise ParseFailure("EciesParameters.salt must be omitted when empty")
    return EciesParameters(
        dem_key_size=r.u32_field(1),  # type: ignore[arg-type]
        salt=salt or b"",
        variant=variant,
    )


def _public_record(version: int, key: Key) -> bytes:
    return (
        RecordWriter()
        .u32_field(1, version)
        .bytes_field(2, _params_record(key.parameters))  # type: ignore[arg-type]
        .bytes_field(3, key.public_key_bytes)  # type: ignore[attr-defined]
        .to_bytes()
    )


def _parse_public_record(value: bytes, version: int, variant: OutputPrefixType, id_requirement: Optional[int]) -> EciesPublicKey:
    r = RecordReader(value, (1, 2, 3), record="EciesPublicKey")
    validate_version(r.u32_field(1), version)  # type: ignore[arg-type]
    try:
        params = _parse_params_record(r.bytes_field(2), variant)  # type: ignore[arg-type]
    except InvalidParameters as e:
        raise InvalidKey(e.message, **e.details) from e
    return EciesPublicKey(params, r.bytes_field(3), id_requirement)  # type: ignore[arg-type]


class _EciesParametersMixin:
    parameters_class = EciesParameters

    def _parse_parameters_value(self, value: bytes, variant: OutputPrefixType) -> Parameters:
        return _parse_params_record(value, variant)

    def _serialize_parameters_value(self, parameters: Parameters) -> bytes:
        return _params_record(parameters)  # type: ignore[arg-type]


class EciesPrivateKeyManager(_EciesParametersMixin, PrivateKeyTypeManager):
    type_url = PRIVATE_TYPE_URL
    public_key_type_url = PUBLIC_TYPE_URL
    key_class = EciesPrivateKey
    primitive_classes = (HybridDecrypt,)

    def _parse_key_value(self, value: bytes, variant: OutputPrefixType, id_requirement: Optional[int]) -> Key:
        r = RecordReader(value, (1, 2, 3), record="EciesPrivateKey")
        validate_version(r.u32_field(1), self.version)  # type: ignore[arg-type]
        public = _parse_public_record(r.bytes_field(2), self.version, variant, id_requirement)  # type: ignore[arg-type]
        return EciesPrivateKey(
            public.parameters,
            public.public_key_bytes,
            SecretBytes(r.bytes_field(3), insecure_secret_key_access()),  # type: ignore[arg-type]
            id_requirement,
        )

    def _serialize_key_value(self, key: Key) -> bytes:
        return (
            RecordWriter()
            .u32_field(1, self.version)
            .bytes_field(2, _public_record(self.version, key))
            .bytes_field(3, key.private_key_bytes.to_bytes(insecure_secret_key_access()))  # type: ignore[attr-defined]
            .to_bytes()
        )

    def create_key(self, parameters: Parameters, id_requirement: Optional[int]) -> Key:
        self.validate_parameters(parameters)
        private = X25519PrivateKey.generate()
        raw_private = private.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return EciesPrivateKey(
            parameters,  # type: ignore[arg-type]
            _raw_public(private.public_key()),
            SecretBytes(raw_private, insecure_secret_key_access()),
            id_requirement,
        )

    def _create_primitive(self, key: Key, primitive_class: type) -> Any:
        return _EciesHybridDecrypt(key)  # type: ignore[arg-type]

    def named_parameters(self) -> Dict[str, Parameters]:
        return {
            "ECIES_X25519_HKDF_SHA256_AES128_GCM": EciesParameters(16, b"", OutputPrefixType.TINK),
            "ECIES_X25519_HKDF_SHA256_AES128_GCM_RAW": EciesParameters(16, b"", OutputPrefixType.RAW),
            "ECIES_X25519_HKDF_SHA256_AES256_GCM": EciesParameters(32, b"", OutputPrefixType.TINK),
            "ECIES_X25519_HKDF_SHA256_AES256_GCM_RAW": EciesParameters(32, b"", OutputPrefixType.RAW),
        }


class EciesPublicKeyManager(_EciesParametersMixin, PublicKeyTypeManager):
    type_url = PUBLIC_TYPE_URL
    key_class = EciesPublicKey
    primitive_classes = (HybridEncrypt,)

    def _parse_key_value(self, value: bytes, variant: OutputPrefixType, id_requirement: Optional[int]) -> Key:
        return _parse_public_record(value, self.version, variant, id_requirement)

    def _serialize_key_value(self, key: Key) -> bytes:
        return _public_record(self.version, key)

    def _create_primitive(self, key: Key, primitive_class: type) -> Any:
        return _EciesHybridEncrypt(key)  # type: ignore[arg-type]

