"""HPKE (RFC 9180) base mode, single-shot (HybridEncrypt/HybridDecrypt).

Suite: DHKEM(X25519, HKDF-SHA256), HKDF-SHA256, and one of AES-128-GCM,
AES-256-GCM or ChaCha20-Poly1305. `context_info` is the HPKE `info`; the
AEAD associated data is empty.

Ciphertext layout: encapsulated key (32) || AEAD ciphertext || tag (16).
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDFExpand

from .errors import DecryptionFailed, InvalidKey, InvalidParameters
from .key import Key, Parameters, PrivateKey
from .key_manager import PrivateKeyTypeManager, PublicKeyTypeManager, validate_version
from .output_prefix import OutputPrefixType
from .primitives import HybridDecrypt, HybridEncrypt
from .secret_access import SecretBytes, insecure_secret_key_access
from .wire import RecordReader, RecordWriter

PRIVATE_TYPE_URL = "type.keyset-core.dev/HpkePrivateKey"
PUBLIC_TYPE_URL = "type.keyset-core.dev/HpkePublicKey"

X25519_KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16
HASH_SIZE = 32
MODE_BASE = 0x00


class KemId(IntEnum):
    DHKEM_X25519_HKDF_SHA256 = 0x0020


class KdfId(IntEnum):
    HKDF_SHA256 = 0x0001


class AeadId(IntEnum):
    AES_128_GCM = 0x0001
    AES_256_GCM = 0x0002
    CHACHA20_POLY1305 = 0x0003


_AEAD_KEY_SIZES = {
    AeadId.AES_128_GCM: 16,
    AeadId.AES_256_GCM: 32,
    AeadId.CHACHA20_POLY1305: 32,
}


def _i2osp(value: int, length: int) -> bytes:
    return value.to_bytes(length, "big")


def _labeled_extract(suite_id: bytes, salt: bytes, label: bytes, ikm: bytes) -> bytes:
    labeled_ikm = b"HPKE-v1" + suite_id + label + ikm
    return hmac.new(salt or b"\x00" * HASH_SIZE, labeled_ikm, hashlib.sha256).digest()


def _labeled_expand(suite_id: bytes, prk: bytes, label: bytes, info: bytes, length: int) -> bytes:
    labeled_info = _i2osp(length, 2) + b"HPKE-v1" + suite_id + label + info
    return HKDFExpand(algorithm=hashes.SHA256(), length=length, info=labeled_info).derive(prk)


def _raw_public(pub: X25519PublicKey) -> bytes:
    return pub.public_bytes(encoding=serialization.Encoding.Raw, format=serialization.PublicFormat.Raw)


@dataclass(frozen=True)
class HpkeParameters(Parameters):
    kem_id: KemId = KemId.DHKEM_X25519_HKDF_SHA256
    kdf_id: KdfId = KdfId.HKDF_SHA256
    aead_id: AeadId = AeadId.AES_128_GCM
    variant: OutputPrefixType = OutputPrefixType.TINK

    def __post_init__(self) -> None:
        try:
            KemId(self.kem_id)
            KdfId(self.kdf_id)
            AeadId(self.aead_id)
        except ValueError as e:
            raise InvalidParameters("unsupported HPKE algorithm id") from e

    @property
    def suite_id(self) -> bytes:
        return b"HPKE" + _i2osp(self.kem_id, 2) + _i2osp(self.kdf_id, 2) + _i2osp(self.aead_id, 2)


@dataclass(frozen=True)
class HpkePublicKey(Key):
    parameters: HpkeParameters
    public_key_bytes: bytes
    id_requirement: Optional[int] = None

    def __post_init__(self) -> None:
        if len(self.public_key_bytes) != X25519_KEY_SIZE:
            raise InvalidKey("X25519 public keys must be 32 bytes", size=len(self.public_key_bytes))
        self._check_id_requirement()


@dataclass(frozen=True)
class HpkePrivateKey(PrivateKey):
    parameters: HpkeParameters
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

    def public_key(self) -> HpkePublicKey:
        return HpkePublicKey(self.parameters, self.public_key_bytes, self.id_requirement)


# ---------------------------------------------------------------------------
# DHKEM(X25519, HKDF-SHA256) and the base-mode key schedule
# ---------------------------------------------------------------------------

_KEM_SUITE_ID = b"KEM" + _i2osp(KemId.DHKEM_X25519_HKDF_SHA256, 2)


def _kem_shared_secret(dh: bytes, enc: bytes, recipient_public: bytes) -> bytes:
    eae_prk = _labeled_extract(_KEM_SUITE_ID, b"", b"eae_prk", dh)
    return _labeled_expand(_KEM_SUITE_ID, eae_prk, b"shared_secret", enc + recipient_public, HASH_SIZE)


def _key_schedule(params: HpkeParameters, shared_secret: bytes, info: bytes) -> Tuple[bytes, bytes]:
    suite_id = params.suite_id
    psk_id_hash = _labeled_extract(suite_id, b"", b"psk_id_hash", b"")
    info_hash = _labeled_extract(suite_id, b"", b"info_hash", bytes(info))
    context = bytes([MODE_BASE]) + psk_id_hash + info_hash
    secret = _labeled_extract(suite_id, shared_secret, b"secret", b"")
    key = _labeled_expand(suite_id, secret, b"key", context, _AEAD_KEY_SIZES[params.aead_id])
    base_nonce = _labeled_expand(suite_id, secret, b"base_nonce", context, NONCE_SIZE)
    return key, base_nonce


def _aead(params: HpkeParameters, key: bytes) -> Any:
    if params.aead_id == AeadId.CHACHA20_POLY1305:
        return ChaCha20Poly1305(key)
    return AESGCM(key)


class _HpkeEncrypt:
    def __init__(self, key: HpkePublicKey) -> None:
        self._recipient_public = bytes(key.public_key_bytes)
        self._recipient = X25519PublicKey.from_public_bytes(self._recipient_public)
        self._params = key.parameters

    def encrypt(self, plaintext: bytes, context_info: bytes) -> bytes:
        ephemeral = X25519PrivateKey.generate()
        enc = _raw_public(ephemeral.public_key())
        shared = _kem_shared_secret(ephemeral.exchange(self._recipient), enc, self._recipient_public)
        key, base_nonce = _key_schedule(self._params, shared, context_info)
        return enc + _aead(self._params, key).encrypt(base_nonce, bytes(plaintext), b"")


class _HpkeDecrypt:
    def __init__(self, key: HpkePrivateKey) -> None:
        self._private = X25519PrivateKey.from_private_bytes(
            key.private_key_bytes.to_bytes(insecure_secret_key_access())
        )
        self._public = bytes(key.public_key_bytes)
        self._params = key.parameters

    def decrypt(self, ciphertext: bytes, context_info: bytes) -> bytes:
        if len(ciphertext) < X25519_KEY_SIZE + TAG_SIZE:
            raise DecryptionFailed()
        enc = bytes(ciphertext[:X25519_KEY_SIZE])
        body = bytes(ciphertext[X25519_KEY_SIZE:])
        try:
            dh = self._private.exchange(X25519PublicKey.from_public_bytes(enc))
            shared = _kem_shared_secret(dh, enc, self._public)
            key, base_nonce = _key_schedule(self._params, shared, context_info)
            return _aead(self._params, key).decrypt(base_nonce, body, b"")
        except (InvalidTag, ValueError) as e:
            raise DecryptionFailed() from e


# ---------------------------------------------------------------------------
# Records and managers
# ---------------------------------------------------------------------------

def _params_record(params: HpkeParameters) -> bytes:
    return (
        RecordWriter()
        .u32_field(1, int(params.kem_id))
        .u32_field(2, int(params.kdf_id))
        .u32_field(3, int(params.aead_id))
        .to_bytes()
    )


def _parse_params_record(value: bytes, variant: OutputPrefixType) -> HpkeParameters:
    r = RecordReader(value, (1, 2, 3), record="HpkeParameters")
    try:
        return HpkeParameters(
            KemId(r.u32_field(1)),
            KdfId(r.u32_field(2)),
            AeadId(r.u32_field(3)),
            variant,
        )
    except ValueError as e:
        raise InvalidParameters("unsupported HPKE algorithm id") from e


def _public_record(version: int, key: Key) -> bytes:
    return (
        RecordWriter()
        .u32_field(1, version)
        .bytes_field(2, _params_record(key.parameters))  # type: ignore[arg-type]
        .bytes_field(3, key.public_key_bytes)  # type: ignore[attr-defined]
        .to_bytes()
    )


def _parse_public_record(value: bytes, version: int, variant: OutputPrefixType, id_requirement: Optional[int]) -> HpkePublicKey:
    r = RecordReader(value, (1, 2, 3), record="HpkePublicKey")
    validate_version(r.u32_field(1), version)  # type: ignore[arg-type]
    try:
        params = _parse_params_record(r.bytes_field(2), variant)  # type: ignore[arg-type]
    except InvalidParameters as e:
        raise InvalidKey(e.message, **e.details) from e
    return HpkePublicKey(params, r.bytes_field(3), id_requirement)  # type: ignore[arg-type]


class _HpkeParametersMixin:
    parameters_class = HpkeParameters

    def _parse_parameters_value(self, value: bytes, variant: OutputPrefixType) -> Parameters:
        return _parse_params_record(value, variant)

    def _serialize_parameters_value(self, parameters: Parameters) -> bytes:
        return _params_record(parameters)  # type: ignore[arg-type]


class HpkePrivateKeyManager(_HpkeParametersMixin, PrivateKeyTypeManager):
    type_url = PRIVATE_TYPE_URL
    public_key_type_url = PUBLIC_TYPE_URL
    key_class = HpkePrivateKey
    primitive_classes = (HybridDecrypt,)

    def _parse_key_value(self, value: bytes, variant: OutputPrefixType, id_requirement: Optional[int]) -> Key:
        r = RecordReader(value, (1, 2, 3), record="HpkePrivateKey")
        validate_version(r.u32_field(1), self.version)  # type: ignore[arg-type]
        public = _parse_public_record(r.bytes_field(2), self.version, variant, id_requirement)  # type: ignore[arg-type]
        return HpkePrivateKey(
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
        return HpkePrivateKey(
            parameters,  # type: ignore[arg-type]
            _raw_public(private.public_key()),
            SecretBytes(raw_private, insecure_secret_key_access()),
            id_requirement,
        )

    def _create_primitive(self, key: Key, primitive_class: type) -> Any:
        return _HpkeDecrypt(key)  # type: ignore[arg-type]

    def named_parameters(self) -> Dict[str, Parameters]:
        x25519 = KemId.DHKEM_X25519_HKDF_SHA256
        sha256 = KdfId.HKDF_SHA256
        named: Dict[str, Parameters] = {}
        for suffix, aead_id in (
            ("AES_128_GCM", AeadId.AES_128_GCM),
            ("AES_256_GCM", AeadId.AES_256_GCM),
            ("CHACHA20_POLY1305", AeadId.CHACHA20_POLY1305),
        ):
            name = f"DHKEM_X25519_HKDF_SHA256_HKDF_SHA256_{suffix}"
            named[name] = HpkeParameters(x25519, sha256, aead_id, OutputPrefixType.TINK)
            named[name + "_RAW"] = HpkeParameters(x25519, sha256, aead_id, OutputPrefixType.RAW)
        return named


class HpkePublicKeyManager(_HpkeParametersMixin, PublicKeyTypeManager):
    type_url = PUBLIC_TYPE_URL
    key_class = HpkePublicKey
    primitive_classes = (HybridEncrypt,)

    def _parse_key_value(self, value: bytes, variant: OutputPrefixType, id_requirement: Optional[int]) -> Key:
        return _parse_public_record(value, self.version, variant, id_requirement)

    def _serialize_key_value(self, key: Key) -> bytes:
        return _public_record(self.version, key)

    def _create_primitive(self, key: Key, primitive_class: type) -> Any:
        return _HpkeEncrypt(key)  # type: ignore[arg-type]
