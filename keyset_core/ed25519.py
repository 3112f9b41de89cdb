"""Ed25519 key types (PublicKeySign/PublicKeyVerify)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from .errors import InvalidKey, VerificationFailed
from .key import Key, Parameters, PrivateKey
from .key_manager import PrivateKeyTypeManager, PublicKeyTypeManager, validate_version
from .output_prefix import OutputPrefixType
from .primitives import PublicKeySign, PublicKeyVerify
from .secret_access import SecretBytes, insecure_secret_key_access
from .settings import Settings
from .wire import RecordReader, RecordWriter

PRIVATE_TYPE_URL = "type.keyset-core.dev/Ed25519PrivateKey"
PUBLIC_TYPE_URL = "type.keyset-core.dev/Ed25519PublicKey"

KEY_SIZE = 32
SIGNATURE_SIZE = 64
SELF_TEST_MESSAGE = b"keyset-core ed25519 self test"


def _raw_public(pub: ed25519.Ed25519PublicKey) -> bytes:
    return pub.public_bytes(encoding=serialization.Encoding.Raw, format=serialization.PublicFormat.Raw)


@dataclass(frozen=True)
class Ed25519Parameters(Parameters):
    variant: OutputPrefixType = OutputPrefixType.TINK


@dataclass(frozen=True)
class Ed25519PublicKey(Key):
    parameters: Ed25519Parameters
    public_key_bytes: bytes
    id_requirement: Optional[int] = None

    def __post_init__(self) -> None:
        if len(self.public_key_bytes) != KEY_SIZE:
            raise InvalidKey("Ed25519 public keys must be 32 bytes", size=len(self.public_key_bytes))
        self._check_id_requirement()


@dataclass(frozen=True)
class Ed25519PrivateKey(PrivateKey):
    parameters: Ed25519Parameters
    public_key_bytes: bytes
    private_key_bytes: SecretBytes
    id_requirement: Optional[int] = None

    def __post_init__(self) -> None:
        if len(self.private_key_bytes) != KEY_SIZE:
            raise InvalidKey("Ed25519 private keys must be 32 bytes", size=len(self.private_key_bytes))
        seed = self.private_key_bytes.to_bytes(insecure_secret_key_access())
        derived = _raw_public(ed25519.Ed25519PrivateKey.from_private_bytes(seed).public_key())
        if derived != bytes(self.public_key_bytes):
            raise InvalidKey("Ed25519 public key does not match private key")
        self._check_id_requirement()

    def public_key(self) -> Ed25519PublicKey:
        return Ed25519PublicKey(self.parameters, self.public_key_bytes, self.id_requirement)


class _Ed25519Sign:
    def __init__(self, key: Ed25519PrivateKey) -> None:
        self._private = ed25519.Ed25519PrivateKey.from_private_bytes(
            key.private_key_bytes.to_bytes(insecure_secret_key_access())
        )

    def sign(self, data: bytes) -> bytes:
        return self._private.sign(bytes(data))


class _Ed25519Verify:
    def __init__(self, key: Ed25519PublicKey) -> None:
        try:
            self._public = ed25519.Ed25519PublicKey.from_public_bytes(bytes(key.public_key_bytes))
        except ValueError as e:
            raise InvalidKey("invalid Ed25519 public key") from e

    def verify(self, signature: bytes, data: bytes) -> None:
        if len(signature) != SIGNATURE_SIZE:
            raise VerificationFailed()
        try:
            self._public.verify(bytes(signature), bytes(data))
        except InvalidSignature as e:
            raise VerificationFailed() from e


def _public_record(version: int, key: Key) -> bytes:
    return RecordWriter().u32_field(1, version).bytes_field(2, key.public_key_bytes).to_bytes()  # type: ignore[attr-defined]


def _parse_public_record(
    value: bytes, version: int, variant: OutputPrefixType, id_requirement: Optional[int]
) -> Ed25519PublicKey:
    r = RecordReader(value, (1, 2), record="Ed25519PublicKey")
    validate_version(r.u32_field(1), version)  # type: ignore[arg-type]
    return Ed25519PublicKey(Ed25519Parameters(variant), r.bytes_field(2), id_requirement)  # type: ignore[arg-type]


class _Ed25519ParametersMixin:
    parameters_class = Ed25519Parameters

    def _parse_parameters_value(self, value: bytes, variant: OutputPrefixType) -> Parameters:
        RecordReader(value, (), record="Ed25519Parameters")
        return Ed25519Parameters(variant)

    def _serialize_parameters_value(self, parameters: Parameters) -> bytes:
        return b""


class Ed25519SignKeyManager(_Ed25519ParametersMixin, PrivateKeyTypeManager):
    type_url = PRIVATE_TYPE_URL
    public_key_type_url = PUBLIC_TYPE_URL
    key_class = Ed25519PrivateKey
    primitive_classes = (PublicKeySign,)

    def _parse_key_value(self, value: bytes, variant: OutputPrefixType, id_requirement: Optional[int]) -> Key:
        r = RecordReader(value, (1, 2, 3), record="Ed25519PrivateKey")
        validate_version(r.u32_field(1), self.version)  # type: ignore[arg-type]
        public = _parse_public_record(r.bytes_field(2), self.version, variant, id_requirement)  # type: ignore[arg-type]
        return Ed25519PrivateKey(
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
        private = ed25519.Ed25519PrivateKey.generate()
        seed = private.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return Ed25519PrivateKey(
            parameters,  # type: ignore[arg-type]
            _raw_public(private.public_key()),
            SecretBytes(seed, insecure_secret_key_access()),
            id_requirement,
        )

    def _create_primitive(self, key: Key, primitive_class: type) -> Any:
        signer = _Ed25519Sign(key)  # type: ignore[arg-type]
        if Settings.from_env().signer_self_test:
            try:
                _Ed25519Verify(key.public_key()).verify(  # type: ignore[attr-defined]
                    signer.sign(SELF_TEST_MESSAGE), SELF_TEST_MESSAGE
                )
            except VerificationFailed as e:
                raise InvalidKey("Ed25519 signer self test failed") from e
        return signer

    def named_parameters(self) -> Dict[str, Parameters]:
        return {
            "ED25519": Ed25519Parameters(OutputPrefixType.TINK),
            "ED25519_RAW": Ed25519Parameters(OutputPrefixType.RAW),
        }


class Ed25519VerifyKeyManager(_Ed25519ParametersMixin, PublicKeyTypeManager):
    type_url = PUBLIC_TYPE_URL
    key_class = Ed25519PublicKey
    primitive_classes = (PublicKeyVerify,)

    def _parse_key_value(self, value: bytes, variant: OutputPrefixType, id_requirement: Optional[int]) -> Key:
        return _parse_public_record(value, self.version, variant, id_requirement)

    def _serialize_key_value(self, key: Key) -> bytes:
        return _public_record(self.version, key)

    def _create_primitive(self, key: Key, primitive_class: type) -> Any:
        return _Ed25519Verify(key)  # type: ignore[arg-type]
