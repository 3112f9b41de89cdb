"""ECDSA key types (PublicKeySign/PublicKeyVerify) on the NIST curves.

Public keys are stored as uncompressed X9.62 points, private keys as the
big-endian private scalar padded to the curve's field size. Signatures are
DER or IEEE P1363 (r || s, each padded to the field size).

Signers run a sign-then-verify self test when the primitive is created,
unless KEYSET_SIGNER_SELF_TEST=0.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature, encode_dss_signature

from .errors import InvalidKey, InvalidParameters, VerificationFailed
from .key import Compliance, Key, Parameters, PrivateKey
from .key_manager import PrivateKeyTypeManager, PublicKeyTypeManager, validate_version
from .output_prefix import OutputPrefixType
from .primitives import PublicKeySign, PublicKeyVerify
from .secret_access import SecretBytes, insecure_secret_key_access
from .settings import Settings
from .wire import RecordReader, RecordWriter

PRIVATE_TYPE_URL = "type.keyset-core.dev/EcdsaPrivateKey"
PUBLIC_TYPE_URL = "type.keyset-core.dev/EcdsaPublicKey"

SELF_TEST_MESSAGE = b"keyset-core ecdsa self test"


class EcdsaCurve(IntEnum):
    NIST_P256 = 2
    NIST_P384 = 3
    NIST_P521 = 4


class HashType(IntEnum):
    SHA384 = 2
    SHA256 = 3
    SHA512 = 4


class EcdsaSignatureEncoding(IntEnum):
    IEEE_P1363 = 1
    DER = 2


_CURVES = {
    EcdsaCurve.NIST_P256: ec.SECP256R1,
    EcdsaCurve.NIST_P384: ec.SECP384R1,
    EcdsaCurve.NIST_P521: ec.SECP521R1,
}

_HASHES = {
    HashType.SHA256: hashes.SHA256,
    HashType.SHA384: hashes.SHA384,
    HashType.SHA512: hashes.SHA512,
}

_ALLOWED_HASHES = {
    EcdsaCurve.NIST_P256: (HashType.SHA256,),
    EcdsaCurve.NIST_P384: (HashType.SHA384, HashType.SHA512),
    EcdsaCurve.NIST_P521: (HashType.SHA512,),
}


def _field_size(curve: EcdsaCurve) -> int:
    return (_CURVES[curve].key_size + 7) // 8


@dataclass(frozen=True)
class EcdsaParameters(Parameters):
    curve: EcdsaCurve = EcdsaCurve.NIST_P256
    hash_type: HashType = HashType.SHA256
    signature_encoding: EcdsaSignatureEncoding = EcdsaSignatureEncoding.DER
    variant: OutputPrefixType = OutputPrefixType.TINK

    def __post_init__(self) -> None:
        try:
            curve = EcdsaCurve(self.curve)
            hash_type = HashType(self.hash_type)
            EcdsaSignatureEncoding(self.signature_encoding)
        except ValueError as e:
            raise InvalidParameters("unknown ECDSA parameter value") from e
        if hash_type not in _ALLOWED_HASHES[curve]:
            raise InvalidParameters(
                "hash type not allowed for curve", curve=curve.name, hash_type=hash_type.name
            )


def _load_public(params: EcdsaParameters, point: bytes) -> ec.EllipticCurvePublicKey:
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(_CURVES[params.curve](), bytes(point))
    except ValueError as e:
        raise InvalidKey("invalid ECDSA public point", curve=params.curve.name) from e


def _encode_point(pub: ec.EllipticCurvePublicKey) -> bytes:
    return pub.public_bytes(
        encoding=serialization.Encoding.X962, format=serialization.PublicFormat.UncompressedPoint
    )


def _load_private(params: EcdsaParameters, value: SecretBytes) -> ec.EllipticCurvePrivateKey:
    scalar = int.from_bytes(value.to_bytes(insecure_secret_key_access()), "big")
    try:
        return ec.derive_private_key(scalar, _CURVES[params.curve]())
    except ValueError as e:
        raise InvalidKey("invalid ECDSA private scalar", curve=params.curve.name) from e


@dataclass(frozen=True)
class EcdsaPublicKey(Key):
    parameters: EcdsaParameters
    public_point: bytes
    id_requirement: Optional[int] = None

    def __post_init__(self) -> None:
        _load_public(self.parameters, self.public_point)
        self._check_id_requirement()


@dataclass(frozen=True)
class EcdsaPrivateKey(PrivateKey):
    parameters: EcdsaParameters
    public_point: bytes
    private_value: SecretBytes
    id_requirement: Optional[int] = None

    def __post_init__(self) -> None:
        if len(self.private_value) != _field_size(self.parameters.curve):
            raise InvalidKey("ECDSA private value has the wrong length", size=len(self.private_value))
        derived = _encode_point(_load_private(self.parameters, self.private_value).public_key())
        if derived != bytes(self.public_point):
            raise InvalidKey("ECDSA public point does not match private key")
        self._check_id_requirement()

    def public_key(self) -> EcdsaPublicKey:
        return EcdsaPublicKey(self.parameters, self.public_point, self.id_requirement)


class _EcdsaSign:
    def __init__(self, key: EcdsaPrivateKey) -> None:
        self._private = _load_private(key.parameters, key.private_value)
        self._params = key.parameters

    def sign(self, data: bytes) -> bytes:
        der = self._private.sign(bytes(data), ec.ECDSA(_HASHES[self._params.hash_type]()))
        if self._params.signature_encoding == EcdsaSignatureEncoding.DER:
            return der
        r, s = decode_dss_signature(der)
        n = _field_size(self._params.curve)
        return r.to_bytes(n, "big") + s.to_bytes(n, "big")


class _EcdsaVerify:
    def __init__(self, key: EcdsaPublicKey) -> None:
        self._public = _load_public(key.parameters, key.public_point)
        self._params = key.parameters

    def verify(self, signature: bytes, data: bytes) -> None:
        sig = bytes(signature)
        if self._params.signature_encoding == EcdsaSignatureEncoding.IEEE_P1363:
            n = _field_size(self._params.curve)
            if len(sig) != 2 * n:
                raise VerificationFailed()
            sig = encode_dss_signature(int.from_bytes(sig[:n], "big"), int.from_bytes(sig[n:], "big"))
        try:
            self._public.verify(sig, bytes(data), ec.ECDSA(_HASHES[self._params.hash_type]()))
        except (InvalidSignature, ValueError) as e:
            raise VerificationFailed() from e


def _params_record(params: EcdsaParameters) -> bytes:
    return (
        RecordWriter()
        .u32_field(1, int(params.curve))
        .u32_field(2, int(params.hash_type))
        .u32_field(3, int(params.signature_encoding))
        .to_bytes()
    )


def _parse_params_record(value: bytes, variant: OutputPrefixType) -> EcdsaParameters:
    r = RecordReader(value, (1, 2, 3), record="EcdsaParameters")
    try:
        return EcdsaParameters(
            EcdsaCurve(r.u32_field(1)),
            HashType(r.u32_field(2)),
            EcdsaSignatureEncoding(r.u32_field(3)),
            variant,
        )
    except ValueError as e:
        raise InvalidParameters("unknown ECDSA parameter value") from e


def _public_record(version: int, key: Key) -> bytes:
    return (
        RecordWriter()
        .u32_field(1, version)
        .bytes_field(2, _params_record(key.parameters))  # type: ignore[arg-type]
        .bytes_field(3, key.public_point)  # type: ignore[attr-defined]
        .to_bytes()
    )


def _parse_public_record(
    value: bytes, version: int, variant: OutputPrefixType, id_requirement: Optional[int]
) -> EcdsaPublicKey:
    r = RecordReader(value, (1, 2, 3), record="EcdsaPublicKey")
    validate_version(r.u32_field(1), version)  # type: ignore[arg-type]
    try:
        params = _parse_params_record(r.bytes_field(2), variant)  # type: ignore[arg-type]
    except InvalidParameters as e:
        raise InvalidKey(e.message, **e.details) from e
    return EcdsaPublicKey(params, r.bytes_field(3), id_requirement)  # type: ignore[arg-type]


class _EcdsaParametersMixin:
    parameters_class = EcdsaParameters
    compliance = Compliance.COMPLIANT

    def _parse_parameters_value(self, value: bytes, variant: OutputPrefixType) -> Parameters:
        return _parse_params_record(value, variant)

    def _serialize_parameters_value(self, parameters: Parameters) -> bytes:
        return _params_record(parameters)  # type: ignore[arg-type]


class EcdsaSignKeyManager(_EcdsaParametersMixin, PrivateKeyTypeManager):
    type_url = PRIVATE_TYPE_URL
    public_key_type_url = PUBLIC_TYPE_URL
    key_class = EcdsaPrivateKey
    primitive_classes = (PublicKeySign,)

    def _parse_key_value(self, value: bytes, variant: OutputPrefixType, id_requirement: Optional[int]) -> Key:
        r = RecordReader(value, (1, 2, 3), record="EcdsaPrivateKey")
        validate_version(r.u32_field(1), self.version)  # type: ignore[arg-type]
        public = _parse_public_record(r.bytes_field(2), self.version, variant, id_requirement)  # type: ignore[arg-type]
        return EcdsaPrivateKey(
            public.parameters,
            public.public_point,
            SecretBytes(r.bytes_field(3), insecure_secret_key_access()),  # type: ignore[arg-type]
            id_requirement,
        )

    def _serialize_key_value(self, key: Key) -> bytes:
        return (
            RecordWriter()
            .u32_field(1, self.version)
            .bytes_field(2, _public_record(self.version, key))
            .bytes_field(3, key.private_value.to_bytes(insecure_secret_key_access()))  # type: ignore[attr-defined]
            .to_bytes()
        )

    def create_key(self, parameters: Parameters, id_requirement: Optional[int]) -> Key:
        self.validate_parameters(parameters)
        private = ec.generate_private_key(_CURVES[parameters.curve]())  # type: ignore[attr-defined]
        n = _field_size(parameters.curve)  # type: ignore[attr-defined]
        scalar = private.private_numbers().private_value.to_bytes(n, "big")
        return EcdsaPrivateKey(
            parameters,  # type: ignore[arg-type]
            _encode_point(private.public_key()),
            SecretBytes(scalar, insecure_secret_key_access()),
            id_requirement,
        )

    def _create_primitive(self, key: Key, primitive_class: type) -> Any:
        signer = _EcdsaSign(key)  # type: ignore[arg-type]
        if Settings.from_env().signer_self_test:
            verifier = _EcdsaVerify(key.public_key())  # type: ignore[attr-defined]
            try:
                verifier.verify(signer.sign(SELF_TEST_MESSAGE), SELF_TEST_MESSAGE)
            except VerificationFailed as e:
                raise InvalidKey("ECDSA signer self test failed") from e
        return signer

    def named_parameters(self) -> Dict[str, Parameters]:
        der = EcdsaSignatureEncoding.DER
        p1363 = EcdsaSignatureEncoding.IEEE_P1363
        return {
            "ECDSA_P256": EcdsaParameters(EcdsaCurve.NIST_P256, HashType.SHA256, der, OutputPrefixType.TINK),
            "ECDSA_P256_IEEE_P1363": EcdsaParameters(
                EcdsaCurve.NIST_P256, HashType.SHA256, p1363, OutputPrefixType.TINK
            ),
            "ECDSA_P256_RAW": EcdsaParameters(EcdsaCurve.NIST_P256, HashType.SHA256, p1363, OutputPrefixType.RAW),
            "ECDSA_P384_SHA384": EcdsaParameters(
                EcdsaCurve.NIST_P384, HashType.SHA384, der, OutputPrefixType.TINK
            ),
            "ECDSA_P384_SHA512": EcdsaParameters(
                EcdsaCurve.NIST_P384, HashType.SHA512, der, OutputPrefixType.TINK
            ),
            "ECDSA_P521": EcdsaParameters(EcdsaCurve.NIST_P521, HashType.SHA512, der, OutputPrefixType.TINK),
            "ECDSA_P521_IEEE_P1363": EcdsaParameters(
                EcdsaCurve.NIST_P521, HashType.SHA512, p1363, OutputPrefixType.TINK
            ),
        }


class EcdsaVerifyKeyManager(_EcdsaParametersMixin, PublicKeyTypeManager):
    type_url = PUBLIC_TYPE_URL
    key_class = EcdsaPublicKey
    primitive_classes = (PublicKeyVerify,)

    def _parse_key_value(self, value: bytes, variant: OutputPrefixType, id_requirement: Optional[int]) -> Key:
        return _parse_public_record(value, self.version, variant, id_requirement)

    def _serialize_key_value(self, key: Key) -> bytes:
        return _public_record(self.version, key)

    def _create_primitive(self, key: Key, primitive_class: type) -> Any:
        return _EcdsaVerify(key)  # type: ignore[arg-type]
