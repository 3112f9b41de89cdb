import io

import pytest

from keyset_core.ecdsa import EcdsaCurve, EcdsaParameters, EcdsaSignatureEncoding, HashType
from keyset_core.ecies import EciesParameters
from keyset_core.ed25519 import Ed25519Parameters
from keyset_core.errors import DecryptionFailed, InvalidParameters, UnsupportedKeyType, VerificationFailed
from keyset_core.key import KeyStatus
from keyset_core.keyset_handle import KeysetHandle, KeysetHandleBuilder
from keyset_core.keyset_io import JsonKeysetWriter
from keyset_core.output_prefix import OutputPrefixType, output_prefix
from keyset_core.primitives import HybridDecrypt, HybridEncrypt, PublicKeySign, PublicKeyVerify


def test_hybrid_encrypt_with_public_decrypt_with_private(registry):
    private = KeysetHandle.generate_new(EciesParameters(), registry=registry)
    public = private.get_public_keyset_handle()

    ct = public.get_primitive(HybridEncrypt).encrypt(b"secret message", b"context")
    assert ct[:5] == output_prefix(OutputPrefixType.TINK, private.primary().id)

    dec = private.get_primitive(HybridDecrypt)
    assert dec.decrypt(ct, b"context") == b"secret message"
    with pytest.raises(DecryptionFailed):
        dec.decrypt(ct, b"other context")

    other = KeysetHandle.generate_new(EciesParameters(), registry=registry)
    with pytest.raises(DecryptionFailed):
        other.get_primitive(HybridDecrypt).decrypt(ct, b"context")


def test_hybrid_aes256_raw_template(registry):
    private = KeysetHandle.generate_new(
        registry.parameters.get("ECIES_X25519_HKDF_SHA256_AES256_GCM_RAW"), registry=registry
    )
    enc = private.get_public_keyset_handle().get_primitive(HybridEncrypt)
    ct = enc.encrypt(b"m", b"")
    assert len(ct) == 32 + 12 + 1 + 16
    assert private.get_primitive(HybridDecrypt).decrypt(ct, b"") == b"m"


def test_private_keyset_does_not_offer_encrypt(registry):
    private = KeysetHandle.generate_new(EciesParameters(), registry=registry)
    with pytest.raises(UnsupportedKeyType):
        private.get_primitive(HybridEncrypt)


def test_ecdsa_der_sign_and_verify(registry):
    private = KeysetHandle.generate_new(registry.parameters.get("ECDSA_P256"), registry=registry)
    signer = private.get_primitive(PublicKeySign)
    verifier = private.get_public_keyset_handle().get_primitive(PublicKeyVerify)

    sig = signer.sign(b"data")
    assert sig[:5] == output_prefix(OutputPrefixType.TINK, private.primary().id)
    assert sig[5] == 0x30  # DER SEQUENCE
    verifier.verify(sig, b"data")
    with pytest.raises(VerificationFailed):
        verifier.verify(sig, b"other data")


@pytest.mark.parametrize(
    "name,size",
    [("ECDSA_P256_IEEE_P1363", 64), ("ECDSA_P521_IEEE_P1363", 132)],
)
def test_ecdsa_p1363_signature_size(registry, name, size):
    private = KeysetHandle.generate_new(registry.parameters.get(name), registry=registry)
    sig = private.get_primitive(PublicKeySign).sign(b"data")
    assert len(sig) == 5 + size
    private.get_public_keyset_handle().get_primitive(PublicKeyVerify).verify(sig, b"data")


def test_ecdsa_rejects_weak_hash_for_curve():
    with pytest.raises(InvalidParameters):
        EcdsaParameters(EcdsaCurve.NIST_P521, HashType.SHA256, EcdsaSignatureEncoding.DER)


def test_ed25519_legacy_signs_message_with_zero_suffix(registry):
    private = KeysetHandle.generate_new(Ed25519Parameters(OutputPrefixType.LEGACY), registry=registry)
    sig = private.get_primitive(PublicKeySign).sign(b"msg")
    assert sig[:1] == b"\x00"

    public = private.get_public_keyset_handle()
    public.get_primitive(PublicKeyVerify).verify(sig, b"msg")

    # The inner signature covers msg || 0x00 (Ed25519 is deterministic).
    raw_signer = registry.get_primitive(private.primary().key, PublicKeySign)
    assert sig[5:] == raw_signer.sign(b"msg\x00")


def test_ed25519_crunchy_does_not_change_message(registry):
    private = KeysetHandle.generate_new(Ed25519Parameters(OutputPrefixType.CRUNCHY), registry=registry)
    sig = private.get_primitive(PublicKeySign).sign(b"msg")
    raw_signer = registry.get_primitive(private.primary().key, PublicKeySign)
    assert sig[5:] == raw_signer.sign(b"msg")


def test_verification_after_rotation(registry):
    first = KeysetHandle.generate_new(registry.parameters.get("ED25519"), registry=registry)
    old_sig = first.get_primitive(PublicKeySign).sign(b"doc")

    builder = KeysetHandle.new_builder(first)
    builder.add_entry(KeysetHandleBuilder.generate_entry_from_template_name("ECDSA_P256").with_random_id())
    builder.get_at(1).make_primary()
    rotated = builder.build()

    verifier = rotated.get_public_keyset_handle().get_primitive(PublicKeyVerify)
    verifier.verify(old_sig, b"doc")
    verifier.verify(rotated.get_primitive(PublicKeySign).sign(b"doc"), b"doc")
    with pytest.raises(VerificationFailed):
        verifier.verify(b"\x01\x00\x00\x00\x01" + b"\x00" * 64, b"doc")


def test_public_projection_preserves_metadata(registry):
    builder = KeysetHandleBuilder(registry)
    builder.add_entry(KeysetHandleBuilder.generate_entry_from_template_name("ED25519").with_fixed_id(10).make_primary())
    builder.add_entry(
        KeysetHandleBuilder.generate_entry_from_template_name("ED25519_RAW").with_fixed_id(11).set_status(KeyStatus.DISABLED)
    )
    builder.add_entry(
        KeysetHandleBuilder.generate_entry_from_template_name("ED25519").with_fixed_id(12).set_status(KeyStatus.DESTROYED)
    )
    private = builder.build()
    public = private.get_public_keyset_handle()

    assert [(e.id, e.status, e.is_primary, e.output_prefix_type) for e in public] == [
        (e.id, e.status, e.is_primary, e.output_prefix_type) for e in private
    ]
    assert public[0].type_url.endswith("Ed25519PublicKey")
    assert public[2].key is None
    assert public[0].key == private[0].key.public_key()

    # Public keysets can be written without the secret-access token.
    buf = io.StringIO()
    public.write_no_secret(JsonKeysetWriter(buf))
    assert "Ed25519PublicKey" in buf.getvalue()


def test_public_keyset_cannot_sign(registry):
    public = KeysetHandle.generate_new(Ed25519Parameters(), registry=registry).get_public_keyset_handle()
    with pytest.raises(UnsupportedKeyType):
        public.get_primitive(PublicKeySign)
