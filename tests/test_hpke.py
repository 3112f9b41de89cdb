import pytest
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from keyset_core import hpke
from keyset_core.errors import DecryptionFailed, InvalidParameters
from keyset_core.hpke import AeadId, HpkeParameters
from keyset_core.keyset_handle import KeysetHandle
from keyset_core.keyset_manager import KeysetManager
from keyset_core.output_prefix import OutputPrefixType, output_prefix
from keyset_core.primitives import HybridDecrypt, HybridEncrypt

# RFC 9180 A.1.1: DHKEM(X25519, HKDF-SHA256), HKDF-SHA256, AES-128-GCM, base mode.
RFC_INFO = bytes.fromhex("4f6465206f6e2061204772656369616e2055726e")
RFC_SK_R = bytes.fromhex("4612c550263fc8ad58375df3f557aac531d26850903e55a9f23f21d8534e8ac8")
RFC_ENC = bytes.fromhex("37fda3567bdbd628e88668c3c8d7e97d1d1253b6d4ea6d44c150f741f1bf4431")
RFC_SHARED_SECRET = bytes.fromhex("fe0e18c9f024ce43799ae393c7e8fe8fce9d218875e8227b0187c04e7d2ea1fc")
RFC_KEY = bytes.fromhex("4531685d41d65f03dc48f6b8302c05b0")
RFC_BASE_NONCE = bytes.fromhex("56d890e5accaaf011cff4b7d")


def test_kem_and_key_schedule_match_rfc_9180_vector():
    recipient = X25519PrivateKey.from_private_bytes(RFC_SK_R)
    recipient_public = hpke._raw_public(recipient.public_key())
    dh = recipient.exchange(hpke.X25519PublicKey.from_public_bytes(RFC_ENC))

    shared = hpke._kem_shared_secret(dh, RFC_ENC, recipient_public)
    assert shared == RFC_SHARED_SECRET

    key, base_nonce = hpke._key_schedule(HpkeParameters(aead_id=AeadId.AES_128_GCM), shared, RFC_INFO)
    assert key == RFC_KEY
    assert base_nonce == RFC_BASE_NONCE


@pytest.mark.parametrize("aead_id", list(AeadId))
def test_hpke_keyset_encrypt_and_decrypt(registry, aead_id):
    private = KeysetHandle.generate_new(HpkeParameters(aead_id=aead_id), registry=registry)
    public = private.get_public_keyset_handle()

    ct = public.get_primitive(HybridEncrypt).encrypt(b"hpke message", b"context")
    assert ct[:5] == output_prefix(OutputPrefixType.TINK, private.primary().id)
    assert len(ct) == 5 + 32 + len(b"hpke message") + 16

    dec = private.get_primitive(HybridDecrypt)
    assert dec.decrypt(ct, b"context") == b"hpke message"
    with pytest.raises(DecryptionFailed):
        dec.decrypt(ct, b"other context")
    with pytest.raises(DecryptionFailed):
        dec.decrypt(ct[:20], b"context")


def test_hpke_raw_template_and_rotation_with_ecies(registry):
    manager = KeysetManager.with_empty_keyset(registry)
    manager.add_new_key("ECIES_X25519_HKDF_SHA256_AES128_GCM")
    old_ct = manager.keyset_handle().get_public_keyset_handle().get_primitive(HybridEncrypt).encrypt(b"old", b"")

    manager.rotate("DHKEM_X25519_HKDF_SHA256_HKDF_SHA256_CHACHA20_POLY1305_RAW")
    handle = manager.keyset_handle()
    new_ct = handle.get_public_keyset_handle().get_primitive(HybridEncrypt).encrypt(b"new", b"")
    assert len(new_ct) == 32 + 3 + 16

    dec = handle.get_primitive(HybridDecrypt)
    assert dec.decrypt(old_ct, b"") == b"old"
    assert dec.decrypt(new_ct, b"") == b"new"


def test_hpke_rejects_unknown_algorithm_ids():
    with pytest.raises(InvalidParameters):
        HpkeParameters(aead_id=0x00FF)
    with pytest.raises(InvalidParameters):
        HpkeParameters(kem_id=0x0010)
