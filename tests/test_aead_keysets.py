import pytest

from keyset_core.aes_gcm import AesGcmParameters
from keyset_core.aes_siv import AesSivParameters
from keyset_core.chacha20_poly1305 import ChaCha20Poly1305Parameters
from keyset_core.errors import DecryptionFailed, InvalidKeyset, UnsupportedKeyType
from keyset_core.key import KeyStatus
from keyset_core.keyset_handle import KeysetHandle, KeysetHandleBuilder
from keyset_core.keyset_manager import KeysetManager
from keyset_core.output_prefix import OutputPrefixType, output_prefix
from keyset_core.primitives import Aead, DeterministicAead


def test_aead_scenario_hello_ctx(registry):
    handle = KeysetHandle.generate_new(AesGcmParameters(16), registry=registry)
    aead = handle.get_primitive(Aead)

    ct = aead.encrypt(b"hello", b"ctx")
    assert ct[:5] == output_prefix(OutputPrefixType.TINK, handle.primary().id)
    assert aead.decrypt(ct, b"ctx") == b"hello"

    other = KeysetHandle.generate_new(AesGcmParameters(16), registry=registry).get_primitive(Aead)
    with pytest.raises(DecryptionFailed) as ei:
        other.decrypt(ct, b"ctx")
    assert ei.value.details == {}


def test_wrong_associated_data_and_tampering_fail(registry):
    aead = KeysetHandle.generate_new(AesGcmParameters(32), registry=registry).get_primitive(Aead)
    ct = aead.encrypt(b"hello", b"ctx")
    with pytest.raises(DecryptionFailed):
        aead.decrypt(ct, b"other")
    tampered = ct[:-1] + bytes([ct[-1] ^ 1])
    with pytest.raises(DecryptionFailed):
        aead.decrypt(tampered, b"ctx")
    with pytest.raises(DecryptionFailed):
        aead.decrypt(b"\x01", b"ctx")


def test_rotation_keeps_old_ciphertexts_readable(registry):
    manager = KeysetManager.with_keyset_handle(KeysetHandle.generate_new(AesGcmParameters(16), registry=registry))
    old_id = manager.keyset_handle().primary().id
    old_ct = manager.keyset_handle().get_primitive(Aead).encrypt(b"before", b"")

    manager.rotate(AesGcmParameters(32))
    handle = manager.keyset_handle()
    new_id = handle.primary().id
    assert new_id != old_id

    aead = handle.get_primitive(Aead)
    assert aead.decrypt(old_ct, b"") == b"before"
    new_ct = aead.encrypt(b"after", b"")
    assert new_ct[:5] == output_prefix(OutputPrefixType.TINK, new_id)

    manager.disable(old_id)
    with pytest.raises(DecryptionFailed):
        manager.keyset_handle().get_primitive(Aead).decrypt(old_ct, b"")
    assert manager.keyset_handle().get_primitive(Aead).decrypt(new_ct, b"") == b"after"


def test_raw_entries_are_tried_without_prefix(registry):
    builder = KeysetHandleBuilder(registry)
    builder.add_entry(KeysetHandleBuilder.generate_entry_from_parameters(AesGcmParameters(16)).with_random_id())
    builder.add_entry(
        KeysetHandleBuilder.generate_entry_from_parameters(AesGcmParameters(16, OutputPrefixType.RAW)).make_primary()
    )
    handle = builder.build()
    aead = handle.get_primitive(Aead)

    raw_ct = aead.encrypt(b"raw", b"ad")
    assert aead.decrypt(raw_ct, b"ad") == b"raw"
    assert len(raw_ct) == 12 + 3 + 16


def test_legacy_and_crunchy_aead_prefixes(registry):
    for variant in (OutputPrefixType.LEGACY, OutputPrefixType.CRUNCHY):
        handle = KeysetHandle.generate_new(AesGcmParameters(16, variant), registry=registry)
        aead = handle.get_primitive(Aead)
        ct = aead.encrypt(b"x", b"")
        assert ct[:5] == b"\x00" + handle.primary().id.to_bytes(4, "big")
        assert aead.decrypt(ct, b"") == b"x"


def test_chacha20_poly1305_keyset(registry):
    handle = KeysetHandle.generate_new(ChaCha20Poly1305Parameters(), registry=registry)
    aead = handle.get_primitive(Aead)
    ct = aead.encrypt(b"stream", b"ad")
    assert aead.decrypt(ct, b"ad") == b"stream"
    with pytest.raises(DecryptionFailed):
        aead.decrypt(ct, b"bad")


def test_mixed_key_types_in_one_keyset(registry):
    builder = KeysetHandleBuilder(registry)
    builder.add_entry(KeysetHandleBuilder.generate_entry_from_template_name("CHACHA20_POLY1305").make_primary())
    builder.add_entry(KeysetHandleBuilder.generate_entry_from_template_name("AES256_GCM"))
    handle = builder.build()
    ct = handle.get_primitive(Aead).encrypt(b"m", b"")
    assert handle.get_primitive(Aead).decrypt(ct, b"") == b"m"


def test_deterministic_aead(registry):
    handle = KeysetHandle.generate_new(AesSivParameters(), registry=registry)
    daead = handle.get_primitive(DeterministicAead)
    a = daead.encrypt_deterministically(b"same input", b"ad")
    b = daead.encrypt_deterministically(b"same input", b"ad")
    assert a == b
    assert a[:5] == output_prefix(OutputPrefixType.TINK, handle.primary().id)
    assert daead.decrypt_deterministically(a, b"ad") == b"same input"
    with pytest.raises(DecryptionFailed):
        daead.decrypt_deterministically(a, b"other")


def test_primitive_type_must_match_key_type(registry):
    handle = KeysetHandle.generate_new(AesGcmParameters(16), registry=registry)
    with pytest.raises(UnsupportedKeyType):
        handle.get_primitive(DeterministicAead)


def test_disabled_entries_are_not_used(registry):
    builder = KeysetHandleBuilder(registry)
    builder.add_entry(KeysetHandleBuilder.generate_entry_from_template_name("AES128_GCM").make_primary())
    builder.add_entry(KeysetHandleBuilder.generate_entry_from_template_name("AES128_GCM").set_status(KeyStatus.DISABLED))
    handle = builder.build()
    assert handle.size() == 2
    assert handle.get_primitive(Aead).decrypt(handle.get_primitive(Aead).encrypt(b"a", b""), b"") == b"a"


def test_public_projection_of_symmetric_keyset_fails(registry):
    handle = KeysetHandle.generate_new(AesGcmParameters(16), registry=registry)
    with pytest.raises(InvalidKeyset):
        handle.get_public_keyset_handle()


def test_consume_metrics_are_recorded(registry):
    from prometheus_client import REGISTRY

    from keyset_core import metrics

    metrics.set_enabled(True)
    labels = {"primitive": "aead", "outcome": "failure"}
    before = REGISTRY.get_sample_value("keyset_consume_total", labels) or 0.0

    aead = KeysetHandle.generate_new(AesGcmParameters(16), registry=registry).get_primitive(Aead)
    with pytest.raises(DecryptionFailed):
        aead.decrypt(b"\x01\x00\x00\x00\x00garbage-garbage-garbage-garbage", b"")

    assert REGISTRY.get_sample_value("keyset_consume_total", labels) == before + 1
    assert b"keyset_consume_total" in metrics.render_latest()
