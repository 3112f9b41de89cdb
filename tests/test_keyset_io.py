import io
import json

import pytest

from keyset_core.aes_gcm import AesGcmParameters
from keyset_core.errors import DecryptionFailed, ParseFailure, PermissionDenied
from keyset_core.keyset_handle import KeysetHandle
from keyset_core.keyset_io import BinaryKeysetReader, BinaryKeysetWriter, JsonKeysetReader, JsonKeysetWriter
from keyset_core.primitives import Aead
from keyset_core.secret_access import insecure_secret_key_access


def _handles(registry):
    master = KeysetHandle.generate_new(AesGcmParameters(32), registry=registry).get_primitive(Aead)
    handle = KeysetHandle.generate_new(AesGcmParameters(16), registry=registry)
    return master, handle


def test_encrypted_json_round_trip(registry):
    master, handle = _handles(registry)
    buf = io.StringIO()
    handle.write(JsonKeysetWriter(buf), master, b"keyset-ad")

    doc = json.loads(buf.getvalue())
    assert set(doc) == {"encryptedKeyset", "keysetInfo"}
    assert doc["keysetInfo"]["primaryKeyId"] == handle.primary().id

    restored = KeysetHandle.read(JsonKeysetReader(buf.getvalue()), master, b"keyset-ad", registry=registry)
    ct = handle.get_primitive(Aead).encrypt(b"x", b"")
    assert restored.get_primitive(Aead).decrypt(ct, b"") == b"x"
    assert restored.primary().key.equal_key(handle.primary().key)


def test_encrypted_binary_round_trip(registry):
    master, handle = _handles(registry)
    buf = io.BytesIO()
    handle.write(BinaryKeysetWriter(buf), master)
    restored = KeysetHandle.read(BinaryKeysetReader(buf.getvalue()), master, registry=registry)
    assert restored.keyset_info() == handle.keyset_info()


def test_encrypted_keyset_needs_matching_master_and_ad(registry):
    master, handle = _handles(registry)
    buf = io.BytesIO()
    handle.write(BinaryKeysetWriter(buf), master, b"ad")
    with pytest.raises(DecryptionFailed):
        KeysetHandle.read(BinaryKeysetReader(buf.getvalue()), master, b"other", registry=registry)
    other_master, _ = _handles(registry)
    with pytest.raises(DecryptionFailed):
        KeysetHandle.read(BinaryKeysetReader(buf.getvalue()), other_master, b"ad", registry=registry)


def test_cleartext_round_trip_json_and_binary(registry):
    _, handle = _handles(registry)
    access = insecure_secret_key_access()

    text = io.StringIO()
    handle.write_cleartext(JsonKeysetWriter(text), access)
    from_json = KeysetHandle.read_cleartext(JsonKeysetReader(text.getvalue()), access, registry)

    raw = io.BytesIO()
    handle.write_cleartext(BinaryKeysetWriter(raw), access)
    from_binary = KeysetHandle.read_cleartext(BinaryKeysetReader(raw.getvalue()), access, registry)

    assert from_json.keyset_info() == from_binary.keyset_info() == handle.keyset_info()
    assert from_json.primary().key.equal_key(from_binary.primary().key)


def test_no_secret_io_refuses_secret_material(registry):
    _, handle = _handles(registry)
    with pytest.raises(PermissionDenied):
        handle.write_no_secret(JsonKeysetWriter(io.StringIO()))

    text = io.StringIO()
    handle.write_cleartext(JsonKeysetWriter(text), insecure_secret_key_access())
    with pytest.raises(PermissionDenied):
        KeysetHandle.read_no_secret(JsonKeysetReader(text.getvalue()), registry)


def test_no_secret_io_accepts_public_keysets(registry):
    private = KeysetHandle.generate_new(registry.parameters.get("ECDSA_P256"), registry=registry)
    buf = io.BytesIO()
    private.get_public_keyset_handle().write_no_secret(BinaryKeysetWriter(buf))
    public = KeysetHandle.read_no_secret(BinaryKeysetReader(buf.getvalue()), registry)
    assert public.primary().id == private.primary().id


def test_readers_reject_malformed_input(registry):
    with pytest.raises(ParseFailure):
        BinaryKeysetReader(b"").read()
    with pytest.raises(ParseFailure):
        JsonKeysetReader("{not json").read()
    with pytest.raises(ParseFailure):
        JsonKeysetReader(b"\xff\xfe").read()
    with pytest.raises(ParseFailure):
        JsonKeysetReader("[]").read()
    with pytest.raises(ParseFailure):
        BinaryKeysetReader(b"\x00\x01\x00").read_encrypted()


def test_destroyed_entry_key_material_is_dropped_on_read(registry):
    from keyset_core.key import KeyStatus
    from keyset_core.keyset_manager import KeysetManager

    manager = KeysetManager.with_empty_keyset(registry)
    manager.add_new_key("AES128_GCM")
    old = manager.add_new_key("AES128_GCM")
    access = insecure_secret_key_access()
    buf = io.StringIO()
    manager.keyset_handle().write_cleartext(JsonKeysetWriter(buf), access)

    doc = json.loads(buf.getvalue())
    doc["key"][1]["status"] = "DESTROYED"
    assert "keyData" in doc["key"][1]

    handle = KeysetHandle.read_cleartext(JsonKeysetReader(json.dumps(doc)), access, registry)
    assert handle[1].id == old
    assert handle[1].status == KeyStatus.DESTROYED
    assert handle[1].key is None

    out = io.StringIO()
    handle.write_cleartext(JsonKeysetWriter(out), access)
    stored = json.loads(out.getvalue())["key"][1]
    assert stored["status"] == "DESTROYED"
    assert "keyData" not in stored


def test_reader_and_writer_bases_are_abstract():
    from keyset_core.key import PrivateKey
    from keyset_core.keyset_io import KeysetReader, KeysetWriter

    for base in (KeysetReader, KeysetWriter, PrivateKey):
        with pytest.raises(TypeError):
            base()
