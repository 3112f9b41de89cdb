import io

import pytest

from keyset_core.aes_gcm import AesGcmParameters
from keyset_core.ed25519 import Ed25519Parameters
from keyset_core.errors import PermissionDenied
from keyset_core.keyset_handle import KeysetHandle
from keyset_core.keyset_io import JsonKeysetReader, JsonKeysetWriter
from keyset_core.secret_access import SecretBytes, SecretKeyAccess, insecure_secret_key_access


def test_access_token_cannot_be_constructed():
    with pytest.raises(PermissionDenied):
        SecretKeyAccess()
    assert insecure_secret_key_access() is insecure_secret_key_access()


def test_secret_bytes_require_token():
    with pytest.raises(PermissionDenied):
        SecretBytes(b"k" * 16, None)
    sb = SecretBytes(b"k" * 16, insecure_secret_key_access())
    with pytest.raises(PermissionDenied):
        sb.to_bytes(None)
    assert sb.to_bytes(insecure_secret_key_access()) == b"k" * 16
    assert len(sb) == 16


def test_secret_bytes_never_show_content():
    sb = SecretBytes(b"supersecretvalue", insecure_secret_key_access())
    assert "supersecret" not in repr(sb)
    assert sb == SecretBytes(b"supersecretvalue", insecure_secret_key_access())
    assert sb != SecretBytes(b"othersecretvalue", insecure_secret_key_access())
    assert len(SecretBytes.random(32)) == 32


def test_serializing_secret_key_requires_token(registry):
    handle = KeysetHandle.generate_new(AesGcmParameters(16), registry=registry)
    key = handle.primary().key
    with pytest.raises(PermissionDenied):
        registry.serialize_key(key)
    ser = registry.serialize_key(key, insecure_secret_key_access())
    assert ser.type_url.endswith("AesGcmKey")


def test_public_key_serialization_needs_no_token(registry):
    handle = KeysetHandle.generate_new(Ed25519Parameters(), registry=registry)
    public = handle.get_public_keyset_handle().primary().key
    ser = registry.serialize_key(public)
    assert ser.key_material_type.name == "ASYMMETRIC_PUBLIC"


def test_cleartext_io_requires_token(registry):
    handle = KeysetHandle.generate_new(AesGcmParameters(16), registry=registry)
    buf = io.StringIO()
    with pytest.raises(PermissionDenied):
        handle.write_cleartext(JsonKeysetWriter(buf), None)
    assert buf.getvalue() == ""

    handle.write_cleartext(JsonKeysetWriter(buf), insecure_secret_key_access())
    with pytest.raises(PermissionDenied):
        KeysetHandle.read_cleartext(JsonKeysetReader(buf.getvalue()), None, registry)


def test_handle_repr_shows_metadata_only(registry):
    handle = KeysetHandle.generate_new(AesGcmParameters(16), registry=registry)
    raw = registry.serialize_key(handle.primary().key, insecure_secret_key_access()).value
    text = repr(handle)
    assert "KeysetInfo" in text
    assert raw.hex() not in text
    assert str(handle.primary().id) in text
