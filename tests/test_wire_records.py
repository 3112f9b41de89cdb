import struct

import pytest

from keyset_core.errors import ParseFailure
from keyset_core.key import KeyMaterialType, KeyStatus
from keyset_core.keyset import EncryptedKeyset, KeyData, Keyset, KeysetKey, keyset_info
from keyset_core.output_prefix import OutputPrefixType
from keyset_core.wire import RecordReader, RecordWriter, dec_fields, enc_field


def _keyset():
    return Keyset(
        primary_key_id=7,
        keys=(
            KeysetKey(
                KeyData("type.keyset-core.dev/AesGcmKey", b"\x01\x02", KeyMaterialType.SYMMETRIC),
                KeyStatus.ENABLED,
                7,
                OutputPrefixType.TINK,
            ),
            KeysetKey(None, KeyStatus.DESTROYED, 9, OutputPrefixType.RAW),
        ),
    )


def test_writer_orders_fields_by_tag():
    out = RecordWriter().u32_field(2, 5).bytes_field(1, b"x").to_bytes()
    assert out == enc_field(1, b"x") + enc_field(2, b"\x00\x00\x00\x05")


def test_writer_omits_absent_optional_fields():
    assert RecordWriter().u32_field(1, None).bytes_field(2, None).to_bytes() == b""


def test_decoder_rejects_out_of_order_and_duplicate_tags():
    with pytest.raises(ParseFailure):
        dec_fields(enc_field(2, b"a") + enc_field(1, b"b"))
    with pytest.raises(ParseFailure):
        dec_fields(enc_field(1, b"a") + enc_field(1, b"b"))


def test_decoder_rejects_truncation():
    blob = enc_field(1, b"abcdef")
    with pytest.raises(ParseFailure):
        dec_fields(blob[:-1])
    with pytest.raises(ParseFailure):
        dec_fields(blob[:3])


def test_reader_rejects_unknown_tags_and_bad_integers():
    with pytest.raises(ParseFailure):
        RecordReader(enc_field(3, b""), (1, 2))
    r = RecordReader(enc_field(1, b"\x00\x01\x02"), (1,))
    with pytest.raises(ParseFailure):
        r.u32_field(1)
    with pytest.raises(ParseFailure):
        r.bytes_field(2)
    assert r.bytes_field(2, required=False) is None


def test_keyset_binary_round_trip_is_canonical():
    ks = _keyset()
    blob = ks.to_bytes()
    parsed = Keyset.from_bytes(blob)
    assert parsed == ks
    assert parsed.to_bytes() == blob


def test_keyset_binary_rejects_unknown_enum_value():
    key = RecordWriter().u32_field(2, 99).u32_field(3, 1).u32_field(4, 1).to_bytes()
    blob = RecordWriter().u32_field(1, 1).repeated_field(2, [key]).to_bytes()
    with pytest.raises(ParseFailure):
        Keyset.from_bytes(blob)


def test_keyset_binary_rejects_trailing_garbage():
    blob = _keyset().to_bytes() + struct.pack("!H", 1)
    with pytest.raises(ParseFailure):
        Keyset.from_bytes(blob)


def test_keyset_json_uses_camel_case_and_enum_names():
    obj = _keyset().to_json()
    assert obj["primaryKeyId"] == 7
    first = obj["key"][0]
    assert first["keyData"]["typeUrl"] == "type.keyset-core.dev/AesGcmKey"
    assert first["keyData"]["value"] == "AQI="
    assert first["keyData"]["keyMaterialType"] == "SYMMETRIC"
    assert first["status"] == "ENABLED"
    assert first["outputPrefixType"] == "TINK"
    assert "keyData" not in obj["key"][1]
    assert Keyset.from_json(obj) == _keyset()


def test_keyset_json_rejects_bad_members():
    obj = _keyset().to_json()
    obj["key"][0]["status"] = "SOMETIMES"
    with pytest.raises(ParseFailure):
        Keyset.from_json(obj)

    obj = _keyset().to_json()
    obj["key"][0]["keyData"]["value"] = "not base64!"
    with pytest.raises(ParseFailure):
        Keyset.from_json(obj)

    obj = _keyset().to_json()
    obj["primaryKeyId"] = -1
    with pytest.raises(ParseFailure):
        Keyset.from_json(obj)


def test_keyset_info_never_contains_key_material():
    info = keyset_info(_keyset())
    assert info.primary_key_id == 7
    assert [k.key_id for k in info.key_info] == [7, 9]
    assert info.key_info[1].type_url == ""
    assert "value" not in str(info.to_json())


def test_encrypted_keyset_round_trip():
    enc = EncryptedKeyset(b"\x00ciphertext", keyset_info(_keyset()))
    assert EncryptedKeyset.from_bytes(enc.to_bytes()) == enc
    assert EncryptedKeyset.from_json(enc.to_json()) == enc
    bare = EncryptedKeyset(b"ct")
    assert EncryptedKeyset.from_bytes(bare.to_bytes()).keyset_info is None
