import pytest

from keyset_core.errors import InvalidKey
from keyset_core.output_prefix import (
    MAX_KEY_ID,
    OutputPrefixType,
    extract_prefix,
    legacy_format_message,
    output_prefix,
    validate_key_id,
)


def test_tink_prefix_is_start_byte_and_big_endian_id():
    assert output_prefix(OutputPrefixType.TINK, 7) == bytes([0x01, 0x00, 0x00, 0x00, 0x07])
    assert output_prefix(OutputPrefixType.TINK, 0x01020304) == b"\x01\x01\x02\x03\x04"


def test_legacy_and_crunchy_share_zero_start_byte():
    assert output_prefix(OutputPrefixType.LEGACY, 7) == b"\x00\x00\x00\x00\x07"
    assert output_prefix(OutputPrefixType.CRUNCHY, 7) == b"\x00\x00\x00\x00\x07"


def test_raw_prefix_is_empty_for_any_id():
    assert output_prefix(OutputPrefixType.RAW, None) == b""
    assert output_prefix(OutputPrefixType.RAW, 12345) == b""


def test_prefix_is_deterministic():
    a = output_prefix(OutputPrefixType.TINK, 424242)
    b = output_prefix(OutputPrefixType.TINK, 424242)
    assert a == b
    assert len(a) == 5


def test_key_id_range_is_uint32():
    assert validate_key_id(0) == 0
    assert validate_key_id(MAX_KEY_ID) == MAX_KEY_ID
    assert output_prefix(OutputPrefixType.TINK, MAX_KEY_ID) == b"\x01\xff\xff\xff\xff"
    with pytest.raises(InvalidKey):
        validate_key_id(MAX_KEY_ID + 1)
    with pytest.raises(InvalidKey):
        validate_key_id(-1)
    with pytest.raises(InvalidKey):
        validate_key_id(True)


def test_prefixed_variant_requires_key_id():
    with pytest.raises(InvalidKey):
        output_prefix(OutputPrefixType.TINK, None)
    with pytest.raises(InvalidKey):
        output_prefix(OutputPrefixType.UNKNOWN_PREFIX, 1)


def test_extract_prefix_needs_five_bytes():
    assert extract_prefix(b"\x01\x00\x00") is None
    assert extract_prefix(b"\x01\x00\x00\x00\x07rest") == b"\x01\x00\x00\x00\x07"


def test_legacy_message_gets_zero_suffix():
    assert legacy_format_message(OutputPrefixType.LEGACY, b"msg") == b"msg\x00"
    assert legacy_format_message(OutputPrefixType.TINK, b"msg") == b"msg"
    assert legacy_format_message(OutputPrefixType.CRUNCHY, b"msg") == b"msg"
