import pytest

from keyset_core import config
from keyset_core.ecies import PRIVATE_TYPE_URL as ECIES_URL
from keyset_core.ecies import EciesParameters
from keyset_core.errors import ParseFailure, PermissionDenied
from keyset_core.key import PrivateKey
from keyset_core.key_manager import ParametersSerialization
from keyset_core.kms_aead import create_key_template
from keyset_core.output_prefix import OutputPrefixType
from keyset_core.registry import Registry
from keyset_core.secret_access import insecure_secret_key_access
from keyset_core.wire import enc_field, enc_u32

ACCESS = insecure_secret_key_access()


def _full_registry() -> Registry:
    reg = Registry()
    config.register_all(reg)
    return reg


TEMPLATE_NAMES = _full_registry().parameters.names()


def _all_parameters(registry):
    params = [registry.parameters.get(name) for name in TEMPLATE_NAMES]
    params.append(create_key_template("extcmd://round-trip"))
    params.append(EciesParameters(32, b"some salt", OutputPrefixType.LEGACY))
    return params


def _new_key(registry, params):
    return registry.new_key(params, 0x01020304 if params.has_id_requirement else None)


def _parse(registry, ser, access=None):
    return registry.parse_key(ser, ser.output_prefix_type, ser.id_requirement, access)


@pytest.mark.parametrize("name", TEMPLATE_NAMES)
def test_every_template_covers_a_registered_type(registry, name):
    params = registry.parameters.get(name)
    assert registry.key_manager_for_parameters(params).type_url in registry.type_urls()


def test_parameters_round_trip_for_every_key_type(registry):
    for params in _all_parameters(registry):
        template = registry.serialize_parameters(params)
        parsed = registry.parse_parameters(template)
        assert parsed == params
        assert registry.serialize_parameters(parsed) == template


def test_key_round_trip_for_every_key_type(registry):
    for params in _all_parameters(registry):
        key = _new_key(registry, params)
        ser = registry.serialize_key(key, ACCESS)
        parsed = _parse(registry, ser, ACCESS)
        assert parsed == key
        assert registry.serialize_key(parsed, ACCESS).value == ser.value


def test_public_key_round_trip_without_token(registry):
    checked = 0
    for params in _all_parameters(registry):
        key = _new_key(registry, params)
        if not isinstance(key, PrivateKey):
            continue
        public = registry.public_key(key)
        ser = registry.serialize_key(public)
        assert _parse(registry, ser) == public
        assert registry.serialize_key(_parse(registry, ser)).value == ser.value
        checked += 1
    assert checked > 0


def test_secret_key_types_require_token_both_ways(registry):
    secret_types = set()
    for params in _all_parameters(registry):
        manager = registry.key_manager_for_parameters(params)
        key = _new_key(registry, params)
        if not manager.holds_secret:
            ser = registry.serialize_key(key)
            assert _parse(registry, ser) == key
            continue
        secret_types.add(manager.type_url)
        with pytest.raises(PermissionDenied):
            registry.serialize_key(key)
        ser = registry.serialize_key(key, ACCESS)
        with pytest.raises(PermissionDenied):
            _parse(registry, ser)
    assert len(secret_types) >= 6


def test_ecies_empty_salt_field_is_not_canonical(registry):
    value = enc_field(1, enc_u32(16)) + enc_field(2, b"")
    template = ParametersSerialization(ECIES_URL, value, OutputPrefixType.TINK)
    with pytest.raises(ParseFailure):
        registry.parse_parameters(template)

    canonical = ParametersSerialization(ECIES_URL, enc_field(1, enc_u32(16)), OutputPrefixType.TINK)
    params = registry.parse_parameters(canonical)
    assert params.salt == b""
    assert registry.serialize_parameters(params) == canonical
