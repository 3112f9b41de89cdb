import json

from keyset_cli import main


def _load(path):
    return json.loads(path.read_text(encoding="utf-8"))


def _ids(path):
    return [k["keyId"] for k in _load(path)["key"]]


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "create-keyset" in capsys.readouterr().out


def test_list_key_templates(capsys):
    assert main(["list-key-templates"]) == 0
    names = capsys.readouterr().out.split()
    assert "AES128_GCM" in names
    assert "ED25519" in names


def test_create_add_promote_and_list(tmp_path, capsys):
    ks = tmp_path / "keyset.json"
    assert main(["create-keyset", "--key-template", "AES128_GCM", "--out", str(ks)]) == 0
    first = _load(ks)["primaryKeyId"]

    assert main(["add-key", "--in", str(ks), "--out", str(ks), "--key-template", "AES256_GCM"]) == 0
    ids = _ids(ks)
    assert len(ids) == 2 and ids[0] == first
    assert _load(ks)["primaryKeyId"] == first

    assert main(["promote-key", "--in", str(ks), "--out", str(ks), "--key-id", str(ids[1])]) == 0
    assert _load(ks)["primaryKeyId"] == ids[1]

    capsys.readouterr()
    assert main(["list-keyset", "--in", str(ks)]) == 0
    info = json.loads(capsys.readouterr().out)
    assert info["primaryKeyId"] == ids[1]
    assert [k["keyId"] for k in info["keyInfo"]] == ids
    assert all("value" not in k for k in info["keyInfo"])


def test_rotate_and_status_commands(tmp_path):
    ks = tmp_path / "keyset.json"
    main(["create-keyset", "--key-template", "AES128_GCM", "--out", str(ks)])
    old = _load(ks)["primaryKeyId"]

    assert main(["rotate-keyset", "--in", str(ks), "--out", str(ks), "--key-template", "AES128_GCM"]) == 0
    assert _load(ks)["primaryKeyId"] != old

    assert main(["disable-key", "--in", str(ks), "--out", str(ks), "--key-id", str(old)]) == 0
    assert _load(ks)["key"][0]["status"] == "DISABLED"
    assert main(["enable-key", "--in", str(ks), "--out", str(ks), "--key-id", str(old)]) == 0
    assert _load(ks)["key"][0]["status"] == "ENABLED"

    assert main(["destroy-key", "--in", str(ks), "--out", str(ks), "--key-id", str(old)]) == 0
    destroyed = _load(ks)["key"][0]
    assert destroyed["status"] == "DESTROYED"
    assert "keyData" not in destroyed

    # Destroyed ids stay reserved, so the entry cannot be deleted.
    assert main(["delete-key", "--in", str(ks), "--out", str(ks), "--key-id", str(old)]) == 2
    assert old in _ids(ks)

    assert main(["add-key", "--in", str(ks), "--out", str(ks), "--key-template", "AES128_GCM"]) == 0
    extra = _ids(ks)[-1]
    assert main(["disable-key", "--in", str(ks), "--out", str(ks), "--key-id", str(extra)]) == 0
    assert main(["delete-key", "--in", str(ks), "--out", str(ks), "--key-id", str(extra)]) == 0
    assert extra not in _ids(ks)


def test_primary_key_cannot_be_destroyed(tmp_path, capsys):
    ks = tmp_path / "keyset.json"
    main(["create-keyset", "--key-template", "AES128_GCM", "--out", str(ks)])
    primary = _load(ks)["primaryKeyId"]
    before = ks.read_text(encoding="utf-8")

    assert main(["destroy-key", "--in", str(ks), "--out", str(ks), "--key-id", str(primary)]) == 2
    err = capsys.readouterr().err
    assert "KS_E_INVALID_KEYSET" in err
    assert "Traceback" not in err
    assert ks.read_text(encoding="utf-8") == before


def test_unknown_template_fails_cleanly(tmp_path, capsys):
    out = tmp_path / "keyset.json"
    assert main(["create-keyset", "--key-template", "NOPE", "--out", str(out)]) == 2
    assert "KS_E_INVALID_PARAMETERS" in capsys.readouterr().err
    assert not out.exists()


def test_create_public_keyset(tmp_path):
    private = tmp_path / "private.json"
    public = tmp_path / "public.json"
    main(["create-keyset", "--key-template", "ED25519", "--out", str(private)])
    assert main(["create-public-keyset", "--in", str(private), "--out", str(public)]) == 0

    doc = _load(public)
    assert doc["primaryKeyId"] == _load(private)["primaryKeyId"]
    key_data = doc["key"][0]["keyData"]
    assert key_data["typeUrl"].endswith("Ed25519PublicKey")
    assert key_data["keyMaterialType"] == "ASYMMETRIC_PUBLIC"


def test_convert_between_json_and_binary(tmp_path, capsys):
    ks = tmp_path / "keyset.json"
    binary = tmp_path / "keyset.bin"
    back = tmp_path / "back.json"
    main(["create-keyset", "--key-template", "AES256_SIV", "--out", str(ks)])

    assert main(["convert-keyset", "--in", str(ks), "--out", str(binary), "--out-format", "binary"]) == 0
    assert not binary.read_bytes().startswith(b"{")
    assert main(["convert-keyset", "--in", str(binary), "--in-format", "binary", "--out", str(back)]) == 0
    assert _load(back) == _load(ks)


def test_encrypted_keysets_with_master_key_uri(tmp_path, capsys, monkeypatch, fake_kms_cmd):
    monkeypatch.setenv("KEYSET_KMS_CMD", fake_kms_cmd)
    uri = "extcmd://cli-master"
    ks = tmp_path / "keyset.json"

    assert main(["create-keyset", "--key-template", "AES128_GCM", "--master-key-uri", uri, "--out", str(ks)]) == 0
    doc = _load(ks)
    assert set(doc) == {"encryptedKeyset", "keysetInfo"}

    assert main(["add-key", "--in", str(ks), "--out", str(ks), "--master-key-uri", uri, "--key-template", "AES128_GCM"]) == 0
    capsys.readouterr()
    assert main(["list-keyset", "--in", str(ks), "--master-key-uri", uri]) == 0
    assert len(json.loads(capsys.readouterr().out)["keyInfo"]) == 2

    # Reading an encrypted keyset as cleartext fails.
    assert main(["list-keyset", "--in", str(ks)]) == 2

    clear = tmp_path / "clear.json"
    assert main(["convert-keyset", "--in", str(ks), "--in-master-key-uri", uri, "--out", str(clear)]) == 0
    assert len(_load(clear)["key"]) == 2


def test_failed_kms_encrypt_leaves_keyset_file_intact(tmp_path, capsys, monkeypatch, fake_kms_cmd):
    monkeypatch.setenv("KEYSET_KMS_CMD", fake_kms_cmd)
    uri = "extcmd://cli-master"
    ks = tmp_path / "keyset.json"
    assert main(["create-keyset", "--key-template", "AES128_GCM", "--master-key-uri", uri, "--out", str(ks)]) == 0
    before = ks.read_bytes()

    monkeypatch.setenv("FAKE_KMS_FAIL_OPS", "encrypt")
    rc = main(["add-key", "--in", str(ks), "--out", str(ks), "--master-key-uri", uri, "--key-template", "AES128_GCM"])
    assert rc == 2
    assert "ERROR" in capsys.readouterr().err
    assert ks.read_bytes() == before
    assert [p.name for p in tmp_path.iterdir()] == ["keyset.json"]

    monkeypatch.delenv("FAKE_KMS_FAIL_OPS")
    assert main(["list-keyset", "--in", str(ks), "--master-key-uri", uri]) == 0
    assert len(json.loads(capsys.readouterr().out)["keyInfo"]) == 1


def test_failed_create_does_not_leave_output_file(tmp_path, monkeypatch, fake_kms_cmd):
    monkeypatch.setenv("KEYSET_KMS_CMD", fake_kms_cmd)
    monkeypatch.setenv("FAKE_KMS_FAIL_OPS", "encrypt")
    out = tmp_path / "keyset.json"
    rc = main(["create-keyset", "--key-template", "AES128_GCM", "--master-key-uri", "extcmd://m", "--out", str(out)])
    assert rc == 2
    assert not out.exists()
