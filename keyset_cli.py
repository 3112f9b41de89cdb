#!/usr/bin/env python3
"""
keyset-core command line tool.

Manages keysets stored as JSON or binary files, in cleartext or encrypted
under a KMS key.

Usage:
    keyset-cli create-keyset --key-template AES128_GCM --out keyset.json
    keyset-cli add-key --in keyset.json --key-template AES256_GCM --out keyset.json
    keyset-cli rotate-keyset --in keyset.json --key-template AES256_GCM --out keyset.json
    keyset-cli promote-key --in keyset.json --key-id 123456 --out keyset.json
    keyset-cli enable-key|disable-key|destroy-key|delete-key --in keyset.json --key-id 123456 --out keyset.json
    keyset-cli list-keyset --in keyset.json
    keyset-cli create-public-keyset --in private.json --out public.json
    keyset-cli list-key-templates
    keyset-cli convert-keyset --in keyset.json --out keyset.bin --out-format binary

Encrypted keysets:
    Pass --master-key-uri extcmd://<name> and set KEYSET_KMS_CMD to the
    external command that performs encrypt/decrypt for that uri.
    --in-master-key-uri / --out-master-key-uri re-wrap keysets in
    convert-keyset.

Exit codes:
    0  success
    1  usage error
    2  keyset error (invalid keyset, unknown template, KMS failure ...)
"""

import argparse
import io
import json
import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Optional

from keyset_core import config
from keyset_core.errors import KeysetError
from keyset_core.keyset_handle import KeysetHandle
from keyset_core.keyset_io import (
    BinaryKeysetReader,
    BinaryKeysetWriter,
    JsonKeysetReader,
    JsonKeysetWriter,
)
from keyset_core.keyset_manager import KeysetManager
from keyset_core.kms import ExternalCommandKmsClient
from keyset_core.registry import Registry
from keyset_core.secret_access import insecure_secret_key_access
from keyset_core.settings import Settings

logger = logging.getLogger("keyset_cli")

FORMATS = ("json", "binary")


def setup_logging(verbose: bool = False):
    """Configure logging for CLI."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


def build_registry() -> Registry:
    """Fresh registry with every key type and a KMS client from the environment."""
    settings = Settings.from_env()
    registry = Registry(restricted=settings.restricted_algorithms)
    config.register_all(registry)
    if settings.kms_cmd:
        registry.kms_clients.add(
            ExternalCommandKmsClient(settings.kms_cmd, timeout_seconds=settings.kms_cmd_timeout_seconds)
        )
    return registry


def _master_aead(registry: Registry, key_uri: Optional[str]):
    if not key_uri:
        return None
    return registry.kms_clients.get(key_uri).get_aead(key_uri)


# ---------------------------------------------------------------------------
# Keyset IO
# ---------------------------------------------------------------------------

def _read_input(path: Optional[str]) -> bytes:
    if not path or path == "-":
        return sys.stdin.buffer.read()
    with open(path, "rb") as f:
        return f.read()


def read_keyset(args, registry: Registry, master_key_uri: Optional[str] = None) -> KeysetHandle:
    data = _read_input(args.in_path)
    reader = JsonKeysetReader(data) if args.in_format == "json" else BinaryKeysetReader(data)
    master_aead = _master_aead(registry, master_key_uri)
    if master_aead is not None:
        return KeysetHandle.read(reader, master_aead, registry=registry)
    return KeysetHandle.read_cleartext(reader, insecure_secret_key_access(), registry)


def _atomic_write_bytes(path: str, data: bytes) -> None:
    """Replace `path` with `data` only once the bytes are fully on disk."""
    target = Path(path)
    fd, tmp_name = tempfile.mkstemp(dir=str(target.parent), prefix=".tmp_", suffix=target.suffix)
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, target)
    finally:
        if tmp.exists():
            tmp.unlink()


def write_keyset(
    handle: KeysetHandle,
    args,
    registry: Registry,
    master_key_uri: Optional[str] = None,
    no_secret: bool = False,
) -> None:
    # Serialized and encrypted in memory; the output file is only replaced
    # once that has succeeded.
    master_aead = _master_aead(registry, master_key_uri)
    if args.out_format == "json":
        text_buf = io.StringIO()
        writer = JsonKeysetWriter(text_buf)
    else:
        bin_buf = io.BytesIO()
        writer = BinaryKeysetWriter(bin_buf)

    if no_secret:
        handle.write_no_secret(writer)
    elif master_aead is not None:
        handle.write(writer, master_aead)
    else:
        handle.write_cleartext(writer, insecure_secret_key_access())

    out_path = args.out_path
    to_stdout = not out_path or out_path == "-"
    if args.out_format == "json":
        text = text_buf.getvalue() + "\n"
        if to_stdout:
            sys.stdout.write(text)
            return
        payload = text.encode("utf-8")
    else:
        payload = bin_buf.getvalue()
        if to_stdout:
            sys.stdout.buffer.write(payload)
            sys.stdout.flush()
            return
    _atomic_write_bytes(out_path, payload)


def _edit(args, operation) -> None:
    """Read the input keyset, apply `operation(manager)`, write it back."""
    registry = build_registry()
    handle = read_keyset(args, registry, args.master_key_uri)
    manager = KeysetManager.with_keyset_handle(handle)
    operation(manager)
    write_keyset(manager.keyset_handle(), args, registry, args.master_key_uri)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_create_keyset(args):
    """Create a keyset with one primary key from a template."""
    registry = build_registry()
    manager = KeysetManager.with_empty_keyset(registry)
    key_id = manager.add_new_key(args.key_template, as_primary=True)
    write_keyset(manager.keyset_handle(), args, registry, args.master_key_uri)
    logger.info("created keyset with primary key %d", key_id)


def cmd_add_key(args):
    """Add a new ENABLED, non-primary key."""
    _edit(args, lambda m: m.add_new_key(args.key_template))


def cmd_rotate_keyset(args):
    """Add a new key and make it the primary."""
    _edit(args, lambda m: m.rotate(args.key_template))


def cmd_promote_key(args):
    _edit(args, lambda m: m.set_primary(args.key_id))


def cmd_enable_key(args):
    _edit(args, lambda m: m.enable(args.key_id))


def cmd_disable_key(args):
    _edit(args, lambda m: m.disable(args.key_id))


def cmd_destroy_key(args):
    _edit(args, lambda m: m.destroy(args.key_id))


def cmd_delete_key(args):
    _edit(args, lambda m: m.delete(args.key_id))


def cmd_list_keyset(args):
    """Print keyset metadata (never key material)."""
    registry = build_registry()
    handle = read_keyset(args, registry, args.master_key_uri)
    print(json.dumps(handle.keyset_info().to_json(), indent=2, sort_keys=True))


def cmd_create_public_keyset(args):
    """Derive the public keyset of a private keyset; output is cleartext."""
    registry = build_registry()
    handle = read_keyset(args, registry, args.master_key_uri)
    write_keyset(handle.get_public_keyset_handle(), args, registry, no_secret=True)


def cmd_list_key_templates(args):
    registry = build_registry()
    for name in registry.parameters.names():
        print(name)


def cmd_convert_keyset(args):
    """Change format and/or encryption of a keyset."""
    registry = build_registry()
    handle = read_keyset(args, registry, args.in_master_key_uri)
    write_keyset(handle, args, registry, args.out_master_key_uri)


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def _add_in(p, encrypted: bool = True):
    p.add_argument("--in", dest="in_path", default="-", help="Input keyset file (default: stdin)")
    p.add_argument("--in-format", choices=FORMATS, default="json", help="Input format (default: json)")
    if encrypted:
        p.add_argument("--master-key-uri", help="KMS key uri the keyset is encrypted with")


def _add_out(p):
    p.add_argument("--out", dest="out_path", default="-", help="Output keyset file (default: stdout)")
    p.add_argument("--out-format", choices=FORMATS, default="json", help="Output format (default: json)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="keyset-cli",
        description="keyset-core keyset management",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    create_parser = subparsers.add_parser("create-keyset", help="Create a new keyset")
    create_parser.add_argument("--key-template", required=True, help="Template name (see list-key-templates)")
    create_parser.add_argument("--master-key-uri", help="Encrypt the keyset with this KMS key")
    _add_out(create_parser)
    create_parser.set_defaults(func=cmd_create_keyset)

    for name, func, help_text in (
        ("add-key", cmd_add_key, "Add a key to a keyset"),
        ("rotate-keyset", cmd_rotate_keyset, "Add a key and make it primary"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        _add_in(p)
        _add_out(p)
        p.add_argument("--key-template", required=True, help="Template name (see list-key-templates)")
        p.set_defaults(func=func)

    for name, func, help_text in (
        ("promote-key", cmd_promote_key, "Make a key the primary"),
        ("enable-key", cmd_enable_key, "Enable a key"),
        ("disable-key", cmd_disable_key, "Disable a key"),
        ("destroy-key", cmd_destroy_key, "Destroy key material, keep the id"),
        ("delete-key", cmd_delete_key, "Remove a key from the keyset"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        _add_in(p)
        _add_out(p)
        p.add_argument("--key-id", type=int, required=True, help="Key id")
        p.set_defaults(func=func)

    list_parser = subparsers.add_parser("list-keyset", help="Show keyset metadata")
    _add_in(list_parser)
    list_parser.set_defaults(func=cmd_list_keyset)

    public_parser = subparsers.add_parser("create-public-keyset", help="Derive the public keyset")
    _add_in(public_parser)
    _add_out(public_parser)
    public_parser.set_defaults(func=cmd_create_public_keyset)

    templates_parser = subparsers.add_parser("list-key-templates", help="List key template names")
    templates_parser.set_defaults(func=cmd_list_key_templates)

    convert_parser = subparsers.add_parser("convert-keyset", help="Convert format or encryption")
    _add_in(convert_parser, encrypted=False)
    _add_out(convert_parser)
    convert_parser.add_argument("--in-master-key-uri", help="KMS key uri the input is encrypted with")
    convert_parser.add_argument("--out-master-key-uri", help="KMS key uri to encrypt the output with")
    convert_parser.set_defaults(func=cmd_convert_keyset)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    setup_logging(args.verbose)
    try:
        args.func(args)
    except KeysetError as e:
        print(f"ERROR: {e.code}: {e.message}", file=sys.stderr)
        return 2
    except (OSError, RuntimeError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
