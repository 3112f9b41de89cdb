"""keyset-core package.

Algorithm-agile cryptographic capabilities built from keysets:

- a registry of key types (key managers, serializers, primitive wrappers)
- immutable, validated keysets (KeysetHandle) with rotation support
- output-prefix framing so ciphertexts and signatures name their key

Convenience imports
------------------
The package avoids import-time side effects. These names are available at
the package root and are loaded lazily:

    from keyset_core import KeysetHandle, Registry, default_registry
    from keyset_core import Aead, PublicKeySign, PublicKeyVerify

Key types are registered explicitly:

    from keyset_core import config
    config.register_all()
"""

from __future__ import annotations

import re
from importlib import import_module
from pathlib import Path
from typing import Any


def _read_version_from_pyproject() -> str | None:
    """Best-effort version discovery for dev/test environments.

    The project version is a simple `version = "..."` field in
    `pyproject.toml`, so a regex parse is enough.
    """

    try:
        pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
        txt = pyproject.read_text(encoding="utf-8")
    except OSError:
        return None
    m = re.search(r"^version\s*=\s*\"([^\"]+)\"\s*$", txt, flags=re.MULTILINE)
    return m.group(1) if m else None


__version__ = _read_version_from_pyproject() or "0.3.0"

__all__ = [
    "__version__",
    "Registry",
    "default_registry",
    "KeysetHandle",
    "KeysetHandleBuilder",
    "KeysetManager",
    "KeyStatus",
    "OutputPrefixType",
    "Aead",
    "DeterministicAead",
    "HybridEncrypt",
    "HybridDecrypt",
    "PublicKeySign",
    "PublicKeyVerify",
    "BinaryKeysetReader",
    "BinaryKeysetWriter",
    "JsonKeysetReader",
    "JsonKeysetWriter",
    "insecure_secret_key_access",
    "KeysetError",
]

# Lazy export map: name -> (module, attribute)
_LAZY_EXPORTS: dict[str, tuple[str, str]] = {
    "Registry": ("keyset_core.registry", "Registry"),
    "default_registry": ("keyset_core.registry", "default_registry"),
    "KeysetHandle": ("keyset_core.keyset_handle", "KeysetHandle"),
    "KeysetHandleBuilder": ("keyset_core.keyset_handle", "KeysetHandleBuilder"),
    "KeysetManager": ("keyset_core.keyset_manager", "KeysetManager"),
    "KeyStatus": ("keyset_core.key", "KeyStatus"),
    "OutputPrefixType": ("keyset_core.output_prefix", "OutputPrefixType"),
    "Aead": ("keyset_core.primitives", "Aead"),
    "DeterministicAead": ("keyset_core.primitives", "DeterministicAead"),
    "HybridEncrypt": ("keyset_core.primitives", "HybridEncrypt"),
    "HybridDecrypt": ("keyset_core.primitives", "HybridDecrypt"),
    "PublicKeySign": ("keyset_core.primitives", "PublicKeySign"),
    "PublicKeyVerify": ("keyset_core.primitives", "PublicKeyVerify"),
    "BinaryKeysetReader": ("keyset_core.keyset_io", "BinaryKeysetReader"),
    "BinaryKeysetWriter": ("keyset_core.keyset_io", "BinaryKeysetWriter"),
    "JsonKeysetReader": ("keyset_core.keyset_io", "JsonKeysetReader"),
    "JsonKeysetWriter": ("keyset_core.keyset_io", "JsonKeysetWriter"),
    "insecure_secret_key_access": ("keyset_core.secret_access", "insecure_secret_key_access"),
    "KeysetError": ("keyset_core.errors", "KeysetError"),
}


def __getattr__(name: str) -> Any:
    if name in _LAZY_EXPORTS:
        module_name, attr = _LAZY_EXPORTS[name]
        module = import_module(module_name)
        value = getattr(module, attr)
        globals()[name] = value
        return value
    raise AttributeError(f"module 'keyset_core' has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(list(globals().keys()) + list(_LAZY_EXPORTS.keys())))
