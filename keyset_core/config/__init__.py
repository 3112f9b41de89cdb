"""Configuration entry points.

Each module registers one family of key types plus its wrappers:

    from keyset_core.config import aead_config
    aead_config.register()            # process default registry
    aead_config.register(my_registry) # an injected registry

`register_all()` registers every family.
"""

from __future__ import annotations

from typing import Optional

from ..registry import Registry, resolve
from . import aead_config, daead_config, hybrid_config, signature_config


def register_all(registry: Optional[Registry] = None, new_key_allowed: bool = True) -> Registry:
    reg = resolve(registry)
    aead_config.register(reg, new_key_allowed)
    daead_config.register(reg, new_key_allowed)
    hybrid_config.register(reg, new_key_allowed)
    signature_config.register(reg, new_key_allowed)
    return reg


__all__ = ["aead_config", "daead_config", "hybrid_config", "signature_config", "register_all"]
