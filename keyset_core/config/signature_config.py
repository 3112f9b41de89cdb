"""Registers the signature key types and the sign/verify wrappers."""

from __future__ import annotations

from typing import Optional

from ..ecdsa import EcdsaSignKeyManager, EcdsaVerifyKeyManager
from ..ed25519 import Ed25519SignKeyManager, Ed25519VerifyKeyManager
from ..registry import Registry, resolve
from ..wrappers import PublicKeySignWrapper, PublicKeyVerifyWrapper
from ._common import register_pair


def register(registry: Optional[Registry] = None, new_key_allowed: bool = True) -> Registry:
    reg = resolve(registry)
    register_pair(reg, EcdsaSignKeyManager(), EcdsaVerifyKeyManager(), new_key_allowed)
    register_pair(reg, Ed25519SignKeyManager(), Ed25519VerifyKeyManager(), new_key_allowed)
    reg.register_primitive_wrapper(PublicKeySignWrapper())
    reg.register_primitive_wrapper(PublicKeyVerifyWrapper())
    return reg
