"""Registers the Aead key types and the Aead wrapper."""

from __future__ import annotations

from typing import Optional

from ..aes_gcm import AesGcmKeyManager
from ..chacha20_poly1305 import ChaCha20Poly1305KeyManager
from ..kms_aead import KmsAeadKeyManager
from ..registry import Registry, resolve
from ..wrappers import AeadWrapper
from ._common import register_managers


def register(registry: Optional[Registry] = None, new_key_allowed: bool = True) -> Registry:
    reg = resolve(registry)
    register_managers(
        reg,
        (AesGcmKeyManager(), ChaCha20Poly1305KeyManager(), KmsAeadKeyManager(reg.kms_clients)),
        new_key_allowed,
    )
    reg.register_primitive_wrapper(AeadWrapper())
    return reg
