"""Registers the hybrid encryption key types and both hybrid wrappers.

ECIES uses AES-GCM as DEM, so the Aead config is registered too.
"""

from __future__ import annotations

from typing import Optional

from ..ecies import EciesPrivateKeyManager, EciesPublicKeyManager
from ..hpke import HpkePrivateKeyManager, HpkePublicKeyManager
from ..registry import Registry, resolve
from ..wrappers import HybridDecryptWrapper, HybridEncryptWrapper
from . import aead_config
from ._common import register_pair


def register(registry: Optional[Registry] = None, new_key_allowed: bool = True) -> Registry:
    reg = aead_config.register(resolve(registry), new_key_allowed)
    register_pair(reg, EciesPrivateKeyManager(), EciesPublicKeyManager(), new_key_allowed)
    register_pair(reg, HpkePrivateKeyManager(), HpkePublicKeyManager(), new_key_allowed)
    reg.register_primitive_wrapper(HybridEncryptWrapper())
    reg.register_primitive_wrapper(HybridDecryptWrapper())
    return reg
