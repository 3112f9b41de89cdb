"""Registers the DeterministicAead key types and wrapper."""

from __future__ import annotations

from typing import Optional

from ..aes_siv import AesSivKeyManager
from ..registry import Registry, resolve
from ..wrappers import DeterministicAeadWrapper
from ._common import register_managers


def register(registry: Optional[Registry] = None, new_key_allowed: bool = True) -> Registry:
    reg = resolve(registry)
    register_managers(reg, (AesSivKeyManager(),), new_key_allowed)
    reg.register_primitive_wrapper(DeterministicAeadWrapper())
    return reg
