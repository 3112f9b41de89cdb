"""Shared helpers for the config modules."""

from __future__ import annotations

import logging
from typing import Iterable

from ..key import Compliance
from ..key_manager import KeyTypeManager
from ..registry import Registry

logger = logging.getLogger("keyset_core.config")


def allowed(registry: Registry, *managers: KeyTypeManager) -> bool:
    """In restricted mode only COMPLIANT key types are registered."""
    if not registry.restricted_mode:
        return True
    if all(m.compliance == Compliance.COMPLIANT for m in managers):
        return True
    logger.debug("skipping non-compliant key type(s) %s", ", ".join(m.type_url for m in managers))
    return False


def register_managers(registry: Registry, managers: Iterable[KeyTypeManager], new_key_allowed: bool) -> None:
    for manager in managers:
        if allowed(registry, manager):
            registry.register_key_manager(manager, new_key_allowed)


def register_pair(
    registry: Registry, private_manager: KeyTypeManager, public_manager: KeyTypeManager, new_key_allowed: bool
) -> None:
    if allowed(registry, private_manager, public_manager):
        registry.register_asymmetric_key_managers(private_manager, public_manager, new_key_allowed)  # type: ignore[arg-type]
