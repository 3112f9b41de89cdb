"""Named key templates: a pure `name -> Parameters` lookup.

Key managers contribute their presets at registration time; configuration
layers and the CLI only read from here.
"""

from __future__ import annotations

import threading
from types import MappingProxyType
from typing import Dict, List, Mapping

from .errors import DuplicateRegistration, InvalidParameters
from .key import Parameters


class ParametersRegistry:
    """Copy-on-write map of template names to Parameters."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._named: Mapping[str, Parameters] = MappingProxyType({})

    def put_all(self, named: Mapping[str, Parameters]) -> None:
        """Add presets. Re-adding an equal preset is a no-op."""
        with self._lock:
            current = self._named
            for name, params in named.items():
                existing = current.get(name)
                if existing is not None and existing != params:
                    raise DuplicateRegistration("template name already registered", name=name)
            merged: Dict[str, Parameters] = dict(current)
            merged.update(named)
            self._named = MappingProxyType(merged)

    def get(self, name: str) -> Parameters:
        params = self._named.get(name)
        if params is None:
            raise InvalidParameters("unknown key template name", name=name)
        return params

    def names(self) -> List[str]:
        return sorted(self._named.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._named
