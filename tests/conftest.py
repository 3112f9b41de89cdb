import shlex
import sys
from pathlib import Path

import pytest

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def registry():
    """A fresh registry with every built-in key type registered."""
    from keyset_core import config
    from keyset_core.registry import Registry

    reg = Registry()
    config.register_all(reg)
    return reg


@pytest.fixture
def fake_kms_cmd():
    return f"{shlex.quote(sys.executable)} {shlex.quote(str(FIXTURES / 'fake_kms_cmd.py'))}"
