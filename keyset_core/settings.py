"""Process configuration.

Environment variables:
- KEYSET_RESTRICTED_ALGORITHMS: if '1', the default registry starts in
  restricted mode and only resolves COMPLIANT key managers.
- KEYSET_SIGNER_SELF_TEST: if '0', signers skip the sign-then-verify self
  test when the primitive is created (default on).
- KEYSET_METRICS_ENABLED: if '0', metric updates become no-ops.
- KEYSET_KMS_CMD: external KMS command used by the CLI for extcmd:// uris.
- KEYSET_KMS_CMD_TIMEOUT_SECONDS: timeout for that command.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    v = (os.getenv(name, "") or "").strip().lower()
    if not v:
        return default
    return v in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    restricted_algorithms: bool = False
    signer_self_test: bool = True
    metrics_enabled: bool = True
    kms_cmd: str = ""
    kms_cmd_timeout_seconds: float = 2.0

    @classmethod
    def from_env(cls) -> "Settings":
        timeout_raw = (os.getenv("KEYSET_KMS_CMD_TIMEOUT_SECONDS", "") or "").strip()
        timeout = cls.kms_cmd_timeout_seconds
        if timeout_raw:
            try:
                timeout = float(timeout_raw)
            except ValueError:
                timeout = cls.kms_cmd_timeout_seconds
        # Clamp
        if timeout <= 0:
            timeout = cls.kms_cmd_timeout_seconds

        return cls(
            restricted_algorithms=_env_bool("KEYSET_RESTRICTED_ALGORITHMS", cls.restricted_algorithms),
            signer_self_test=_env_bool("KEYSET_SIGNER_SELF_TEST", cls.signer_self_test),
            metrics_enabled=_env_bool("KEYSET_METRICS_ENABLED", cls.metrics_enabled),
            kms_cmd=(os.getenv("KEYSET_KMS_CMD", "") or "").strip(),
            kms_cmd_timeout_seconds=timeout,
        )
