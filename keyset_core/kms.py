"""KMS client seam.

Remote keys are used purely as an `Aead` obtained from a `KmsClient`; no
remote key material ever enters this process.

- KmsClient: protocol implemented by KMS plugins.
- KmsClientRegistry: ordered, append-only list of clients. `get(uri)`
  returns the first client that supports the uri.
- ExternalCommandKmsClient: delegates encrypt/decrypt to an external command,
  enabling non-exportable keys (TPM/HSM/daemon) behind a simple contract.

Contract for ExternalCommandKmsClient:
- stdin: one JSON object
    {"op": "encrypt"|"decrypt", "key_uri": "...",
     "data": base64, "associated_data": base64}
- stdout: base64(result)
- non-zero exit on decrypt means "cannot decrypt"

Retries and timeouts belong to the client; the core performs none.
"""

from __future__ import annotations

import base64
import json
import logging
import shlex
import subprocess
import threading
from dataclasses import dataclass
from typing import List, Protocol, Tuple, runtime_checkable

from .errors import DecryptionFailed, UnsupportedKeyType
from .primitives import Aead

logger = logging.getLogger("keyset_core.kms")

EXTCMD_URI_PREFIX = "extcmd://"


@runtime_checkable
class KmsClient(Protocol):
    """Protocol implemented by KMS backends."""

    def does_support(self, key_uri: str) -> bool: ...

    def get_aead(self, key_uri: str) -> Aead: ...


class KmsClientRegistry:
    """Append-only, copy-on-write list of KMS clients."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._clients: Tuple[KmsClient, ...] = ()

    def add(self, client: KmsClient) -> None:
        if not isinstance(client, KmsClient):
            raise TypeError(f"Unsupported KMS client type: {type(client)}")
        with self._lock:
            if any(c is client for c in self._clients):
                return
            self._clients = self._clients + (client,)
        logger.debug("registered KMS client %s", type(client).__name__)

    def get(self, key_uri: str) -> KmsClient:
        for client in self._clients:
            if client.does_support(key_uri):
                return client
        raise UnsupportedKeyType("no KMS client supports the key uri")

    def clients(self) -> List[KmsClient]:
        return list(self._clients)


def _run_kms_cmd(*, kms_cmd: str, request: dict, timeout_seconds: float) -> Tuple[int, bytes]:
    """Run the external KMS command. Returns (returncode, decoded stdout)."""
    payload = json.dumps(request, sort_keys=True, separators=(",", ":")).encode("utf-8")
    try:
        proc = subprocess.run(
            shlex.split(str(kms_cmd)),
            input=payload + b"\n",
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=float(timeout_seconds),
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise RuntimeError(f"External KMS command timed out after {timeout_seconds}s") from e
    except OSError as e:
        raise RuntimeError(f"External KMS command failed to execute: {e}") from e

    if proc.returncode != 0:
        return proc.returncode, b""

    out = (proc.stdout or b"").decode("utf-8", errors="ignore").strip()
    try:
        return 0, base64.b64decode(out.encode("ascii"), validate=True)
    except ValueError as e:
        raise RuntimeError("External KMS command output was not valid base64") from e


@dataclass(frozen=True)
class ExternalCommandAead:
    """Aead backed by an external command for one key uri."""

    key_uri: str
    kms_cmd: str
    timeout_seconds: float = 2.0

    def _request(self, op: str, data: bytes, associated_data: bytes) -> dict:
        return {
            "op": op,
            "key_uri": self.key_uri,
            "data": base64.b64encode(bytes(data)).decode("ascii"),
            "associated_data": base64.b64encode(bytes(associated_data)).decode("ascii"),
        }

    def encrypt(self, plaintext: bytes, associated_data: bytes) -> bytes:
        code, out = _run_kms_cmd(
            kms_cmd=self.kms_cmd,
            request=self._request("encrypt", plaintext, associated_data),
            timeout_seconds=self.timeout_seconds,
        )
        if code != 0:
            raise RuntimeError(f"External KMS command returned code {code} on encrypt")
        return out

    def decrypt(self, ciphertext: bytes, associated_data: bytes) -> bytes:
        code, out = _run_kms_cmd(
            kms_cmd=self.kms_cmd,
            request=self._request("decrypt", ciphertext, associated_data),
            timeout_seconds=self.timeout_seconds,
        )
        if code != 0:
            raise DecryptionFailed()
        return out


class ExternalCommandKmsClient:
    """KMS client for `extcmd://<name>` key uris.

    If `key_uri` is given the client is bound to exactly that uri; otherwise
    it accepts every `extcmd://` uri.
    """

    def __init__(self, kms_cmd: str, *, key_uri: str = "", timeout_seconds: float = 2.0) -> None:
        if not kms_cmd or not str(kms_cmd).strip():
            raise ValueError("ExternalCommandKmsClient requires kms_cmd")
        if key_uri and not key_uri.startswith(EXTCMD_URI_PREFIX):
            raise ValueError(f"key_uri must start with {EXTCMD_URI_PREFIX}")
        self.kms_cmd = str(kms_cmd)
        self.key_uri = str(key_uri)
        self.timeout_seconds = float(timeout_seconds)

    def does_support(self, key_uri: str) -> bool:
        if self.key_uri:
            return key_uri == self.key_uri
        return str(key_uri).startswith(EXTCMD_URI_PREFIX)

    def get_aead(self, key_uri: str) -> Aead:
        if not self.does_support(key_uri):
            raise UnsupportedKeyType("key uri not supported by this client")
        return ExternalCommandAead(key_uri=key_uri, kms_cmd=self.kms_cmd, timeout_seconds=self.timeout_seconds)
