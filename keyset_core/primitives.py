"""Capability interfaces.

This is the closed set of primitive types a keyset can produce. Algorithm
plugins return objects satisfying one of these protocols; wrappers combine
several of them into a single keyset-level object of the same shape.

Failure contract:
- decrypt-style calls raise DecryptionFailed
- verify raises VerificationFailed
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Aead(Protocol):
    """Authenticated encryption with associated data."""

    def encrypt(self, plaintext: bytes, associated_data: bytes) -> bytes: ...

    def decrypt(self, ciphertext: bytes, associated_data: bytes) -> bytes: ...


@runtime_checkable
class DeterministicAead(Protocol):
    """Deterministic AEAD: equal inputs give equal ciphertexts."""

    def encrypt_deterministically(self, plaintext: bytes, associated_data: bytes) -> bytes: ...

    def decrypt_deterministically(self, ciphertext: bytes, associated_data: bytes) -> bytes: ...


@runtime_checkable
class HybridEncrypt(Protocol):
    def encrypt(self, plaintext: bytes, context_info: bytes) -> bytes: ...


@runtime_checkable
class HybridDecrypt(Protocol):
    def decrypt(self, ciphertext: bytes, context_info: bytes) -> bytes: ...


@runtime_checkable
class PublicKeySign(Protocol):
    def sign(self, data: bytes) -> bytes: ...


@runtime_checkable
class PublicKeyVerify(Protocol):
    def verify(self, signature: bytes, data: bytes) -> None: ...


ALL_PRIMITIVES = (
    Aead,
    DeterministicAead,
    HybridEncrypt,
    HybridDecrypt,
    PublicKeySign,
    PublicKeyVerify,
)
