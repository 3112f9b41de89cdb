"""Primitive wrappers: one keyset-level object per capability type.

Each wrapper turns a PrimitiveSet into an object with the same interface as
a single primitive. Producing calls use the primary entry and prepend its
output prefix; consuming calls dispatch on the prefix (see primitive_set).

Consume-side failures are aggregated into one DecryptionFailed or
VerificationFailed. Nothing about individual candidates is reported, so the
error cannot be used as an oracle for which key came closest.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol, Type, TypeVar

from . import metrics
from .errors import DecryptionFailed, KeysetError, VerificationFailed
from .output_prefix import legacy_format_message
from .primitive_set import PrimitiveSet, PrimitiveSetEntry
from .primitives import (
    Aead,
    DeterministicAead,
    HybridDecrypt,
    HybridEncrypt,
    PublicKeySign,
    PublicKeyVerify,
)

logger = logging.getLogger("keyset_core.wrappers")

R = TypeVar("R")


class PrimitiveWrapper(Protocol):
    primitive_class: type

    def wrap(self, primitive_set: PrimitiveSet) -> object: ...


def _first_success(
    primitive_set: PrimitiveSet,
    data: bytes,
    attempt: Callable[[PrimitiveSetEntry, bytes], R],
    *,
    name: str,
    failure: Type[KeysetError],
) -> R:
    for entry, payload in primitive_set.candidates(data):
        try:
            result = attempt(entry, payload)
        except Exception as e:  # any candidate failure moves on to the next one
            logger.debug("%s candidate rejected input (%s)", name, type(e).__name__)
            continue
        metrics.record_consume(name, "ok")
        return result
    metrics.record_consume(name, "failure")
    raise failure()


# ---------------------------
# AEAD
# ---------------------------


class _WrappedAead:
    def __init__(self, primitive_set: PrimitiveSet) -> None:
        self._pset = primitive_set

    def encrypt(self, plaintext: bytes, associated_data: bytes) -> bytes:
        primary = self._pset.primary()
        return primary.prefix + primary.primitive.encrypt(plaintext, associated_data)

    def decrypt(self, ciphertext: bytes, associated_data: bytes) -> bytes:
        return _first_success(
            self._pset,
            ciphertext,
            lambda e, payload: e.primitive.decrypt(payload, associated_data),
            name="aead",
            failure=DecryptionFailed,
        )


class AeadWrapper:
    primitive_class = Aead

    def wrap(self, primitive_set: PrimitiveSet) -> Aead:
        return _WrappedAead(primitive_set)


# ---------------------------
# Deterministic AEAD
# ---------------------------


class _WrappedDeterministicAead:
    def __init__(self, primitive_set: PrimitiveSet) -> None:
        self._pset = primitive_set

    def encrypt_deterministically(self, plaintext: bytes, associated_data: bytes) -> bytes:
        primary = self._pset.primary()
        return primary.prefix + primary.primitive.encrypt_deterministically(plaintext, associated_data)

    def decrypt_deterministically(self, ciphertext: bytes, associated_data: bytes) -> bytes:
        return _first_success(
            self._pset,
            ciphertext,
            lambda e, payload: e.primitive.decrypt_deterministically(payload, associated_data),
            name="deterministic_aead",
            failure=DecryptionFailed,
        )


class DeterministicAeadWrapper:
    primitive_class = DeterministicAead

    def wrap(self, primitive_set: PrimitiveSet) -> DeterministicAead:
        return _WrappedDeterministicAead(primitive_set)


# ---------------------------
# Hybrid encryption
# ---------------------------


class _WrappedHybridEncrypt:
    def __init__(self, primitive_set: PrimitiveSet) -> None:
        self._pset = primitive_set

    def encrypt(self, plaintext: bytes, context_info: bytes) -> bytes:
        primary = self._pset.primary()
        return primary.prefix + primary.primitive.encrypt(plaintext, context_info)


class HybridEncryptWrapper:
    primitive_class = HybridEncrypt

    def wrap(self, primitive_set: PrimitiveSet) -> HybridEncrypt:
        return _WrappedHybridEncrypt(primitive_set)


class _WrappedHybridDecrypt:
    def __init__(self, primitive_set: PrimitiveSet) -> None:
        self._pset = primitive_set

    def decrypt(self, ciphertext: bytes, context_info: bytes) -> bytes:
        return _first_success(
            self._pset,
            ciphertext,
            lambda e, payload: e.primitive.decrypt(payload, context_info),
            name="hybrid_decrypt",
            failure=DecryptionFailed,
        )


class HybridDecryptWrapper:
    primitive_class = HybridDecrypt

    def wrap(self, primitive_set: PrimitiveSet) -> HybridDecrypt:
        return _WrappedHybridDecrypt(primitive_set)


# ---------------------------
# Signatures
# ---------------------------


class _WrappedPublicKeySign:
    def __init__(self, primitive_set: PrimitiveSet) -> None:
        self._pset = primitive_set

    def sign(self, data: bytes) -> bytes:
        primary = self._pset.primary()
        message = legacy_format_message(primary.output_prefix_type, data)
        return primary.prefix + primary.primitive.sign(message)


class PublicKeySignWrapper:
    primitive_class = PublicKeySign

    def wrap(self, primitive_set: PrimitiveSet) -> PublicKeySign:
        return _WrappedPublicKeySign(primitive_set)


class _WrappedPublicKeyVerify:
    def __init__(self, primitive_set: PrimitiveSet) -> None:
        self._pset = primitive_set

    def verify(self, signature: bytes, data: bytes) -> None:
        def _attempt(entry: PrimitiveSetEntry, payload: bytes) -> None:
            entry.primitive.verify(payload, legacy_format_message(entry.output_prefix_type, data))

        _first_success(
            self._pset,
            signature,
            _attempt,
            name="public_key_verify",
            failure=VerificationFailed,
        )


class PublicKeyVerifyWrapper:
    primitive_class = PublicKeyVerify

    def wrap(self, primitive_set: PrimitiveSet) -> PublicKeyVerify:
        return _WrappedPublicKeyVerify(primitive_set)

