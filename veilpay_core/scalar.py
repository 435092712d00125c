"""
Scalar arithmetic modulo the Ed25519 group order.

Provides:
  - The group order ``L`` and the field prime ``p``
  - Non-negative modular reduction for any Python int
  - Little-endian byte <-> int conversion for 32-byte buffers
  - Ed25519 clamping and seed -> scalar expansion (RFC 8032 section 5.1.5)
  - Tweak derivation ``SHA-256(shared) mod L``
"""

from __future__ import annotations

import hashlib

CURVE_ORDER = 2**252 + 27742317777372353535851937790883648493
FIELD_PRIME = 2**255 - 19

SCALAR_SIZE = 32


def mod(x: int, n: int = CURVE_ORDER) -> int:
    """Reduce *x* into ``[0, n)``; negative inputs never leak a negative residue."""
    return ((x % n) + n) % n


def bytes_to_int_le(data: bytes) -> int:
    return int.from_bytes(data, "little")


def int_to_bytes_le(value: int, length: int = SCALAR_SIZE) -> bytes:
    """Encode a non-negative int as *length* little-endian bytes."""
    if value < 0:
        raise ValueError("Cannot encode a negative integer")
    return value.to_bytes(length, "little")


def clamp(data: bytes) -> bytes:
    """Apply Ed25519/X25519 clamping to a 32-byte string."""
    if len(data) != SCALAR_SIZE:
        raise ValueError(f"Clamping needs {SCALAR_SIZE} bytes, got {len(data)}")
    clamped = bytearray(data)
    clamped[0] &= 248
    clamped[31] &= 127
    clamped[31] |= 64
    return bytes(clamped)


def expand_seed(seed: bytes) -> bytes:
    """Clamped lower half of ``SHA-512(seed)`` -- the secret scalar bytes."""
    return clamp(hashlib.sha512(seed).digest()[:32])


def seed_to_scalar(seed: bytes) -> int:
    """Ed25519 secret scalar for a 32-byte seed, reduced mod L."""
    return mod(bytes_to_int_le(expand_seed(seed)))


def hash_to_tweak(shared: bytes) -> int:
    """``SHA-256(shared)`` read little-endian, reduced mod L."""
    return mod(bytes_to_int_le(hashlib.sha256(shared).digest()))


def scalar_add(a: int, b: int) -> int:
    return mod(a + b)


def scalar_to_bytes(value: int) -> bytes:
    """Reduce and encode a scalar as 32 little-endian bytes."""
    return int_to_bytes_le(mod(value))
