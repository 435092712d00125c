"""
Edwards point operations and Edwards -> Montgomery conversion.

All curve arithmetic goes through libsodium (PyNaCl bindings) so that every
implementation that also relies on the reference curve code computes the
same bytes.

Provides:
  - Point validation / decoding (``InvalidEncoding`` on bad input)
  - Point addition and base-point multiplication by a reduced scalar
  - Ed25519 seed -> public key (standard seed expansion)
  - Ed25519 seed -> X25519 scalar and Ed25519 point -> X25519 u-coordinate
  - X25519 ECDH shared secret between an Ed25519 seed and an Ed25519 point
"""

from __future__ import annotations

import nacl.bindings
from nacl.exceptions import CryptoError

from veilpay_core.errors import InvalidEncoding
from veilpay_core.scalar import expand_seed, mod, scalar_to_bytes

POINT_SIZE = 32
SEED_SIZE = 32

# Compressed encoding of the neutral element (x=0, y=1)
IDENTITY = b"\x01" + b"\x00" * 31


# ===================================================================
#  Edwards points
# ===================================================================

def is_valid_point(point: bytes) -> bool:
    """Canonical, on-curve, prime-order-subgroup check.

    Stricter than plain decompression: small-order points (the identity and
    the other torsion points) and points with a torsion component are
    rejected even though they lie on the curve.
    """
    if len(point) != POINT_SIZE:
        return False
    return nacl.bindings.crypto_core_ed25519_is_valid_point(bytes(point))


def decode_point(point: bytes) -> bytes:
    """Return *point* unchanged if it passes ``is_valid_point``, else raise.

    Well-formed here means canonical, on the curve and in the prime-order
    subgroup; on-curve points of small or mixed order raise ``InvalidEncoding``.
    """
    if not is_valid_point(point):
        raise InvalidEncoding("Not a valid Ed25519 point encoding")
    return bytes(point)


def point_add(p: bytes, q: bytes) -> bytes:
    try:
        return nacl.bindings.crypto_core_ed25519_add(p, q)
    except CryptoError as exc:
        raise InvalidEncoding("Point addition rejected an input point") from exc


def scalar_mult_base(k: int) -> bytes:
    """``k * G`` for any int *k* (reduced mod L first)."""
    k = mod(k)
    if k == 0:
        # libsodium refuses to output the neutral element
        return IDENTITY
    return nacl.bindings.crypto_scalarmult_ed25519_base_noclamp(scalar_to_bytes(k))


def add_scaled_base(point: bytes, k: int) -> bytes:
    """``point + k * G``."""
    return point_add(decode_point(point), scalar_mult_base(k))


def public_key_from_seed(seed: bytes) -> bytes:
    """Standard Ed25519 public key for a 32-byte seed."""
    if len(seed) != SEED_SIZE:
        raise InvalidEncoding(f"Ed25519 seed must be {SEED_SIZE} bytes")
    pk, _sk = nacl.bindings.crypto_sign_seed_keypair(bytes(seed))
    return pk


# ===================================================================
#  Edwards -> Montgomery
# ===================================================================

def seed_to_x25519_scalar(seed: bytes) -> bytes:
    """``clamp(SHA-512(seed)[:32])`` -- the X25519 scalar matching an Ed25519 seed."""
    if len(seed) != SEED_SIZE:
        raise InvalidEncoding(f"Ed25519 seed must be {SEED_SIZE} bytes")
    return expand_seed(seed)


def ed25519_to_x25519_public(point: bytes) -> bytes:
    """Montgomery u-coordinate ``(1 + y) / (1 - y)`` of an Edwards point."""
    decode_point(point)
    try:
        return nacl.bindings.crypto_sign_ed25519_pk_to_curve25519(bytes(point))
    except CryptoError as exc:
        raise InvalidEncoding("Point has no Montgomery form") from exc


def shared_secret(private_seed: bytes, public_point: bytes) -> bytes:
    """X25519 ECDH between an Ed25519 seed and the other party's Ed25519 point.

    Symmetric: ``shared_secret(r, V) == shared_secret(v, R)``.
    """
    scalar = seed_to_x25519_scalar(private_seed)
    u = ed25519_to_x25519_public(public_point)
    try:
        return nacl.bindings.crypto_scalarmult(scalar, u)
    except CryptoError as exc:
        raise InvalidEncoding("X25519 produced a degenerate shared secret") from exc
