"""
Ed25519 signing from a raw scalar.

A stealth private key is ``a + tweak mod L`` -- an arithmetic sum, not a
seed -- so the usual seed-expanding signing APIs cannot be used with it.
``sign_with_scalar`` produces a standard Ed25519 signature directly from the
scalar; it verifies with any ordinary Ed25519 verifier against ``scalar * G``.

Seed-based signing (service keys) is deliberately kept elsewhere
(``veilpay_core.config.ServiceKeypair``) so the two cannot be mixed up.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field

from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from veilpay_core.curve import scalar_mult_base
from veilpay_core.encoding import base58_encode, to_32_bytes
from veilpay_core.errors import InvalidEncoding, NonCanonicalScalar
from veilpay_core.scalar import CURVE_ORDER, SCALAR_SIZE, bytes_to_int_le, int_to_bytes_le, mod

SIGNATURE_SIZE = 64


def _sha512_mod_l(*parts: bytes) -> int:
    h = hashlib.sha512()
    for part in parts:
        h.update(part)
    return mod(bytes_to_int_le(h.digest()))


def _check_scalar(scalar: bytes) -> int:
    if len(scalar) != SCALAR_SIZE:
        raise InvalidEncoding(f"Scalar must be {SCALAR_SIZE} bytes, got {len(scalar)}")
    value = bytes_to_int_le(scalar)
    if value >= CURVE_ORDER:
        raise NonCanonicalScalar("Scalar is not reduced mod L (was a seed passed instead?)")
    if value == 0:
        raise NonCanonicalScalar("Zero scalar cannot sign")
    return value


def sign_with_scalar(scalar: bytes, message: bytes) -> bytes:
    """Deterministic Ed25519 signature ``R || S`` from a reduced 32-byte scalar."""
    a = _check_scalar(bytes(scalar))
    prefix = hashlib.sha512(scalar).digest()[32:]
    r = _sha512_mod_l(prefix, message)
    big_r = scalar_mult_base(r)
    big_a = scalar_mult_base(a)
    h = _sha512_mod_l(big_r, big_a, message)
    s = mod(r + h * a)
    return big_r + int_to_bytes_le(s)


def verify_signature(public_key, message: bytes, signature: bytes) -> bool:
    """Standard Ed25519 verification; ``False`` on any mismatch."""
    if len(signature) != SIGNATURE_SIZE:
        return False
    try:
        VerifyKey(to_32_bytes(public_key)).verify(message, bytes(signature))
        return True
    except BadSignatureError:
        return False


@dataclass(frozen=True)
class StealthSigner:
    """A stealth scalar bundled with its public point.  Immutable."""
    scalar: bytes = field(repr=False)
    public_key: bytes

    @classmethod
    def from_scalar(cls, scalar: bytes) -> StealthSigner:
        scalar = bytes(scalar)
        return cls(scalar=scalar, public_key=scalar_mult_base(_check_scalar(scalar)))

    @property
    def address(self) -> str:
        return base58_encode(self.public_key)

    def sign(self, message: bytes) -> bytes:
        return sign_with_scalar(self.scalar, message)

    def sign_transaction(self, message: bytes) -> tuple[bytes, bytes]:
        """Sign serialized transaction bytes; returns ``(public_key, signature)``."""
        return self.public_key, self.sign(message)

    def verify(self, message: bytes, signature: bytes) -> bool:
        return verify_signature(self.public_key, message, signature)
