"""
Stealth address protocol (EIP-5564 style, adapted to Ed25519).

Sender:     shared = ECDH(r, V)            tweak = SHA256(shared) mod L
            S = A + tweak * G              (one-time address)
Recipient:  shared = ECDH(v, R)            -- same bytes by ECDH symmetry
            owns S  iff  A + tweak * G == S
            signing scalar s = a + tweak mod L, so s * G == S

``A``/``a`` is the spend key, ``V``/``v`` the view key, ``R``/``r`` the
ephemeral key.  All functions are pure and safe to call from many threads.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from typing import Any, Optional

from veilpay_core.curve import add_scaled_base, decode_point, is_valid_point, shared_secret
from veilpay_core.encoding import base58_encode, to_32_bytes
from veilpay_core.errors import VerificationMismatch
from veilpay_core.keys import StealthMetaAddress, generate_ephemeral_keypair
from veilpay_core.payload import PayloadFormat, encrypt_ephemeral_key
from veilpay_core.scalar import hash_to_tweak, scalar_add, scalar_to_bytes, seed_to_scalar
from veilpay_core.signing import StealthSigner

logger = logging.getLogger("veilpay.stealth")


@dataclass(frozen=True)
class StealthPaymentData:
    """What a sender publishes for one payment."""
    stealth_address: bytes
    ephemeral_pubkey: str       # base58
    encrypted_payload: str      # base58 (LEGACY) or base64 (EXTENDED)

    @property
    def stealth_address_b58(self) -> str:
        return base58_encode(self.stealth_address)

    def to_dict(self) -> dict[str, str]:
        return {
            "stealth_address": self.stealth_address_b58,
            "ephemeral_pubkey": self.ephemeral_pubkey,
            "encrypted_payload": self.encrypted_payload,
        }


def compute_tweak(shared: bytes) -> int:
    """Tweak scalar in ``[0, L)`` for an ECDH shared secret."""
    return hash_to_tweak(shared)


# ===================================================================
#  Sender side
# ===================================================================

def derive_stealth_pub(spend_pub: Any, view_pub: Any, eph_priv: Any) -> bytes:
    """One-time stealth address ``A + H(ECDH(r, V)) * G``."""
    shared = shared_secret(to_32_bytes(eph_priv), to_32_bytes(view_pub))
    return add_scaled_base(to_32_bytes(spend_pub), compute_tweak(shared))


def generate_stealth_payment(
    meta_address: StealthMetaAddress,
    note: str = "",
    fmt: PayloadFormat = PayloadFormat.EXTENDED,
) -> StealthPaymentData:
    """Fresh ephemeral key, stealth address and encrypted payload for one payment."""
    eph = generate_ephemeral_keypair()
    stealth = derive_stealth_pub(meta_address.spend_pub, meta_address.view_pub, eph.eph_priv)
    payload = encrypt_ephemeral_key(eph.eph_priv, meta_address.view_pub, note=note, fmt=fmt)
    logger.debug("Created stealth payment to %s...", base58_encode(stealth)[:8])
    return StealthPaymentData(
        stealth_address=stealth,
        ephemeral_pubkey=eph.eph_pub,
        encrypted_payload=payload,
    )


# ===================================================================
#  Recipient side
# ===================================================================

def is_my_stealth_address(candidate: Any, eph_pub: Any, spend_pub: Any, view_priv: Any) -> bool:
    """True iff *candidate* is the stealth address for (spend_pub, eph_pub).

    Published ephemeral keys are untrusted; one that is not a valid curve
    point simply does not match.  The caller's own keys must decode.
    """
    spend = decode_point(to_32_bytes(spend_pub))
    view = to_32_bytes(view_priv)
    eph = to_32_bytes(eph_pub)
    address = to_32_bytes(candidate)
    if not is_valid_point(eph):
        return False
    expected = add_scaled_base(spend, compute_tweak(shared_secret(view, eph)))
    return hmac.compare_digest(expected, address)


def derive_stealth_priv_key(spend_priv: Any, view_pub: Any, eph_priv: Any) -> bytes:
    """Signing scalar ``a + H(ECDH(r, V)) mod L`` as 32 little-endian bytes."""
    shared = shared_secret(to_32_bytes(eph_priv), to_32_bytes(view_pub))
    a = seed_to_scalar(to_32_bytes(spend_priv))
    return scalar_to_bytes(scalar_add(a, compute_tweak(shared)))


def recover_stealth_priv_key(spend_priv: Any, view_priv: Any, eph_pub: Any) -> bytes:
    """Same scalar as ``derive_stealth_priv_key``, from the view key and ``R``.

    Lets a recipient that found a payment by scanning sign for it without
    decrypting the payload first.
    """
    shared = shared_secret(to_32_bytes(view_priv), to_32_bytes(eph_pub))
    a = seed_to_scalar(to_32_bytes(spend_priv))
    return scalar_to_bytes(scalar_add(a, compute_tweak(shared)))


def derive_stealth_signer(
    spend_priv: Any,
    view_pub: Any,
    eph_priv: Any,
    expected: Optional[Any] = None,
) -> StealthSigner:
    """Signer for a stealth address; checks ``s * G`` against *expected* if given."""
    signer = StealthSigner.from_scalar(derive_stealth_priv_key(spend_priv, view_pub, eph_priv))
    if expected is not None and not hmac.compare_digest(signer.public_key, to_32_bytes(expected)):
        raise VerificationMismatch("Derived stealth key does not control the expected address")
    return signer
