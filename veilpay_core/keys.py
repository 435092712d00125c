"""
Meta and ephemeral key generation.

A recipient owns one long-lived *meta* key pair made of two independent
Ed25519 seeds: the spend key (controls funds) and the view key (detects
payments).  A sender draws a fresh *ephemeral* key pair for every payment.

Private halves are raw 32-byte seeds, never derived scalars; public halves
are base58 text of the Edwards point.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

from veilpay_core.curve import SEED_SIZE, public_key_from_seed
from veilpay_core.encoding import base58_decode, base58_encode, to_32_bytes


def _random_seed() -> bytes:
    return os.urandom(SEED_SIZE)


@dataclass(frozen=True)
class StealthMetaAddress:
    """The publishable half of a meta key pair."""
    spend_pub: str    # base58
    view_pub: str     # base58

    def to_dict(self) -> dict[str, str]:
        return {"spend_pubkey": self.spend_pub, "view_pubkey": self.view_pub}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StealthMetaAddress:
        return cls(spend_pub=data["spend_pubkey"], view_pub=data["view_pubkey"])


@dataclass(frozen=True)
class MetaKeyPair:
    spend_priv: bytes
    spend_pub: str
    view_priv: bytes
    view_pub: str

    @property
    def meta_address(self) -> StealthMetaAddress:
        return StealthMetaAddress(self.spend_pub, self.view_pub)

    @property
    def spend_pub_bytes(self) -> bytes:
        return base58_decode(self.spend_pub)

    @property
    def view_pub_bytes(self) -> bytes:
        return base58_decode(self.view_pub)

    def to_dict(self) -> dict[str, Any]:
        """Interchange shape: hex private seeds plus the public meta-address."""
        return {
            "spend_priv_key": self.spend_priv.hex(),
            "view_priv_key": self.view_priv.hex(),
            "meta_address": self.meta_address.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MetaKeyPair:
        """Rebuild from ``to_dict`` output; public keys are re-derived and checked."""
        keys = meta_keypair_from_seeds(data["spend_priv_key"], data["view_priv_key"])
        published = data.get("meta_address")
        if published and StealthMetaAddress.from_dict(published) != keys.meta_address:
            raise ValueError("Stored meta-address does not match the private seeds")
        return keys

    def __repr__(self) -> str:
        return f"MetaKeyPair(spend_pub={self.spend_pub!r}, view_pub={self.view_pub!r})"


@dataclass(frozen=True)
class EphemeralKeyPair:
    eph_priv: bytes
    eph_pub: str

    @property
    def eph_pub_bytes(self) -> bytes:
        return base58_decode(self.eph_pub)

    def __repr__(self) -> str:
        return f"EphemeralKeyPair(eph_pub={self.eph_pub!r})"


def _public_b58(seed: bytes) -> str:
    return base58_encode(public_key_from_seed(seed))


def meta_keypair_from_seeds(spend_seed: Any, view_seed: Any) -> MetaKeyPair:
    """Deterministically rebuild a meta key pair from its two seeds."""
    spend = to_32_bytes(spend_seed)
    view = to_32_bytes(view_seed)
    return MetaKeyPair(
        spend_priv=spend,
        spend_pub=_public_b58(spend),
        view_priv=view,
        view_pub=_public_b58(view),
    )


def ephemeral_keypair_from_seed(seed: Any) -> EphemeralKeyPair:
    eph = to_32_bytes(seed)
    return EphemeralKeyPair(eph_priv=eph, eph_pub=_public_b58(eph))


def generate_meta_keypair() -> MetaKeyPair:
    """Two independent random seeds (spend, view) with their public points."""
    return meta_keypair_from_seeds(_random_seed(), _random_seed())


def generate_ephemeral_keypair() -> EphemeralKeyPair:
    """A single-use key pair for one stealth payment."""
    return ephemeral_keypair_from_seed(_random_seed())
