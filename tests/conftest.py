"""
Shared pytest fixtures for the VeilPay test suite.
"""

import hashlib

import pytest

from veilpay_core.keys import (
    ephemeral_keypair_from_seed,
    generate_meta_keypair,
    meta_keypair_from_seeds,
)


def fixed_seed(label: str) -> bytes:
    """Deterministic 32-byte seed for a label."""
    return hashlib.sha256(label.encode()).digest()


@pytest.fixture
def alice_keys():
    """Deterministic meta key pair for Alice (the recipient)."""
    return meta_keypair_from_seeds(fixed_seed("alice-spend"), fixed_seed("alice-view"))


@pytest.fixture
def bob_keys():
    """Deterministic meta key pair for Bob (someone else)."""
    return meta_keypair_from_seeds(fixed_seed("bob-spend"), fixed_seed("bob-view"))


@pytest.fixture
def random_keys():
    """Fresh random meta key pair."""
    return generate_meta_keypair()


@pytest.fixture
def eph_keys():
    """Deterministic ephemeral key pair."""
    return ephemeral_keypair_from_seed(fixed_seed("ephemeral-1"))
