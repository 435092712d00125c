"""
Claim nullifiers.

``nullifier = SHA256(stealth_address(32) || position_id as u64 little-endian)``

The value is handed to an external claim ledger, which refuses a second
claim carrying the same nullifier.  Nothing here keeps state.
"""

from __future__ import annotations

import hashlib
import struct
from typing import Any

from veilpay_core.encoding import to_32_bytes

NULLIFIER_SIZE = 32
_U64_MAX = 2**64 - 1


def create_nullifier(stealth_address: Any, position_id: int) -> bytes:
    if not 0 <= position_id <= _U64_MAX:
        raise ValueError(f"position_id must fit in an unsigned 64-bit integer, got {position_id}")
    address = to_32_bytes(stealth_address)
    return hashlib.sha256(address + struct.pack("<Q", position_id)).digest()
