"""
Payment scanner for recipients.

Given already-fetched payment records, picks out the ones addressed to a
meta key pair.  Only the view key is needed to test ownership; the spend key
is used later, when a discovered payment is claimed.

Records may also carry an encrypted amount produced by the confidential
computation layer.  The scanner never looks inside it; it is passed through
as opaque bytes.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Optional

from veilpay_core.curve import decode_point
from veilpay_core.encoding import base58_encode, to_32_bytes
from veilpay_core.errors import StealthError, VerificationMismatch
from veilpay_core.keys import MetaKeyPair
from veilpay_core.nullifier import create_nullifier
from veilpay_core.payload import DecryptedPayload, decrypt_ephemeral_key, decrypt_note
from veilpay_core.signing import StealthSigner
from veilpay_core.stealth import is_my_stealth_address, recover_stealth_priv_key

if TYPE_CHECKING:
    from veilpay_core.config import ScannerConfig

logger = logging.getLogger("veilpay.scanner")


@dataclass
class StealthPaymentEvent:
    """One published stealth payment, as read from the chain."""
    organization: str
    stealth_address: bytes
    ephemeral_pubkey: bytes
    encrypted_payload: str
    position_id: int
    token_mint: str = ""
    timestamp: int = 0
    encrypted_amount: bytes = b""     # opaque MPC ciphertext
    signature: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "organization": self.organization,
            "stealth_address": base58_encode(self.stealth_address),
            "ephemeral_pubkey": base58_encode(self.ephemeral_pubkey),
            "encrypted_payload": self.encrypted_payload,
            "position_id": self.position_id,
            "token_mint": self.token_mint,
            "timestamp": self.timestamp,
            "encrypted_amount": self.encrypted_amount.hex(),
            "signature": self.signature,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StealthPaymentEvent:
        return cls(
            organization=data.get("organization", ""),
            stealth_address=to_32_bytes(data["stealth_address"]),
            ephemeral_pubkey=to_32_bytes(data["ephemeral_pubkey"]),
            encrypted_payload=data.get("encrypted_payload", ""),
            position_id=int(data["position_id"]),
            token_mint=data.get("token_mint", ""),
            timestamp=int(data.get("timestamp", 0)),
            encrypted_amount=bytes.fromhex(data.get("encrypted_amount", "")),
            signature=data.get("signature", ""),
        )


@dataclass(frozen=True)
class DiscoveredPayment:
    """A payment known to belong to ``keys``."""
    event: StealthPaymentEvent
    keys: MetaKeyPair = field(repr=False)

    def recover(self) -> DecryptedPayload:
        return decrypt_ephemeral_key(
            self.event.encrypted_payload, self.keys.view_priv, self.event.ephemeral_pubkey,
        )

    def get_signer(self) -> StealthSigner:
        """Signer able to claim this payment; checked against the stealth address."""
        scalar = recover_stealth_priv_key(
            self.keys.spend_priv, self.keys.view_priv, self.event.ephemeral_pubkey,
        )
        signer = StealthSigner.from_scalar(scalar)
        if signer.public_key != self.event.stealth_address:
            raise VerificationMismatch("Recovered stealth key does not control the payment address")
        return signer

    def decrypt_note(self) -> str:
        return decrypt_note(
            self.event.encrypted_payload, self.keys.view_priv, self.event.ephemeral_pubkey,
        )

    def nullifier(self) -> bytes:
        return create_nullifier(self.event.stealth_address, self.event.position_id)


class StealthScanner:
    """Tests payment records against one meta key pair.

    With ``max_workers > 1`` records are split into ``batch_size`` chunks and
    checked on a thread pool; the view key is the only shared state and it is
    read-only.
    """

    def __init__(self, keys: MetaKeyPair, max_workers: int = 1, batch_size: int = 100):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        decode_point(keys.spend_pub_bytes)
        self.keys = keys
        self.max_workers = max(1, max_workers)
        self.batch_size = batch_size

    @classmethod
    def from_config(cls, keys: MetaKeyPair, cfg: ScannerConfig) -> StealthScanner:
        return cls(keys, max_workers=cfg.max_workers, batch_size=cfg.batch_size)

    def is_mine(self, event: StealthPaymentEvent) -> bool:
        try:
            return is_my_stealth_address(
                event.stealth_address,
                event.ephemeral_pubkey,
                self.keys.spend_pub_bytes,
                self.keys.view_priv,
            )
        except StealthError as exc:
            # Malformed published record; our own keys were validated up front
            logger.debug("Skipping malformed record for position %s: %s", event.position_id, exc)
            return False

    def _check_batch(self, batch: list[StealthPaymentEvent]) -> list[bool]:
        return [self.is_mine(event) for event in batch]

    def scan(
        self,
        events: Iterable[StealthPaymentEvent],
        after_timestamp: Optional[int] = None,
        organization: Optional[str] = None,
    ) -> list[DiscoveredPayment]:
        """Return the records addressed to us, in input order."""
        candidates = [
            e for e in events
            if (after_timestamp is None or e.timestamp >= after_timestamp)
            and (organization is None or e.organization == organization)
        ]
        if self.max_workers == 1 or len(candidates) <= self.batch_size:
            flags = self._check_batch(candidates)
        else:
            batches = [
                candidates[i:i + self.batch_size]
                for i in range(0, len(candidates), self.batch_size)
            ]
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                flags = [flag for chunk in pool.map(self._check_batch, batches) for flag in chunk]

        found = [DiscoveredPayment(e, self.keys) for e, mine in zip(candidates, flags) if mine]
        logger.info("Scanned %d records, %d addressed to us", len(candidates), len(found))
        return found
