"""
VeilPay - stealth address core for Ed25519 accounts.

Key features:
- One-time, unlinkable stealth addresses derived from a spend/view meta-address
- View-key ownership scanning and spend-key scalar recovery
- Ed25519 signing directly from a derived stealth scalar
- Encrypted ephemeral-key payloads (legacy base58 and extended base64 formats)
- Claim nullifiers for double-spend prevention by an external ledger
"""

__version__ = "1.0.0"
__all__ = [
    "errors",
    "scalar",
    "encoding",
    "curve",
    "keys",
    "stealth",
    "signing",
    "payload",
    "nullifier",
    "scanner",
    "config",
    "logging_config",
]
