"""
TOML-based configuration for VeilPay services.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Usage:
    from veilpay_core.config import load_config
    cfg = load_config("veilpay.toml")
    service = cfg.service.load_keypair()   # build once, pass explicitly
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from nacl.signing import SigningKey, VerifyKey

from veilpay_core.curve import public_key_from_seed
from veilpay_core.encoding import base58_decode, base58_encode
from veilpay_core.payload import PayloadFormat

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib  # type: ignore[import]
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[import,no-redef]


@dataclass(frozen=True)
class ServiceKeypair:
    """The backend's own Ed25519 key (fee payer / organization admin).

    Ordinary seed-based signing.  Stealth scalars never go through here.
    """
    seed: bytes = field(repr=False)
    public_key: bytes

    @classmethod
    def from_secret(cls, secret: bytes) -> ServiceKeypair:
        """Accept a 64-byte ``seed || public`` secret key or a bare 32-byte seed."""
        if len(secret) == 64:
            seed, public = secret[:32], secret[32:]
            if public_key_from_seed(seed) != public:
                raise ValueError("Service secret key: public half does not match seed")
        elif len(secret) == 32:
            seed = secret
            public = public_key_from_seed(seed)
        else:
            raise ValueError(f"Service secret key must be 32 or 64 bytes, got {len(secret)}")
        return cls(seed=bytes(seed), public_key=bytes(public))

    @property
    def address(self) -> str:
        return base58_encode(self.public_key)

    def sign(self, message: bytes) -> bytes:
        return bytes(SigningKey(self.seed).sign(message).signature)

    def verify_key(self) -> VerifyKey:
        return VerifyKey(self.public_key)


@dataclass
class ServiceConfig:
    """Backend service key settings."""
    keypair: str = ""       # base58 of the 64-byte secret key

    def is_configured(self) -> bool:
        return bool(self.keypair)

    def load_keypair(self) -> ServiceKeypair:
        if not self.keypair:
            raise ValueError("Service keypair not configured (set [service] keypair or VEILPAY_SERVICE_KEYPAIR)")
        try:
            secret = base58_decode(self.keypair)
        except ValueError as exc:
            raise ValueError("Service keypair is not valid base58") from exc
        return ServiceKeypair.from_secret(secret)


@dataclass
class PayloadConfig:
    """Encrypted payload settings."""
    default_format: str = "extended"    # "extended" or "legacy"
    # Sniff base58/base64 on decode when the format is not recorded
    detect_format: bool = True

    @property
    def format(self) -> PayloadFormat:
        return PayloadFormat(self.default_format)


@dataclass
class ScannerConfig:
    """Payment scanning settings."""
    max_workers: int = 1
    batch_size: int = 100


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class VeilPayConfig:
    """Top-level configuration container."""
    service: ServiceConfig = field(default_factory=ServiceConfig)
    payload: PayloadConfig = field(default_factory=PayloadConfig)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def load_config(path: str | None = None) -> VeilPayConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        VEILPAY_SERVICE_KEYPAIR -> service.keypair
        VEILPAY_PAYLOAD_FORMAT  -> payload.default_format
        VEILPAY_SCAN_WORKERS    -> scanner.max_workers
        VEILPAY_SCAN_BATCH      -> scanner.batch_size
        VEILPAY_LOG_LEVEL       -> logging.level
        VEILPAY_LOG_FMT         -> logging.format
    """
    cfg = VeilPayConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("service", cfg.service),
                ("payload", cfg.payload),
                ("scanner", cfg.scanner),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("VEILPAY_SERVICE_KEYPAIR"):
        cfg.service.keypair = v
    if v := os.environ.get("VEILPAY_PAYLOAD_FORMAT"):
        cfg.payload.default_format = v.lower()
    if v := os.environ.get("VEILPAY_SCAN_WORKERS"):
        cfg.scanner.max_workers = int(v)
    if v := os.environ.get("VEILPAY_SCAN_BATCH"):
        cfg.scanner.batch_size = int(v)
    if v := os.environ.get("VEILPAY_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("VEILPAY_LOG_FMT"):
        cfg.logging.format = v

    # Fail early on an unknown payload format
    PayloadFormat(cfg.payload.default_format)
    return cfg
