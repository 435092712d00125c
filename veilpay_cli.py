#!/usr/bin/env python3
"""
VeilPay command line tool -- stealth key and payment helper.

Subcommands:
  keygen       new meta key pair (spend + view)
  ephemeral    new single-use ephemeral key pair
  pay          stealth address + encrypted payload for a meta-address
  check        does a stealth address belong to a meta key pair?
  recover      decrypt an ephemeral-key payload
  derive-key   stealth signing key (public half) and optional signature
  nullifier    claim nullifier for a stealth address and position
  scan         filter a JSON file of payment records down to ours

Usage:
    python veilpay_cli.py keygen
    python veilpay_cli.py pay --spend-pub <b58> --view-pub <b58> --note "March"
    python veilpay_cli.py --config veilpay.toml scan --events events.json \\
                          --spend-priv <hex> --view-priv <hex>

Output is JSON on stdout; logs go to stderr.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from veilpay_core.config import VeilPayConfig, load_config
from veilpay_core.encoding import base58_encode, to_32_bytes
from veilpay_core.errors import StealthError
from veilpay_core.keys import (
    StealthMetaAddress,
    generate_ephemeral_keypair,
    generate_meta_keypair,
    meta_keypair_from_seeds,
)
from veilpay_core.logging_config import setup_logging
from veilpay_core.nullifier import create_nullifier
from veilpay_core.payload import PayloadFormat, decrypt_ephemeral_key
from veilpay_core.scanner import StealthPaymentEvent, StealthScanner
from veilpay_core.signing import StealthSigner
from veilpay_core.stealth import (
    generate_stealth_payment,
    is_my_stealth_address,
    recover_stealth_priv_key,
)

logger = logging.getLogger("veilpay.cli")

FORMAT_CHOICES = [f.value for f in PayloadFormat]


def _emit(obj: Any) -> None:
    print(json.dumps(obj, indent=2))


# ===================================================================
#  Commands
# ===================================================================

def cmd_keygen(args, cfg: VeilPayConfig) -> int:
    _emit(generate_meta_keypair().to_dict())
    return 0


def cmd_ephemeral(args, cfg: VeilPayConfig) -> int:
    eph = generate_ephemeral_keypair()
    _emit({"eph_priv_key": eph.eph_priv.hex(), "eph_pubkey": eph.eph_pub})
    return 0


def cmd_pay(args, cfg: VeilPayConfig) -> int:
    fmt = PayloadFormat(args.format) if args.format else cfg.payload.format
    meta = StealthMetaAddress(spend_pub=args.spend_pub, view_pub=args.view_pub)
    payment = generate_stealth_payment(meta, note=args.note, fmt=fmt)
    _emit({**payment.to_dict(), "format": fmt.value})
    return 0


def cmd_check(args, cfg: VeilPayConfig) -> int:
    mine = is_my_stealth_address(args.address, args.eph_pub, args.spend_pub, args.view_priv)
    _emit({"mine": mine})
    return 0 if mine else 1


def cmd_recover(args, cfg: VeilPayConfig) -> int:
    fmt = None
    if args.format:
        fmt = PayloadFormat(args.format)
    elif not cfg.payload.detect_format:
        fmt = cfg.payload.format
    result = decrypt_ephemeral_key(args.payload, args.view_priv, args.eph_pub, fmt)
    _emit({
        "eph_priv_key": result.eph_priv.hex() if result.eph_priv is not None else None,
        "eph_pubkey": base58_encode(result.eph_pub),
        "note": result.note,
        "format": result.fmt.value,
        "verified": result.verified,
    })
    return 0 if result.verified else 1


def cmd_derive_key(args, cfg: VeilPayConfig) -> int:
    signer = StealthSigner.from_scalar(
        recover_stealth_priv_key(args.spend_priv, args.view_priv, args.eph_pub)
    )
    out: dict[str, Any] = {"stealth_address": signer.address}
    if args.address:
        out["matches"] = signer.public_key == to_32_bytes(args.address)
    if args.message is not None:
        out["signature"] = signer.sign(args.message.encode("utf-8")).hex()
    _emit(out)
    return 0


def cmd_nullifier(args, cfg: VeilPayConfig) -> int:
    _emit({"nullifier": create_nullifier(args.address, args.position_id).hex()})
    return 0


def cmd_scan(args, cfg: VeilPayConfig) -> int:
    with open(args.events) as f:
        records = json.load(f)
    events = [StealthPaymentEvent.from_dict(r) for r in records]
    keys = meta_keypair_from_seeds(args.spend_priv, args.view_priv)
    scanner = StealthScanner.from_config(keys, cfg.scanner)
    found = scanner.scan(events, after_timestamp=args.after, organization=args.organization)
    _emit([
        {**p.event.to_dict(), "nullifier": p.nullifier().hex()}
        for p in found
    ])
    return 0


# ===================================================================
#  Argument parsing
# ===================================================================

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="VeilPay stealth address tool")
    p.add_argument("--config", default=None, help="Path to veilpay.toml config file")
    p.add_argument("--log-level", default=None, help="Override logging level")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("keygen", help="Generate a meta key pair").set_defaults(func=cmd_keygen)
    sub.add_parser("ephemeral", help="Generate an ephemeral key pair").set_defaults(func=cmd_ephemeral)

    sp = sub.add_parser("pay", help="Create a stealth payment")
    sp.add_argument("--spend-pub", required=True)
    sp.add_argument("--view-pub", required=True)
    sp.add_argument("--note", default="")
    sp.add_argument("--format", choices=FORMAT_CHOICES, default=None)
    sp.set_defaults(func=cmd_pay)

    sp = sub.add_parser("check", help="Test stealth address ownership")
    sp.add_argument("--address", required=True)
    sp.add_argument("--eph-pub", required=True)
    sp.add_argument("--spend-pub", required=True)
    sp.add_argument("--view-priv", required=True)
    sp.set_defaults(func=cmd_check)

    sp = sub.add_parser("recover", help="Decrypt an ephemeral-key payload")
    sp.add_argument("--payload", required=True)
    sp.add_argument("--view-priv", required=True)
    sp.add_argument("--eph-pub", required=True)
    sp.add_argument("--format", choices=FORMAT_CHOICES, default=None)
    sp.set_defaults(func=cmd_recover)

    sp = sub.add_parser("derive-key", help="Derive the stealth signing key")
    sp.add_argument("--spend-priv", required=True)
    sp.add_argument("--view-priv", required=True)
    sp.add_argument("--eph-pub", required=True)
    sp.add_argument("--address", default=None, help="Expected stealth address")
    sp.add_argument("--message", default=None, help="UTF-8 message to sign")
    sp.set_defaults(func=cmd_derive_key)

    sp = sub.add_parser("nullifier", help="Compute a claim nullifier")
    sp.add_argument("--address", required=True)
    sp.add_argument("--position-id", type=int, required=True)
    sp.set_defaults(func=cmd_nullifier)

    sp = sub.add_parser("scan", help="Find payment records addressed to us")
    sp.add_argument("--events", required=True, help="JSON file with a list of records")
    sp.add_argument("--spend-priv", required=True)
    sp.add_argument("--view-priv", required=True)
    sp.add_argument("--after", type=int, default=None, help="Only records at/after this unix time")
    sp.add_argument("--organization", default=None)
    sp.set_defaults(func=cmd_scan)
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    # Load config (TOML + env overrides)
    cfg = load_config(args.config)
    if args.log_level:
        cfg.logging.level = args.log_level.upper()
    setup_logging(level=cfg.logging.level, fmt=cfg.logging.format, log_file=cfg.logging.file)

    try:
        return args.func(args, cfg)
    except (StealthError, ValueError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 2


def main_sync() -> None:
    """Console-script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    main_sync()
