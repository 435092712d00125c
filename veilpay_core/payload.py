"""
Encrypted ephemeral-key payloads.

The sender publishes the ephemeral private key (and optionally a short note)
encrypted under the ECDH shared secret, so the recipient can recover it with
nothing but the view key.  Layout on the wire is ``nonce(24) || ciphertext``
where the ciphertext is the plaintext XOR-ed with a repeating key.

Two incompatible formats exist and both must stay decodable:

  LEGACY   key = SHA256(shared)                          (32 bytes)
           plaintext = ASCII hex of the ephemeral seed   (64 chars)
           text encoding: base58

  EXTENDED key = k1 || SHA256(k1 || 01) || SHA256(k1 || 02)  (96 bytes)
           plaintext = eph_priv || eph_pub || u16le(len) || note
           text encoding: base64

The nonce is carried for framing only; it is not mixed into the keystream.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import os
import struct
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from veilpay_core.curve import public_key_from_seed, shared_secret
from veilpay_core.encoding import base58_decode, base58_encode, to_32_bytes
from veilpay_core.errors import InvalidEncoding, PayloadTooShort, VerificationMismatch

logger = logging.getLogger("veilpay.payload")

NONCE_SIZE = 24
EPH_HEX_SIZE = 64          # LEGACY: hex text of a 32-byte seed
EPH_BLOCK_SIZE = 64        # EXTENDED: eph_priv(32) || eph_pub(32)
NOTE_LEN_SIZE = 2
MAX_NOTE_BYTES = 0xFFFF

# Characters that can appear in base64 but never in base58
_BASE64_ONLY = frozenset("+/=0OIl")


class PayloadFormat(str, Enum):
    LEGACY = "legacy"
    EXTENDED = "extended"


@dataclass(frozen=True)
class DecryptedPayload:
    """Result of decrypting an ephemeral-key payload.

    ``verified`` is False when the recovered seed does not regenerate the
    published ephemeral public key.  That is reported, not raised, so bulk
    decryption can carry on; call ``raise_for_mismatch`` to make it fatal.
    """
    eph_priv: Optional[bytes] = field(repr=False)
    eph_pub: bytes
    note: str
    fmt: PayloadFormat
    verified: bool

    def raise_for_mismatch(self) -> DecryptedPayload:
        if not self.verified:
            raise VerificationMismatch(
                "Recovered ephemeral key does not match the published ephemeral public key"
            )
        return self


# ===================================================================
#  Key schedule and keystream
# ===================================================================

def derive_keystream(shared: bytes, fmt: PayloadFormat) -> bytes:
    k1 = hashlib.sha256(shared).digest()
    if fmt is PayloadFormat.LEGACY:
        return k1
    k2 = hashlib.sha256(k1 + b"\x01").digest()
    k3 = hashlib.sha256(k1 + b"\x02").digest()
    return k1 + k2 + k3


def xor_keystream(data: bytes, key: bytes) -> bytes:
    """XOR *data* with *key* repeated as often as needed (self-inverse)."""
    n = len(key)
    return bytes(b ^ key[i % n] for i, b in enumerate(data))


# ===================================================================
#  Text envelope
# ===================================================================

def detect_format(encoded: str) -> PayloadFormat:
    """Guess the format of an encoded payload from its alphabet.

    Any character outside the base58 alphabet means base64 (EXTENDED);
    otherwise the payload is taken as base58 (LEGACY).  A base64 string can
    avoid all of ``+/=0OIl`` and so read as base58; the decrypt functions
    retry such text as EXTENDED, but callers that know the format should
    still pass ``fmt`` explicitly.
    """
    if any(ch in _BASE64_ONLY for ch in encoded):
        return PayloadFormat.EXTENDED
    return PayloadFormat.LEGACY


def _encode_text(raw: bytes, fmt: PayloadFormat) -> str:
    if fmt is PayloadFormat.LEGACY:
        return base58_encode(raw)
    return base64.b64encode(raw).decode("ascii")


def _decode_text(encoded: str, fmt: PayloadFormat) -> bytes:
    try:
        if fmt is PayloadFormat.LEGACY:
            return base58_decode(encoded)
        return base64.b64decode(encoded, validate=True)
    except (ValueError, binascii.Error) as exc:
        raise InvalidEncoding(f"Payload is not valid {fmt.value} text") from exc


def _resolve_format(encoded: str, fmt: Any) -> PayloadFormat:
    if fmt is None:
        detected = detect_format(encoded)
        logger.debug("Payload format detected as %s", detected.value)
        return detected
    return PayloadFormat(fmt)


# ===================================================================
#  Generic byte payloads
# ===================================================================

def encrypt_payload(
    plaintext: bytes,
    eph_priv: Any,
    view_pub: Any,
    fmt: PayloadFormat = PayloadFormat.EXTENDED,
) -> str:
    """Sender side: ``nonce || XOR(plaintext, key)`` in the format's text encoding.

    EXTENDED output always contains at least one base64-only character, so
    ``detect_format`` classifies it correctly; the nonce is redrawn until it
    does.  The nonce does not feed the keystream, so the ciphertext is
    unaffected.
    """
    fmt = PayloadFormat(fmt)
    shared = shared_secret(to_32_bytes(eph_priv), to_32_bytes(view_pub))
    body = xor_keystream(bytes(plaintext), derive_keystream(shared, fmt))
    while True:
        encoded = _encode_text(os.urandom(NONCE_SIZE) + body, fmt)
        if fmt is PayloadFormat.LEGACY or detect_format(encoded) is PayloadFormat.EXTENDED:
            return encoded


def _open_payload(encoded: str, view_priv: Any, eph_pub: Any, fmt: PayloadFormat) -> bytes:
    raw = _decode_text(encoded, fmt)
    if len(raw) < NONCE_SIZE:
        raise PayloadTooShort(len(raw), NONCE_SIZE)
    shared = shared_secret(to_32_bytes(view_priv), to_32_bytes(eph_pub))
    return xor_keystream(raw[NONCE_SIZE:], derive_keystream(shared, fmt))


def decrypt_payload(
    encoded: str,
    view_priv: Any,
    eph_pub: Any,
    fmt: Optional[PayloadFormat] = None,
) -> bytes:
    """Recipient side: strip the nonce and undo the XOR.

    With ``fmt=None`` the format is guessed by ``detect_format``; text that
    was taken for base58 but does not decode as a LEGACY payload is retried
    as EXTENDED.  Byte payloads carry no integrity check, so a guess that
    decodes cleanly cannot be second-guessed: pass ``fmt`` when it is known.
    """
    if fmt is not None:
        return _open_payload(encoded, view_priv, eph_pub, PayloadFormat(fmt))
    detected = _resolve_format(encoded, None)
    try:
        return _open_payload(encoded, view_priv, eph_pub, detected)
    except (InvalidEncoding, PayloadTooShort) as exc:
        if detected is PayloadFormat.EXTENDED:
            raise
        logger.debug("LEGACY decode failed, retrying payload as EXTENDED")
        try:
            return _open_payload(encoded, view_priv, eph_pub, PayloadFormat.EXTENDED)
        except (InvalidEncoding, PayloadTooShort):
            pass
        raise exc


# ===================================================================
#  Ephemeral key payloads
# ===================================================================

def encrypt_ephemeral_key(
    eph_priv: Any,
    view_pub: Any,
    note: str = "",
    fmt: PayloadFormat = PayloadFormat.EXTENDED,
) -> str:
    """Encrypt the ephemeral seed (and note, EXTENDED only) for the recipient."""
    fmt = PayloadFormat(fmt)
    eph = to_32_bytes(eph_priv)
    if fmt is PayloadFormat.LEGACY:
        if note:
            raise ValueError("LEGACY payloads cannot carry a note")
        plaintext = eph.hex().encode("ascii")
    else:
        note_bytes = note.encode("utf-8")
        if len(note_bytes) > MAX_NOTE_BYTES:
            raise ValueError(f"Note exceeds {MAX_NOTE_BYTES} bytes")
        plaintext = (
            eph
            + public_key_from_seed(eph)
            + struct.pack("<H", len(note_bytes))
            + note_bytes
        )
    return encrypt_payload(plaintext, eph, view_pub, fmt)


def _open_ephemeral_key(
    encoded: str,
    view_priv: Any,
    eph_pub: Any,
    fmt: PayloadFormat,
) -> DecryptedPayload:
    raw = _decode_text(encoded, fmt)
    minimum = NONCE_SIZE + (EPH_HEX_SIZE if fmt is PayloadFormat.LEGACY else EPH_BLOCK_SIZE)
    if len(raw) < minimum:
        raise PayloadTooShort(len(raw), minimum)

    expected_pub = to_32_bytes(eph_pub)
    shared = shared_secret(to_32_bytes(view_priv), expected_pub)
    key = derive_keystream(shared, fmt)

    eph_priv: Optional[bytes]
    embedded_pub: Optional[bytes] = None
    note = ""
    if fmt is PayloadFormat.LEGACY:
        text = xor_keystream(raw[NONCE_SIZE:NONCE_SIZE + EPH_HEX_SIZE], key)
        try:
            eph_priv = bytes.fromhex(text.decode("ascii"))
        except (UnicodeDecodeError, ValueError):
            eph_priv = None
    else:
        body = xor_keystream(raw[NONCE_SIZE:], key)
        eph_priv = body[:32]
        embedded_pub = body[32:64]
        if len(body) >= EPH_BLOCK_SIZE + NOTE_LEN_SIZE:
            (note_len,) = struct.unpack("<H", body[64:66])
            note = body[66:66 + note_len].decode("utf-8", errors="replace")

    verified = eph_priv is not None and hmac.compare_digest(
        public_key_from_seed(eph_priv), expected_pub
    )
    if embedded_pub is not None and not hmac.compare_digest(embedded_pub, expected_pub):
        verified = False
    return DecryptedPayload(
        eph_priv=eph_priv,
        eph_pub=expected_pub,
        note=note,
        fmt=fmt,
        verified=verified,
    )


def _open_ambiguous_ephemeral_key(
    encoded: str,
    view_priv: Any,
    eph_pub: Any,
) -> DecryptedPayload:
    """Text in the base58 alphabet: try LEGACY, then EXTENDED.

    Whichever reading regenerates the published ephemeral key wins; when
    neither does, the LEGACY reading (or its error) is what comes back.
    """
    try:
        legacy = _open_ephemeral_key(encoded, view_priv, eph_pub, PayloadFormat.LEGACY)
    except (InvalidEncoding, PayloadTooShort) as exc:
        logger.debug("LEGACY decode failed, retrying payload as EXTENDED")
        try:
            return _open_ephemeral_key(encoded, view_priv, eph_pub, PayloadFormat.EXTENDED)
        except (InvalidEncoding, PayloadTooShort):
            pass
        raise exc
    if legacy.verified:
        return legacy
    try:
        extended = _open_ephemeral_key(encoded, view_priv, eph_pub, PayloadFormat.EXTENDED)
    except (InvalidEncoding, PayloadTooShort):
        return legacy
    return extended if extended.verified else legacy


def decrypt_ephemeral_key(
    encoded: str,
    view_priv: Any,
    eph_pub: Any,
    fmt: Optional[PayloadFormat] = None,
) -> DecryptedPayload:
    """Recover the ephemeral seed (and note) from a payload of either format.

    LEGACY reads only the first 64 bytes after the nonce; anything after that
    is padding from the fixed-size on-chain buffer.  With ``fmt=None`` a
    payload that ``detect_format`` takes for LEGACY is also tried as
    EXTENDED, and the reading that verifies is returned.
    """
    if fmt is not None:
        result = _open_ephemeral_key(encoded, view_priv, eph_pub, PayloadFormat(fmt))
    else:
        detected = _resolve_format(encoded, None)
        if detected is PayloadFormat.EXTENDED:
            result = _open_ephemeral_key(encoded, view_priv, eph_pub, detected)
        else:
            result = _open_ambiguous_ephemeral_key(encoded, view_priv, eph_pub)
    if not result.verified:
        logger.warning(
            "Decrypted ephemeral key does not match the published key (%s)", result.fmt.value
        )
    return result


# ===================================================================
#  Notes
# ===================================================================

def encrypt_note(text: str, eph_priv: Any, view_pub: Any) -> str:
    """Stand-alone note memo (LEGACY envelope, UTF-8 text)."""
    return encrypt_payload(text.encode("utf-8"), eph_priv, view_pub, PayloadFormat.LEGACY)


def decrypt_note(
    encoded: str,
    view_priv: Any,
    eph_pub: Any,
    fmt: Optional[PayloadFormat] = None,
) -> str:
    """Read a note from a stand-alone LEGACY memo or an EXTENDED key payload.

    With ``fmt=None``, base58-looking text that opens as a verified EXTENDED
    key payload is read as one; everything else is a stand-alone memo.
    """
    if fmt is None and detect_format(encoded) is PayloadFormat.LEGACY:
        try:
            extended = _open_ephemeral_key(encoded, view_priv, eph_pub, PayloadFormat.EXTENDED)
        except (InvalidEncoding, PayloadTooShort):
            extended = None
        if extended is not None and extended.verified:
            return extended.note
    fmt = _resolve_format(encoded, fmt)
    if fmt is PayloadFormat.EXTENDED:
        return decrypt_ephemeral_key(encoded, view_priv, eph_pub, fmt).note
    return decrypt_payload(encoded, view_priv, eph_pub, fmt).decode("utf-8", errors="replace")
