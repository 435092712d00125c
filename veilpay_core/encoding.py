"""
Boundary encodings for keys and points.

Collaborators hand keys over as raw bytes, 64-character hex strings or
base58 text.  Instead of sniffing ad hoc at every call site, each input is
classified once into a ``KeyEncoding`` variant and normalised to 32 raw
bytes by ``to_32_bytes``.

``ByteArrayObject`` is a compatibility shim for a marshaling collaborator
that serialises buffers as ``{"type": "Buffer", "data": [..]}``.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

from veilpay_core.errors import UnsupportedKeyFormat

KEY_SIZE = 32

# Bitcoin / Solana base58 alphabet
BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_B58_INDEX = {c: i for i, c in enumerate(BASE58_ALPHABET)}

_HEX_KEY_RE = re.compile(r"[0-9a-fA-F]{64}")


# ===================================================================
#  Base58
# ===================================================================

def base58_encode(data: bytes) -> str:
    """Encode bytes as base58, one leading ``1`` per leading zero byte."""
    n = int.from_bytes(data, "big")
    out = []
    while n > 0:
        n, rem = divmod(n, 58)
        out.append(BASE58_ALPHABET[rem])
    pad = len(data) - len(data.lstrip(b"\x00"))
    return "1" * pad + "".join(reversed(out))


def base58_decode(text: str) -> bytes:
    """Decode base58 text.  Raises ``ValueError`` on characters outside the alphabet."""
    n = 0
    for ch in text:
        try:
            n = n * 58 + _B58_INDEX[ch]
        except KeyError:
            raise ValueError(f"Invalid base58 character {ch!r}") from None
    body = n.to_bytes((n.bit_length() + 7) // 8, "big") if n else b""
    pad = len(text) - len(text.lstrip("1"))
    return b"\x00" * pad + body


def is_base58(text: str) -> bool:
    return bool(text) and all(ch in _B58_INDEX for ch in text)


# ===================================================================
#  Key encoding variants
# ===================================================================

@dataclass(frozen=True)
class Raw:
    data: bytes

    def to_bytes(self) -> bytes:
        return bytes(self.data)


@dataclass(frozen=True)
class Base58:
    text: str

    def to_bytes(self) -> bytes:
        return base58_decode(self.text)


@dataclass(frozen=True)
class Hex:
    text: str

    def to_bytes(self) -> bytes:
        return bytes.fromhex(self.text)


@dataclass(frozen=True)
class ByteArrayObject:
    """``{"type": "Buffer", "data": [...]}`` as produced by one JSON marshaler."""
    data: tuple[int, ...]

    def to_bytes(self) -> bytes:
        return bytes(self.data)


KeyEncoding = Union[Raw, Base58, Hex, ByteArrayObject]
KeyInput = Union[bytes, bytearray, memoryview, str, Mapping, Raw, Base58, Hex, ByteArrayObject]


def classify_key(value: Any) -> KeyEncoding:
    """Tag *value* with the encoding it uses, without decoding it."""
    if isinstance(value, (Raw, Base58, Hex, ByteArrayObject)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return Raw(bytes(value))
    if isinstance(value, str):
        if _HEX_KEY_RE.fullmatch(value):
            return Hex(value)
        if is_base58(value):
            return Base58(value)
        raise UnsupportedKeyFormat("String key is neither 64-char hex nor base58")
    if isinstance(value, Mapping) and value.get("type") == "Buffer":
        data = value.get("data")
        if isinstance(data, (list, tuple)) and all(isinstance(b, int) for b in data):
            return ByteArrayObject(tuple(data))
    raise UnsupportedKeyFormat(f"Unsupported key format: {type(value).__name__}")


def to_32_bytes(value: Any) -> bytes:
    """Normalise any accepted key form to exactly 32 raw bytes."""
    encoding = classify_key(value)
    try:
        raw = encoding.to_bytes()
    except ValueError as exc:
        raise UnsupportedKeyFormat(f"Could not decode {type(encoding).__name__} key") from exc
    if len(raw) != KEY_SIZE:
        raise UnsupportedKeyFormat(
            f"Key must decode to {KEY_SIZE} bytes, got {len(raw)} ({type(encoding).__name__})"
        )
    return raw
