"""
Exception taxonomy for the VeilPay stealth core.

Every error derives from ``StealthError`` so callers can catch the whole
family at once.  Encoding problems also derive from ``ValueError`` because
they are, at heart, bad arguments.

``VerificationMismatch`` is special: mismatches are normally reported as a
boolean or a flag so bulk scanning can keep going.  The exception exists only
for callers that explicitly ask for a hard failure.
"""

from __future__ import annotations


class StealthError(Exception):
    """Base class for all stealth-core errors."""


class UnsupportedKeyFormat(StealthError, ValueError):
    """Input could not be normalised to 32 raw bytes."""


class InvalidEncoding(StealthError, ValueError):
    """Bytes are not a valid curve point (or scalar) encoding."""


class NonCanonicalScalar(InvalidEncoding):
    """A raw scalar was not reduced modulo the group order."""


class PayloadTooShort(StealthError, ValueError):
    """Encrypted payload is shorter than the format's minimum length."""

    def __init__(self, length: int, minimum: int):
        super().__init__(f"Encrypted payload too short: {length} bytes, need at least {minimum}")
        self.length = length
        self.minimum = minimum


class VerificationMismatch(StealthError):
    """A recovered value does not match the expected one."""
